"""
LedgerLens statement parser

Template-free extraction of validated transactions from positioned statement
tokens: geometry-driven column detection with multi-strategy consensus, row
stitching across pages, locale-aware normalization and balance-chain checks.
"""

__version__ = "1.0.0"

from .core.runner import StatementParser, parse_tokens
from .core.config import EngineConfig, load_config
from .core.hints import load_hint_registry
from .models.schema import (
    PositionedToken,
    ParsedTransaction,
    DocumentSegment,
    Diagnostics,
    ParseResult,
    InstitutionHint,
)

__all__ = [
    "StatementParser",
    "parse_tokens",
    "EngineConfig",
    "load_config",
    "load_hint_registry",
    "PositionedToken",
    "ParsedTransaction",
    "DocumentSegment",
    "Diagnostics",
    "ParseResult",
    "InstitutionHint",
]
