"""
Institution hint registry and hint application.
"""
import yaml
from pathlib import Path
from types import MappingProxyType
from typing import List, Mapping, Optional, Sequence
import logging

from pydantic import ValidationError

from .layout import ColumnBoundary
from ..models.schema import ColumnType, InstitutionHint

logger = logging.getLogger(__name__)


DEFAULT_HINTS_DIR = Path(__file__).parent.parent / "hints"


def load_hint_file(yaml_file: Path) -> InstitutionHint:
    """Load and validate one hint record."""
    with open(yaml_file, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    data.setdefault('key', yaml_file.stem)
    return InstitutionHint.model_validate(data)


def load_hint_registry(hints_dir: Optional[Path] = None) -> Mapping[str, InstitutionHint]:
    """
    Build the immutable hint registry from a directory of YAML files.
    
    Args:
        hints_dir: Directory of ``*.yaml`` hint files; defaults to the bundled hints
    
    Returns:
        Read-only mapping of hint key to InstitutionHint
    """
    hints_dir = hints_dir or DEFAULT_HINTS_DIR
    registry = {}
    
    if not hints_dir.exists():
        logger.warning(f"Hints directory not found: {hints_dir}")
        return MappingProxyType(registry)
    
    for yaml_file in sorted(hints_dir.glob("*.yaml")):
        try:
            hint = load_hint_file(yaml_file)
        except (yaml.YAMLError, ValidationError, OSError) as e:
            logger.error(f"Error loading hint {yaml_file}: {e}")
            continue
        if hint.key in registry:
            logger.warning(f"Duplicate hint key {hint.key} in {yaml_file}, keeping the first")
            continue
        registry[hint.key] = hint
        logger.debug(f"Loaded hint: {hint.key}")
    
    return MappingProxyType(registry)


def get_hint(registry: Mapping[str, InstitutionHint], key: Optional[str]) -> Optional[InstitutionHint]:
    """Look up a hint by key; unknown keys are logged and ignored."""
    if not key:
        return None
    hint = registry.get(key)
    if hint is None:
        logger.warning(f"Hint not found: {key}")
    return hint


def apply_hint(boundaries: Sequence[ColumnBoundary], hint: Optional[InstitutionHint],
               min_confidence: float = 0.6) -> List[ColumnBoundary]:
    """
    Use a hint's expected layout to settle weak column assignments.
    
    When the expected column order has as many entries as there are
    boundaries, unknown and low-confidence columns take the expected type. A
    merged-amount hint turns a lone debit or credit column into "amount".
    
    Args:
        boundaries: Ordered boundaries of one table
        hint: Institution hint, or None
        min_confidence: Assignments below this confidence may be replaced
    
    Returns:
        Boundaries with hint-resolved types
    """
    result = list(boundaries)
    if hint is None or not result:
        return result
    
    order = list(hint.column_order)
    if order and len(order) == len(result):
        for i, (boundary, expected) in enumerate(zip(result, order)):
            if boundary.column_type == expected:
                result[i] = boundary.retyped(expected, max(boundary.confidence, 0.9))
            elif boundary.column_type == ColumnType.UNKNOWN or boundary.confidence < min_confidence:
                logger.debug(f"Hint {hint.key}: column {i} {boundary.column_type.value} -> {expected.value}")
                result[i] = boundary.retyped(expected, 0.8)
    elif order:
        logger.debug(f"Hint {hint.key}: expected {len(order)} columns, found {len(result)}")
    
    if hint.merged_amount:
        types = [b.column_type for b in result]
        if ColumnType.AMOUNT not in types:
            movement = [i for i, t in enumerate(types) if t in (ColumnType.DEBIT, ColumnType.CREDIT)]
            if len(movement) == 1:
                i = movement[0]
                result[i] = result[i].retyped(ColumnType.AMOUNT, max(result[i].confidence, 0.8))
    
    return result

