"""
Tunable thresholds for every pipeline stage.
"""
import yaml
from decimal import Decimal
from pathlib import Path
from typing import Dict, Optional
from pydantic import BaseModel, Field
import logging

logger = logging.getLogger(__name__)


DEFAULT_CURRENCY_TOLERANCES = {
    # Zero-decimal currencies round to whole units
    'JPY': Decimal('1.0'),
    'KRW': Decimal('1.0'),
    'IDR': Decimal('1.0'),
    'VND': Decimal('1.0'),
    'USD': Decimal('0.01'),
    'EUR': Decimal('0.01'),
    'GBP': Decimal('0.01'),
    'AUD': Decimal('0.01'),
    'CAD': Decimal('0.01'),
    'NZD': Decimal('0.01'),
    'CHF': Decimal('0.01'),
    'SGD': Decimal('0.01'),
    'HKD': Decimal('0.01'),
    'AED': Decimal('0.01'),
    'SAR': Decimal('0.01'),
    'QAR': Decimal('0.01'),
    # Paise rounding on Indian statements
    'INR': Decimal('0.50'),
}


class EngineConfig(BaseModel):
    """All externally tunable constants of the parsing pipeline."""

    # Line grouping
    y_tolerance: float = 3.0

    # Table region segmentation
    cardinality_tolerance: int = 3
    vertical_gap_threshold: float = 150.0
    min_table_lines: int = 3
    merge_token_tolerance: float = 2.0

    # Gutter detection
    histogram_resolution: float = 2.0
    dense_tokens_per_line: float = 8.0
    normal_tokens_per_line: float = 4.0
    coverage_ratio: Dict[str, float] = Field(
        default_factory=lambda: {'dense': 0.03, 'normal': 0.08, 'sparse': 0.15}
    )
    min_gutter_buckets: Dict[str, int] = Field(
        default_factory=lambda: {'dense': 2, 'normal': 3, 'sparse': 5}
    )
    min_column_width: Dict[str, float] = Field(
        default_factory=lambda: {'dense': 15.0, 'normal': 20.0, 'sparse': 20.0}
    )

    # Header anchoring
    header_search_lines: int = 15
    min_header_categories: int = 3
    header_fuzzy_threshold: float = 88.0
    header_merge_gap: float = 10.0

    # Strategy selection
    min_columns: int = 3
    min_transaction_rows: int = 2
    score_weights: Dict[str, float] = Field(
        default_factory=lambda: {
            'transaction_count': 0.20,
            'has_balance': 0.15,
            'has_date': 0.15,
            'date_matches': 0.15,
            'balance_validation': 0.25,
            'column_count': 0.10,
        }
    )
    font_weight_boost: float = 1.1
    parallel_strategies: bool = True
    max_workers: int = 4

    # Reconciliation
    reconcile_tolerance: float = 15.0
    flip_majority: float = 0.8

    # Row stitching
    page_drift_tolerance: float = 15.0

    # Normalization
    day_first: bool = True
    default_year: Optional[int] = None
    local_currency: str = 'USD'
    currency: Optional[str] = None

    # Balance validation
    default_tolerance: Decimal = Decimal('0.05')
    currency_tolerances: Dict[str, Decimal] = Field(
        default_factory=lambda: dict(DEFAULT_CURRENCY_TOLERANCES)
    )
    auto_reverse: bool = True

    def tolerance_for(self, currency: Optional[str]) -> Decimal:
        """Balance tolerance for a currency; unknown currencies get the default."""
        if not currency:
            return self.default_tolerance
        return self.currency_tolerances.get(currency.upper(), self.default_tolerance)


def load_config(config_path: Optional[Path] = None) -> EngineConfig:
    """
    Load engine configuration from a YAML file.
    
    Args:
        config_path: Path to YAML file; None returns the defaults
    
    Returns:
        EngineConfig with file values layered over the defaults
    """
    if config_path is None:
        return EngineConfig()
    
    with open(config_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")
    
    config = EngineConfig.model_validate(data)
    logger.debug(f"Loaded config from {config_path}")
    return config
