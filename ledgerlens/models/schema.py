"""
Pydantic models for positioned tokens, parsed transactions and diagnostics.
"""
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Dict
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ColumnType(str, Enum):
    """Semantic type inferred for a column."""
    DATE = "date"
    VALUE_DATE = "value_date"
    DESCRIPTION = "description"
    DEBIT = "debit"
    CREDIT = "credit"
    BALANCE = "balance"
    AMOUNT = "amount"
    REFERENCE = "reference"
    UNKNOWN = "unknown"


AMOUNT_TYPES = frozenset({ColumnType.DEBIT, ColumnType.CREDIT, ColumnType.BALANCE, ColumnType.AMOUNT})
UNIQUE_TYPES = frozenset({ColumnType.DATE, ColumnType.DESCRIPTION, ColumnType.BALANCE})


class RowKind(str, Enum):
    """Classification of an extracted row."""
    TRANSACTION = "transaction"
    CONTINUATION = "continuation"
    OPENING_BALANCE = "opening_balance"
    CLOSING_BALANCE = "closing_balance"
    NOISE = "noise"


class TransactionStatus(str, Enum):
    """Balance-chain validation outcome for a transaction."""
    VALID = "valid"
    WARNING = "warning"
    ERROR = "error"
    UNCHECKED = "unchecked"


class PositionedToken(BaseModel):
    """A text token with its page and bounding box, as produced by the extraction front end."""
    model_config = ConfigDict(frozen=True)

    text: str
    page: int = 1
    x0: float
    x1: float
    top: float
    bottom: float
    bold: bool = False

    @field_validator('x1')
    @classmethod
    def validate_x_order(cls, v, info):
        x0 = info.data.get('x0')
        if x0 is not None and v < x0:
            raise ValueError(f"x1 ({v}) must not be left of x0 ({x0})")
        return v

    @property
    def center_x(self) -> float:
        return (self.x0 + self.x1) / 2

    @property
    def width(self) -> float:
        return self.x1 - self.x0


class ParsedTransaction(BaseModel):
    """Normalized transaction record."""
    transaction_date: Optional[date] = None
    value_date: Optional[date] = None
    description: str = ""
    debit: Optional[Decimal] = None
    credit: Optional[Decimal] = None
    balance: Optional[Decimal] = None
    reference: Optional[str] = None
    reference_type: Optional[str] = None  # UTR, IMPS, NEFT, RTGS, Cheque, RefNo, Other
    status: TransactionStatus = TransactionStatus.UNCHECKED
    expected_balance: Optional[Decimal] = None
    discrepancy: Optional[Decimal] = None
    message: Optional[str] = None
    overdraft: bool = False
    flags: List[str] = Field(default_factory=list)
    source_pages: List[int] = Field(default_factory=list)
    stitched_lines: int = 0
    raw_fields: Dict[str, str] = Field(default_factory=dict)
    confidence: Optional[int] = None  # 0-100
    grade: Optional[str] = None  # A-F
    confidence_concerns: List[str] = Field(default_factory=list)


class DocumentSegment(BaseModel):
    """Transactions governed by one opening balance."""
    index: int
    start_page: Optional[int] = None
    end_page: Optional[int] = None
    opening_balance: Optional[Decimal] = None
    opening_derived: bool = False
    closing_balance: Optional[Decimal] = None
    closing_derived: bool = False
    closing_matches: Optional[bool] = None
    total_debit: Decimal = Decimal('0')
    total_credit: Decimal = Decimal('0')
    valid_count: int = 0
    warning_count: int = 0
    error_count: int = 0
    unchecked_count: int = 0
    transactions: List[ParsedTransaction] = Field(default_factory=list)


class StrategyMetrics(BaseModel):
    """Inputs to the strategy scoring formula."""
    transaction_count: int = 0
    has_balance: bool = False
    has_date: bool = False
    date_match_ratio: float = 0.0
    balance_pass_rate: Optional[float] = None
    column_count: int = 0


class StrategyScore(BaseModel):
    """Outcome of one detection strategy."""
    name: str
    success: bool
    score: float
    metrics: StrategyMetrics
    table_count: int = 0
    note: Optional[str] = None


class ColumnMapEntry(BaseModel):
    """One resolved column in the diagnostics column map."""
    x0: float
    x1: float
    column_type: ColumnType
    confidence: float


class Diagnostics(BaseModel):
    """Observability bundle returned next to the transactions."""
    strategy: Optional[str] = None
    low_confidence: bool = False
    strategy_scores: List[StrategyScore] = Field(default_factory=list)
    column_map: List[ColumnMapEntry] = Field(default_factory=list)
    table_count: int = 0
    line_count: int = 0
    row_count: int = 0
    transaction_rows: int = 0
    continuation_rows: int = 0
    balance_rows: int = 0
    skipped_rows: int = 0
    cross_page_stitches: int = 0
    total_tokens: int = 0
    stitched_tokens: int = 0
    skipped_tokens: int = 0
    outside_lines: int = 0
    outside_tokens: int = 0
    currency: Optional[str] = None
    number_format: Optional[str] = None
    day_first: Optional[bool] = None
    date_order: Optional[str] = None
    reversed: bool = False
    hint: Optional[str] = None
    overall_status: TransactionStatus = TransactionStatus.UNCHECKED
    average_confidence: Optional[float] = None
    low_confidence_rows: int = 0
    warnings: List[str] = Field(default_factory=list)


class ParseResult(BaseModel):
    """Complete output of one document run."""
    transactions: List[ParsedTransaction] = Field(default_factory=list)
    segments: List[DocumentSegment] = Field(default_factory=list)
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)


class InstitutionHint(BaseModel):
    """Declarative per-institution hint record."""
    model_config = ConfigDict(frozen=True)

    key: str
    name: Optional[str] = None
    skip_patterns: List[str] = Field(default_factory=list)
    opening_balance_patterns: List[str] = Field(default_factory=list)
    closing_balance_patterns: List[str] = Field(default_factory=list)
    column_order: List[ColumnType] = Field(default_factory=list)
    merged_amount: bool = False
    currency: Optional[str] = None
    day_first: Optional[bool] = None
    thousands_separator: Optional[str] = None
    decimal_separator: Optional[str] = None
    indian_grouping: Optional[bool] = None

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v):
        """Currency codes are upper-case ISO 4217."""
        if v is None:
            return v
        if len(v) != 3 or not v.isalpha():
            raise ValueError(f"Invalid currency code: {v}")
        return v.upper()
