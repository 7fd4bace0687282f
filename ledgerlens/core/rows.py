"""
Row extraction, classification and continuation stitching (including across page breaks).
"""
from dataclasses import dataclass, field, replace
from functools import reduce
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple
import logging

from .anchors import is_header_repeat
from .config import EngineConfig
from .layout import ColumnBoundary, Line, TableRegion
from .normalize import clean_description, has_numeric_content, looks_like_date
from .patterns import RowPatterns
from ..models.schema import ColumnType, RowKind

logger = logging.getLogger(__name__)


AMOUNT_FIELDS = (ColumnType.DEBIT, ColumnType.CREDIT, ColumnType.AMOUNT, ColumnType.BALANCE)


@dataclass(frozen=True)
class ExtractedRow:
    """One or more lines projected into named fields."""
    lines: Tuple[Line, ...]
    fields: Tuple[Tuple[ColumnType, str], ...]
    assigned_tokens: int = 0
    has_balance_column: bool = False

    def get(self, column_type: ColumnType) -> str:
        for key, value in self.fields:
            if key == column_type:
                return value
        return ''

    def field_map(self) -> Dict[str, str]:
        return {key.value: value for key, value in self.fields}

    @property
    def text(self) -> str:
        return ' '.join(line.text for line in self.lines)

    @property
    def pages(self) -> Tuple[int, ...]:
        return tuple(sorted({line.page for line in self.lines}))

    @property
    def first_page(self) -> int:
        return self.lines[0].page

    @property
    def last_page(self) -> int:
        return self.lines[-1].page

    @property
    def token_count(self) -> int:
        return sum(len(line) for line in self.lines)

    @property
    def has_amount(self) -> bool:
        return any(has_numeric_content(self.get(t)) for t in AMOUNT_FIELDS)

    @property
    def has_date(self) -> bool:
        value = self.get(ColumnType.DATE)
        return bool(value) and looks_like_date(value)


@dataclass(frozen=True)
class ClassifiedRow:
    row: ExtractedRow
    kind: RowKind
    reason: str = ''

    @property
    def is_skip(self) -> bool:
        return self.kind == RowKind.NOISE and self.reason == 'skip'


@dataclass(frozen=True)
class StitchedTransaction:
    """A primary row (transaction or balance row) plus its continuation rows."""
    primary: ExtractedRow
    kind: RowKind = RowKind.TRANSACTION
    continuations: Tuple[ExtractedRow, ...] = field(default=())
    debit: str = ''
    credit: str = ''

    @classmethod
    def start(cls, classified: ClassifiedRow) -> 'StitchedTransaction':
        row = classified.row
        return cls(primary=row, kind=classified.kind,
                   debit=row.get(ColumnType.DEBIT), credit=row.get(ColumnType.CREDIT))

    def extended(self, row: ExtractedRow) -> 'StitchedTransaction':
        return replace(self, continuations=self.continuations + (row,))

    def get(self, column_type: ColumnType) -> str:
        return self.primary.get(column_type)

    @property
    def raw_description(self) -> str:
        parts = [self.primary.get(ColumnType.DESCRIPTION)]
        parts.extend(row.text for row in self.continuations)
        return ' '.join(p for p in parts if p)

    @property
    def description(self) -> str:
        return clean_description(self.raw_description)

    @property
    def rows(self) -> Tuple[ExtractedRow, ...]:
        return (self.primary,) + self.continuations

    @property
    def pages(self) -> Tuple[int, ...]:
        return tuple(sorted({page for row in self.rows for page in row.pages}))

    @property
    def token_count(self) -> int:
        return sum(row.token_count for row in self.rows)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def extract_row(line: Line, boundaries: Sequence[ColumnBoundary]) -> ExtractedRow:
    """
    Project a line into fields by strict containment.
    
    A token goes to the first boundary that contains its center; tokens in no
    boundary stay unassigned.
    """
    texts: Dict[ColumnType, List[str]] = {}
    assigned = 0
    for token in line.tokens:
        for boundary in boundaries:
            if boundary.contains(token):
                texts.setdefault(boundary.column_type, []).append(token.text)
                assigned += 1
                break
    
    ordered = [b.column_type for b in boundaries]
    fields = tuple(
        (column_type, ' '.join(texts[column_type]))
        for column_type in dict.fromkeys(ordered) if column_type in texts
    )
    return ExtractedRow(
        lines=(line,),
        fields=fields,
        assigned_tokens=assigned,
        has_balance_column=ColumnType.BALANCE in ordered,
    )


def extract_rows(region: TableRegion) -> List[ExtractedRow]:
    """Project every line of a region's span through its boundaries."""
    return [extract_row(line, region.boundaries) for line in region.span]


def merge_rows(first: ExtractedRow, second: ExtractedRow) -> ExtractedRow:
    """Combine a row with its wrapped remainder; empty fields are filled, descriptions joined."""
    fields = dict(first.fields)
    for column_type, value in second.fields:
        if column_type == ColumnType.DESCRIPTION and fields.get(column_type):
            fields[column_type] = f"{fields[column_type]} {value}"
        elif not fields.get(column_type):
            fields[column_type] = value
    return ExtractedRow(
        lines=first.lines + second.lines,
        fields=tuple(fields.items()),
        assigned_tokens=first.assigned_tokens + second.assigned_tokens,
        has_balance_column=first.has_balance_column or second.has_balance_column,
    )


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def classify_row(row: ExtractedRow, patterns: RowPatterns, config: EngineConfig = None) -> ClassifiedRow:
    """
    Tag a row as transaction, continuation, opening/closing balance or noise.
    
    Args:
        row: Extracted row
        patterns: Skip and balance-row patterns (hint-extended)
        config: Engine configuration
    
    Returns:
        ClassifiedRow; noise rows carry reason "skip" (pattern match) or
        "unclassified"
    """
    text = row.text
    has_amount = row.has_amount
    has_date = row.has_date
    movement = any(has_numeric_content(row.get(t)) for t in (ColumnType.DEBIT, ColumnType.CREDIT, ColumnType.AMOUNT))
    
    if has_amount and not movement:
        if patterns.is_opening(text):
            return ClassifiedRow(row, RowKind.OPENING_BALANCE)
        if patterns.is_closing(text):
            return ClassifiedRow(row, RowKind.CLOSING_BALANCE)
    
    if patterns.is_skip(text):
        return ClassifiedRow(row, RowKind.NOISE, 'skip')
    
    if has_date and has_amount:
        return ClassifiedRow(row, RowKind.TRANSACTION)
    
    if not has_date and is_header_repeat(row.lines[0], config):
        return ClassifiedRow(row, RowKind.NOISE, 'skip')
    
    if not has_date and not has_amount and len(text.strip()) > 2:
        return ClassifiedRow(row, RowKind.CONTINUATION)
    
    return ClassifiedRow(row, RowKind.NOISE, 'unclassified')


def classify_rows(rows: Sequence[ExtractedRow], patterns: RowPatterns,
                  config: EngineConfig = None) -> List[ClassifiedRow]:
    return [classify_row(row, patterns, config) for row in rows]


# ---------------------------------------------------------------------------
# Stitching
# ---------------------------------------------------------------------------

def stitch_page_breaks(rows: Sequence[ClassifiedRow], patterns: RowPatterns,
                       config: EngineConfig = None) -> Tuple[List[ClassifiedRow], int]:
    """
    Join transactions split by a page break.
    
    The first content row of a new page attaches to the last content row of
    the previous page when it is a continuation, or when the previous row is a
    dated transaction with nothing in its balance column and the new row has
    no date of its own (the amount wrapped). Page headers and footers matched
    by skip patterns are stepped over.
    
    Returns:
        (rows with wrapped remainders merged, number of cross-page stitches)
    """
    result: List[ClassifiedRow] = []
    last_content: Optional[int] = None
    stitches = 0
    
    for current in rows:
        if current.is_skip:
            result.append(current)
            continue
        
        previous = result[last_content] if last_content is not None else None
        if previous is not None and current.row.first_page > previous.row.last_page:
            if current.kind == RowKind.CONTINUATION and previous.kind in (RowKind.TRANSACTION, RowKind.CONTINUATION):
                stitches += 1
                logger.debug(f"Page {current.row.first_page} opens with a continuation of the previous page")
            elif (previous.kind == RowKind.TRANSACTION and previous.row.has_balance_column
                  and not previous.row.get(ColumnType.BALANCE) and not current.row.has_date
                  and current.kind != RowKind.TRANSACTION):
                merged = classify_row(merge_rows(previous.row, current.row), patterns, config)
                result[last_content] = merged
                stitches += 1
                logger.debug(f"Stitched wrapped row across pages {previous.row.last_page}-{current.row.first_page}")
                continue
        
        result.append(current)
        last_content = len(result) - 1
    
    return result, stitches


class StitchState(NamedTuple):
    stitched: Tuple[StitchedTransaction, ...] = ()
    skipped: Tuple[ExtractedRow, ...] = ()


def _fold_row(state: StitchState, classified: ClassifiedRow) -> StitchState:
    kind = classified.kind
    if kind in (RowKind.TRANSACTION, RowKind.OPENING_BALANCE, RowKind.CLOSING_BALANCE):
        return state._replace(stitched=state.stitched + (StitchedTransaction.start(classified),))
    
    if kind == RowKind.CONTINUATION and state.stitched and state.stitched[-1].kind == RowKind.TRANSACTION:
        last = state.stitched[-1]
        return state._replace(stitched=state.stitched[:-1] + (last.extended(classified.row),))
    
    return state._replace(skipped=state.skipped + (classified.row,))


def stitch_rows(rows: Sequence[ClassifiedRow]) -> StitchState:
    """
    Fold classified rows into stitched transactions.
    
    Continuations append to the open transaction; a continuation with no open
    transaction, and every noise row, is skipped.
    """
    return reduce(_fold_row, rows, StitchState())
