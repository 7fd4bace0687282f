"""
End-to-end parsing orchestration: positioned tokens in, validated transactions out.
"""
from collections import Counter
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import logging

from .amounts import classify_reference, extract_reference, split_amounts
from .balance import (
    LedgerEntry, build_segments, detect_chronological_order, detect_currency, overall_status,
)
from .confidence import LOW_CONFIDENCE_SCORE, average_confidence, with_confidence
from .config import EngineConfig
from .hints import apply_hint
from .layout import ColumnBoundary, Line, TableRegion
from .lines import group_tokens_into_lines
from .normalize import (
    INDIAN, NumberFormat, detect_day_first, detect_number_format, has_numeric_content, looks_like_date,
    normalize_text, parse_amount, parse_date,
)
from .patterns import RowPatterns
from .reconcile import reconcile_tables
from .rows import (
    AMOUNT_FIELDS, ClassifiedRow, StitchedTransaction, classify_rows, extract_rows, stitch_page_breaks, stitch_rows,
)
from .strategies import StrategySelection, select_strategy
from ..models.schema import (
    ColumnMapEntry, ColumnType, Diagnostics, InstitutionHint, ParsedTransaction, ParseResult,
    PositionedToken, RowKind,
)

logger = logging.getLogger(__name__)


BALANCE_ROW_FIELDS = (ColumnType.BALANCE, ColumnType.AMOUNT, ColumnType.CREDIT, ColumnType.DEBIT)


def _as_tokens(tokens: Iterable[Any]) -> List[PositionedToken]:
    return [t if isinstance(t, PositionedToken) else PositionedToken.model_validate(t) for t in tokens]


def _magnitude(text: str, fmt: NumberFormat) -> Optional[Decimal]:
    value = parse_amount(text, fmt)
    return abs(value) if value is not None else None


def _outside_lines(lines: Sequence[Line], tables: Sequence[TableRegion]) -> List[Line]:
    """Lines no table span covers; their tokens never reach row extraction."""
    spanned = {id(line) for table in tables for line in table.span}
    return [line for line in lines if id(line) not in spanned]


def _looks_like_transaction(line: Line) -> bool:
    return looks_like_date(line.tokens[0].text) and has_numeric_content(line.tokens[-1].text)


class StatementParser:
    """
    Main parser class that runs the detection, stitching, normalization and
    validation stages over one document's tokens.

    The parser holds no per-document state, so one instance may parse many
    documents, including concurrently.
    """

    def __init__(self, config: Optional[EngineConfig] = None, hint: Optional[InstitutionHint] = None):
        self.config = config or EngineConfig()
        self.hint = hint
        self.patterns = RowPatterns(hint)

    def parse(self, tokens: Sequence[PositionedToken]) -> ParseResult:
        """
        Parse positioned tokens into validated transactions.
        
        Args:
            tokens: Positioned tokens of one document, any order
        
        Returns:
            ParseResult with transactions, segments and diagnostics
        """
        tokens = _as_tokens(tokens)
        lines = group_tokens_into_lines(tokens, self.config.y_tolerance)
        if not lines:
            logger.warning("No tokens to parse")
            return ParseResult(diagnostics=Diagnostics(
                low_confidence=True,
                hint=self.hint.key if self.hint else None,
                warnings=['No tokens to parse'],
            ))
        
        warnings: List[str] = []
        
        # Structure
        selection = select_strategy(lines, self.config)
        if selection.low_confidence:
            warnings.append(f"No strategy met the minimum thresholds; using {selection.winner.name}")
        tables, consensus = self._resolve_columns(selection)
        outside = _outside_lines(lines, tables)
        stray = [line for line in outside if _looks_like_transaction(line)]
        if stray:
            message = f"{len(stray)} line(s) outside every table look like transactions"
            logger.warning(message)
            warnings.append(message)
        
        # Rows
        classified = self._classify(tables)
        classified, stitches = stitch_page_breaks(classified, self.patterns, self.config)
        state = stitch_rows(classified)
        
        # Fields
        fmt = self._number_format(state.stitched)
        stitched, split_warnings = split_amounts(state.stitched, fmt)
        warnings.extend(split_warnings)
        
        day_first = self._day_first(stitched)
        default_year = self._default_year(stitched, day_first)
        entries = [LedgerEntry(st.kind, self._to_transaction(st, fmt, day_first, default_year)) for st in stitched]
        
        # Order, currency and validation
        date_order = detect_chronological_order(
            [e.transaction.transaction_date for e in entries if e.kind == RowKind.TRANSACTION]
        )
        reversed_order = date_order == 'descending' and self.config.auto_reverse
        if reversed_order:
            logger.info("Statement is in reverse chronological order; reversing before validation")
            entries.reverse()
        
        currency = self._currency(lines)
        segments = build_segments(entries, self.config.tolerance_for(currency))
        segments = [
            s.model_copy(update={'transactions': [with_confidence(t) for t in s.transactions]}) for s in segments
        ]
        transactions = [t for segment in segments for t in segment.transactions]
        
        kinds = Counter(row.kind for row in classified)
        stitched_tokens = sum(st.token_count for st in state.stitched)
        skipped_tokens = sum(row.token_count for row in state.skipped)
        
        diagnostics = Diagnostics(
            strategy=selection.winner.name,
            low_confidence=selection.low_confidence,
            strategy_scores=[r.to_score() for r in selection.results],
            column_map=[
                ColumnMapEntry(x0=b.x0, x1=b.x1, column_type=b.column_type, confidence=b.confidence)
                for b in consensus
            ],
            table_count=len(tables),
            line_count=len(lines),
            row_count=len(classified),
            transaction_rows=kinds[RowKind.TRANSACTION],
            continuation_rows=kinds[RowKind.CONTINUATION],
            balance_rows=kinds[RowKind.OPENING_BALANCE] + kinds[RowKind.CLOSING_BALANCE],
            skipped_rows=len(state.skipped),
            cross_page_stitches=stitches,
            total_tokens=sum(len(line) for line in lines),
            stitched_tokens=stitched_tokens,
            skipped_tokens=skipped_tokens,
            outside_lines=len(outside),
            outside_tokens=sum(len(line) for line in outside),
            currency=currency,
            number_format=fmt.label,
            day_first=day_first,
            date_order=date_order,
            reversed=reversed_order,
            hint=self.hint.key if self.hint else None,
            overall_status=overall_status(transactions),
            average_confidence=average_confidence(transactions),
            low_confidence_rows=sum(1 for t in transactions if t.confidence < LOW_CONFIDENCE_SCORE),
            warnings=warnings,
        )
        
        logger.info(
            f"Parsed {len(transactions)} transactions in {len(segments)} segment(s) "
            f"using {selection.winner.name} ({diagnostics.overall_status.value})"
        )
        return ParseResult(transactions=transactions, segments=segments, diagnostics=diagnostics)

    def _resolve_columns(self, selection: StrategySelection) -> Tuple[List[TableRegion], List[ColumnBoundary]]:
        """Reconcile the winner's tables and apply the institution hint."""
        tables = list(selection.winner.tables)
        if len(tables) > 1:
            tables, consensus = reconcile_tables(tables, self.config)
        else:
            consensus = list(tables[0].boundaries) if tables else []
        
        if self.hint:
            tables = [t.with_boundaries(apply_hint(t.boundaries, self.hint)) for t in tables]
            consensus = apply_hint(consensus, self.hint)
        
        for table in tables:
            logger.debug(f"{table}: {[b.column_type.value for b in table.boundaries]}")
        return tables, consensus

    def _classify(self, tables: Sequence[TableRegion]) -> List[ClassifiedRow]:
        classified: List[ClassifiedRow] = []
        for table in tables:
            classified.extend(classify_rows(extract_rows(table), self.patterns, self.config))
        return classified

    def _number_format(self, stitched: Sequence[StitchedTransaction]) -> NumberFormat:
        """Hint separators first, else detected from the document's amount cells."""
        hint = self.hint
        if hint and hint.indian_grouping:
            return INDIAN
        if hint and (hint.thousands_separator is not None or hint.decimal_separator is not None):
            return NumberFormat(hint.thousands_separator or '', hint.decimal_separator or '.')
        
        samples = [st.get(t) for st in stitched for t in AMOUNT_FIELDS if st.get(t)]
        fmt = detect_number_format(samples)
        logger.debug(f"Number format: {fmt.label} from {len(samples)} samples")
        return fmt

    def _day_first(self, stitched: Sequence[StitchedTransaction]) -> bool:
        if self.hint and self.hint.day_first is not None:
            return self.hint.day_first
        samples = [st.get(ColumnType.DATE) for st in stitched if st.get(ColumnType.DATE)]
        return detect_day_first(samples, self.config.day_first)

    def _default_year(self, stitched: Sequence[StitchedTransaction], day_first: bool) -> Optional[int]:
        """Year for dates printed without one: the document's most common explicit year."""
        years = Counter()
        for st in stitched:
            parsed = parse_date(st.get(ColumnType.DATE), day_first)
            if parsed:
                years[parsed.year] += 1
        if years:
            return max(sorted(years), key=lambda y: years[y])
        return self.config.default_year

    def _to_transaction(self, st: StitchedTransaction, fmt: NumberFormat,
                        day_first: bool, default_year: Optional[int]) -> ParsedTransaction:
        """Normalize one stitched transaction; unparseable fields stay unset with raw text kept."""
        raw_fields: Dict[str, str] = st.primary.field_map()
        if st.raw_description:
            raw_fields[ColumnType.DESCRIPTION.value] = st.raw_description
        if st.debit:
            raw_fields[ColumnType.DEBIT.value] = st.debit
        if st.credit:
            raw_fields[ColumnType.CREDIT.value] = st.credit
        
        date_text = st.get(ColumnType.DATE)
        transaction_date = parse_date(date_text, day_first, default_year)
        if date_text and transaction_date is None:
            logger.debug(f"Unparsed date '{date_text}' kept in raw fields")
        value_date = parse_date(st.get(ColumnType.VALUE_DATE), day_first, default_year)
        
        if st.kind != RowKind.TRANSACTION:
            balance = next(
                (v for v in (parse_amount(st.get(t), fmt) for t in BALANCE_ROW_FIELDS) if v is not None),
                None,
            )
            return ParsedTransaction(
                transaction_date=transaction_date,
                value_date=value_date,
                description=st.description,
                balance=balance,
                source_pages=list(st.pages),
                raw_fields=raw_fields,
            )
        
        description, reference, reference_type = extract_reference(st.description)
        column_reference = normalize_text(st.get(ColumnType.REFERENCE))
        if reference is None and column_reference:
            reference, reference_type = column_reference, classify_reference(column_reference)
        
        return ParsedTransaction(
            transaction_date=transaction_date,
            value_date=value_date,
            description=description,
            debit=_magnitude(st.debit, fmt),
            credit=_magnitude(st.credit, fmt),
            balance=parse_amount(st.get(ColumnType.BALANCE), fmt),
            reference=reference,
            reference_type=reference_type,
            source_pages=list(st.pages),
            stitched_lines=sum(len(row.lines) for row in st.rows) - 1,
            raw_fields=raw_fields,
        )

    def _currency(self, lines: Sequence[Line]) -> str:
        if self.config.currency:
            return self.config.currency.upper()
        if self.hint and self.hint.currency:
            return self.hint.currency
        return detect_currency((line.text for line in lines), self.config.local_currency)


def parse_tokens(tokens: Sequence[PositionedToken], config: Optional[EngineConfig] = None,
                 hint: Optional[InstitutionHint] = None) -> ParseResult:
    """
    Parse a statement's positioned tokens.

    Args:
        tokens: Positioned tokens from a text-layer or OCR front end
        config: Engine configuration (defaults when None)
        hint: Optional institution hint

    Returns:
        ParseResult
    """
    parser = StatementParser(config, hint)
    return parser.parse(tokens)
