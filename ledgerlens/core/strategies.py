"""
Independent table detection strategies and the scoring/selection between them.
"""
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging

from .anchors import boundaries_from_anchors, detect_header
from .columns import classify_columns, columns_for_lines, detect_column_boundaries
from .config import EngineConfig
from .layout import ColumnBoundary, Line, TableRegion
from .normalize import looks_like_date, parse_amount
from .regions import detect_table_regions, largest_region, region_from_lines
from .rows import ExtractedRow, extract_rows
from ..models.schema import ColumnType, StrategyMetrics, StrategyScore

logger = logging.getLogger(__name__)


HEADER_ANCHORED = 'header-anchored'
GEOMETRY_GUTTER = 'geometry-gutter'
COLUMN_COUNT = 'column-count'
FONT_WEIGHT = 'font-weight'


class StrategyResult:
    """Tables and boundaries proposed by one strategy."""
    def __init__(self, name: str, success: bool, tables: List[TableRegion],
                 metrics: Optional[StrategyMetrics] = None, note: Optional[str] = None,
                 boost: float = 1.0):
        self.name = name
        self.success = success
        self.tables = tables
        self.metrics = metrics or StrategyMetrics()
        self.note = note
        self.boost = boost
        self.score = 0.0
    
    @property
    def boundaries(self) -> Tuple[ColumnBoundary, ...]:
        """Boundaries of the table with the most consistent lines."""
        if not self.tables:
            return ()
        return largest_region(self.tables)[1].boundaries
    
    def to_score(self) -> StrategyScore:
        return StrategyScore(
            name=self.name,
            success=self.success,
            score=round(self.score, 3),
            metrics=self.metrics,
            table_count=len(self.tables),
            note=self.note,
        )
    
    def __repr__(self):
        return f"StrategyResult('{self.name}', success={self.success}, score={self.score:.1f})"


class StrategySelection:
    """Outcome of running every strategy."""
    def __init__(self, winner: StrategyResult, results: List[StrategyResult], low_confidence: bool):
        self.winner = winner
        self.results = results
        self.low_confidence = low_confidence


# ---------------------------------------------------------------------------
# Metrics and scoring
# ---------------------------------------------------------------------------

def _leading_token_is_date(line: Line) -> bool:
    if not line.tokens:
        return False
    first = line.tokens[0].text
    if looks_like_date(first):
        return True
    # Dates written as several tokens ("01 Feb 2024")
    return len(line.tokens) >= 3 and looks_like_date(' '.join(t.text for t in line.tokens[:3]))


def _magnitude(text: str) -> Optional[Decimal]:
    value = parse_amount(text)
    return abs(value) if value is not None else None


def balance_pass_rate(rows: Sequence[ExtractedRow], tolerance: Decimal) -> Optional[float]:
    """
    Coarse balance-law pass rate over consecutive transaction rows.
    
    Merged amounts are checked by magnitude against the balance change.
    Returns None when no pair of rows can be checked.
    """
    checks = 0
    passes = 0
    previous: Optional[Decimal] = None
    for row in rows:
        if not (row.has_date and row.has_amount):
            continue
        balance = parse_amount(row.get(ColumnType.BALANCE))
        if balance is None:
            previous = None
            continue
        if previous is not None:
            amount_text = row.get(ColumnType.AMOUNT)
            if amount_text:
                amount = _magnitude(amount_text) or Decimal('0')
                ok = abs(abs(balance - previous) - amount) <= tolerance
            else:
                credit = _magnitude(row.get(ColumnType.CREDIT)) or Decimal('0')
                debit = _magnitude(row.get(ColumnType.DEBIT)) or Decimal('0')
                ok = abs(previous + credit - debit - balance) <= tolerance
            checks += 1
            passes += 1 if ok else 0
        previous = balance
    if not checks:
        return None
    return passes / checks


def compute_metrics(tables: Sequence[TableRegion], config: EngineConfig = None) -> StrategyMetrics:
    """Collect the scoring inputs for a strategy's tables."""
    config = config or EngineConfig()
    if not tables:
        return StrategyMetrics()
    
    rows = [row for table in tables for row in extract_rows(table)]
    span = [line for table in tables for line in table.span]
    transactions = sum(1 for row in rows if row.has_date and row.has_amount)
    dated = sum(1 for line in span if _leading_token_is_date(line))
    types = {b.column_type for table in tables for b in table.boundaries}
    _, main = largest_region(tables)
    
    return StrategyMetrics(
        transaction_count=transactions,
        has_balance=ColumnType.BALANCE in types,
        has_date=ColumnType.DATE in types,
        date_match_ratio=round(dated / len(span), 4) if span else 0.0,
        balance_pass_rate=balance_pass_rate(rows, config.tolerance_for(config.currency)),
        column_count=len(main.boundaries),
    )


def score_metrics(metrics: StrategyMetrics, weights: Dict[str, float]) -> float:
    """
    Weighted score (0-100) of a strategy's metrics.
    
    Args:
        metrics: Strategy metrics record
        weights: Component weights keyed by transaction_count, has_balance,
            has_date, date_matches, balance_validation, column_count
    
    Returns:
        Score where higher is better
    """
    components = {
        'transaction_count': min(metrics.transaction_count / 2, 100.0),
        'has_balance': 100.0 if metrics.has_balance else 0.0,
        'has_date': 100.0 if metrics.has_date else 0.0,
        'date_matches': metrics.date_match_ratio * 100,
    }
    if metrics.balance_pass_rate is not None:
        components['balance_validation'] = metrics.balance_pass_rate * 100
    else:
        components['balance_validation'] = 50.0 if metrics.has_balance else 0.0
    
    if 4 <= metrics.column_count <= 6:
        components['column_count'] = 100.0
    elif metrics.column_count >= 3:
        components['column_count'] = 70.0
    else:
        components['column_count'] = 30.0
    
    return sum(weights.get(name, 0.0) * value for name, value in components.items())


def _finish(name: str, tables: List[TableRegion], config: EngineConfig,
            note: Optional[str] = None, boost: float = 1.0, required: bool = True) -> StrategyResult:
    metrics = compute_metrics(tables, config)
    success = (required and metrics.column_count >= config.min_columns
               and metrics.transaction_count >= config.min_transaction_rows)
    return StrategyResult(name, success, tables, metrics, note, boost)


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

def header_anchored_strategy(lines: Sequence[Line], config: EngineConfig) -> StrategyResult:
    """Lock column anchors from the first header line carrying enough keyword categories."""
    header = detect_header(lines, config)
    if header is None:
        return StrategyResult(HEADER_ANCHORED, False, [], note='no header line found')
    
    data_lines = list(lines[header.line_index + 1:])
    if not data_lines:
        return StrategyResult(HEADER_ANCHORED, False, [], note='header has no rows below it')
    
    regions = detect_table_regions(data_lines, config)
    core = [line for region in regions for line in region.lines]
    boundaries = boundaries_from_anchors(header, core, config)
    tables = [r.with_boundaries(boundaries) for r in regions]
    tables = [TableRegion(t.lines, t.span, t.boundaries, header.line) for t in tables]
    
    return _finish(
        HEADER_ANCHORED, tables, config,
        note=f"header at line {header.line_index} ({header.categories} categories)",
        required=header.confidence > 0.5 and len(boundaries) >= config.min_columns,
    )


def geometry_gutter_strategy(lines: Sequence[Line], config: EngineConfig) -> StrategyResult:
    """Pure gutter geometry, classified independently per table region."""
    regions = detect_table_regions(lines, config)
    if not regions:
        return StrategyResult(GEOMETRY_GUTTER, False, [], note='no lines')
    
    _, main = largest_region(regions)
    main_boundaries = columns_for_lines(main.lines, config)
    tables = []
    for region in regions:
        if region is main:
            boundaries = main_boundaries
        elif len(region.lines) >= config.min_table_lines:
            boundaries = columns_for_lines(region.lines, config)
        else:
            boundaries = main_boundaries
        tables.append(region.with_boundaries(boundaries))
    
    return _finish(GEOMETRY_GUTTER, tables, config, note=f"{len(tables)} table region(s)")


def column_count_strategy(lines: Sequence[Line], config: EngineConfig) -> StrategyResult:
    """Detect columns from the lines sharing the dominant token count."""
    counts = Counter(len(line) for line in lines if 3 <= len(line) <= 10)
    if not counts:
        return StrategyResult(COLUMN_COUNT, False, [], note='no multi-token lines')
    
    mode = max(sorted(counts), key=lambda c: counts[c])
    target = [line for line in lines if abs(len(line) - mode) <= 1]
    if len(target) < config.min_table_lines:
        return StrategyResult(COLUMN_COUNT, False, [], note=f"only {len(target)} lines near {mode} tokens")
    
    region = region_from_lines(lines, target, config).with_boundaries(columns_for_lines(target, config))
    return _finish(COLUMN_COUNT, [region], config, note=f"dominant count {mode}")


def font_weight_strategy(lines: Sequence[Line], config: EngineConfig) -> StrategyResult:
    """Treat the first bold line as the header; fall back to geometry when none is bold."""
    window = lines[:config.header_search_lines]
    bold = [i for i, line in enumerate(window) if line.is_bold and len(line) >= config.min_columns]
    if not bold:
        fallback = geometry_gutter_strategy(lines, config)
        fallback.name = FONT_WEIGHT
        fallback.note = 'no bold header, geometry fallback'
        return fallback
    
    index = bold[0]
    header = lines[index]
    data_lines = list(lines[index + 1:])
    regions = detect_table_regions(data_lines, config)
    core = [line for region in regions for line in region.lines][:50]
    if not core:
        return StrategyResult(FONT_WEIGHT, False, [], note='bold header has no rows below it')
    
    boundaries = detect_column_boundaries([header] + core, config)
    boundaries = classify_columns([header] + core, boundaries, config)
    tables = [TableRegion(r.lines, r.span, tuple(boundaries), header) for r in regions]
    return _finish(
        FONT_WEIGHT, tables, config,
        note=f"bold header at line {index}", boost=config.font_weight_boost,
    )


STRATEGIES: List[Tuple[str, Callable[[Sequence[Line], EngineConfig], StrategyResult]]] = [
    (HEADER_ANCHORED, header_anchored_strategy),
    (GEOMETRY_GUTTER, geometry_gutter_strategy),
    (COLUMN_COUNT, column_count_strategy),
    (FONT_WEIGHT, font_weight_strategy),
]


def _run_strategy(name: str, strategy: Callable, lines: Sequence[Line], config: EngineConfig) -> StrategyResult:
    try:
        result = strategy(lines, config)
    except Exception:
        logger.exception(f"Strategy {name} failed")
        return StrategyResult(name, False, [], note='strategy raised an exception')
    
    result.score = score_metrics(result.metrics, config.score_weights) * result.boost
    logger.debug(f"Strategy {name}: success={result.success}, score={result.score:.2f}")
    return result


def select_strategy(lines: Sequence[Line], config: EngineConfig = None) -> StrategySelection:
    """
    Run every strategy over the same lines and pick the best result.
    
    The highest-scoring successful strategy wins (earlier strategies win ties).
    When none succeeds, the highest raw score is used and the selection is
    marked low-confidence.
    
    Args:
        lines: Document lines (shared, immutable)
        config: Engine configuration
    
    Returns:
        StrategySelection with every result in declaration order
    """
    config = config or EngineConfig()
    lines = tuple(lines)
    
    if config.parallel_strategies:
        by_name: Dict[str, StrategyResult] = {}
        with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
            futures = {
                executor.submit(_run_strategy, name, strategy, lines, config): name
                for name, strategy in STRATEGIES
            }
            for future in as_completed(futures):
                by_name[futures[future]] = future.result()
        results = [by_name[name] for name, _ in STRATEGIES]
    else:
        results = [_run_strategy(name, strategy, lines, config) for name, strategy in STRATEGIES]
    
    successful = [r for r in results if r.success]
    if successful:
        winner = max(successful, key=lambda r: r.score)
        low_confidence = False
    else:
        winner = max(results, key=lambda r: r.score)
        low_confidence = True
        logger.warning(f"No strategy met the minimum thresholds; using {winner.name} (low confidence)")
    
    logger.info(f"Selected strategy {winner.name} with score {winner.score:.2f}")
    return StrategySelection(winner, results, low_confidence)
