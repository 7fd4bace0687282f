"""
Column boundary detection from gutters and semantic column classification.
"""
import re
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from .config import EngineConfig
from .layout import ColumnBoundary, Line
from .normalize import amount_marker, has_numeric_content, looks_like_date
from ..models.schema import ColumnType

logger = logging.getLogger(__name__)


HEADER_LITERALS: List[Tuple[ColumnType, re.Pattern, float]] = [
    (ColumnType.DEBIT, re.compile(r'^(debit|debits|withdrawal|withdrawals|dr|out|paid\s*out|money\s*out)$'), 0.95),
    (ColumnType.CREDIT, re.compile(r'^(credit|credits|deposit|deposits|cr|in|paid\s*in|money\s*in)$'), 0.95),
    (ColumnType.AMOUNT, re.compile(r'^(amount|value|transaction\s*amount|txn\s*amt)$'), 0.9),
    (ColumnType.BALANCE, re.compile(r'^(balance|running\s*balance|closing\s*balance|bal)$'), 0.95),
    (ColumnType.VALUE_DATE, re.compile(r'^(value\s*date|val\s*date|value\s*dt)$'), 0.95),
    (ColumnType.DATE, re.compile(r'^(date|txn\s*date|tran\s*date|transaction\s*date|posting\s*date|post\s*date)$'), 0.95),
    (ColumnType.DESCRIPTION, re.compile(r'^(description|particulars|narration|details|transaction\s*details|remarks)$'), 0.95),
    (ColumnType.REFERENCE, re.compile(r'^(ref|ref\s*no|reference|chq\s*no|cheque\s*no|chq/ref\s*no)$'), 0.9),
]


class ColumnAnalysis:
    """Content statistics for the tokens falling inside one boundary."""
    def __init__(self, samples: List[str], lefts: List[float], rights: List[float], boundary: ColumnBoundary):
        self.samples = samples
        self.lefts = lefts
        self.rights = rights
        self.boundary = boundary
        count = max(len(samples), 1)
        self.date_score = sum(1 for s in samples if looks_like_date(s)) / count
        numeric = [has_numeric_content(s) for s in samples]
        self.numeric_score = sum(numeric) / count
        self.text_score = sum(1 for s, n in zip(samples, numeric) if not n and len(s) > 3) / count
        self.avg_length = sum(len(s) for s in samples) / count
        self.alignment = detect_alignment(lefts, rights, boundary)
    
    @property
    def first_sample(self) -> str:
        return self.samples[0] if self.samples else ''
    
    def __repr__(self):
        return (f"ColumnAnalysis(date={self.date_score:.2f}, numeric={self.numeric_score:.2f}, "
                f"text={self.text_score:.2f}, align={self.alignment}, avg_len={self.avg_length:.1f})")


def _variance(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


def detect_alignment(lefts: Sequence[float], rights: Sequence[float], boundary: ColumnBoundary) -> str:
    """Classify a column's alignment as left, right or center from its edge variance."""
    if len(lefts) < 2:
        return 'left'
    left_variance = _variance(lefts)
    right_variance = _variance(rights)
    if right_variance <= left_variance and right_variance < 10:
        return 'right'
    if left_variance < 10:
        return 'left'
    center = boundary.center_x
    distance = sum(abs((l + r) / 2 - center) for l, r in zip(lefts, rights)) / len(lefts)
    return 'center' if distance < 20 else 'right'


# ---------------------------------------------------------------------------
# Gutter detection
# ---------------------------------------------------------------------------

def classify_density(lines: Sequence[Line], config: EngineConfig = None) -> str:
    """Classify a table as sparse, normal or dense from its average tokens per line."""
    config = config or EngineConfig()
    if not lines:
        return 'sparse'
    average = sum(len(line) for line in lines) / len(lines)
    if average > config.dense_tokens_per_line:
        return 'dense'
    if average > config.normal_tokens_per_line:
        return 'normal'
    return 'sparse'


def coverage_histogram(lines: Sequence[Line], left: float, right: float, resolution: float) -> List[int]:
    """Token coverage count for each ``resolution``-wide bucket between left and right."""
    size = int((right - left) / resolution) + 1
    coverage = [0] * size
    for line in lines:
        for token in line.tokens:
            start = max(0, int((token.x0 - left) / resolution))
            end = min(size - 1, int((token.x1 - left) / resolution))
            for bucket in range(start, end + 1):
                coverage[bucket] += 1
    return coverage


def find_gutters(coverage: Sequence[int], threshold: float, min_buckets: int) -> List[Tuple[int, int]]:
    """Runs of buckets below the coverage threshold, as inclusive (start, end) bucket pairs."""
    gutters = []
    start = None
    for i, count in enumerate(coverage):
        if count < threshold:
            if start is None:
                start = i
        elif start is not None:
            if start > 0 and i - start >= min_buckets:
                gutters.append((start, i - 1))
            start = None
    return gutters


def detect_column_boundaries(lines: Sequence[Line], config: EngineConfig = None) -> List[ColumnBoundary]:
    """
    Find column boundaries from the gutters of a table's lines.
    
    Args:
        lines: Cardinality-consistent lines of one table
        config: Engine configuration (density thresholds, resolution)
    
    Returns:
        Ordered, contiguous, untyped boundaries
    """
    config = config or EngineConfig()
    tokens = [token for line in lines for token in line.tokens]
    if not tokens:
        return []
    
    density = classify_density(lines, config)
    resolution = config.histogram_resolution
    left = min(t.x0 for t in tokens)
    right = max(t.x1 for t in tokens)
    
    coverage = coverage_histogram(lines, left, right, resolution)
    threshold = max(1.0, len(lines) * config.coverage_ratio[density])
    gutters = find_gutters(coverage, threshold, config.min_gutter_buckets[density])
    min_width = config.min_column_width[density]
    
    edges = [left]
    for start, end in gutters:
        center = left + (start + end + 1) / 2 * resolution
        if center - edges[-1] >= min_width:
            edges.append(center)
    if right - edges[-1] < min_width and len(edges) > 1:
        edges.pop()
    edges.append(right)
    
    # Outer edges open up to the page margin and a drift allowance on the right
    edges[0] = min(0.0, left)
    edges[-1] = right + config.page_drift_tolerance
    
    boundaries = [ColumnBoundary(x0=a, x1=b) for a, b in zip(edges, edges[1:])]
    logger.debug(f"Density {density}: {len(gutters)} gutters, {len(boundaries)} columns")
    return boundaries


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def cell_text(line: Line, boundary: ColumnBoundary) -> Tuple[str, Optional[float], Optional[float]]:
    """Joined text of the tokens strictly contained in a boundary, with their outer edges."""
    inside = [t for t in line.tokens if boundary.contains(t)]
    if not inside:
        return '', None, None
    return ' '.join(t.text for t in inside), min(t.x0 for t in inside), max(t.x1 for t in inside)


def analyze_column(lines: Sequence[Line], boundary: ColumnBoundary) -> ColumnAnalysis:
    samples, lefts, rights = [], [], []
    for line in lines:
        text, x0, x1 = cell_text(line, boundary)
        if text:
            samples.append(text)
            lefts.append(x0)
            rights.append(x1)
    return ColumnAnalysis(samples, lefts, rights, boundary)


def header_literal_type(text: str) -> Optional[Tuple[ColumnType, float]]:
    """Exact header keyword match on a cell, ignoring currency suffixes like "(INR)"."""
    normalized = re.sub(r'\(.*?\)', '', text.lower())
    normalized = re.sub(r'[^\w\s/]', '', normalized)
    normalized = ' '.join(normalized.split())
    for column_type, pattern, confidence in HEADER_LITERALS:
        if pattern.match(normalized):
            return column_type, confidence
    return None


def has_merged_markers(samples: Sequence[str]) -> bool:
    """
    True when a numeric column mixes debit/credit markers, or marked and
    unmarked cells, across at least three values.
    """
    numeric = [s for s in samples if has_numeric_content(s)]
    if len(numeric) < 3:
        return False
    markers = [amount_marker(s) for s in numeric]
    debits = markers.count('debit')
    credits = markers.count('credit')
    unmarked = markers.count(None)
    if debits == 0 and credits == 0:
        return False
    return (debits > 0 and credits > 0) or unmarked > 0


def _numeric_ranking(analyses: Sequence[ColumnAnalysis], skip: Sequence[int]) -> List[int]:
    """Indices of strongly numeric, non-date columns ordered right to left."""
    ranked = [
        i for i, a in enumerate(analyses)
        if a.numeric_score > 0.5 and a.date_score <= 0.5 and i not in skip
    ]
    return sorted(ranked, key=lambda i: analyses[i].boundary.x0, reverse=True)


def infer_column_type(index: int, analyses: Sequence[ColumnAnalysis],
                      ranking: Sequence[int], merged: Sequence[int]) -> Tuple[ColumnType, float]:
    """
    Decide one column's type.
    
    Order: header literal, merged debit/credit markers, date score, right-aligned
    numeric rank (balance, credit, debit), widest textual column, narrow
    alphanumeric reference.
    """
    analysis = analyses[index]
    
    literal = header_literal_type(analysis.first_sample)
    if literal:
        return literal
    
    if index in merged:
        return ColumnType.AMOUNT, 0.85
    
    if analysis.date_score > 0.5:
        return ColumnType.DATE, analysis.date_score
    
    if analysis.numeric_score > 0.3 and analysis.alignment == 'right' and index in ranking:
        position = list(ranking).index(index)
        if position == 0:
            return ColumnType.BALANCE, analysis.numeric_score
        if position == 1:
            return ColumnType.CREDIT, analysis.numeric_score * 0.8
        if position == 2:
            return ColumnType.DEBIT, analysis.numeric_score * 0.7
        return ColumnType.UNKNOWN, 0.5
    
    if analysis.text_score > 0.3 or analysis.avg_length > 20:
        widest = max(a.avg_length for a in analyses)
        if analysis.avg_length >= widest * 0.7:
            return ColumnType.DESCRIPTION, min(analysis.text_score + 0.3, 1.0)
    
    if analysis.avg_length < 15 and analysis.numeric_score > 0.3 and analysis.text_score > 0.3:
        return ColumnType.REFERENCE, 0.5
    
    return ColumnType.UNKNOWN, 0.3


def _indices_of(types: List[Tuple[ColumnType, float]], column_type: ColumnType) -> List[int]:
    return [i for i, (t, _) in enumerate(types) if t == column_type]


def _keep_best(types: List[Tuple[ColumnType, float]], column_type: ColumnType) -> None:
    """Leave only the highest-confidence column of a unique type."""
    found = _indices_of(types, column_type)
    if len(found) <= 1:
        return
    keep = max(found, key=lambda i: (types[i][1], -i))
    for i in found:
        if i != keep:
            types[i] = (ColumnType.UNKNOWN, 0.3)


def post_process_types(types: List[Tuple[ColumnType, float]],
                       analyses: Sequence[ColumnAnalysis]) -> List[Tuple[ColumnType, float]]:
    """
    Enforce the structural guarantees of a ledger table.
    
    A second date column becomes value_date; a missing date or balance falls
    back to the leftmost or rightmost column; a missing description goes to
    the widest unknown column; a lone unknown numeric column between date and
    balance becomes debit/credit or a merged amount.
    """
    types = list(types)
    if not types:
        return types
    
    dates = _indices_of(types, ColumnType.DATE)
    for i in dates[1:]:
        types[i] = (ColumnType.VALUE_DATE, 0.6)
    
    if not _indices_of(types, ColumnType.DATE):
        types[0] = (ColumnType.DATE, 0.4)
    
    if not _indices_of(types, ColumnType.BALANCE) and len(types) > 1:
        types[-1] = (ColumnType.BALANCE, 0.4)
    
    _keep_best(types, ColumnType.BALANCE)
    _keep_best(types, ColumnType.DESCRIPTION)
    
    if not _indices_of(types, ColumnType.DESCRIPTION):
        unknown = _indices_of(types, ColumnType.UNKNOWN)
        if unknown:
            widest = max(unknown, key=lambda i: analyses[i].avg_length)
            types[widest] = (ColumnType.DESCRIPTION, 0.4)
    
    has_debit = bool(_indices_of(types, ColumnType.DEBIT))
    has_credit = bool(_indices_of(types, ColumnType.CREDIT))
    if _indices_of(types, ColumnType.AMOUNT) and not has_debit and not has_credit:
        return types
    
    date_index = _indices_of(types, ColumnType.DATE)[0]
    balance = _indices_of(types, ColumnType.BALANCE)
    balance_index = balance[0] if balance else len(types)
    candidates = [
        i for i in range(date_index + 1, balance_index)
        if types[i][0] in (ColumnType.UNKNOWN, ColumnType.REFERENCE) and analyses[i].numeric_score > 0.3
    ]
    if not candidates:
        return types
    
    if not has_debit and not has_credit:
        if len(candidates) == 1:
            only = candidates[0]
            if has_merged_markers(analyses[only].samples):
                types[only] = (ColumnType.AMOUNT, 0.7)
            else:
                types[only] = (ColumnType.DEBIT, 0.5)
        else:
            types[candidates[-1]] = (ColumnType.CREDIT, 0.5)
            types[candidates[-2]] = (ColumnType.DEBIT, 0.5)
    elif not has_credit:
        types[candidates[-1]] = (ColumnType.CREDIT, 0.5)
    elif not has_debit:
        types[candidates[-1]] = (ColumnType.DEBIT, 0.5)
    return types


def classify_columns(lines: Sequence[Line], boundaries: Sequence[ColumnBoundary],
                     config: EngineConfig = None) -> List[ColumnBoundary]:
    """
    Assign a semantic type and confidence to each boundary.
    
    Args:
        lines: Lines whose content is sampled (header first when present)
        boundaries: Ordered boundaries from ``detect_column_boundaries``
        config: Engine configuration
    
    Returns:
        Typed boundaries in the same order
    """
    if not boundaries:
        return []
    
    analyses = [analyze_column(lines, b) for b in boundaries]
    numeric_all = _numeric_ranking(analyses, skip=())
    rightmost_numeric = numeric_all[0] if numeric_all else None
    merged = [
        i for i, a in enumerate(analyses)
        if i != rightmost_numeric and a.numeric_score > 0.3 and a.date_score <= 0.5
        and has_merged_markers(a.samples)
    ]
    ranking = _numeric_ranking(analyses, skip=merged)
    
    types = [infer_column_type(i, analyses, ranking, merged) for i in range(len(analyses))]
    types = post_process_types(types, analyses)
    
    typed = [b.retyped(t, round(c, 3)) for b, (t, c) in zip(boundaries, types)]
    logger.debug(f"Classified columns: {[b.column_type.value for b in typed]}")
    return typed


def columns_for_lines(lines: Sequence[Line], config: EngineConfig = None) -> List[ColumnBoundary]:
    """Detect and classify the columns of a run of lines."""
    return classify_columns(lines, detect_column_boundaries(lines, config), config)
