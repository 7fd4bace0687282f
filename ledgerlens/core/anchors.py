"""
Header keyword detection and header-anchored column boundaries using fuzzy matching.
"""
import re
from typing import Dict, List, Optional, Sequence, Tuple
from rapidfuzz import fuzz
import logging

from .config import EngineConfig
from .layout import ColumnBoundary, Line
from .columns import coverage_histogram
from ..models.schema import ColumnType, PositionedToken

logger = logging.getLogger(__name__)


HEADER_KEYWORDS: Dict[ColumnType, List[str]] = {
    ColumnType.DATE: [
        'date', 'txn date', 'tran date', 'transaction date', 'posting date', 'post date',
        'fecha', 'datum', 'data', 'tarikh', '日付', '日期', '거래일',
    ],
    ColumnType.VALUE_DATE: [
        'value date', 'val date', 'value dt', 'fecha valor', 'date de valeur', 'valuta', 'wertstellung',
    ],
    ColumnType.DESCRIPTION: [
        'description', 'particulars', 'narration', 'details', 'transaction details',
        'remarks', 'transaction', 'descripcion', 'descripción', 'concepto', 'libellé',
        'libelle', 'verwendungszweck', 'buchungstext', 'descrição', 'descrizione', '摘要', '적요',
    ],
    ColumnType.DEBIT: [
        'debit', 'debits', 'withdrawal', 'withdrawals', 'withdrawal amt', 'dr', 'paid out',
        'money out', 'cargo', 'cargos', 'débit', 'soll', 'lastschrift', 'addebiti', 'débito', '出金', '支出',
    ],
    ColumnType.CREDIT: [
        'credit', 'credits', 'deposit', 'deposits', 'deposit amt', 'cr', 'paid in',
        'money in', 'abono', 'abonos', 'crédit', 'haben', 'gutschrift', 'accrediti', 'crédito', '入金', '收入',
    ],
    ColumnType.BALANCE: [
        'balance', 'closing balance', 'running balance', 'bal', 'saldo', 'solde',
        'kontostand', '残高', '余额', '잔액',
    ],
    ColumnType.AMOUNT: [
        'amount', 'transaction amount', 'txn amt', 'importe', 'montant', 'betrag', 'valor', 'importo',
    ],
    ColumnType.REFERENCE: [
        'reference', 'ref', 'ref no', 'chq no', 'cheque no', 'chq/ref no', 'referencia',
        'référence', 'referenz',
    ],
}


class HeaderAnchor:
    """A column keyword located on a header line."""
    def __init__(self, column_type: ColumnType, keyword: str, x0: float, x1: float, confidence: float):
        self.column_type = column_type
        self.keyword = keyword
        self.x0 = x0
        self.x1 = x1
        self.confidence = confidence
    
    @property
    def center_x(self) -> float:
        return (self.x0 + self.x1) / 2
    
    def __repr__(self):
        return f"HeaderAnchor({self.column_type.value}, '{self.keyword}', x0={self.x0:.1f}, x1={self.x1:.1f})"


class HeaderMatch:
    """A detected header line with its anchors."""
    def __init__(self, line: Line, line_index: int, anchors: List[HeaderAnchor]):
        self.line = line
        self.line_index = line_index
        self.anchors = anchors
    
    @property
    def categories(self) -> int:
        return len({a.column_type for a in self.anchors})
    
    @property
    def confidence(self) -> float:
        if self.categories >= 4:
            return 0.9
        if self.categories >= 3:
            return 0.7
        return 0.3
    
    def __repr__(self):
        return f"HeaderMatch(line={self.line_index}, categories={self.categories})"


_KEYWORD_INDEX: List[Tuple[str, ColumnType]] = sorted(
    ((keyword, column_type) for column_type, keywords in HEADER_KEYWORDS.items() for keyword in keywords),
    key=lambda item: len(item[0]),
    reverse=True,
)

_WORD_CLEAN = re.compile(r'[^\w/]')


def _clean_token(text: str) -> str:
    return _WORD_CLEAN.sub('', text.lower())


def find_header_anchors(tokens: Sequence[PositionedToken],
                        fuzzy_threshold: float = 88) -> List[HeaderAnchor]:
    """
    Locate column keywords among a header line's tokens.
    
    Longer keywords are matched first and each token is claimed at most once,
    so "value date" wins over "date". Single tokens that miss every keyword are
    retried with ``fuzz.ratio`` to tolerate OCR damage (e.g. "DEB1T").
    
    Args:
        tokens: Header tokens ordered left to right
        fuzzy_threshold: Minimum fuzzy score (0-100)
    
    Returns:
        Anchors ordered left to right, at most one per column type
    """
    words = [_clean_token(t.text) for t in tokens]
    claimed = [False] * len(tokens)
    found: Dict[ColumnType, HeaderAnchor] = {}
    
    for keyword, column_type in _KEYWORD_INDEX:
        if column_type in found:
            continue
        parts = [_clean_token(p) for p in keyword.split()]
        size = len(parts)
        for start in range(len(tokens) - size + 1):
            if any(claimed[start:start + size]):
                continue
            if words[start:start + size] == parts:
                span = tokens[start:start + size]
                found[column_type] = HeaderAnchor(column_type, keyword, span[0].x0, span[-1].x1, 1.0)
                for k in range(start, start + size):
                    claimed[k] = True
                break
    
    for i, token in enumerate(tokens):
        if claimed[i] or len(words[i]) < 4:
            continue
        best: Optional[Tuple[float, ColumnType, str]] = None
        for keyword, column_type in _KEYWORD_INDEX:
            if column_type in found or ' ' in keyword or len(keyword) < 4:
                continue
            score = fuzz.ratio(words[i], keyword)
            if score >= fuzzy_threshold and (best is None or score > best[0]):
                best = (score, column_type, keyword)
        if best:
            score, column_type, keyword = best
            found[column_type] = HeaderAnchor(column_type, keyword, token.x0, token.x1, score / 100)
            claimed[i] = True
            logger.debug(f"Fuzzy header match '{token.text}' -> {keyword} ({score:.1f})")
    
    return sorted(found.values(), key=lambda a: a.x0)


def _merge_header_lines(first: Line, second: Line) -> Line:
    tokens = tuple(sorted(first.tokens + second.tokens, key=lambda t: (t.x0, t.top)))
    return Line(page=first.page, tokens=tokens)


def detect_header(lines: Sequence[Line], config: EngineConfig = None) -> Optional[HeaderMatch]:
    """
    Find the header line within the first lines of a document.
    
    Two-line headers (lines closer than ``header_merge_gap``) are also tried
    merged. The first line carrying at least ``min_header_categories`` keyword
    categories wins; a merged pair starting on that line beats it when the
    pair carries more categories.
    
    Args:
        lines: Document lines in reading order
        config: Engine configuration
    
    Returns:
        HeaderMatch or None if no header qualifies
    """
    config = config or EngineConfig()
    window = list(lines[:config.header_search_lines])
    
    # (first window line, index of the last line used, line)
    candidates: List[Tuple[int, int, Line]] = [(i, i, line) for i, line in enumerate(window)]
    for i in range(len(window) - 1):
        a, b = window[i], window[i + 1]
        if a.page == b.page and b.top - a.bottom < config.header_merge_gap:
            candidates.append((i, i + 1, _merge_header_lines(a, b)))
    candidates.sort(key=lambda c: (c[0], c[1]))
    
    best: Optional[HeaderMatch] = None
    first: Optional[int] = None
    for start, index, line in candidates:
        if first is not None and start > first:
            break
        anchors = find_header_anchors(line.tokens, config.header_fuzzy_threshold)
        match = HeaderMatch(line, index, anchors)
        if match.categories < config.min_header_categories:
            continue
        if best is None or match.categories > best.categories:
            best, first = match, start
    
    if best is None:
        return None
    
    logger.debug(f"Header found at line {best.line_index} with {best.categories} categories")
    return best


def is_header_repeat(line: Line, config: EngineConfig = None) -> bool:
    """True when a line carries enough column keywords to be a repeated header."""
    config = config or EngineConfig()
    anchors = find_header_anchors(line.tokens, config.header_fuzzy_threshold)
    return len({a.column_type for a in anchors}) >= config.min_header_categories


def _split_point(coverage: Sequence[int], origin: float, resolution: float, left: float, right: float) -> float:
    """Center of the widest empty run between two anchor edges, else their midpoint."""
    if right <= left:
        return (left + right) / 2
    start = max(0, int((left - origin) / resolution))
    end = min(len(coverage) - 1, int((right - origin) / resolution))
    best_run: Optional[Tuple[int, int]] = None
    run_start = None
    for bucket in range(start, end + 1):
        if coverage[bucket] == 0:
            if run_start is None:
                run_start = bucket
            if best_run is None or bucket - run_start > best_run[1] - best_run[0]:
                best_run = (run_start, bucket)
        else:
            run_start = None
    if best_run is None:
        return (left + right) / 2
    return origin + (best_run[0] + best_run[1] + 1) / 2 * resolution


def boundaries_from_anchors(header: HeaderMatch, data_lines: Sequence[Line],
                            config: EngineConfig = None) -> List[ColumnBoundary]:
    """
    Turn header anchors into contiguous column boundaries.
    
    Adjacent anchors split at the widest empty band of the data between them,
    so wide descriptions and right-aligned amounts stay in their columns.
    """
    config = config or EngineConfig()
    anchors = header.anchors
    if not anchors:
        return []
    
    all_lines = list(data_lines) + [header.line]
    tokens = [t for line in all_lines for t in line.tokens]
    left = min(t.x0 for t in tokens)
    right = max(t.x1 for t in tokens)
    resolution = config.histogram_resolution
    coverage = coverage_histogram(data_lines, left, right, resolution) if data_lines else [0]
    
    edges = [min(0.0, left)]
    for a, b in zip(anchors, anchors[1:]):
        edges.append(_split_point(coverage, left, resolution, a.x1, b.x0))
    edges.append(right + config.page_drift_tolerance)
    
    return [
        ColumnBoundary(x0=x0, x1=x1, column_type=a.column_type, confidence=round(a.confidence * header.confidence, 3))
        for a, x0, x1 in zip(anchors, edges, edges[1:])
    ]
