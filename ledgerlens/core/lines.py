"""
Line grouping: bucket positioned tokens into horizontal lines.
"""
import math
from collections import defaultdict
from typing import Dict, Iterable, Iterator, List, Tuple
import logging

from .layout import Line
from ..models.schema import PositionedToken

logger = logging.getLogger(__name__)


def bucket_key(top: float, y_tolerance: float) -> int:
    """Y bucket for a token top; halves round up so ties are deterministic."""
    return int(math.floor(top / y_tolerance + 0.5))


def group_page(page: int, tokens: Iterable[PositionedToken], y_tolerance: float = 3.0) -> List[Line]:
    """
    Group the tokens of a single page into lines.
    
    Args:
        page: Page number the tokens belong to
        tokens: Tokens of that page
        y_tolerance: Height of one Y bucket
    
    Returns:
        Lines ordered top to bottom, tokens ordered left to right
    """
    buckets: Dict[int, List[PositionedToken]] = defaultdict(list)
    for token in tokens:
        buckets[bucket_key(token.top, y_tolerance)].append(token)
    
    lines = []
    for key in sorted(buckets):
        ordered = sorted(buckets[key], key=lambda t: (t.x0, t.top, t.text))
        lines.append(Line(page=page, tokens=tuple(ordered)))
    return lines


def iter_page_lines(tokens: Iterable[PositionedToken],
                    y_tolerance: float = 3.0) -> Iterator[Tuple[int, List[Line]]]:
    """Yield (page, lines) one page at a time in page order."""
    by_page: Dict[int, List[PositionedToken]] = defaultdict(list)
    for token in tokens:
        if not token.text or not token.text.strip():
            continue
        by_page[token.page].append(token)
    
    for page in sorted(by_page):
        yield page, group_page(page, by_page[page], y_tolerance)


def group_tokens_into_lines(tokens: Iterable[PositionedToken],
                            y_tolerance: float = 3.0) -> Tuple[Line, ...]:
    """
    Group a document's tokens into lines.
    
    Args:
        tokens: Positioned tokens in any order
        y_tolerance: Height of one Y bucket
    
    Returns:
        Immutable tuple of lines in reading order (page, then top)
    """
    lines: List[Line] = []
    for page, page_lines in iter_page_lines(tokens, y_tolerance):
        logger.debug(f"Page {page}: {len(page_lines)} lines")
        lines.extend(page_lines)
    return tuple(lines)
