"""
Table region segmentation: split the line stream into tables of consistent cardinality.
"""
from typing import List, Sequence, Tuple
import logging

from .anchors import is_header_repeat
from .config import EngineConfig
from .layout import Line, TableRegion
from .patterns import is_section_header

logger = logging.getLogger(__name__)


def _vertical_gap(previous: Line, line: Line) -> float:
    """Gap between two lines on the same page; lines on different pages have none."""
    if previous.page != line.page:
        return 0.0
    return line.top - previous.bottom


def _segment(lines: Sequence[Line], config: EngineConfig) -> List[List[int]]:
    """First pass: runs of line indices whose token counts stay within tolerance."""
    runs = []
    current: List[int] = []
    
    def close():
        if len(current) >= config.min_table_lines:
            runs.append(list(current))
    
    for i, line in enumerate(lines):
        if is_section_header(line.text):
            close()
            current = []
            continue
        
        if current:
            previous = lines[current[-1]]
            if _vertical_gap(previous, line) > config.vertical_gap_threshold:
                close()
                current = [i]
                continue
            if abs(len(line) - len(previous)) > config.cardinality_tolerance:
                close()
                current = [i]
                continue
        
        current.append(i)
    
    close()
    return runs


def _average_count(lines: Sequence[Line], indices: Sequence[int]) -> float:
    return sum(len(lines[i]) for i in indices) / len(indices)


def _has_section_header(lines: Sequence[Line], start: int, stop: int) -> bool:
    return any(is_section_header(lines[i].text) for i in range(start, stop))


def _merge(lines: Sequence[Line], runs: List[List[int]], config: EngineConfig) -> List[List[int]]:
    """Fold adjacent runs on the same or neighbouring page with similar density."""
    if not runs:
        return []
    
    merged = [runs[0]]
    for run in runs[1:]:
        last = merged[-1]
        last_page = lines[last[-1]].page
        first_page = lines[run[0]].page
        similar = abs(_average_count(lines, last) - _average_count(lines, run)) <= config.merge_token_tolerance
        
        if (first_page - last_page <= 1 and similar
                and not _has_section_header(lines, last[-1] + 1, run[0])):
            logger.debug(f"Merging table runs ending at line {last[-1]} and starting at line {run[0]}")
            merged[-1] = last + run
        else:
            merged.append(run)
    return merged


def _span_start(lines: Sequence[Line], run: List[int], floor: int, config: EngineConfig) -> int:
    """
    Inclusive start of a run's row span.
    
    The span reaches back over preceding lines, down to ``floor`` (the end of
    the previous span), and stops after a section header, a column header line
    or a vertical gap over the threshold. Rows whose token count strays from
    the run, such as a first transaction with a long description, stay in the
    table this way.
    """
    start = run[0]
    while start > floor:
        line = lines[start - 1]
        if is_section_header(line.text) or is_header_repeat(line, config):
            break
        if _vertical_gap(line, lines[start]) > config.vertical_gap_threshold:
            break
        start -= 1
    return start


def _span_end(lines: Sequence[Line], run: List[int], limit: int, config: EngineConfig) -> int:
    """
    Exclusive end of a run's row span.
    
    The span extends forward over following lines until the next run (or the
    document end), a section header, or a vertical gap over the threshold, so
    short continuation lines and wrapped page-top cells stay with their table.
    """
    end = run[-1] + 1
    while end < limit:
        line = lines[end]
        if is_section_header(line.text):
            break
        if _vertical_gap(lines[end - 1], line) > config.vertical_gap_threshold:
            break
        end += 1
    return end


def detect_table_regions(lines: Sequence[Line], config: EngineConfig = None) -> List[TableRegion]:
    """
    Segment lines into table regions.
    
    Args:
        lines: Document lines in reading order
        config: Engine configuration
    
    Returns:
        Table regions in document order; a single whole-document region when
        no run qualifies
    """
    config = config or EngineConfig()
    if not lines:
        return []
    
    runs = _merge(lines, _segment(lines, config), config)
    if not runs:
        logger.info("No consistent table runs found, treating the document as one table")
        return [TableRegion(lines=tuple(lines), span=tuple(lines))]
    
    regions = []
    end = 0
    for k, run in enumerate(runs):
        start = _span_start(lines, run, end, config)
        limit = runs[k + 1][0] if k + 1 < len(runs) else len(lines)
        end = _span_end(lines, run, limit, config)
        regions.append(TableRegion(
            lines=tuple(lines[i] for i in run),
            span=tuple(lines[start:end]),
        ))
    
    logger.debug(f"Detected {len(regions)} table regions")
    return regions


def region_from_lines(lines: Sequence[Line], core: Sequence[Line], config: EngineConfig = None) -> TableRegion:
    """
    Build one region whose geometry comes from ``core`` and whose span covers the
    same lines around the core a table region's span would.
    """
    config = config or EngineConfig()
    if not core:
        return TableRegion(lines=tuple(lines), span=tuple(lines))
    
    positions = {id(line): i for i, line in enumerate(lines)}
    indices = sorted(positions[id(line)] for line in core if id(line) in positions)
    if not indices:
        return TableRegion(lines=tuple(core), span=tuple(core))
    
    start = _span_start(lines, indices, 0, config)
    end = _span_end(lines, indices, len(lines), config)
    return TableRegion(lines=tuple(core), span=tuple(lines[start:end]))


def largest_region(regions: Sequence[TableRegion]) -> Tuple[int, TableRegion]:
    """Index and region with the most consistent lines."""
    best = max(range(len(regions)), key=lambda i: (len(regions[i].lines), -i))
    return best, regions[best]
