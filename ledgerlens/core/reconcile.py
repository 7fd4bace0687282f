"""
Cross-table column reconciliation: one consistent column meaning per x-position.
"""
from typing import Dict, List, Sequence, Tuple
import logging

from .config import EngineConfig
from .layout import ColumnBoundary, TableRegion
from ..models.schema import AMOUNT_TYPES, UNIQUE_TYPES, ColumnType

logger = logging.getLogger(__name__)


class PositionGroup:
    """Boundaries from several tables that sit at about the same x-position."""
    def __init__(self, center_x: float):
        self.center_x = center_x
        self.members: List[Tuple[int, int, ColumnBoundary]] = []
        self.confidences: Dict[ColumnType, List[float]] = {}
    
    def add(self, table_index: int, boundary_index: int, boundary: ColumnBoundary):
        self.members.append((table_index, boundary_index, boundary))
        self.confidences.setdefault(boundary.column_type, []).append(boundary.confidence)
    
    @property
    def total(self) -> int:
        return len(self.members)
    
    def ranked(self) -> List[Tuple[ColumnType, int, float]]:
        """Votes as (type, count, best confidence), by count then confidence."""
        votes = [(t, len(c), max(c)) for t, c in self.confidences.items()]
        return sorted(votes, key=lambda v: (-v[1], -v[2], v[0].value))
    
    @property
    def average_width(self) -> float:
        return sum(b.width for _, _, b in self.members) / len(self.members)
    
    def __repr__(self):
        return f"PositionGroup(x={self.center_x:.1f}, votes={self.ranked()})"


def _content_center(table: TableRegion, boundary: ColumnBoundary) -> float:
    """Mean center of the tokens a boundary holds; its geometric center when empty."""
    centers = [t.center_x for line in table.lines for t in line.tokens if boundary.contains(t)]
    if not centers:
        return boundary.center_x
    return sum(centers) / len(centers)


def _group_boundaries(tables: Sequence[TableRegion], tolerance: float) -> List[PositionGroup]:
    groups: List[PositionGroup] = []
    for ti, table in enumerate(tables):
        for bi, boundary in enumerate(table.boundaries):
            center = _content_center(table, boundary)
            group = next((g for g in groups if abs(g.center_x - center) <= tolerance), None)
            if group is None:
                group = PositionGroup(center)
                groups.append(group)
            group.add(ti, bi, boundary)
    return sorted(groups, key=lambda g: g.center_x)


def _decide(group: PositionGroup, flip_majority: float) -> Tuple[ColumnType, int, float]:
    ranked = group.ranked()
    winner = ranked[0]
    amount_votes = [v for v in ranked if v[0] in AMOUNT_TYPES]
    if winner[0] in AMOUNT_TYPES and len(amount_votes) > 1:
        share = winner[1] / group.total
        if share <= flip_majority:
            strongest = max(amount_votes, key=lambda v: (v[2], v[1]))
            if strongest[0] != winner[0]:
                logger.info(
                    f"Column at x={group.center_x:.1f}: {winner[0].value} has only {share:.0%} of votes, "
                    f"keeping highest-confidence {strongest[0].value}"
                )
            winner = strongest
    return winner


def reconcile_tables(tables: Sequence[TableRegion],
                     config: EngineConfig = None) -> Tuple[List[TableRegion], List[ColumnBoundary]]:
    """
    Unify column types across tables by weighted vote per x-position.
    
    Date, description and balance are assigned at most once document-wide.
    Flips among debit/credit/balance/amount need more than ``flip_majority``
    of the votes to overturn the highest-confidence assignment.
    
    Args:
        tables: Tables with independently classified boundaries
        config: Engine configuration
    
    Returns:
        (tables with reconciled boundary types, consensus boundary set)
    """
    config = config or EngineConfig()
    tables = list(tables)
    if not tables:
        return [], []
    if len(tables) == 1:
        return tables, list(tables[0].boundaries)
    
    groups = _group_boundaries(tables, config.reconcile_tolerance)
    decisions: Dict[int, Tuple[ColumnType, float]] = {}
    strength = []
    for gi, group in enumerate(groups):
        column_type, count, confidence = _decide(group, config.flip_majority)
        share = count / group.total
        decisions[gi] = (column_type, round(confidence * share, 3))
        strength.append((confidence * share, -gi))
    
    # Strongest claims keep unique types; later claims fall back to their next vote
    used = set()
    for _, neg_gi in sorted(strength, reverse=True):
        gi = -neg_gi
        column_type, confidence = decisions[gi]
        if column_type in UNIQUE_TYPES and column_type in used:
            alternatives = [
                v for v in groups[gi].ranked()
                if v[0] != column_type and not (v[0] in UNIQUE_TYPES and v[0] in used)
            ]
            if alternatives:
                column_type = alternatives[0][0]
                confidence = round(alternatives[0][2] * alternatives[0][1] / groups[gi].total, 3)
            else:
                column_type, confidence = ColumnType.UNKNOWN, 0.3
            decisions[gi] = (column_type, confidence)
        if column_type in UNIQUE_TYPES:
            used.add(column_type)
    
    if ColumnType.DESCRIPTION not in used:
        unknown = [gi for gi, (t, _) in decisions.items() if t == ColumnType.UNKNOWN]
        if unknown:
            widest = max(unknown, key=lambda gi: groups[gi].average_width)
            decisions[widest] = (ColumnType.DESCRIPTION, 0.4)
    
    types: Dict[Tuple[int, int], Tuple[ColumnType, float]] = {}
    for gi, group in enumerate(groups):
        for ti, bi, _ in group.members:
            types[(ti, bi)] = decisions[gi]
    
    reconciled = []
    for ti, table in enumerate(tables):
        boundaries = [b.retyped(*types[(ti, bi)]) for bi, b in enumerate(table.boundaries)]
        reconciled.append(table.with_boundaries(_dedupe_unique(boundaries)))
    
    consensus = []
    for gi, group in enumerate(groups):
        column_type, confidence = decisions[gi]
        members = [b for _, _, b in group.members]
        consensus.append(ColumnBoundary(
            x0=round(sum(b.x0 for b in members) / len(members), 1),
            x1=round(sum(b.x1 for b in members) / len(members), 1),
            column_type=column_type,
            confidence=confidence,
        ))
    
    logger.debug(f"Reconciled {len(tables)} tables into {len(consensus)} column positions")
    return reconciled, consensus


def _dedupe_unique(boundaries: List[ColumnBoundary]) -> List[ColumnBoundary]:
    """Within one table, keep only the most confident boundary of each unique type."""
    result = list(boundaries)
    for column_type in UNIQUE_TYPES:
        found = [i for i, b in enumerate(result) if b.column_type == column_type]
        if len(found) > 1:
            keep = max(found, key=lambda i: (result[i].confidence, -i))
            for i in found:
                if i != keep:
                    result[i] = result[i].retyped(ColumnType.UNKNOWN, 0.3)
    return result
