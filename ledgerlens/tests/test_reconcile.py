"""
Tests for cross-table column reconciliation.
"""
import pytest

from ..core.config import EngineConfig
from ..core.layout import ColumnBoundary, TableRegion
from ..core.reconcile import _dedupe_unique, reconcile_tables
from ..models.schema import ColumnType


def table(*boundaries):
    # Geometry-only table; content centers fall back to boundary centers
    return TableRegion(lines=(), span=(), boundaries=tuple(boundaries))


class TestReconcile:
    
    @pytest.fixture
    def config(self):
        return EngineConfig()
    
    def test_no_tables(self, config):
        assert reconcile_tables([], config) == ([], [])
    
    def test_single_table_passes_through(self, config):
        only = table(
            ColumnBoundary(0, 100, ColumnType.DATE, 0.9),
            ColumnBoundary(100, 250, ColumnType.DESCRIPTION, 0.8),
        )
        tables, consensus = reconcile_tables([only], config)
        
        assert tables == [only]
        assert consensus == list(only.boundaries)
    
    def test_unique_types_assigned_once(self, config):
        first = table(
            ColumnBoundary(0, 100, ColumnType.DATE, 0.9),
            ColumnBoundary(100, 250, ColumnType.DESCRIPTION, 0.8),
            ColumnBoundary(250, 350, ColumnType.BALANCE, 0.9),
        )
        second = table(
            ColumnBoundary(0, 100, ColumnType.DATE, 0.9),
            ColumnBoundary(100, 250, ColumnType.DESCRIPTION, 0.8),
            ColumnBoundary(250, 350, ColumnType.BALANCE, 0.9),
            ColumnBoundary(350, 450, ColumnType.BALANCE, 0.85),
        )
        tables, consensus = reconcile_tables([first, second], config)
        
        consensus_types = [b.column_type for b in consensus]
        assert consensus_types == [
            ColumnType.DATE, ColumnType.DESCRIPTION, ColumnType.BALANCE, ColumnType.UNKNOWN,
        ]
        assert consensus_types.count(ColumnType.BALANCE) == 1
        assert tables[1].column_types()[3] == ColumnType.UNKNOWN
    
    def test_weak_majority_keeps_confident_assignment(self, config):
        tables = [
            table(ColumnBoundary(300, 400, ColumnType.DEBIT, 0.95)),
            table(ColumnBoundary(300, 400, ColumnType.CREDIT, 0.6)),
            table(ColumnBoundary(300, 400, ColumnType.CREDIT, 0.6)),
        ]
        reconciled, consensus = reconcile_tables(tables, config)
        
        assert consensus[0].column_type == ColumnType.DEBIT
        assert all(t.column_types() == (ColumnType.DEBIT,) for t in reconciled)
    
    def test_strong_majority_flips(self, config):
        tables = [table(ColumnBoundary(300, 400, ColumnType.DEBIT, 0.95))]
        tables += [table(ColumnBoundary(302, 398, ColumnType.CREDIT, 0.6)) for _ in range(5)]
        reconciled, consensus = reconcile_tables(tables, config)
        
        assert consensus[0].column_type == ColumnType.CREDIT
        assert reconciled[0].column_types() == (ColumnType.CREDIT,)
    
    def test_weak_majority_checked_past_non_amount_votes(self, config):
        tables = [table(ColumnBoundary(300, 400, ColumnType.DEBIT, 0.95))]
        tables += [table(ColumnBoundary(300, 400, ColumnType.CREDIT, 0.6)) for _ in range(3)]
        tables += [table(ColumnBoundary(300, 400, ColumnType.UNKNOWN, 0.5)) for _ in range(2)]
        reconciled, consensus = reconcile_tables(tables, config)
        
        assert consensus[0].column_type == ColumnType.DEBIT
        assert all(t.column_types() == (ColumnType.DEBIT,) for t in reconciled)
    
    def test_consensus_averages_positions(self, config):
        tables = [
            table(ColumnBoundary(0, 100, ColumnType.DATE, 0.9)),
            table(ColumnBoundary(10, 110, ColumnType.DATE, 0.9)),
        ]
        _, consensus = reconcile_tables(tables, config)
        
        assert len(consensus) == 1
        assert consensus[0].x0 == 5.0
        assert consensus[0].x1 == 105.0
    
    def test_distant_positions_stay_separate(self, config):
        tables = [
            table(ColumnBoundary(0, 100, ColumnType.DATE, 0.9)),
            table(ColumnBoundary(200, 300, ColumnType.DATE, 0.7)),
        ]
        _, consensus = reconcile_tables(tables, config)
        
        assert [b.column_type for b in consensus].count(ColumnType.DATE) == 1
        assert len(consensus) == 2
    
    def test_dedupe_within_table(self):
        boundaries = [
            ColumnBoundary(0, 100, ColumnType.DATE, 0.6),
            ColumnBoundary(100, 200, ColumnType.DATE, 0.9),
        ]
        deduped = _dedupe_unique(boundaries)
        
        assert deduped[0].column_type == ColumnType.UNKNOWN
        assert deduped[1].column_type == ColumnType.DATE
