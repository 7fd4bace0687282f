"""
Tests for row extraction, classification and stitching.
"""
import pytest

from ..core.config import EngineConfig
from ..core.layout import ColumnBoundary
from ..core.lines import group_tokens_into_lines
from ..core.patterns import RowPatterns
from ..core.rows import (
    ClassifiedRow, classify_row, classify_rows, extract_row, merge_rows, stitch_page_breaks, stitch_rows,
)
from ..models.schema import ColumnType, RowKind
from .conftest import header_line, row_top, stack, statement_line, words


BOUNDARIES = (
    ColumnBoundary(0, 105, ColumnType.DATE, 0.9),
    ColumnBoundary(105, 260, ColumnType.DESCRIPTION, 0.9),
    ColumnBoundary(260, 385, ColumnType.DEBIT, 0.9),
    ColumnBoundary(385, 472, ColumnType.CREDIT, 0.9),
    ColumnBoundary(472, 600, ColumnType.BALANCE, 0.9),
)


def row_of(tokens):
    return extract_row(group_tokens_into_lines(tokens)[0], BOUNDARIES)


def rows_of(tokens):
    return [extract_row(line, BOUNDARIES) for line in group_tokens_into_lines(tokens)]


class TestExtraction:
    
    def test_fields_by_containment(self):
        row = row_of(statement_line(100, '01/02/2024', 'Salary Credit', credit='500.00', balance='1500.00'))
        
        assert row.get(ColumnType.DATE) == '01/02/2024'
        assert row.get(ColumnType.DESCRIPTION) == 'Salary Credit'
        assert row.get(ColumnType.CREDIT) == '500.00'
        assert row.get(ColumnType.BALANCE) == '1500.00'
        assert row.get(ColumnType.DEBIT) == ''
        assert row.assigned_tokens == 5
        assert row.has_balance_column
    
    def test_token_outside_every_column_is_unassigned(self):
        row = row_of(statement_line(100, '01/02/2024', 'Coffee', debit='3.00') + words('stray', 700, 100))
        
        assert row.assigned_tokens == 3
        assert row.token_count == 4
        assert 'stray' not in row.field_map().values()
    
    def test_merge_rows_fills_empty_fields(self):
        first = row_of(statement_line(100, '05/02/2024', 'ATM Withdrawal', debit='200.00'))
        second = row_of(statement_line(60, description='Main St', balance='1254.50', page=2))
        merged = merge_rows(first, second)
        
        assert merged.get(ColumnType.DESCRIPTION) == 'ATM Withdrawal Main St'
        assert merged.get(ColumnType.BALANCE) == '1254.50'
        assert merged.get(ColumnType.DEBIT) == '200.00'
        assert merged.pages == (1, 2)


class TestClassification:
    
    @pytest.fixture
    def patterns(self):
        return RowPatterns()
    
    @pytest.fixture
    def config(self):
        return EngineConfig()
    
    def test_transaction(self, patterns, config):
        row = row_of(statement_line(100, '03/02/2024', 'Grocery Store', debit='45.50', balance='1454.50'))
        assert classify_row(row, patterns, config).kind == RowKind.TRANSACTION
    
    def test_continuation(self, patterns, config):
        row = row_of(words('ref ABC123', 120, 100))
        assert classify_row(row, patterns, config).kind == RowKind.CONTINUATION
    
    def test_opening_and_closing_balance(self, patterns, config):
        opening = row_of(statement_line(100, description='Opening Balance', balance='1000.00'))
        closing = row_of(statement_line(100, description='Closing Balance', balance='1259.00'))
        
        assert classify_row(opening, patterns, config).kind == RowKind.OPENING_BALANCE
        assert classify_row(closing, patterns, config).kind == RowKind.CLOSING_BALANCE
    
    def test_balance_words_on_a_movement_row_stay_a_transaction(self, patterns, config):
        row = row_of(statement_line(100, '01/02/2024', 'Opening Balance Fee', debit='5.00', balance='995.00'))
        assert classify_row(row, patterns, config).kind == RowKind.TRANSACTION
    
    def test_page_footer_is_skipped(self, patterns, config):
        classified = classify_row(row_of(words('Page 1 of 3', 120, 100)), patterns, config)
        
        assert classified.kind == RowKind.NOISE
        assert classified.is_skip
    
    def test_repeated_header_is_skipped(self, patterns, config):
        classified = classify_row(row_of(header_line(100)), patterns, config)
        assert classified.is_skip
    
    def test_dated_row_without_amount_is_unclassified(self, patterns, config):
        classified = classify_row(row_of(statement_line(100, '01/02/2024', 'Pending')), patterns, config)
        
        assert classified.kind == RowKind.NOISE
        assert classified.reason == 'unclassified'
        assert not classified.is_skip
    
    def test_hint_skip_pattern(self, config):
        from ..models.schema import InstitutionHint
        patterns = RowPatterns(InstitutionHint(key='test', skip_patterns=[r'^promo\b']))
        classified = classify_row(row_of(words('Promo offer inside', 120, 100)), patterns, config)
        
        assert classified.is_skip


class TestStitching:
    
    @pytest.fixture
    def patterns(self):
        return RowPatterns()
    
    @pytest.fixture
    def config(self):
        return EngineConfig()
    
    def test_wrapped_balance_joins_across_pages(self, page_break_statement, patterns, config):
        classified = classify_rows(rows_of(page_break_statement), patterns, config)
        stitched, count = stitch_page_breaks(classified, patterns, config)
        
        assert count == 1
        assert len(stitched) == len(classified) - 1
        atm = stitched[3]
        assert atm.kind == RowKind.TRANSACTION
        assert atm.row.get(ColumnType.BALANCE) == '1254.50'
        assert atm.row.pages == (1, 2)
    
    def test_page_footer_is_stepped_over(self, patterns, config):
        tokens = stack([
            statement_line(row_top(0), '03/02/2024', 'Grocery Store', debit='45.50', balance='1454.50'),
            statement_line(row_top(1), '05/02/2024', 'ATM Withdrawal', debit='200.00'),
            words('Page 1 of 2', 120, row_top(2)),
            statement_line(60, balance='1254.50', page=2),
        ])
        classified = classify_rows(rows_of(tokens), patterns, config)
        stitched, count = stitch_page_breaks(classified, patterns, config)
        
        assert count == 1
        assert [r.kind for r in stitched] == [RowKind.TRANSACTION, RowKind.TRANSACTION, RowKind.NOISE]
        assert stitched[1].row.get(ColumnType.BALANCE) == '1254.50'
    
    def test_continuation_on_next_page_is_counted(self, patterns, config):
        tokens = stack([
            statement_line(row_top(0), '05/02/2024', 'Transfer to', debit='20.00', balance='80.00'),
            words('John Smith', 120, 60, page=2),
        ])
        classified = classify_rows(rows_of(tokens), patterns, config)
        stitched, count = stitch_page_breaks(classified, patterns, config)
        state = stitch_rows(stitched)
        
        assert count == 1
        assert len(state.stitched) == 1
        assert state.stitched[0].raw_description == 'Transfer to John Smith'
        assert state.stitched[0].pages == (1, 2)
    
    def test_same_page_rows_are_not_merged(self, salary_statement, patterns, config):
        classified = classify_rows(rows_of(salary_statement), patterns, config)
        stitched, count = stitch_page_breaks(classified, patterns, config)
        
        assert count == 0
        assert stitched == classified
    
    def test_continuations_fold_into_transactions(self, salary_statement, patterns, config):
        classified = classify_rows(rows_of(salary_statement), patterns, config)
        state = stitch_rows(classified)
        
        assert len(state.stitched) == 4
        assert state.stitched[0].raw_description == 'Salary Credit ref ABC123'
        assert state.stitched[0].credit == '500.00'
        assert len(state.skipped) == 1
    
    def test_orphan_continuation_is_skipped(self, patterns, config):
        rows = rows_of(stack([
            words('stray words here', 120, row_top(0)),
            statement_line(row_top(1), '01/02/2024', 'Coffee', debit='3.00', balance='97.00'),
        ]))
        state = stitch_rows(classify_rows(rows, patterns, config))
        
        assert len(state.stitched) == 1
        assert state.stitched[0].raw_description == 'Coffee'
        assert len(state.skipped) == 1
    
    def test_continuation_after_balance_row_is_skipped(self, patterns, config):
        rows = rows_of(stack([
            statement_line(row_top(0), description='Opening Balance', balance='100.00'),
            words('as of 1 February', 120, row_top(1)),
        ]))
        classified = classify_rows(rows, patterns, config)
        state = stitch_rows(classified)
        
        assert [st.kind for st in state.stitched] == [RowKind.OPENING_BALANCE]
        assert len(state.skipped) == 1
    
    def test_token_conservation(self, page_break_statement, patterns, config):
        classified = classify_rows(rows_of(page_break_statement), patterns, config)
        stitched, _ = stitch_page_breaks(classified, patterns, config)
        state = stitch_rows(stitched)
        
        total = sum(row.row.token_count for row in stitched)
        kept = sum(st.token_count for st in state.stitched)
        dropped = sum(row.token_count for row in state.skipped)
        assert total == kept + dropped == len(page_break_statement)
