"""
End-to-end tests for StatementParser.
"""
import pytest
from datetime import date
from decimal import Decimal

from ..core.config import EngineConfig
from ..core.hints import load_hint_registry
from ..core.runner import StatementParser, parse_tokens
from ..models.schema import InstitutionHint, ParseResult, TransactionStatus
from .conftest import header_line, row_top, stack, statement_line


class TestStatementParser:
    """Full pipeline over synthetic statements."""
    
    @pytest.fixture
    def parser(self):
        return StatementParser()
    
    def test_separate_columns_with_continuation(self, parser, salary_statement):
        result = parser.parse(salary_statement)
        
        assert len(result.transactions) == 4
        salary = result.transactions[0]
        assert salary.transaction_date == date(2024, 2, 1)
        assert salary.description == 'Salary Credit Ref: ABC123'
        assert salary.credit == Decimal('500.00')
        assert salary.debit is None
        assert salary.balance == Decimal('1500.00')
        assert salary.stitched_lines == 1
        assert salary.raw_fields['description'] == 'Salary Credit ref ABC123'
        
        assert [t.status for t in result.transactions] == [TransactionStatus.VALID] * 4
        assert result.transactions[2].debit == Decimal('200.00')
    
    def test_diagnostics(self, parser, salary_statement):
        diagnostics = parser.parse(salary_statement).diagnostics
        
        assert diagnostics.strategy == 'header-anchored'
        assert not diagnostics.low_confidence
        assert len(diagnostics.strategy_scores) == 4
        assert [c.column_type.value for c in diagnostics.column_map] == [
            'date', 'description', 'debit', 'credit', 'balance',
        ]
        assert diagnostics.transaction_rows == 4
        assert diagnostics.continuation_rows == 1
        assert diagnostics.currency == 'USD'
        assert diagnostics.number_format == 'western'
        assert diagnostics.day_first is True
        assert diagnostics.date_order == 'ascending'
        assert not diagnostics.reversed
        assert diagnostics.overall_status == TransactionStatus.VALID
    
    def test_token_conservation(self, parser, page_break_statement):
        diagnostics = parser.parse(page_break_statement).diagnostics
        
        assert diagnostics.total_tokens == len(page_break_statement)
        assert diagnostics.total_tokens == (
            diagnostics.stitched_tokens + diagnostics.skipped_tokens + diagnostics.outside_tokens
        )
    
    def test_long_first_row_is_kept(self, parser, long_first_row_statement):
        result = parser.parse(long_first_row_statement)
        
        assert [t.description for t in result.transactions] == [
            'Pay To A K Shah And Co', 'Grocery Store', 'ATM Withdrawal', 'Interest', 'Card Fee',
        ]
        first = result.transactions[0]
        assert first.debit == Decimal('100.00')
        assert first.status == TransactionStatus.VALID
        assert result.segments[0].opening_balance == Decimal('1000.00')
        
        diagnostics = result.diagnostics
        assert diagnostics.total_tokens == len(long_first_row_statement)
        assert diagnostics.total_tokens == (
            diagnostics.stitched_tokens + diagnostics.skipped_tokens + diagnostics.outside_tokens
        )
        # Only the column header can fall outside the table
        assert diagnostics.outside_tokens in (0, 5)
        assert diagnostics.warnings == []
    
    def test_transaction_confidence(self, parser, salary_statement, merged_statement):
        salary = parser.parse(salary_statement)
        assert [(t.confidence, t.grade) for t in salary.transactions] == [
            (98, 'A'), (100, 'A'), (100, 'A'), (100, 'A'),
        ]
        assert salary.diagnostics.average_confidence == 99.5
        assert salary.diagnostics.low_confidence_rows == 0
        
        refund = parser.parse(merged_statement).transactions[1]
        assert refund.status == TransactionStatus.ERROR
        assert (refund.confidence, refund.grade) == (76, 'C')
        assert 'Balance error' in refund.confidence_concerns
    
    def test_opening_balance_is_derived(self, parser, salary_statement):
        segment = parser.parse(salary_statement).segments[0]
        
        assert segment.opening_balance == Decimal('1000.00')
        assert segment.opening_derived
        assert segment.closing_balance == Decimal('1259.00')
        assert segment.total_credit == Decimal('504.50')
        assert segment.total_debit == Decimal('245.50')
    
    def test_page_break_stitching(self, parser, page_break_statement):
        result = parser.parse(page_break_statement)
        
        assert result.diagnostics.cross_page_stitches == 1
        assert len(result.transactions) == 5
        atm = result.transactions[2]
        assert atm.debit == Decimal('200.00')
        assert atm.balance == Decimal('1254.50')
        assert atm.source_pages == [1, 2]
        assert atm.stitched_lines == 1
        assert all(t.status == TransactionStatus.VALID for t in result.transactions)
    
    def test_merged_amount_column(self, parser, merged_statement):
        result = parser.parse(merged_statement)
        withdrawal, refund, salary = result.transactions
        
        assert result.segments[0].opening_balance == Decimal('1000.00')
        assert not result.segments[0].opening_derived
        assert withdrawal.debit == Decimal('200.00')
        assert withdrawal.status == TransactionStatus.VALID
        assert refund.credit == Decimal('50.00')
        assert refund.status == TransactionStatus.ERROR
        assert refund.expected_balance == Decimal('850.00')
        assert refund.discrepancy == Decimal('50.00')
        assert salary.status == TransactionStatus.VALID
        assert [t.transaction_date for t in result.transactions] == [
            date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 4),
        ]
        assert result.diagnostics.overall_status == TransactionStatus.ERROR
    
    def test_descending_statement_is_reversed(self, parser):
        tokens = stack([
            header_line(row_top(0)),
            statement_line(row_top(1), '07/02/2024', 'Interest', credit='4.50', balance='1259.00'),
            statement_line(row_top(2), '05/02/2024', 'ATM Withdrawal', debit='200.00', balance='1254.50'),
            statement_line(row_top(3), '03/02/2024', 'Grocery Store', debit='45.50', balance='1454.50'),
            statement_line(row_top(4), '01/02/2024', 'Salary Credit', credit='500.00', balance='1500.00'),
        ])
        result = parser.parse(tokens)
        
        assert result.diagnostics.date_order == 'descending'
        assert result.diagnostics.reversed
        assert result.transactions[0].description == 'Salary Credit'
        assert result.diagnostics.overall_status == TransactionStatus.VALID
        
        unreversed = StatementParser(EngineConfig(auto_reverse=False)).parse(tokens)
        assert not unreversed.diagnostics.reversed
        assert unreversed.transactions[0].description == 'Interest'
    
    def test_parsing_is_idempotent(self, parser, salary_statement):
        first = parser.parse(salary_statement)
        second = parser.parse(list(reversed(salary_statement)))
        assert first.model_dump() == second.model_dump()
    
    def test_accepts_token_dicts(self, salary_statement):
        result = parse_tokens([t.model_dump() for t in salary_statement])
        assert len(result.transactions) == 4
    
    def test_empty_input(self, parser):
        result = parser.parse([])
        
        assert result.transactions == []
        assert result.diagnostics.low_confidence
        assert result.diagnostics.warnings == ['No tokens to parse']
    
    def test_result_round_trips_through_json(self, parser, merged_statement):
        result = parser.parse(merged_statement)
        assert ParseResult.model_validate_json(result.model_dump_json()) == result


class TestHintsAndOverrides:
    
    def test_hint_currency_sets_tolerance(self, salary_statement):
        result = parse_tokens(salary_statement, hint=InstitutionHint(key='jp_test', currency='JPY'))
        
        assert result.diagnostics.currency == 'JPY'
        assert result.diagnostics.hint == 'jp_test'
    
    def test_config_currency_wins(self, salary_statement):
        hint = InstitutionHint(key='jp_test', currency='JPY')
        result = parse_tokens(salary_statement, EngineConfig(currency='eur'), hint)
        assert result.diagnostics.currency == 'EUR'
    
    def test_month_first_hint(self, salary_statement):
        hint = load_hint_registry()['us_checking']
        result = parse_tokens(salary_statement, hint=hint)
        
        assert result.diagnostics.day_first is False
        assert result.transactions[0].transaction_date == date(2024, 1, 2)
        assert result.diagnostics.number_format == 'western'
