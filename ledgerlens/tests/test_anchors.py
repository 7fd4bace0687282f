"""
Tests for header keyword anchors.
"""
import pytest

from ..core.anchors import boundaries_from_anchors, detect_header, find_header_anchors, is_header_repeat
from ..core.config import EngineConfig
from ..core.lines import group_tokens_into_lines
from ..models.schema import ColumnType
from .conftest import header_line, right_words, stack, statement_line, words


class TestHeaderAnchors:
    """Exact and fuzzy keyword matching on header lines."""
    
    def test_standard_header(self):
        anchors = find_header_anchors(header_line(100))
        assert [a.column_type for a in anchors] == [
            ColumnType.DATE, ColumnType.DESCRIPTION, ColumnType.DEBIT, ColumnType.CREDIT, ColumnType.BALANCE,
        ]
        assert all(a.confidence == 1.0 for a in anchors)
    
    def test_multi_word_keywords_win_over_single_words(self):
        tokens = (
            words('Txn Date', 40, 100) + words('Value Date', 100, 100) + words('Particulars', 170, 100)
            + right_words('Withdrawal', 360, 100) + right_words('Deposit', 440, 100)
            + right_words('Balance', 540, 100)
        )
        anchors = find_header_anchors(tokens)
        types = [a.column_type for a in anchors]
        
        assert types == [
            ColumnType.DATE, ColumnType.VALUE_DATE, ColumnType.DESCRIPTION,
            ColumnType.DEBIT, ColumnType.CREDIT, ColumnType.BALANCE,
        ]
        assert anchors[1].keyword == 'value date'
    
    def test_fuzzy_match_tolerates_ocr_damage(self):
        tokens = words('Date', 40, 100) + words('Descripton', 120, 100) + right_words('Balance', 540, 100)
        anchors = find_header_anchors(tokens, fuzzy_threshold=88)
        description = [a for a in anchors if a.column_type == ColumnType.DESCRIPTION]
        
        assert len(description) == 1
        assert 0.88 <= description[0].confidence < 1.0
    
    def test_multilingual_header(self):
        tokens = (
            words('Fecha', 40, 100) + words('Concepto', 120, 100) + right_words('Importe', 440, 100)
            + right_words('Saldo', 540, 100)
        )
        types = {a.column_type for a in find_header_anchors(tokens)}
        assert types == {ColumnType.DATE, ColumnType.DESCRIPTION, ColumnType.AMOUNT, ColumnType.BALANCE}


class TestHeaderDetection:
    """Locating the header line and turning anchors into boundaries."""
    
    @pytest.fixture
    def config(self):
        return EngineConfig()
    
    def test_detect_header(self, salary_statement, config):
        lines = group_tokens_into_lines(salary_statement)
        header = detect_header(lines, config)
        
        assert header is not None
        assert header.line_index == 0
        assert header.categories == 5
        assert header.confidence == 0.9
    
    def test_first_qualifying_header_wins(self, config):
        tokens = stack([
            words('Date', 40, 100) + words('Description', 120, 100) + right_words('Balance', 540, 100),
            header_line(160),
        ])
        header = detect_header(group_tokens_into_lines(tokens), config)
        
        assert header.line_index == 0
        assert header.categories == 3
    
    def test_merged_two_line_header(self, config):
        tokens = stack([
            words('Txn', 40, 100) + right_words('Withdrawal', 360, 100) + right_words('Deposit', 440, 100),
            words('Date', 40, 112) + words('Particulars', 120, 112) + right_words('Balance', 540, 112),
        ])
        header = detect_header(group_tokens_into_lines(tokens), config)
        
        assert header.line_index == 1
        assert header.categories == 5
    
    def test_no_header(self, config):
        tokens = stack([
            statement_line(100 + i * 15, f"0{i + 1}/02/2024", 'Coffee', debit='3.00', balance='10.00')
            for i in range(3)
        ])
        assert detect_header(group_tokens_into_lines(tokens), config) is None
    
    def test_header_repeat(self, salary_statement, config):
        lines = group_tokens_into_lines(salary_statement)
        assert is_header_repeat(lines[0], config)
        assert not is_header_repeat(lines[1], config)
    
    def test_boundaries_from_anchors(self, salary_statement, config):
        lines = group_tokens_into_lines(salary_statement)
        header = detect_header(lines, config)
        boundaries = boundaries_from_anchors(header, lines[1:], config)
        
        assert [b.column_type for b in boundaries] == [a.column_type for a in header.anchors]
        for left, right in zip(boundaries, boundaries[1:]):
            assert left.x1 == right.x0
        
        # Each data cell falls in the column named by its header
        by_type = {b.column_type: b for b in boundaries}
        salary = lines[1]
        credit = next(t for t in salary.tokens if t.text == '500.00')
        balance = next(t for t in salary.tokens if t.text == '1500.00')
        description = next(t for t in salary.tokens if t.text == 'Credit')
        assert by_type[ColumnType.CREDIT].contains(credit)
        assert by_type[ColumnType.BALANCE].contains(balance)
        assert by_type[ColumnType.DESCRIPTION].contains(description)
        assert all(b.confidence == pytest.approx(0.9) for b in boundaries)
