"""
Tests for line grouping.
"""
import pytest

from ..core.lines import bucket_key, group_tokens_into_lines, iter_page_lines
from ..models.schema import PositionedToken
from .conftest import words


class TestLineGrouping:
    """Bucketing tokens into lines by page and Y position."""
    
    def test_empty_input(self):
        assert group_tokens_into_lines([]) == ()
    
    def test_tokens_sorted_left_to_right(self):
        tokens = words('1500.00', 505, 100) + words('01/02/2024', 40, 100) + words('Salary', 120, 100)
        lines = group_tokens_into_lines(tokens)
        
        assert len(lines) == 1
        assert [t.text for t in lines[0].tokens] == ['01/02/2024', 'Salary', '1500.00']
        assert lines[0].text == '01/02/2024 Salary 1500.00'
    
    def test_small_vertical_jitter_shares_a_line(self):
        tokens = words('left', 40, 96.0) + words('right', 200, 97.4)
        lines = group_tokens_into_lines(tokens, y_tolerance=3.0)
        assert len(lines) == 1
    
    def test_distinct_rows_stay_apart(self):
        tokens = words('first', 40, 100) + words('second', 40, 115)
        lines = group_tokens_into_lines(tokens)
        assert [line.text for line in lines] == ['first', 'second']
    
    def test_half_bucket_rounds_up(self):
        # 97.5 / 3 = 32.5 exactly; rounding, not truncation, decides the bucket
        assert bucket_key(97.5, 3.0) == 33
        assert bucket_key(94.5, 3.0) == 32
        assert bucket_key(97.5, 3.0) == bucket_key(97.5, 3.0)
    
    def test_pages_kept_apart_and_ordered(self):
        tokens = words('second page', 40, 100, page=2) + words('first page', 40, 100, page=1)
        lines = group_tokens_into_lines(tokens)
        
        assert [line.page for line in lines] == [1, 2]
        assert lines[0].text == 'first page'
    
    def test_blank_tokens_dropped(self):
        blank = PositionedToken(text='  ', page=1, x0=10, x1=20, top=100, bottom=110)
        lines = group_tokens_into_lines([blank] + words('kept', 40, 100))
        assert len(lines) == 1
        assert len(lines[0]) == 1
    
    def test_iter_page_lines_yields_one_page_at_a_time(self):
        tokens = words('a', 40, 100, page=1) + words('b', 40, 100, page=3) + words('c', 40, 130, page=1)
        pages = list(iter_page_lines(tokens))
        
        assert [page for page, _ in pages] == [1, 3]
        assert len(pages[0][1]) == 2
    
    def test_line_geometry(self, salary_statement):
        lines = group_tokens_into_lines(salary_statement)
        
        assert len(lines) == 6
        header = lines[0]
        assert header.left == pytest.approx(40.0)
        assert header.right == pytest.approx(540.0)
        assert header.top == pytest.approx(100.0)
        assert not header.is_bold
