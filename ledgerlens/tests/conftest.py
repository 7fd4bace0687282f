"""
Synthetic positioned-token builders shared by the test suite.

Every character is 5 units wide and every token 10 units tall, so column
geometry in the tests is exact. The standard layout is:

    Date (left at 40) | Description (left at 120) | Debit (right at 360)
    | Credit (right at 440) | Balance (right at 540)

Merged-amount statements put a single Amount column right-aligned at 440.
"""
import pytest
from typing import List, Sequence

from ..models.schema import PositionedToken


CHAR_WIDTH = 5.0
TOKEN_HEIGHT = 10.0
LINE_SPACING = 15.0

DATE_X = 40.0
DESCRIPTION_X = 120.0
DEBIT_RIGHT = 360.0
CREDIT_RIGHT = 440.0
AMOUNT_RIGHT = 440.0
BALANCE_RIGHT = 540.0


def words(text: str, x0: float, top: float, page: int = 1, bold: bool = False) -> List[PositionedToken]:
    """One token per whitespace-separated word, starting at x0."""
    tokens = []
    x = x0
    for word in text.split():
        width = len(word) * CHAR_WIDTH
        tokens.append(PositionedToken(
            text=word, page=page, x0=x, x1=x + width, top=top, bottom=top + TOKEN_HEIGHT, bold=bold,
        ))
        x += width + CHAR_WIDTH
    return tokens


def right_words(text: str, x1: float, top: float, page: int = 1, bold: bool = False) -> List[PositionedToken]:
    """Words laid out so the last one ends at x1."""
    if not text:
        return []
    return words(text, x1 - len(text) * CHAR_WIDTH, top, page, bold)


def statement_line(top: float, date: str = '', description: str = '', debit: str = '',
                   credit: str = '', balance: str = '', page: int = 1) -> List[PositionedToken]:
    """A row of the standard five-column layout."""
    return (
        words(date, DATE_X, top, page)
        + words(description, DESCRIPTION_X, top, page)
        + right_words(debit, DEBIT_RIGHT, top, page)
        + right_words(credit, CREDIT_RIGHT, top, page)
        + right_words(balance, BALANCE_RIGHT, top, page)
    )


def header_line(top: float, page: int = 1, bold: bool = False) -> List[PositionedToken]:
    return (
        words('Date', DATE_X, top, page, bold)
        + words('Description', DESCRIPTION_X, top, page, bold)
        + right_words('Debit', DEBIT_RIGHT, top, page, bold)
        + right_words('Credit', CREDIT_RIGHT, top, page, bold)
        + right_words('Balance', BALANCE_RIGHT, top, page, bold)
    )


def merged_line(top: float, date: str = '', description: str = '', amount: str = '',
                balance: str = '', page: int = 1) -> List[PositionedToken]:
    """A row of the four-column merged-amount layout."""
    return (
        words(date, DATE_X, top, page)
        + words(description, DESCRIPTION_X, top, page)
        + right_words(amount, AMOUNT_RIGHT, top, page)
        + right_words(balance, BALANCE_RIGHT, top, page)
    )


def merged_header_line(top: float, page: int = 1) -> List[PositionedToken]:
    return (
        words('Date', DATE_X, top, page)
        + words('Description', DESCRIPTION_X, top, page)
        + right_words('Amount', AMOUNT_RIGHT, top, page)
        + right_words('Balance', BALANCE_RIGHT, top, page)
    )


def stack(rows: Sequence[List[PositionedToken]]) -> List[PositionedToken]:
    return [token for row in rows for token in row]


def row_top(index: int, start: float = 100.0) -> float:
    return start + index * LINE_SPACING


@pytest.fixture
def salary_statement():
    """Single page, separate debit/credit columns, one continuation line."""
    return stack([
        header_line(row_top(0)),
        statement_line(row_top(1), '01/02/2024', 'Salary Credit', credit='500.00', balance='1500.00'),
        words('ref ABC123', DESCRIPTION_X, row_top(2)),
        statement_line(row_top(3), '03/02/2024', 'Grocery Store', debit='45.50', balance='1454.50'),
        statement_line(row_top(4), '05/02/2024', 'ATM Withdrawal', debit='200.00', balance='1254.50'),
        statement_line(row_top(5), '07/02/2024', 'Interest', credit='4.50', balance='1259.00'),
    ])


@pytest.fixture
def page_break_statement():
    """The last row of page 1 lost its balance to page 2."""
    return stack([
        header_line(row_top(0)),
        statement_line(row_top(1), '01/02/2024', 'Salary Credit', credit='500.00', balance='1500.00'),
        statement_line(row_top(2), '03/02/2024', 'Grocery Store', debit='45.50', balance='1454.50'),
        statement_line(row_top(3), '05/02/2024', 'ATM Withdrawal', debit='200.00'),
        statement_line(row_top(0, 60.0), balance='1254.50', page=2),
        statement_line(row_top(1, 60.0), '07/02/2024', 'Interest', credit='4.50', balance='1259.00', page=2),
        statement_line(row_top(2, 60.0), '09/02/2024', 'Card Payment', debit='9.00', balance='1250.00', page=2),
    ])


@pytest.fixture
def merged_statement():
    """Merged Dr/Cr amount column with a printed opening balance; the third row is off by 50."""
    return stack([
        merged_header_line(row_top(0)),
        merged_line(row_top(1), description='Opening Balance', balance='1000.00'),
        merged_line(row_top(2), '02/01/2024', 'Cash Withdrawal', '200.00 Dr', '800.00'),
        merged_line(row_top(3), '03/01/2024', 'Refund', '50.00 Cr', '900.00'),
        merged_line(row_top(4), '04/01/2024', 'Salary', '100.00 Cr', '1000.00'),
    ])


@pytest.fixture
def long_first_row_statement():
    """The first transaction's description has far more tokens than the rows below it."""
    return stack([
        header_line(row_top(0)),
        statement_line(row_top(1), '01/02/2024', 'Pay To A K Shah And Co', debit='100.00', balance='900.00'),
        statement_line(row_top(2), '03/02/2024', 'Grocery Store', debit='45.50', balance='854.50'),
        statement_line(row_top(3), '05/02/2024', 'ATM Withdrawal', debit='200.00', balance='654.50'),
        statement_line(row_top(4), '07/02/2024', 'Interest', credit='4.50', balance='659.00'),
        statement_line(row_top(5), '09/02/2024', 'Card Fee', debit='9.00', balance='650.00'),
    ])
