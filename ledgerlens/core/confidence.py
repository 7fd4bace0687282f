"""
Per-transaction confidence scoring with letter grades.
"""
import re
from decimal import Decimal
from typing import Iterable, List, NamedTuple, Optional

from ..models.schema import ColumnType, ParsedTransaction, TransactionStatus


# Percent weights of the factor scores
CONFIDENCE_WEIGHTS = {
    'date': 20,
    'amount': 30,
    'balance': 30,
    'description': 20,
}

GRADE_THRESHOLDS = [(95, 'A'), (85, 'B'), (70, 'C'), (50, 'D')]

LOW_CONFIDENCE_SCORE = 70

BALANCE_CONFIDENCE = {
    TransactionStatus.ERROR: 20,
    TransactionStatus.WARNING: 60,
    TransactionStatus.UNCHECKED: 80,
}

_CONSONANT_RUN = re.compile(r'[bcdfghjklmnpqrstvwxyz]{5,}', re.IGNORECASE)
_DIGIT_LETTER_MIX = re.compile(r'\d[a-z]\d[a-z]\d', re.IGNORECASE)
_SPECIAL = re.compile(r'[^a-zA-Z0-9\s]')


class TransactionConfidence(NamedTuple):
    score: int
    grade: str
    date: int
    amount: int
    balance: int
    description: int
    concerns: List[str]


def letter_grade(score: int) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return 'F'


def looks_garbled(text: str) -> bool:
    """Heuristic for OCR garbage: long consonant runs, digit/letter soup or mostly symbols."""
    if _CONSONANT_RUN.search(text) or _DIGIT_LETTER_MIX.search(text):
        return True
    return len(_SPECIAL.findall(text)) / len(text) > 0.3 if text else False


def _date_factor(transaction: ParsedTransaction, concerns: List[str]) -> int:
    if transaction.transaction_date is not None:
        return 100
    if transaction.raw_fields.get(ColumnType.DATE.value):
        concerns.append('Unparsed date')
        return 20
    concerns.append('Missing date')
    return 0


def _amount_factor(transaction: ParsedTransaction, concerns: List[str]) -> int:
    debit, credit = transaction.debit, transaction.credit
    if debit is None and credit is None:
        concerns.append('No amount detected')
        return 50
    if debit is not None and credit is not None:
        concerns.append('Both debit and credit present')
        return 70
    if (debit or Decimal('0')) < 0 or (credit or Decimal('0')) < 0:
        concerns.append('Negative amount')
        return 60
    return 100


def _balance_factor(transaction: ParsedTransaction, concerns: List[str]) -> int:
    status = transaction.status
    if status in BALANCE_CONFIDENCE:
        concerns.append(f"Balance {status.value}")
        return BALANCE_CONFIDENCE[status]
    if transaction.balance == 0:
        return 90
    return 100


def _description_factor(transaction: ParsedTransaction, concerns: List[str]) -> int:
    text = (transaction.description or '').strip()
    if not text:
        concerns.append('Missing description')
        return 30
    
    factor = 100
    if len(text) < 3:
        concerns.append('Very short description')
        factor = 50
    elif transaction.stitched_lines:
        factor = 90
    
    if looks_garbled(text):
        concerns.append('Possible OCR garbage')
        factor = min(factor, 40)
    return factor


def score_transaction(transaction: ParsedTransaction) -> TransactionConfidence:
    """
    Score a validated transaction from 0 to 100 and grade it A-F.
    
    The score weighs how cleanly the date and amounts parsed, how the balance
    check went and how complete the description is.
    
    Args:
        transaction: Transaction after balance validation
    
    Returns:
        TransactionConfidence with the factor scores and concerns
    """
    concerns: List[str] = []
    factors = {
        'date': _date_factor(transaction, concerns),
        'amount': _amount_factor(transaction, concerns),
        'balance': _balance_factor(transaction, concerns),
        'description': _description_factor(transaction, concerns),
    }
    weighted = sum(CONFIDENCE_WEIGHTS[name] * value for name, value in factors.items())
    score = min(100, max(0, (weighted + 50) // 100))
    return TransactionConfidence(score=score, grade=letter_grade(score), concerns=concerns, **factors)


def with_confidence(transaction: ParsedTransaction) -> ParsedTransaction:
    confidence = score_transaction(transaction)
    return transaction.model_copy(update={
        'confidence': confidence.score,
        'grade': confidence.grade,
        'confidence_concerns': confidence.concerns,
    })


def average_confidence(transactions: Iterable[ParsedTransaction]) -> Optional[float]:
    scores = [t.confidence for t in transactions if t.confidence is not None]
    if not scores:
        return None
    return round(sum(scores) / len(scores), 1)
