"""
Balance-chain validation, statement segmentation and currency handling.
"""
import re
from collections import Counter
from decimal import Decimal
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple
import logging

from ..models.schema import DocumentSegment, ParsedTransaction, RowKind, TransactionStatus

logger = logging.getLogger(__name__)


BALANCE_MISMATCH = 'BALANCE_MISMATCH'
POSSIBLE_SWAP = 'POSSIBLE_SWAP'
OVERDRAFT = 'OVERDRAFT'
DERIVED_OPENING = 'DERIVED_OPENING'

CURRENCY_SYMBOLS = {
    '₹': 'INR', '€': 'EUR', '£': 'GBP', '¥': 'JPY', '₩': 'KRW', '₫': 'VND',
    '฿': 'THB', '₱': 'PHP', '₦': 'NGN',
}

ISO_CURRENCIES = {
    'USD', 'EUR', 'GBP', 'JPY', 'INR', 'KRW', 'IDR', 'VND', 'AUD', 'CAD', 'NZD',
    'CHF', 'SGD', 'HKD', 'AED', 'SAR', 'QAR', 'CNY', 'THB', 'PHP', 'MYR', 'ZAR',
    'NGN', 'BRL', 'MXN', 'SEK', 'NOK', 'DKK', 'PLN',
}

_CARRY_PATTERN = re.compile(
    r'\b(brought|carried)\s+(forward|fwd)\b|\b[bc]\s*/\s*f\b|\b[bc]/fwd\b', re.IGNORECASE
)


class BalanceCheck(NamedTuple):
    status: TransactionStatus
    expected: Decimal
    discrepancy: Decimal
    message: str
    flags: Tuple[str, ...] = ()


def validate_balance_equation(previous: Decimal, credit: Decimal, debit: Decimal,
                              balance: Decimal, tolerance: Decimal) -> BalanceCheck:
    """
    Check balance == previous + credit - debit within tolerance.
    
    On mismatch the debit/credit-swapped equation is tried; a match there is a
    warning rather than an error.
    
    Args:
        previous: Previous balance
        credit: Credit amount (0 when absent)
        debit: Debit amount (0 when absent)
        balance: Printed balance
        tolerance: Currency tolerance
    
    Returns:
        BalanceCheck with status, expected balance and absolute discrepancy
    """
    expected = previous + credit - debit
    discrepancy = abs(balance - expected)
    if discrepancy <= tolerance:
        return BalanceCheck(TransactionStatus.VALID, expected, discrepancy, 'Balance verified')
    
    swapped = previous - credit + debit
    if abs(balance - swapped) <= tolerance:
        return BalanceCheck(
            TransactionStatus.WARNING, expected, discrepancy,
            'Possible debit/credit swap', (POSSIBLE_SWAP,),
        )
    
    return BalanceCheck(
        TransactionStatus.ERROR, expected, discrepancy,
        f"Balance mismatch: expected {expected}, found {balance} (difference: {discrepancy})",
        (BALANCE_MISMATCH,),
    )


def validate_chain(transactions: Sequence[ParsedTransaction], opening: Optional[Decimal],
                   tolerance: Decimal) -> Tuple[List[ParsedTransaction], Optional[Decimal], bool]:
    """
    Validate a run of transactions against the balance law.
    
    Each row is checked against the previous printed balance, so one bad row
    never cascades. Rows without a printed balance are left unchecked and the
    running balance is carried forward arithmetically.
    
    Args:
        transactions: Transactions in chronological order
        opening: Opening balance, or None to derive it from the first printed balance
        tolerance: Currency tolerance
    
    Returns:
        (validated transactions, opening balance, whether the opening was derived)
    """
    running = opening
    derived = False
    validated = []
    
    for transaction in transactions:
        credit = transaction.credit or Decimal('0')
        debit = transaction.debit or Decimal('0')
        flags = list(transaction.flags)
        
        if transaction.balance is None:
            if running is not None:
                running = running + credit - debit
            validated.append(transaction.model_copy(update={
                'status': TransactionStatus.UNCHECKED,
                'message': 'No printed balance',
            }))
            continue
        
        if running is None:
            running = transaction.balance - credit + debit
            opening = running
            derived = True
            flags.append(DERIVED_OPENING)
        
        check = validate_balance_equation(running, credit, debit, transaction.balance, tolerance)
        flags.extend(check.flags)
        overdraft = transaction.balance < 0
        if overdraft:
            flags.append(OVERDRAFT)
        if check.status != TransactionStatus.VALID:
            logger.info(f"{check.message} ({transaction.description})")
        
        validated.append(transaction.model_copy(update={
            'status': check.status,
            'expected_balance': check.expected,
            'discrepancy': check.discrepancy,
            'message': check.message,
            'overdraft': overdraft,
            'flags': flags,
        }))
        running = transaction.balance
    
    return validated, opening, derived


class LedgerEntry(NamedTuple):
    """A normalized row in document order: a transaction or a balance row."""
    kind: RowKind
    transaction: ParsedTransaction


def _is_carry(entry: LedgerEntry) -> bool:
    return bool(_CARRY_PATTERN.search(entry.transaction.description or ''))


def _close_segment(index: int, opening: Optional[Decimal], closing: Optional[Decimal],
                   transactions: List[ParsedTransaction], tolerance: Decimal) -> DocumentSegment:
    validated, opening, opening_derived = validate_chain(transactions, opening, tolerance)
    
    total_debit = sum((t.debit or Decimal('0') for t in validated), Decimal('0'))
    total_credit = sum((t.credit or Decimal('0') for t in validated), Decimal('0'))
    
    final = None
    if validated and validated[-1].balance is not None:
        final = validated[-1].balance
    elif opening is not None:
        final = opening + total_credit - total_debit
    
    closing_derived = closing is None and final is not None
    closing_matches = None
    if closing is not None and final is not None and validated:
        closing_matches = abs(closing - final) <= tolerance
        if not closing_matches:
            logger.info(f"Segment {index}: printed closing {closing} differs from running balance {final}")
    
    pages = [p for t in validated for p in t.source_pages]
    counts = Counter(t.status for t in validated)
    return DocumentSegment(
        index=index,
        start_page=min(pages) if pages else None,
        end_page=max(pages) if pages else None,
        opening_balance=opening,
        opening_derived=opening_derived,
        closing_balance=closing if closing is not None else final,
        closing_derived=closing_derived,
        closing_matches=closing_matches,
        total_debit=total_debit,
        total_credit=total_credit,
        valid_count=counts[TransactionStatus.VALID],
        warning_count=counts[TransactionStatus.WARNING],
        error_count=counts[TransactionStatus.ERROR],
        unchecked_count=counts[TransactionStatus.UNCHECKED],
        transactions=validated,
    )


def build_segments(entries: Sequence[LedgerEntry], tolerance: Decimal) -> List[DocumentSegment]:
    """
    Partition a document at opening-balance rows and validate each segment.
    
    A brought-forward row whose value continues the running balance is a page
    carry and does not open a new segment; a closing row followed by more
    transactions is likewise treated as a page carry.
    
    Args:
        entries: Ledger entries in chronological order
        tolerance: Currency tolerance
    
    Returns:
        Validated segments; an empty document yields no segments
    """
    segments: List[DocumentSegment] = []
    opening: Optional[Decimal] = None
    closing: Optional[Decimal] = None
    current: List[ParsedTransaction] = []
    last_balance: Optional[Decimal] = None
    
    for entry in entries:
        value = entry.transaction.balance
        if entry.kind == RowKind.OPENING_BALANCE:
            continues = (value is not None and last_balance is not None
                         and abs(value - last_balance) <= tolerance)
            if current and _is_carry(entry) and continues:
                logger.debug(f"Page carry-forward of {value} absorbed")
                closing = None
                continue
            if current:
                segments.append(_close_segment(len(segments), opening, closing, current, tolerance))
                current = []
            opening, closing = value, None
            last_balance = value
        elif entry.kind == RowKind.CLOSING_BALANCE:
            closing = value
        else:
            if closing is not None and current:
                closing = None
            current.append(entry.transaction)
            if value is not None:
                last_balance = value
    
    if current or opening is not None:
        segments.append(_close_segment(len(segments), opening, closing, current, tolerance))
    
    logger.debug(f"Built {len(segments)} segments")
    return segments


def overall_status(transactions: Iterable[ParsedTransaction]) -> TransactionStatus:
    """Error if any row errs, else warning if any warns, else valid (unchecked when nothing was checked)."""
    statuses = {t.status for t in transactions}
    if TransactionStatus.ERROR in statuses:
        return TransactionStatus.ERROR
    if TransactionStatus.WARNING in statuses:
        return TransactionStatus.WARNING
    if TransactionStatus.VALID in statuses:
        return TransactionStatus.VALID
    return TransactionStatus.UNCHECKED


def detect_currency(texts: Iterable[str], default: str = 'USD') -> str:
    """
    Detect a statement's currency from ISO codes and symbols in its text.
    
    Args:
        texts: Token or line texts
        default: Currency when nothing is found
    
    Returns:
        ISO 4217 code
    """
    votes = Counter()
    dollar = 0
    for text in texts:
        for word in re.findall(r'(?<![A-Za-z])[A-Z]{3}(?![A-Za-z])', text):
            if word in ISO_CURRENCIES:
                votes[word] += 1
        for symbol, code in CURRENCY_SYMBOLS.items():
            if symbol in text:
                votes[code] += 1
        if re.search(r'\bRs\.?\s*\d', text):
            votes['INR'] += 1
        if '$' in text:
            dollar += 1
    
    if votes:
        return max(sorted(votes), key=lambda code: votes[code])
    if dollar:
        return 'USD'
    return default


def detect_chronological_order(dates: Sequence) -> str:
    """
    Classify a sequence of dates as ascending, descending, mixed or unknown.
    
    An order wins when at least 80% of the date changes go its way.
    """
    known = [d for d in dates if d is not None]
    if len(known) < 2:
        return 'unknown'
    forward = sum(1 for a, b in zip(known, known[1:]) if b > a)
    backward = sum(1 for a, b in zip(known, known[1:]) if b < a)
    changes = forward + backward
    if changes == 0:
        return 'unknown'
    if forward / changes >= 0.8:
        return 'ascending'
    if backward / changes >= 0.8:
        return 'descending'
    return 'mixed'
