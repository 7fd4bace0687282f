"""
Merged amount column splitting and reference identifier extraction.
"""
import re
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple
import logging

from .normalize import NumberFormat, amount_marker, parse_amount, strip_amount_marker
from .rows import StitchedTransaction
from ..models.schema import ColumnType, RowKind

logger = logging.getLogger(__name__)


REFERENCE_PATTERNS: List[Tuple[str, re.Pattern, bool]] = [
    # (reference type, pattern with the identifier in group 1, keep the channel label)
    ('UTR', re.compile(r'\bUTR\b\s*(?:no\.?|number)?\s*[:#\-]?\s*([A-Z0-9]{12,22})\b', re.IGNORECASE), False),
    ('IMPS', re.compile(r'\bIMPS\b\s*(?:(?:P2A|P2P|CR|DR)\b)?[\s/:\-]*(\d{8,16})\b', re.IGNORECASE), True),
    ('NEFT', re.compile(r'\bNEFT\b\s*(?:(?:CR|DR)\b)?[\s/:\-]*([A-Z0-9]{0,6}\d[A-Z0-9]{6,21})\b', re.IGNORECASE), True),
    ('RTGS', re.compile(r'\bRTGS\b\s*(?:(?:CR|DR)\b)?[\s/:\-]*([A-Z0-9]{0,6}\d[A-Z0-9]{6,21})\b', re.IGNORECASE), True),
    ('Cheque', re.compile(r'\b(?:cheque|check)\s*(?:no\.?|number|#)\s*[:\-]?\s*(\d{4,10})\b', re.IGNORECASE), False),
    ('RefNo', re.compile(r'\bref(?:erence)?\.?\s*(?:no\.?|number|#)\s*[:\-]?\s*([A-Z0-9][A-Z0-9\-/]{3,29})', re.IGNORECASE), False),
    ('Other', re.compile(r'\b(?:txn|transaction|trans)\s*id\s*[:\-]?\s*([A-Z0-9]{6,30})\b', re.IGNORECASE), False),
]

_SEPARATOR_RUNS = re.compile(r'\s*([/\-:])(?:\s*[/\-:])+\s*')


def _tidy(text: str) -> str:
    text = _SEPARATOR_RUNS.sub(r'\1', text)
    text = re.sub(r'\s+', ' ', text)
    return text.strip(' /-:')


def extract_reference(description: str) -> Tuple[str, Optional[str], Optional[str]]:
    """
    Pull an embedded reference identifier out of a description.
    
    Patterns are tried in order; the first match wins. Channel references
    (NEFT/RTGS/IMPS) keep the channel word in the description.
    
    Args:
        description: Cleaned description text
    
    Returns:
        (description without the identifier, identifier, reference type)
    """
    if not description:
        return description, None, None
    
    for reference_type, pattern, keep_label in REFERENCE_PATTERNS:
        match = pattern.search(description)
        if not match:
            continue
        value = match.group(1).strip('/-')
        if keep_label:
            remaining = description[:match.start(1)] + description[match.end(1):]
        else:
            remaining = description[:match.start()] + description[match.end():]
        return _tidy(remaining), value, reference_type
    
    return description, None, None


def classify_reference(value: str) -> str:
    """Reference type for a value taken from a dedicated reference column."""
    if not value:
        return 'Other'
    for reference_type, pattern, _ in REFERENCE_PATTERNS:
        if pattern.search(value):
            return reference_type
    if re.fullmatch(r'\d{6}', value.strip()):
        return 'Cheque'
    return 'Other'


def _balance_of(transaction: StitchedTransaction, fmt: Optional[NumberFormat]):
    return parse_amount(transaction.get(ColumnType.BALANCE), fmt)


def split_amounts(transactions: Sequence[StitchedTransaction],
                  fmt: Optional[NumberFormat] = None) -> Tuple[List[StitchedTransaction], List[str]]:
    """
    Resolve merged "amount" cells into debit or credit.
    
    A trailing Dr/Cr marker or a leading sign decides a cell. Unmarked cells
    take whichever marker is absent from the column. When the column carries
    both markers or none, the direction of the printed balance decides, and
    debit is assumed when no balance is available.
    
    Args:
        transactions: Stitched transactions in document order
        fmt: Number format, used to read balances
    
    Returns:
        (transactions with debit/credit filled, warnings)
    """
    cells = [
        t.get(ColumnType.AMOUNT) for t in transactions
        if t.kind == RowKind.TRANSACTION and t.get(ColumnType.AMOUNT)
    ]
    if not cells:
        return list(transactions), []
    
    present = {amount_marker(c) for c in cells} - {None}
    if present == {'debit'}:
        default = 'credit'
    elif present == {'credit'}:
        default = 'debit'
    else:
        default = None
    
    warnings = []
    ambiguous = 0
    result = []
    previous_balance = None
    for transaction in transactions:
        cell = transaction.get(ColumnType.AMOUNT)
        balance = _balance_of(transaction, fmt)
        
        if (transaction.kind == RowKind.TRANSACTION and cell
                and not transaction.debit and not transaction.credit):
            marker = amount_marker(cell) or default
            if marker is None:
                ambiguous += 1
                if balance is not None and previous_balance is not None and balance != previous_balance:
                    marker = 'credit' if balance > previous_balance else 'debit'
                else:
                    marker = 'debit'
            magnitude = strip_amount_marker(cell)
            if marker == 'credit':
                transaction = replace(transaction, credit=magnitude)
            else:
                transaction = replace(transaction, debit=magnitude)
        
        if balance is not None:
            previous_balance = balance
        result.append(transaction)
    
    if ambiguous:
        message = f"{ambiguous} unmarked merged amount(s) resolved from balance direction or assumed debit"
        logger.warning(message)
        warnings.append(message)
    
    return result, warnings
