"""
Literal pattern sets for section headers, noise rows and balance rows.
"""
import re
from typing import List, Optional, Pattern, Sequence
import logging

from ..models.schema import InstitutionHint

logger = logging.getLogger(__name__)


SECTION_HEADER_PATTERNS = [
    r'^(savings|current|fixed\s*deposit|credit\s*card|loan)\s+(account|statement)$',
    r'^account\s+summary$',
    r'^statement\s+of\s+account$',
    r'^(transaction|account)\s+(details|history)$',
]

SKIP_PATTERNS = [
    # Page headers and footers
    r'^page\s*\d+(\s*(of|/)\s*\d+)?$',
    r'\bpage\s+\d+\s+of\s+\d+\b',
    r'^\d+\s*/\s*\d+$',
    r'^(contd|continued)\.?$',
    r'\bcontinued\s+(on|from)\s+(next|previous)\s+page\b',
    r'^(this is a )?(computer|system)[\s-]generated',
    r'\bgenerated\s+on\b',
    r'^printed\s+on\b',
    # Account metadata
    r'^statement\s+(date|period|from)\b',
    r'^(account|a/c)\s*(no|number|#)\b',
    r'^(customer|client)\s*(id|no|number|name)\b',
    r'^(ifsc|micr|swift|bic|iban|sort\s*code|routing)\b',
    r'^branch\s*(name|code|address)?\b',
    r'^(account\s+)?(type|currency|holder)\s*:',
    r'^(nomination|joint\s+holder)',
    r'^period\s*:',
    # Summary and subtotal lines
    r'^(sub[\s-]?)?totals?\b',
    r'^grand\s+total\b',
    r'^total\s+(debits?|credits?|withdrawals?|deposits?)\b',
    r'^(no\.?|number)\s+of\s+(transactions|debits|credits)\b',
    r'^(account|statement)\s+summary\b',
    r'^(summary|overview)\s*$',
    r'^(debit|credit)\s+count\b',
    # Column header repeats
    r'^(txn\s+)?date\s+(description|particulars|narration|details|transaction)\b',
    r'^(s\.?\s*no\.?|sr\.?\s*no\.?)\s+date\b',
    # Disclaimers and instructions
    r'^(please|kindly)\s+(note|check|verify|notify|contact|report)\b',
    r'\b(do\s+not\s+share|never\s+share)\b',
    r'^(note|disclaimer|important)\s*[:\-]',
    r'\bterms\s+and\s+conditions\b',
    r'^(end\s+of\s+statement|\*+\s*end)',
    r'\bdeposit\s+insurance\b',
    r'\bmember\s+fdic\b',
    # Contact noise
    r'^(tel|phone|fax|email|e-mail|website|www\.)\b',
    r'\b(customer\s+care|call\s+us|toll[\s-]free|helpline)\b',
    r'^(registered|regd\.?)\s+office\b',
    r'^\*+$',
    r'^[-=_]{3,}$',
]

OPENING_BALANCE_PATTERNS = [
    r'\bopening\s+balance\b',
    r'\bbalance\s+(brought|b/?)\s*(forward|fwd|f)\b',
    r'\bbrought\s+forward\b',
    r'\bb\s*/\s*f\b',
    r'\bb/fwd\b',
    r'\bprevious\s+balance\b',
    r'\b(beginning|starting|initial)\s+balance\b',
    r'\bbalance\s+as\s+(of|on)\s+.*\bstart\b',
    # es / pt / fr / de / it
    r'\bsaldo\s+(inicial|anterior)\b',
    r'\bsolde\s+(initial|pr[ée]c[ée]dent|d[ée]but)\b',
    r'\b(anfangssaldo|alter\s+saldo|saldo\s+vortrag)\b',
    r'\bsaldo\s+iniziale\b',
    r'\b(prarambhik|aarambhik)\s+shesh\b',
]

CLOSING_BALANCE_PATTERNS = [
    r'\bclosing\s+balance\b',
    r'\bbalance\s+carried\s+(forward|fwd)\b',
    r'\bcarried\s+forward\b',
    r'\bc\s*/\s*f\b',
    r'\bc/fwd\b',
    r'\b(ending|final)\s+balance\b',
    r'\bnew\s+balance\b',
    r'\bsaldo\s+final\b',
    r'\bsolde\s+(final|de\s+cl[ôo]ture)\b',
    r'\b(endsaldo|neuer\s+saldo)\b',
    r'\bsaldo\s+finale\b',
    r'\bantim\s+shesh\b',
]


def compile_patterns(patterns: Sequence[str]) -> List[Pattern]:
    """Compile case-insensitive patterns, dropping invalid ones with a warning."""
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern, re.IGNORECASE))
        except re.error as e:
            logger.warning(f"Invalid pattern '{pattern}': {e}")
    return compiled


_SECTION_HEADERS = compile_patterns(SECTION_HEADER_PATTERNS)


def is_section_header(text: str) -> bool:
    """Check whether a line is an explicit section header."""
    normalized = ' '.join(text.lower().split())
    return any(p.search(normalized) for p in _SECTION_HEADERS)


class RowPatterns:
    """Compiled skip/opening/closing patterns, optionally extended by an institution hint."""
    
    def __init__(self, hint: Optional[InstitutionHint] = None):
        skip = list(SKIP_PATTERNS)
        opening = list(OPENING_BALANCE_PATTERNS)
        closing = list(CLOSING_BALANCE_PATTERNS)
        if hint:
            skip.extend(hint.skip_patterns)
            opening.extend(hint.opening_balance_patterns)
            closing.extend(hint.closing_balance_patterns)
        self.skip = compile_patterns(skip)
        self.opening = compile_patterns(opening)
        self.closing = compile_patterns(closing)
    
    def is_skip(self, text: str) -> bool:
        normalized = ' '.join(text.split())
        return is_section_header(normalized) or any(p.search(normalized) for p in self.skip)
    
    def is_opening(self, text: str) -> bool:
        return any(p.search(text) for p in self.opening)
    
    def is_closing(self, text: str) -> bool:
        return any(p.search(text) for p in self.closing)
