"""
Locale-aware normalization of dates, amounts and description text.
"""
import re
from collections import Counter
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Tuple
import logging

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

MONTHS = {
    # en
    'jan': 1, 'january': 1, 'feb': 2, 'february': 2, 'mar': 3, 'march': 3,
    'apr': 4, 'april': 4, 'may': 5, 'jun': 6, 'june': 6, 'jul': 7, 'july': 7,
    'aug': 8, 'august': 8, 'sep': 9, 'sept': 9, 'september': 9, 'oct': 10,
    'october': 10, 'nov': 11, 'november': 11, 'dec': 12, 'december': 12,
    # es
    'ene': 1, 'enero': 1, 'febrero': 2, 'marzo': 3, 'abr': 4, 'abril': 4,
    'mayo': 5, 'junio': 6, 'julio': 7, 'ago': 8, 'agosto': 8,
    'septiembre': 9, 'setiembre': 9, 'octubre': 10, 'noviembre': 11,
    'dic': 12, 'diciembre': 12,
    # fr
    'janv': 1, 'janvier': 1, 'févr': 2, 'fevr': 2, 'février': 2, 'fevrier': 2,
    'mars': 3, 'avr': 4, 'avril': 4, 'mai': 5, 'juin': 6, 'juil': 7,
    'juillet': 7, 'août': 8, 'aout': 8, 'septembre': 9, 'octobre': 10,
    'novembre': 11, 'déc': 12, 'décembre': 12, 'decembre': 12,
    # de
    'januar': 1, 'jän': 1, 'februar': 2, 'mär': 3, 'märz': 3, 'maerz': 3,
    'juni': 6, 'juli': 7, 'okt': 10, 'oktober': 10, 'dez': 12, 'dezember': 12,
    # pt / it
    'fev': 2, 'fevereiro': 2, 'março': 3, 'marco': 3, 'maio': 5, 'junho': 6,
    'julho': 7, 'set': 9, 'setembro': 9, 'out': 10, 'outubro': 10,
    'novembro': 11, 'dezembro': 12, 'gennaio': 1, 'febbraio': 2, 'aprile': 4,
    'maggio': 5, 'giugno': 6, 'luglio': 7, 'settembre': 9, 'ottobre': 10,
    'dicembre': 12,
}

# Shapes of strings that are dates; an OCR correction stands only when it yields one
DATE_SHAPE_PATTERNS = [
    re.compile(r'^\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}$'),
    re.compile(r'^\d{4}[/\-.]\d{1,2}[/\-.]\d{1,2}$'),
    re.compile(r'^\d{1,2}[\s\-/]+[A-Za-z]{3,9}([\s\-/,]+\d{2,4})?$'),
    re.compile(r'^[A-Za-z]{3,9}\s+\d{1,2}(,?\s+\d{2,4})?$'),
    re.compile(r'^\d{1,2}[/\-]\d{1,2}$'),
]

OCR_DIGIT_MAP = {
    'O': '0', 'o': '0', 'D': '0',
    'l': '1', 'I': '1', '|': '1', 'i': '1',
    'Z': '2', 'z': '2',
    'S': '5', 's': '5',
    'B': '8',
    'g': '9', 'q': '9',
}

_DATE_SEPARATORS = re.compile(r'([/\-.])')

_CJK_DATE = re.compile(r'^(\d{4})\s*[年년]\s*(\d{1,2})\s*[月월]\s*(\d{1,2})\s*[日일]?$')
_ISO_DATE = re.compile(r'^(\d{4})[/\-.](\d{1,2})[/\-.](\d{1,2})(?:T[\d:.]+Z?)?$')
_COMPACT_DATE = re.compile(r'^(\d{4})(\d{2})(\d{2})$')
_NUMERIC_DATE = re.compile(r'^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4}|\d{2})$')
_SHORT_DATE = re.compile(r'^(\d{1,2})[/\-](\d{1,2})$')
_DAY_MONTH_NAME = re.compile(
    r'^(\d{1,2})(?:st|nd|rd|th|er|º)?\.?[\s\-/]*(?:de\s+)?([^\W\d_]{3,10})\.?'
    r'(?:[\s\-/,]+(?:de\s+)?(\d{4}|\d{2}))?$',
    re.IGNORECASE,
)
_MONTH_NAME_DAY = re.compile(
    r'^([^\W\d_]{3,10})\.?[\s\-/]+(\d{1,2})(?:st|nd|rd|th)?(?:,?[\s\-/]+(\d{4}|\d{2}))?$',
    re.IGNORECASE,
)


def correct_ocr_date(text: str) -> str:
    """
    Replace OCR letter/digit confusions in date-shaped strings.
    
    Only separator-delimited parts that become all digits after mapping are
    touched, so month names such as "Aug" survive.
    
    Args:
        text: Raw date text
    
    Returns:
        Corrected text, or the input unchanged when it is not date-shaped
        or the correction would not produce a date shape
    """
    if not text:
        return text
    stripped = text.strip()
    if not (6 <= len(stripped) <= 12) or not _DATE_SEPARATORS.search(stripped):
        return text
    
    parts = _DATE_SEPARATORS.split(stripped)
    corrected = []
    for part in parts:
        if _DATE_SEPARATORS.fullmatch(part) or part.isdigit() or not part:
            corrected.append(part)
            continue
        if all(ch.isdigit() or ch in OCR_DIGIT_MAP for ch in part) and any(ch.isdigit() for ch in part) or \
                (len(part) <= 2 and all(ch in OCR_DIGIT_MAP for ch in part)):
            corrected.append(''.join(OCR_DIGIT_MAP.get(ch, ch) for ch in part))
        else:
            corrected.append(part)
    
    result = ''.join(corrected)
    if result != stripped:
        if not any(p.match(result) for p in DATE_SHAPE_PATTERNS):
            return text
        logger.debug(f"OCR date correction: '{stripped}' -> '{result}'")
    return result


def _expand_year(year: int) -> int:
    """Two-digit years pivot at 70 like strptime's %y."""
    if year >= 100:
        return year
    return 2000 + year if year < 70 else 1900 + year


def _build_date(year: int, month: int, day: int) -> Optional[date]:
    if not (1900 <= year <= 2100 and 1 <= month <= 12 and 1 <= day <= 31):
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _month_number(name: str) -> Optional[int]:
    key = name.lower().rstrip('.')
    return MONTHS.get(key)


def parse_date(value: str, day_first: bool = True, default_year: Optional[int] = None) -> Optional[date]:
    """
    Parse a date in any of the supported regional formats.
    
    Args:
        value: Raw date text
        day_first: Resolve ambiguous NN/NN/YYYY as day/month when True
        default_year: Year for formats that omit it
    
    Returns:
        Date object or None if parsing fails
    """
    if not value or not value.strip():
        return None
    
    text = correct_ocr_date(' '.join(value.split())).strip().rstrip('.,')
    
    m = _CJK_DATE.match(text)
    if m:
        return _build_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    
    m = _ISO_DATE.match(text)
    if m:
        return _build_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    
    m = _COMPACT_DATE.match(text)
    if m:
        return _build_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    
    m = _NUMERIC_DATE.match(text)
    if m:
        first, second, year = int(m.group(1)), int(m.group(2)), _expand_year(int(m.group(3)))
        if first > 12:
            return _build_date(year, second, first)
        if second > 12:
            return _build_date(year, first, second)
        if day_first:
            return _build_date(year, second, first)
        return _build_date(year, first, second)
    
    m = _SHORT_DATE.match(text)
    if m:
        if default_year is None:
            return None
        first, second = int(m.group(1)), int(m.group(2))
        if first > 12 or (day_first and second <= 12):
            return _build_date(default_year, second, first)
        return _build_date(default_year, first, second)
    
    m = _DAY_MONTH_NAME.match(text)
    if m:
        month = _month_number(m.group(2))
        year = _expand_year(int(m.group(3))) if m.group(3) else default_year
        if month and year:
            return _build_date(year, month, int(m.group(1)))
        return None
    
    m = _MONTH_NAME_DAY.match(text)
    if m:
        month = _month_number(m.group(1))
        year = _expand_year(int(m.group(3))) if m.group(3) else default_year
        if month and year:
            return _build_date(year, month, int(m.group(2)))
        return None
    
    logger.debug(f"Could not parse date: {value}")
    return None


def looks_like_date(value: str) -> bool:
    """True when the text parses as a date in any supported format."""
    return parse_date(value, default_year=2000) is not None


def detect_day_first(samples: Iterable[str], default: bool = True) -> bool:
    """
    Decide DD/MM versus MM/DD ordering from a document's date samples.
    
    Args:
        samples: Raw date strings from the date column
        default: Ordering used when every sample is ambiguous
    
    Returns:
        True for day-first documents
    """
    day_first_votes = 0
    month_first_votes = 0
    for sample in samples:
        text = correct_ocr_date(' '.join((sample or '').split()))
        m = _NUMERIC_DATE.match(text) or _SHORT_DATE.match(text)
        if not m:
            continue
        first, second = int(m.group(1)), int(m.group(2))
        if first > 12 >= second:
            day_first_votes += 1
        elif second > 12 >= first:
            month_first_votes += 1
    
    if day_first_votes > month_first_votes:
        return True
    if month_first_votes > day_first_votes:
        return False
    return default


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

CURRENCY_SYMBOLS = '₹$£€¥₩₫฿₱₦'
_CURRENCY_CHARS = re.compile(f'[{CURRENCY_SYMBOLS}]')
_CURRENCY_CODES = re.compile(r'^\s*[A-Z]{3}\s+|\s+[A-Z]{3}\s*$|^(?:Rs\.?|INR|USD|EUR|GBP)\s*', re.IGNORECASE)
_DR_MARKER = re.compile(r'\s*\(?(?<![A-Za-z])(dr|db|debit)\.?\)?\s*$', re.IGNORECASE)
_CR_MARKER = re.compile(r'\s*\(?(?<![A-Za-z])(cr|credit)\.?\)?\s*$', re.IGNORECASE)
_NUMERIC_NOISE = re.compile(r'\b(CR|DR|DB|IN|OUT)\b', re.IGNORECASE)
_SPACES = re.compile(r'[\s  ]+')

INDIAN_PATTERN = re.compile(r'^\d{1,2}(,\d{2})+,\d{3}(\.\d{1,2})?$')
WESTERN_PATTERN = re.compile(r'^\d{1,3}(,\d{3})*(\.\d{1,2})?$')
EUROPEAN_PATTERN = re.compile(r"^\d{1,3}([. ']\d{3})*,\d{1,2}$")
SWISS_PATTERN = re.compile(r"^\d{1,3}('\d{3})+(\.\d{1,2})?$")
SPACE_PATTERN = re.compile(r'^\d{1,3}( \d{3})+([.,]\d{1,2})?$')


class NumberFormat:
    """Separator convention for a document's amounts."""
    def __init__(self, thousands: str = ',', decimal: str = '.', indian: bool = False):
        self.thousands = thousands
        self.decimal = decimal
        self.indian = indian
    
    @property
    def label(self) -> str:
        if self.indian:
            return 'indian'
        return {
            (',', '.'): 'western',
            ('.', ','): 'european',
            ("'", '.'): 'swiss',
            (' ', ','): 'space-comma',
            (' ', '.'): 'space-dot',
        }.get((self.thousands, self.decimal), f"{self.thousands}|{self.decimal}")
    
    def __eq__(self, other):
        return (isinstance(other, NumberFormat) and self.thousands == other.thousands
                and self.decimal == other.decimal and self.indian == other.indian)
    
    def __repr__(self):
        return f"NumberFormat('{self.label}')"


WESTERN = NumberFormat(',', '.')
INDIAN = NumberFormat(',', '.', indian=True)
EUROPEAN = NumberFormat('.', ',')


def has_numeric_content(text: str) -> bool:
    """
    Check whether a cell is predominantly numeric, tolerating currency symbols
    and debit/credit suffixes.
    """
    if not text:
        return False
    cleaned = _NUMERIC_NOISE.sub('', _CURRENCY_CHARS.sub('', text))
    cleaned = re.sub(r'[\s,.\-()+\'/]', '', cleaned)
    if not cleaned:
        return False
    digits = sum(1 for ch in cleaned if ch.isdigit())
    return digits > 0 and digits / len(cleaned) > 0.5


def amount_marker(text: str) -> Optional[str]:
    """
    Debit/credit marker carried by an amount cell.
    
    Returns:
        "debit", "credit" or None for an unmarked cell
    """
    if not text:
        return None
    stripped = text.strip()
    if _DR_MARKER.search(stripped):
        return 'debit'
    if _CR_MARKER.search(stripped):
        return 'credit'
    core = _CURRENCY_CODES.sub('', _CURRENCY_CHARS.sub('', stripped)).strip()
    if core.startswith('(') and core.endswith(')'):
        return 'debit'
    if core.startswith(('-', '−')) or core.endswith('-'):
        return 'debit'
    if core.startswith('+'):
        return 'credit'
    return None


def strip_amount_marker(text: str) -> str:
    """Remove a trailing Dr/Cr marker and any sign, leaving the bare magnitude text."""
    stripped = _CR_MARKER.sub('', _DR_MARKER.sub('', text.strip()))
    stripped = stripped.strip()
    if stripped.startswith('(') and stripped.endswith(')'):
        stripped = stripped[1:-1]
    return stripped.strip().lstrip('+-−').rstrip('-').strip()


def _bare_number(text: str) -> Tuple[str, bool]:
    """Strip markers, currency and sign. Returns (digits-and-separators, negative)."""
    t = text.strip()
    negative = False
    if _DR_MARKER.search(t):
        negative = True
        t = _DR_MARKER.sub('', t)
    elif _CR_MARKER.search(t):
        t = _CR_MARKER.sub('', t)
    
    t = _CURRENCY_CODES.sub('', _CURRENCY_CHARS.sub('', t)).strip()
    if t.startswith('(') and t.endswith(')'):
        negative = True
        t = t[1:-1].strip()
    t = _CURRENCY_CHARS.sub('', t).strip()
    if t.startswith(('-', '−')):
        negative = True
        t = t[1:]
    elif t.endswith('-'):
        negative = True
        t = t[:-1]
    elif t.startswith('+'):
        t = t[1:]
    return _SPACES.sub(' ', t.strip()), negative


def is_indian_grouping(text: str) -> bool:
    """True for lakh/crore grouping such as 1,00,000.00."""
    bare, _ = _bare_number(text or '')
    return bool(INDIAN_PATTERN.match(bare))


def infer_number_format(text: str) -> NumberFormat:
    """Best guess of the separator convention from a single value."""
    bare, _ = _bare_number(text or '')
    if INDIAN_PATTERN.match(bare):
        return INDIAN
    if SWISS_PATTERN.match(bare):
        return NumberFormat("'", '.')
    if SPACE_PATTERN.match(bare):
        return NumberFormat(' ', ',' if ',' in bare else '.')
    
    has_comma = ',' in bare
    has_dot = '.' in bare
    if has_comma and has_dot:
        if bare.rfind(',') > bare.rfind('.'):
            return EUROPEAN
        return WESTERN
    if has_comma:
        # "1,234" groups thousands, "12,50" is a decimal comma
        if re.search(r',\d{3}$', bare) and not re.search(r',\d{1,2}$', bare):
            return WESTERN
        return EUROPEAN
    if has_dot and bare.count('.') > 1:
        return EUROPEAN
    return WESTERN


def detect_number_format(samples: Iterable[str]) -> NumberFormat:
    """
    Detect a document's separator convention from representative amount samples.
    
    Indian grouping wins when more than 30% of the samples use it; otherwise
    the convention with the most matching samples wins, defaulting to western.
    """
    bare = [b for b, _ in (_bare_number(s) for s in samples if s) if any(ch.isdigit() for ch in b)]
    if not bare:
        return WESTERN
    
    indian = sum(1 for b in bare if INDIAN_PATTERN.match(b))
    if indian / len(bare) > 0.3:
        return INDIAN
    
    votes = Counter()
    for b in bare:
        if EUROPEAN_PATTERN.match(b):
            votes['european'] += 1
        elif SWISS_PATTERN.match(b):
            votes['swiss'] += 1
        elif SPACE_PATTERN.match(b):
            votes['space'] += 1
        elif WESTERN_PATTERN.match(b):
            votes['western'] += 1
    
    if not votes:
        return WESTERN
    best = max(['western', 'european', 'swiss', 'space'], key=lambda k: votes[k])
    if votes[best] == 0 or best == 'western':
        return WESTERN
    if best == 'european':
        return EUROPEAN
    if best == 'swiss':
        return NumberFormat("'", '.')
    decimal = ',' if any(re.search(r',\d{1,2}$', b) for b in bare) else '.'
    return NumberFormat(' ', decimal)


_CANONICAL = re.compile(r'^\d+(\.\d+)?$')


def _canonicalize(bare: str, fmt: NumberFormat) -> str:
    if fmt.indian or INDIAN_PATTERN.match(bare):
        return bare.replace(',', '')
    text = bare
    if fmt.thousands:
        text = text.replace(fmt.thousands, '')
    text = text.replace(' ', '')
    if fmt.decimal != '.':
        text = text.replace(fmt.decimal, '.')
    return text


def parse_amount(value: str, fmt: Optional[NumberFormat] = None) -> Optional[Decimal]:
    """
    Parse an amount into a signed Decimal.
    
    Args:
        value: Raw amount text (currency symbols, Dr/Cr markers, parentheses allowed)
        fmt: Document separator convention; inferred from the value when None
    
    Returns:
        Decimal (negative for Dr, parentheses or minus), or None if parsing fails
    """
    if not value or not value.strip():
        return None
    
    bare, negative = _bare_number(value)
    if not bare or not re.fullmatch(r"[\d.,' ]+", bare) or not any(ch.isdigit() for ch in bare):
        logger.debug(f"Could not parse amount: {value}")
        return None
    
    canonical = _canonicalize(bare, fmt or infer_number_format(bare))
    if not _CANONICAL.match(canonical):
        canonical = _canonicalize(bare, infer_number_format(bare))
    if not _CANONICAL.match(canonical):
        logger.debug(f"Could not canonicalize amount: {value}")
        return None
    
    try:
        amount = Decimal(canonical)
    except InvalidOperation:
        logger.debug(f"Invalid amount: {value}")
        return None
    return -amount if negative else amount


# ---------------------------------------------------------------------------
# Description text
# ---------------------------------------------------------------------------

ABBREVIATIONS = {
    'TRF': 'Transfer',
    'TRFR': 'Transfer',
    'PYMT': 'Payment',
    'PMT': 'Payment',
    'DEP': 'Deposit',
    'WDL': 'Withdrawal',
    'CHQ': 'Cheque',
}

_ABBREVIATION_RE = re.compile(r'\b(' + '|'.join(ABBREVIATIONS) + r')\b\.?', re.IGNORECASE)
_REF_LABEL_RE = re.compile(r'\bref\b(?!\s*\.?\s*(?:no\b|number\b|#))\s*[:.]?\s*', re.IGNORECASE)


def normalize_text(value: str) -> str:
    """
    Normalize text by trimming and collapsing whitespace.
    
    Args:
        value: Raw text string
    
    Returns:
        Cleaned text string
    """
    if not value:
        return ""
    return re.sub(r'\s+', ' ', value.strip())


def clean_description(value: str) -> str:
    """
    Tidy a stitched description for display.
    
    Collapses whitespace and repeated punctuation, normalizes spaced dashes,
    labels references as "Ref: " and expands common banking abbreviations.
    """
    text = normalize_text(value)
    if not text:
        return ""
    
    text = re.sub(r'([!?.,;:*#=_~])\1+', r'\1', text)
    text = re.sub(r'\s+[-–—]+\s+', ' - ', text)
    text = text.replace('()', '')
    text = _REF_LABEL_RE.sub('Ref: ', text)
    text = _ABBREVIATION_RE.sub(lambda m: ABBREVIATIONS[m.group(1).upper()], text)
    return normalize_text(text).strip(' -/')
