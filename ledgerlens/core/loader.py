"""
Token sources: JSON token dumps and the pdfplumber text layer.

These adapters sit in front of the parsing pipeline; the pipeline itself only
ever receives PositionedToken lists.
"""
import json
import re
import pdfplumber
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

from ..models.schema import PositionedToken

logger = logging.getLogger(__name__)


LIGATURES = {
    'ﬁ': 'fi',
    'ﬂ': 'fl',
    'ﬀ': 'ff',
    'ﬃ': 'ffi',
    'ﬄ': 'ffl',
    'ﬆ': 'st',
    'ﬅ': 'st',
}


def normalize_token_text(text: str) -> str:
    """Normalize text by handling ligatures and multiple spaces."""
    for ligature, replacement in LIGATURES.items():
        text = text.replace(ligature, replacement)
    return re.sub(r'\s+', ' ', text).strip()


def load_tokens_json(json_path: Path) -> List[PositionedToken]:
    """
    Load tokens from a JSON dump.
    
    Accepts either a list of token objects or ``{"tokens": [...]}``. Each token
    needs text, x0, x1, top, bottom and optionally page and bold.
    
    Args:
        json_path: Path to the JSON file
    
    Returns:
        Validated tokens in file order
    """
    data = json.loads(Path(json_path).read_text(encoding='utf-8'))
    if isinstance(data, dict):
        data = data.get('tokens', [])
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of tokens in {json_path}")
    
    tokens = [PositionedToken.model_validate(item) for item in data]
    logger.info(f"Loaded {len(tokens)} tokens from {json_path}")
    return tokens


class PDFTokenExtractor:
    """Extracts positioned tokens from a PDF's text layer with pdfplumber."""
    
    def __init__(self, pdf_path: Path, x_tolerance: float = 1, y_tolerance: float = 2):
        self.pdf_path = pdf_path
        self.x_tolerance = x_tolerance
        self.y_tolerance = y_tolerance
        self._pdf = None
    
    def extract(self) -> List[PositionedToken]:
        """Extract tokens from every page, pages numbered from 1."""
        tokens: List[PositionedToken] = []
        try:
            self._pdf = pdfplumber.open(self.pdf_path)
            logger.info(f"Loaded PDF with {len(self._pdf.pages)} pages")
            
            for i, page in enumerate(self._pdf.pages, 1):
                words = page.extract_words(
                    x_tolerance=self.x_tolerance,
                    y_tolerance=self.y_tolerance,
                    keep_blank_chars=False,
                    use_text_flow=False,
                    extra_attrs=['fontname'],
                )
                page_tokens = [t for t in (self._to_token(w, i) for w in words) if t]
                tokens.extend(page_tokens)
                logger.debug(f"Page {i}: {len(page_tokens)} tokens extracted")
            
            return tokens
        
        finally:
            self.close()
    
    def _to_token(self, word: Dict[str, Any], page: int) -> Optional[PositionedToken]:
        text = normalize_token_text(word.get('text', ''))
        if not text:
            return None
        fontname = str(word.get('fontname', ''))
        return PositionedToken(
            text=text,
            page=page,
            x0=float(word.get('x0', 0)),
            x1=float(word.get('x1', 0)),
            top=float(word.get('top', 0)),
            bottom=float(word.get('bottom', 0)),
            bold=bool(re.search(r'bold|black|heavy|semibold', fontname, re.IGNORECASE)),
        )
    
    def close(self):
        """Close the PDF file."""
        if self._pdf:
            self._pdf.close()
            self._pdf = None


def load_tokens(path: Path) -> List[PositionedToken]:
    """Load tokens from a PDF (text layer) or a JSON token dump, by file suffix."""
    path = Path(path)
    if path.suffix.lower() == '.pdf':
        return PDFTokenExtractor(path).extract()
    return load_tokens_json(path)
