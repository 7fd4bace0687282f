"""
Tests for the token front-end adapters.
"""
import json
import pytest
from pathlib import Path

from ..core.loader import PDFTokenExtractor, load_tokens, load_tokens_json, normalize_token_text


class TestTokenLoading:
    
    @pytest.fixture
    def token_records(self):
        return [
            {"text": "Date", "page": 1, "x0": 40, "x1": 60, "top": 100, "bottom": 110, "bold": True},
            {"text": "01/02/2024", "x0": 40, "x1": 90, "top": 115, "bottom": 125},
        ]
    
    def test_list_dump(self, tmp_path, token_records):
        path = tmp_path / "tokens.json"
        path.write_text(json.dumps(token_records))
        tokens = load_tokens_json(path)
        
        assert [t.text for t in tokens] == ["Date", "01/02/2024"]
        assert tokens[0].bold
        assert tokens[1].page == 1
    
    def test_wrapped_dump(self, tmp_path, token_records):
        path = tmp_path / "tokens.json"
        path.write_text(json.dumps({"tokens": token_records}))
        assert len(load_tokens(path)) == 2
    
    def test_not_a_list(self, tmp_path):
        path = tmp_path / "tokens.json"
        path.write_text('"just text"')
        with pytest.raises(ValueError):
            load_tokens_json(path)
    
    def test_invalid_geometry(self, tmp_path):
        path = tmp_path / "tokens.json"
        path.write_text(json.dumps([{"text": "x", "x0": 50, "x1": 40, "top": 0, "bottom": 10}]))
        with pytest.raises(ValueError):
            load_tokens_json(path)
    
    def test_ligatures_and_spaces(self):
        assert normalize_token_text('Oﬃce  ﬁle ') == 'Office file'
    
    def test_pdf_word_to_token(self):
        extractor = PDFTokenExtractor(Path("statement.pdf"))
        word = {"text": "Balance", "x0": 500, "x1": 540, "top": 100, "bottom": 110, "fontname": "ABCDEF+Arial-BoldMT"}
        token = extractor._to_token(word, 2)
        
        assert token.page == 2
        assert token.bold
        assert token.x1 == 540.0
        assert extractor._to_token({"text": "  ", "fontname": "Arial"}, 1) is None
