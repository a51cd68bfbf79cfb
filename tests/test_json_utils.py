"""
Tests for lenient JSON handling of model output.
"""

import pytest

from watchdog_core.json_utils import (
    extract_balanced_json,
    extract_fenced_blocks,
    parse_llm_json,
    safe_json_parse,
    sanitize_json_string,
)


class TestSafeJsonParse:
    """Strict, lenient and sanitized parsing"""

    def test_valid_json(self):
        assert safe_json_parse('{"a": 1}') == {"a": 1}

    def test_trailing_comma(self):
        assert safe_json_parse('{"a": 1, "b": [1, 2,],}') == {"a": 1, "b": [1, 2]}

    def test_control_char_outside_string(self):
        assert safe_json_parse('{"a":\x01 1}') == {"a": 1}

    def test_newline_inside_string_is_lenient(self):
        assert safe_json_parse('{"a": "line one\nline two"}') == {"a": "line one\nline two"}

    def test_truncated_array(self):
        assert safe_json_parse('[{"title": "X"') == [{"title": "X"}]

    def test_truncated_after_comma(self):
        assert safe_json_parse('[{"title": "X",') == [{"title": "X"}]

    def test_truncated_inside_string(self):
        assert safe_json_parse('{"title": "Unfinished') == {"title": "Unfinished"}

    def test_adjacent_objects(self):
        assert safe_json_parse('[{"a": 1}{"b": 2}]') == [{"a": 1}, {"b": 2}]

    def test_unquoted_range(self):
        assert safe_json_parse('{"gas": 800 - 1300, "x": 1}') == {"gas": "800 - 1300", "x": 1}

    @pytest.mark.parametrize("text", ["", "   ", "not json at all", "{{{{"])
    def test_unparseable_returns_none(self, text):
        assert safe_json_parse(text) is None


class TestSanitize:
    """Repairs applied by the sanitizer"""

    def test_empty(self):
        assert sanitize_json_string("") == ""

    def test_brackets_inside_strings_not_counted(self):
        assert sanitize_json_string('{"a": "[{"}') == '{"a": "[{"}'

    def test_closers_innermost_first(self):
        assert sanitize_json_string('{"a": [1') == '{"a": [1]}'


class TestExtraction:
    """Fenced-block and balanced-brace extraction"""

    def test_fenced_blocks(self):
        text = 'Intro\n```json\n{"a": 1}\n```\ntext\n```\nplain\n```'
        assert extract_fenced_blocks(text) == ['{"a": 1}', "plain"]
        assert extract_fenced_blocks(text, label="json") == ['{"a": 1}']
        assert extract_fenced_blocks(text, label="JSON") == ['{"a": 1}']

    def test_no_fenced_blocks(self):
        assert extract_fenced_blocks("no fences") == []
        assert extract_fenced_blocks(None) == []

    def test_balanced_ignores_braces_in_strings(self):
        text = 'prefix {"a": "}{", "b": [1, 2]} suffix'
        assert extract_balanced_json(text) == '{"a": "}{", "b": [1, 2]}'

    def test_balanced_array_first(self):
        assert extract_balanced_json('see [1, {"a": 2}] and {"b": 3}') == '[1, {"a": 2}]'

    def test_balanced_truncated_returns_remainder(self):
        assert extract_balanced_json('x {"a": [1, 2') == '{"a": [1, 2'

    def test_balanced_none(self):
        assert extract_balanced_json("no structure") is None
        assert extract_balanced_json("") is None


class TestParseLlmJson:
    """End-to-end extraction from a model response"""

    def test_fenced_json(self):
        assert parse_llm_json('Result:\n```json\n{"ok": true}\n```') == {"ok": True}

    def test_embedded_object(self):
        assert parse_llm_json('The answer is {"score": 80}.') == {"score": 80}

    def test_fallback(self):
        assert parse_llm_json("nothing here", fallback={}) == {}
        assert parse_llm_json(None) is None
