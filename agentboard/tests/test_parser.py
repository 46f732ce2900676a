"""Tests for output parsing."""

import pytest

from agentboard.engine.parser import OutputParser, parse, parse_csv, strip_code_fence
from agentboard.models.agent import OutputParserKind
from agentboard.models.dispatch import ParseFailure, ParseSuccess


class TestTextParser:
    """text is the identity."""

    @pytest.mark.parametrize("raw", ["", "hello", "a,b\n1,2", "line1\r\nline2\n", '{"a": 1}', "  spaced  "])
    def test_returns_raw_unchanged(self, raw):
        result = parse(raw, OutputParserKind.text)
        assert isinstance(result, ParseSuccess)
        assert result.value == raw


class TestJsonParser:
    def test_parses_object(self):
        result = parse('{"answer": 42, "tags": ["a"]}', "json")
        assert result.status == "ok"
        assert result.value == {"answer": 42, "tags": ["a"]}

    def test_strips_markdown_fence(self):
        raw = '```json\n{"answer": 42}\n```'
        assert strip_code_fence(raw) == '{"answer": 42}'
        assert parse(raw, "json").value == {"answer": 42}

    def test_invalid_json_keeps_raw(self):
        result = parse("not json", "json")
        assert isinstance(result, ParseFailure)
        assert result.raw == "not json"
        assert "JSONDecodeError" in result.error


class TestCsvParser:
    def test_rows_and_cells(self):
        assert parse("a,b\n1,2", "csv").value == [["a", "b"], ["1", "2"]]

    def test_empty_input(self):
        assert parse_csv("") == []

    def test_whitespace_is_kept(self):
        assert parse_csv("   ") == [["   "]]
        assert parse_csv("   \n ") == [["   "], [" "]]

    def test_trailing_newline_and_crlf(self):
        assert parse_csv("a,b\r\n1,2\r\n") == [["a", "b"], ["1", "2"]]

    def test_ragged_rows_are_kept(self):
        assert parse_csv("a,b,c\n1") == [["a", "b", "c"], ["1"]]

    def test_no_quoting(self):
        assert parse_csv('"a,b",c') == [['"a', 'b"', "c"]]


class TestCustomParser:
    """Custom parser code is the body of parse_output(raw)."""

    def test_simple_body(self):
        result = parse("hello world", "custom", "return raw.upper()")
        assert result.value == "HELLO WORLD"

    def test_multiline_body_with_helpers(self):
        code = """
        data = json.loads(raw)
        names = [item["name"] for item in data if item["score"] > 1]
        return sorted(names)
        """
        result = parse('[{"name": "b", "score": 2}, {"name": "a", "score": 3}, {"name": "c", "score": 0}]', "custom", code)
        assert result.value == ["a", "b"]

    def test_runtime_error_is_a_failure(self):
        result = parse("abc", "custom", "return int(raw)")
        assert isinstance(result, ParseFailure)
        assert result.raw == "abc"
        assert "ValueError" in result.error

    def test_missing_code(self):
        result = parse("abc", "custom", None)
        assert isinstance(result, ParseFailure)

    @pytest.mark.parametrize(
        "code",
        [
            "import os\nreturn os.getcwd()",
            "return raw.__class__",
            "return open('/etc/passwd').read()",
            "try:\n    return raw\nexcept:\n    return None",
            "try:\n    return raw\nexcept BaseException:\n    return None",
            "return raw * 10**9",
            "return 2 ** 10 ** 9",
            "return 2 ** len(raw)",
            "return pow(2, 10**9)",
        ],
    )
    def test_sandbox_rejections(self, code):
        result = parse("abc", "custom", code)
        assert isinstance(result, ParseFailure)

    def test_non_json_result_is_a_failure(self):
        result = parse("abc", "custom", "return set(raw)")
        assert isinstance(result, ParseFailure)

    def test_timeout(self):
        parser = OutputParser(timeout=0.05)
        code = "n = 0\nwhile True:\n    n += 1\nreturn n"
        result = parser.parse("abc", "custom", code)
        assert isinstance(result, ParseFailure)
        assert "timed out" in result.error

    def test_long_range_is_interrupted(self):
        """sum() over a huge range still honours the time limit."""
        parser = OutputParser(timeout=0.5)
        result = parser.parse("x", "custom", "return sum(range(10**11))")
        assert isinstance(result, ParseFailure)
        assert "timed out" in result.error

    def test_short_ranges_and_small_powers(self):
        code = "return [len(range(10)), list(range(3)), 2 ** 10, pow(3, 2), raw * 3]"
        assert parse("ab", "custom", code).value == [10, [0, 1, 2], 1024, 9, "ababab"]
