"""Output Parser: turns a model's raw text into a structured value.

Parsing never raises. A failure comes back as a `ParseFailure` that keeps
the raw text, so a bad parse never hides what the model actually said.
"""

import json
import re
from functools import lru_cache
from typing import Any, Callable

from loguru import logger

from agentboard.engine.sandbox import compile_restricted_callable, run_with_budget
from agentboard.errors import EvaluationTimeoutError
from agentboard.models.agent import OutputParserKind
from agentboard.models.dispatch import ParsedResult, ParseFailure, ParseSuccess

_CODE_FENCE = re.compile(r"^\s*```[\w-]*[ \t]*\r?\n(.*?)\r?\n?[ \t]*```\s*$", re.DOTALL)


def strip_code_fence(raw: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ```), if any."""
    match = _CODE_FENCE.match(raw)
    return match.group(1) if match else raw


def parse_csv(raw: str) -> list[list[str]]:
    """Split into rows on newlines and into cells on commas.

    There is no quoting. Empty input gives `[]` and trailing empty lines
    are dropped; whitespace is kept, so `"  "` is one row with one cell.
    Rows keep whatever width they split to.
    """
    if not raw:
        return []
    lines = raw.replace("\r\n", "\n").split("\n")
    while lines and lines[-1] == "":
        lines.pop()
    return [line.split(",") for line in lines]


@lru_cache(maxsize=256)
def compile_custom_parser(code: str) -> Callable[[str], Any]:
    """Compile custom parser code (the body of `parse_output(raw)`)."""
    return compile_restricted_callable("raw", code, "parse_output")


class OutputParser:
    """Applies an agent's output parser to raw model text."""

    def __init__(self, timeout: float | None = 2.0) -> None:
        self.timeout = timeout

    def parse(
        self,
        raw: str | None,
        kind: OutputParserKind | str,
        custom_code: str | None = None,
    ) -> ParsedResult:
        raw = raw if raw is not None else ""
        kind = OutputParserKind(kind)
        try:
            if kind == OutputParserKind.text:
                value = raw
            elif kind == OutputParserKind.json:
                value = json.loads(strip_code_fence(raw))
            elif kind == OutputParserKind.csv:
                value = parse_csv(raw)
            else:
                value = self._run_custom(raw, custom_code)
        except EvaluationTimeoutError:
            logger.warning(f"custom parser exceeded its {self.timeout:g}s budget")
            return ParseFailure(kind=kind, raw=raw, error=f"custom parser timed out after {self.timeout:g}s")
        except Exception as e:
            logger.debug(f"{kind.value} parse failed: {type(e).__name__}: {e}")
            return ParseFailure(kind=kind, raw=raw, error=f"{type(e).__name__}: {e}")

        return ParseSuccess(kind=kind, value=value)

    def _run_custom(self, raw: str, custom_code: str | None) -> Any:
        if not custom_code or not custom_code.strip():
            raise ValueError("no custom parser code configured")
        parse_output = compile_custom_parser(custom_code)
        value = run_with_budget(self.timeout, "custom parser", parse_output, raw)
        # results end up in JSON responses and trace files
        json.dumps(value)
        return value


_default_parser = OutputParser()


def parse(raw: str | None, kind: OutputParserKind | str, custom_code: str | None = None) -> ParsedResult:
    """Parse with the default two-second budget for custom code."""
    return _default_parser.parse(raw, kind, custom_code)
