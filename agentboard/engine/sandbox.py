"""Execution limits for user-authored snippets (conditions, custom parsers).

Two pieces:

- `run_with_budget()` bounds CPU time spent in Python code by tracing the
  current thread and raising once a deadline passes. It only sees Python
  bytecode, which is why the evaluators also restrict what code may do:
  `oversized_operand()` refuses huge literal repetitions and powers, and
  the `range` and `pow` given to custom code are bounded.
- `restricted_globals()` / `compile_restricted_callable()` wrap
  RestrictedPython so custom parser bodies run without imports, dunder
  access or host builtins.
"""

import ast
import json
import operator
import re
import sys
import textwrap
import time
from types import SimpleNamespace
from typing import Any, Callable

from RestrictedPython import compile_restricted_function, safe_builtins
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)
from RestrictedPython.PrintCollector import PrintCollector

from agentboard.errors import EvaluationTimeoutError


class _BudgetExceeded(BaseException):
    """raised inside user code; not catchable by `except Exception`."""


def run_with_budget(seconds: float | None, source: str, fn: Callable[..., Any], *args: Any) -> Any:
    """Call `fn(*args)`, aborting it once `seconds` of wall time have passed.

    Frames entered by `fn` are traced per opcode; this frame is not, so
    the interrupt can only surface inside the user code.

    Raises:
        EvaluationTimeoutError: when the deadline passes.
    """
    if not seconds or seconds <= 0:
        return fn(*args)

    deadline = time.monotonic() + seconds

    def _tracer(frame, event, arg):
        frame.f_trace_opcodes = True
        if time.monotonic() > deadline:
            raise _BudgetExceeded()
        return _tracer

    timed_out = False
    previous = sys.gettrace()
    sys.settrace(_tracer)
    try:
        return fn(*args)
    except _BudgetExceeded:
        # no Python-level calls until the tracer is gone
        timed_out = True
    finally:
        sys.settrace(previous)

    if timed_out:
        raise EvaluationTimeoutError(source, seconds)


def _inplacevar(op: str, x: Any, y: Any) -> Any:
    try:
        fn = _INPLACE_OPERATORS[op]
    except KeyError:
        raise SyntaxError(f"in-place operator {op!r} is not allowed") from None
    return fn(x, y)


_INPLACE_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
}

# Work done inside a single C call is invisible to the tracer, so sizes
# that would make one call run long are bounded up front.
MAX_REPEAT = 10_000
MAX_EXPONENT = 10_000
_EAGER_RANGE = 100_000
_MAX_LITERAL_BITS = 1_000_000


def _iterate(items: range) -> Any:
    for item in items:
        yield item


def _traced_range(*args: int) -> Any:
    """range() whose long iterations stay visible to the budget tracer.

    Short ranges are returned as is. Longer ones are walked by a generator,
    so `sum(range(10**11))` resumes Python code on every item and can be
    interrupted.
    """
    items = range(*args)
    try:
        short = len(items) <= _EAGER_RANGE
    except OverflowError:
        short = False
    return items if short else _iterate(items)


def _bounded_pow(base: Any, exp: Any, mod: Any = None) -> Any:
    if mod is None and isinstance(exp, int) and abs(exp) > MAX_EXPONENT:
        raise ValueError(f"exponent {exp} exceeds {MAX_EXPONENT}")
    return pow(base, exp, mod)


def _pow_bits(base: int, exponent: int) -> int:
    return abs(base).bit_length() * abs(exponent)


def _literal_int(node: ast.AST) -> int | None:
    """Value of an integer literal expression such as `3`, `-3` or `10 ** 6`."""
    if isinstance(node, ast.Constant) and type(node.value) is int:
        return node.value
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.USub, ast.UAdd)):
        value = _literal_int(node.operand)
        if value is None:
            return None
        return -value if isinstance(node.op, ast.USub) else value
    if isinstance(node, ast.BinOp) and isinstance(node.op, (ast.Mult, ast.Pow)):
        left, right = _literal_int(node.left), _literal_int(node.right)
        if left is None or right is None:
            return None
        if isinstance(node.op, ast.Pow):
            if not 0 <= right <= MAX_EXPONENT or _pow_bits(left, right) > _MAX_LITERAL_BITS:
                return None
            return left**right
        return left * right
    return None


def oversized_operand(tree: ast.AST) -> str | None:
    """Describe the first `*` or `**` whose operands are too large, if any.

    `*` may not take an integer literal above MAX_REPEAT (`message * 10**6`).
    `**` needs a literal exponent of at most MAX_EXPONENT or a float.
    """
    for node in ast.walk(tree):
        if not isinstance(node, ast.BinOp):
            continue
        if isinstance(node.op, ast.Mult):
            for operand in (node.left, node.right):
                value = _literal_int(operand)
                if value is not None and abs(value) > MAX_REPEAT:
                    return f"multiplying by {value} is not allowed (limit {MAX_REPEAT})"
        elif isinstance(node.op, ast.Pow):
            if isinstance(node.right, ast.Constant) and type(node.right.value) is float:
                continue
            exponent = _literal_int(node.right)
            if exponent is None:
                return "'**' needs a literal exponent, use pow() for computed ones"
            if abs(exponent) > MAX_EXPONENT:
                return f"exponent {exponent} exceeds {MAX_EXPONENT}"
            base = _literal_int(node.left)
            if base is not None and _pow_bits(base, exponent) > _MAX_LITERAL_BITS:
                return "power is too large"
    return None


# pure helpers on top of RestrictedPython's safe builtins
_EXTRA_BUILTINS = {
    "range": _traced_range,
    "pow": _bounded_pow,
    "list": list,
    "dict": dict,
    "set": set,
    "sum": sum,
    "min": min,
    "max": max,
    "any": any,
    "all": all,
    "enumerate": enumerate,
    "map": map,
    "filter": filter,
    "reversed": reversed,
}

# modules are not exposed, only their pure functions
_HELPERS = {
    "json": SimpleNamespace(loads=json.loads, dumps=json.dumps),
    "re": SimpleNamespace(
        search=re.search,
        match=re.match,
        fullmatch=re.fullmatch,
        findall=re.findall,
        split=re.split,
        sub=re.sub,
        IGNORECASE=re.IGNORECASE,
        MULTILINE=re.MULTILINE,
        DOTALL=re.DOTALL,
    ),
}


def restricted_globals() -> dict[str, Any]:
    """Fresh globals for running RestrictedPython-compiled code."""
    builtins = dict(safe_builtins)
    builtins.update(_EXTRA_BUILTINS)
    return {
        "__builtins__": builtins,
        "__name__": "custom_parser",
        "_getattr_": safer_getattr,
        "_getitem_": default_guarded_getitem,
        "_getiter_": default_guarded_getiter,
        "_write_": full_write_guard,
        "_inplacevar_": _inplacevar,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_print_": PrintCollector,
        **_HELPERS,
    }


def _check_body(body: str) -> None:
    """Reject handlers that could swallow the budget interrupt, and oversized operands."""
    try:
        # parsed as a function so `return` in the body is legal
        tree = ast.parse("def _body():\n" + textwrap.indent(body, "    ", lambda line: True))
    except SyntaxError:
        # reported with better context by RestrictedPython
        return
    problem = oversized_operand(tree)
    if problem:
        raise SyntaxError(problem)
    for node in ast.walk(tree):
        if isinstance(node, ast.ExceptHandler):
            if node.type is None:
                raise SyntaxError("bare 'except:' is not allowed, catch Exception instead")
            names = [n.id for n in ast.walk(node.type) if isinstance(n, ast.Name)]
            if "BaseException" in names:
                raise SyntaxError("catching BaseException is not allowed")


def compile_restricted_callable(params: str, body: str, name: str) -> Callable[..., Any]:
    """Compile a function body under RestrictedPython and return the function.

    Raises:
        SyntaxError: if the body does not compile or uses forbidden constructs.
    """
    body = textwrap.dedent(body)
    _check_body(body)
    result = compile_restricted_function(params, body, name, filename=f"<{name}>")
    if result.errors:
        raise SyntaxError("; ".join(str(e) for e in result.errors))

    glb = restricted_globals()
    loc: dict[str, Any] = {}
    exec(result.code, glb, loc)
    return loc[name]
