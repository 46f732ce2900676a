"""
Expression Evaluator - safe evaluation of branch conditions.

A condition is a single Python expression over three bindings:

    message    the text the conditional node received
    intent     the detected intent, or None
    entities   extracted entities (dict access, .get(), `in`, dot access)

Dashboard authors write JavaScript-flavoured conditions, e.g.

    message.includes('produto') || intent === 'compra'

so the common JS operators and string methods are rewritten to Python
before the AST is checked against a whitelist. Evaluation runs under a
time budget with an empty `__builtins__`.
"""

import ast
import copy
import re
from collections.abc import Mapping
from functools import lru_cache
from types import CodeType
from typing import Any, Iterator

from loguru import logger

from agentboard.engine.sandbox import oversized_operand, run_with_budget
from agentboard.errors import ConditionError
from agentboard.models.dispatch import DispatchContext

BINDINGS = ("message", "intent", "entities")

# range() is left out on purpose: C-level loops are not interruptible
SAFE_FUNCTIONS: dict[str, Any] = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "sum": sum,
    "any": any,
    "all": all,
    "sorted": sorted,
    "round": round,
    "list": list,
    "tuple": tuple,
    "set": set,
    "dict": dict,
}

# non-mutating methods of str / dict / list
SAFE_METHODS = {
    "get",
    "keys",
    "values",
    "items",
    "count",
    "index",
    "find",
    "startswith",
    "endswith",
    "lower",
    "upper",
    "casefold",
    "strip",
    "lstrip",
    "rstrip",
    "split",
    "replace",
    "join",
    "isdigit",
    "isnumeric",
    "isalpha",
}

_ALLOWED_NODES = (
    ast.Expression,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.UnaryOp,
    ast.Not,
    ast.USub,
    ast.UAdd,
    ast.BinOp,
    ast.Add,
    ast.Sub,
    ast.Mult,
    ast.Div,
    ast.FloorDiv,
    ast.Mod,
    ast.Compare,
    ast.Eq,
    ast.NotEq,
    ast.Lt,
    ast.LtE,
    ast.Gt,
    ast.GtE,
    ast.In,
    ast.NotIn,
    ast.Is,
    ast.IsNot,
    ast.IfExp,
    ast.Call,
    ast.keyword,
    ast.Attribute,
    ast.Subscript,
    ast.Slice,
    ast.Name,
    ast.Load,
    ast.Store,
    ast.Constant,
    ast.List,
    ast.Tuple,
    ast.Set,
    ast.Dict,
    ast.ListComp,
    ast.SetComp,
    ast.DictComp,
    ast.GeneratorExp,
    ast.comprehension,
    ast.JoinedStr,
    ast.FormattedValue,
)

# ---------------------------------------------------------------------------
# JavaScript compatibility
# ---------------------------------------------------------------------------

_STRING_LITERAL = re.compile(r"""('(?:[^'\\\n]|\\.)*'|"(?:[^"\\\n]|\\.)*")""")

# order matters: the strict operators before the bare `!`
_JS_OPERATORS = (
    (re.compile(r"!=="), "!="),
    (re.compile(r"==="), "=="),
    (re.compile(r"&&"), " and "),
    (re.compile(r"\|\|"), " or "),
    (re.compile(r"!(?!=)"), " not "),
)

_JS_CONSTANTS = {"true": True, "false": False, "null": None, "undefined": None}

_JS_METHODS = {
    "startsWith": "startswith",
    "endsWith": "endswith",
    "toLowerCase": "lower",
    "toUpperCase": "upper",
    "trim": "strip",
    "indexOf": "find",
}


def rewrite_js_operators(source: str) -> str:
    """Rewrite JS boolean/equality operators outside of string literals."""
    parts = _STRING_LITERAL.split(source)
    # split() with a capture group alternates code, literal, code, ...
    for i in range(0, len(parts), 2):
        for pattern, replacement in _JS_OPERATORS:
            parts[i] = pattern.sub(replacement, parts[i])
    return "".join(parts).strip()


class _JsCompat(ast.NodeTransformer):
    """AST-level rewrites for JS constants, string methods and `.length`."""

    def visit_Name(self, node: ast.Name) -> ast.AST:
        if isinstance(node.ctx, ast.Load) and node.id in _JS_CONSTANTS:
            return ast.copy_location(ast.Constant(value=_JS_CONSTANTS[node.id]), node)
        return node

    def visit_Attribute(self, node: ast.Attribute) -> ast.AST:
        self.generic_visit(node)
        if node.attr == "length" and isinstance(node.ctx, ast.Load):
            call = ast.Call(func=ast.Name(id="len", ctx=ast.Load()), args=[node.value], keywords=[])
            return ast.copy_location(call, node)
        return node

    def visit_Call(self, node: ast.Call) -> ast.AST:
        self.generic_visit(node)
        func = node.func
        if not isinstance(func, ast.Attribute):
            return node
        if func.attr == "includes" and len(node.args) == 1 and not node.keywords:
            compare = ast.Compare(left=node.args[0], ops=[ast.In()], comparators=[func.value])
            return ast.copy_location(compare, node)
        if func.attr in _JS_METHODS:
            func.attr = _JS_METHODS[func.attr]
        return node


# ---------------------------------------------------------------------------
# Validation and compilation
# ---------------------------------------------------------------------------


def _check_tree(tree: ast.Expression, condition: str) -> None:
    """Raise ConditionError for any construct outside the whitelist."""
    local_names = {
        target.id
        for node in ast.walk(tree)
        if isinstance(node, ast.comprehension)
        for target in ast.walk(node.target)
        if isinstance(target, ast.Name)
    }
    known_names = set(BINDINGS) | set(SAFE_FUNCTIONS) | local_names

    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            raise ConditionError(condition, f"{type(node).__name__} is not allowed")
        if isinstance(node, ast.Name) and node.id not in known_names:
            raise ConditionError(condition, f"unknown name {node.id!r}")
        if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            raise ConditionError(condition, f"access to {node.attr!r} is not allowed")
        if isinstance(node, ast.Call):
            func = node.func
            if isinstance(func, ast.Name) and func.id in SAFE_FUNCTIONS:
                continue
            if isinstance(func, ast.Attribute) and func.attr in SAFE_METHODS:
                continue
            name = getattr(func, "id", None) or getattr(func, "attr", type(func).__name__)
            raise ConditionError(condition, f"call to {name!r} is not allowed")

    problem = oversized_operand(tree)
    if problem:
        raise ConditionError(condition, problem)


@lru_cache(maxsize=512)
def compile_condition(condition: str) -> CodeType:
    """Rewrite, check and compile a condition. Cached per expression string.

    Raises:
        ConditionError: if the expression is malformed or not allowed.
    """
    source = rewrite_js_operators(condition)
    if not source:
        raise ConditionError(condition, "empty condition")
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as e:
        raise ConditionError(condition, f"syntax error: {e.msg}") from None

    tree = ast.fix_missing_locations(_JsCompat().visit(tree))
    _check_tree(tree, condition)
    return compile(tree, "<condition>", "eval")


# ---------------------------------------------------------------------------
# Entities view
# ---------------------------------------------------------------------------


def _wrap(value: Any) -> Any:
    if isinstance(value, Mapping):
        return _EntityView(value)
    if isinstance(value, list):
        return [_wrap(item) for item in value]
    return value


class _EntityView(Mapping):
    """Read-only mapping that also supports dot access.

    Missing keys read as None through dot access and `.get()`, so
    `entities.product == 'x'` is simply False when nothing was extracted.

    Keys named like mapping methods (`get`, `keys`, `items`, `values`) are
    shadowed by those methods under dot access; read them as
    `entities['items']`.
    """

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any]) -> None:
        object.__setattr__(self, "_data", data)

    def __getitem__(self, key: str) -> Any:
        return _wrap(self._data[key])

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return _wrap(self._data.get(name))

    def __setattr__(self, name: str, value: Any) -> None:
        raise TypeError("entities are read-only")

    def __repr__(self) -> str:
        return f"entities({dict(self._data)!r})"


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class ExpressionEvaluator:
    """Evaluates branch conditions against a dispatch context."""

    def __init__(self, timeout: float | None = 1.0) -> None:
        self.timeout = timeout

    def validate(self, condition: str) -> None:
        """Check that a condition compiles and only uses allowed constructs.

        Raises:
            ConditionError: describing the first problem found.
        """
        compile_condition(condition)

    def is_valid(self, condition: str) -> bool:
        try:
            self.validate(condition)
        except ConditionError as e:
            logger.debug(f"[ConditionValidator] {e}")
            return False
        return True

    def evaluate(self, condition: str, context: DispatchContext) -> bool:
        """Evaluate `condition` and coerce the result with bool().

        Raises:
            ConditionError: malformed, disallowed, failing or too slow.
        """
        code = compile_condition(condition)
        namespace: dict[str, Any] = {
            "__builtins__": {},
            **SAFE_FUNCTIONS,
            "message": context.message,
            "intent": context.intent,
            "entities": _EntityView(copy.deepcopy(context.entities)),
        }
        try:
            result = run_with_budget(self.timeout, condition, eval, code, namespace)
            return bool(result)
        except ConditionError:
            raise
        except Exception as e:
            raise ConditionError(condition, f"{type(e).__name__}: {e}") from e


_default_evaluator = ExpressionEvaluator()


def evaluate(condition: str, context: DispatchContext) -> bool:
    """Evaluate a condition with the default one-second budget."""
    return _default_evaluator.evaluate(condition, context)
