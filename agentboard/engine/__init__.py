"""Composition resolution, condition evaluation, parsing and dispatch."""

from agentboard.engine.dispatcher import Dispatcher
from agentboard.engine.envelope import build_envelope, summarize
from agentboard.engine.evaluator import ExpressionEvaluator, evaluate
from agentboard.engine.parser import OutputParser, parse, parse_csv
from agentboard.engine.resolver import CompositionResolver, resolve

__all__ = [
    "Dispatcher",
    "CompositionResolver",
    "resolve",
    "ExpressionEvaluator",
    "evaluate",
    "OutputParser",
    "parse",
    "parse_csv",
    "build_envelope",
    "summarize",
]
