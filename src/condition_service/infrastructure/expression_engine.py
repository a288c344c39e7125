"""simpleeval-based implementation of ExpressionEngine."""

import ast
from collections.abc import Callable, Mapping
from typing import Any

from loguru import logger
from simpleeval import DEFAULT_FUNCTIONS, SimpleEval

from src.condition_service.domain.exceptions import ConfigCompileError
from src.condition_service.domain.models import CompiledExpression, EvaluationResult
from src.condition_service.domain.protocols import ExpressionEngine

EXTRA_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
}


class SimpleEvalEngine(ExpressionEngine):
    """
    Compiles and evaluates Python-syntax expressions with simpleeval.

    Expressions are parsed once with `ast` at compile time and validated
    against the node types, operators and functions simpleeval accepts, so a
    rule that links successfully can only fail at evaluation time because of
    its data (missing variable, division by zero, type mismatch).
    """

    def __init__(self, functions: Mapping[str, Callable[..., Any]] | None = None):
        """
        Initialize engine.

        Args:
            functions: Callable names available to expressions (defaults to
                simpleeval's defaults plus abs/min/max/round)
        """
        self.functions = dict(functions) if functions is not None else {**DEFAULT_FUNCTIONS, **EXTRA_FUNCTIONS}

    def compile(self, text: str) -> CompiledExpression:
        """Parse, validate and extract free variables from an expression."""
        if not text or not text.strip():
            raise ConfigCompileError(text, "expression is empty")

        source = text.strip()
        try:
            tree = ast.parse(source, mode="eval").body
        except SyntaxError as e:
            raise ConfigCompileError(source, f"invalid syntax ({e.msg})") from e

        self._validate(source, tree)

        extractor = VariableExtractor()
        extractor.visit(tree)

        unknown = sorted(extractor.functions - self.functions.keys())
        if unknown:
            raise ConfigCompileError(source, f"unknown function(s): {', '.join(unknown)}")

        compiled = CompiledExpression(text=source, tree=tree, variables=frozenset(extractor.variables))
        logger.debug(f"Compiled expression '{source}' with variables {sorted(compiled.variables)}")
        return compiled

    def _validate(self, source: str, tree: ast.expr) -> None:
        """Reject syntax the evaluator cannot execute."""
        evaluator = SimpleEval(functions=self.functions)

        for node in ast.walk(tree):
            if isinstance(node, ast.expr) and type(node) not in evaluator.nodes:
                raise ConfigCompileError(source, f"unsupported syntax: {type(node).__name__}")
            if isinstance(node, (ast.operator, ast.cmpop, ast.unaryop)) and type(node) not in evaluator.operators:
                raise ConfigCompileError(source, f"unsupported operator: {type(node).__name__}")

    def evaluate(self, compiled: CompiledExpression, values: Mapping[str, float]) -> EvaluationResult:
        """Evaluate against a snapshot of the variable values."""
        evaluator = SimpleEval(functions=self.functions, names=dict(values))
        try:
            result = evaluator.eval(compiled.text, previously_parsed=compiled.tree)
        except Exception as e:
            return EvaluationResult.failure(str(e) or type(e).__name__)

        return EvaluationResult.of(result)

    def free_variables(self, compiled: CompiledExpression) -> frozenset[str]:
        return compiled.variables


class VariableExtractor(ast.NodeVisitor):
    """AST visitor collecting variable names and called function names."""

    def __init__(self):
        self.variables: set[str] = set()
        self.functions: set[str] = set()

    def visit_Call(self, node):
        """A bare name in call position is a function, not a variable."""
        if isinstance(node.func, ast.Name):
            self.functions.add(node.func.id)
            for child in [*node.args, *node.keywords]:
                self.visit(child)
            return

        self.generic_visit(node)

    def visit_Name(self, node):
        self.variables.add(node.id)
