"""
Formula Evaluator (Layer 3: Expression AST + bindings → float).

Evaluation is a pure recursive walk: no shared state, no caching, safe
to call from any number of threads at once. Recursion depth is bounded
by the parser's max_depth.

Every step must yield a finite float. NaN or infinity is reported as
EvalError(DOMAIN_ERROR) at the node that produced it instead of being
carried into a total.
"""

from __future__ import annotations

import math
from typing import Mapping, Optional

from surveyscore.errors import EvalError, EvalErrorKind
from surveyscore.expressions import (
    BinaryExpression,
    BinaryOperator,
    Expression,
    FunctionCall,
    NumberLiteral,
    UnaryExpression,
    UnaryOperator,
    VariableReference,
)
from surveyscore.functions import FunctionSpec, resolve_registry

_BINARY_RULES = {
    BinaryOperator.ADD: lambda a, b: a + b,
    BinaryOperator.SUBTRACT: lambda a, b: a - b,
    BinaryOperator.MULTIPLY: lambda a, b: a * b,
    BinaryOperator.DIVIDE: lambda a, b: a / b,
}


def _finite(value: float, node: Expression, what: str) -> float:
    if not math.isfinite(value):
        raise EvalError(
            EvalErrorKind.DOMAIN_ERROR,
            f"{what} produced non-finite value {value!r}",
            node.position,
        )
    return value


def evaluate(
    expr: Expression,
    bindings: Mapping[str, float],
    registry: Optional[Mapping[str, FunctionSpec]] = None,
) -> float:
    """
    Evaluate an AST against variable bindings.

    Args:
        expr: Expression produced by the parser
        bindings: Variable name → value; names are case-sensitive
        registry: Function registry the expression was parsed with

    Returns:
        Finite float

    Raises:
        EvalError: UNKNOWN_VARIABLE, DIVISION_BY_ZERO or DOMAIN_ERROR
    """
    return _eval(expr, bindings, resolve_registry(registry))


def _eval(
    node: Expression,
    bindings: Mapping[str, float],
    registry: Mapping[str, FunctionSpec],
) -> float:
    if isinstance(node, NumberLiteral):
        return _finite(node.value, node, "Literal")

    if isinstance(node, VariableReference):
        if node.name not in bindings:
            raise EvalError(
                EvalErrorKind.UNKNOWN_VARIABLE,
                f"Unknown variable {node.name!r}",
                node.position,
                name=node.name,
            )
        return _finite(float(bindings[node.name]), node, f"Variable {node.name!r}")

    if isinstance(node, UnaryExpression):
        operand = _eval(node.operand, bindings, registry)
        if node.operator == UnaryOperator.NEGATE:
            return -operand
        raise TypeError(f"Unsupported unary operator: {node.operator}")

    if isinstance(node, BinaryExpression):
        left = _eval(node.left, bindings, registry)
        right = _eval(node.right, bindings, registry)
        if node.operator == BinaryOperator.DIVIDE and right == 0:
            raise EvalError(
                EvalErrorKind.DIVISION_BY_ZERO,
                "Division by zero",
                node.position,
            )
        return _finite(_BINARY_RULES[node.operator](left, right), node, f"Operator {node.operator.value!r}")

    if isinstance(node, FunctionCall):
        spec = registry.get(node.name)
        if spec is None:
            # Only reachable when evaluating with a different registry than the parser used
            raise EvalError(
                EvalErrorKind.DOMAIN_ERROR,
                f"Function {node.name!r} is not registered",
                node.position,
                name=node.name,
            )
        args = [_eval(arg, bindings, registry) for arg in node.arguments]
        try:
            result = float(spec.rule(*args))
        except (ArithmeticError, ValueError) as e:
            raise EvalError(
                EvalErrorKind.DOMAIN_ERROR,
                f"Function {node.name!r} failed: {e}",
                node.position,
                name=node.name,
            ) from e
        return _finite(result, node, f"Function {node.name!r}")

    raise TypeError(f"Unsupported Expression type: {type(node)}")


__all__ = ["evaluate"]
