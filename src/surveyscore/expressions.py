"""
Expression System for surveyscore

Every answer formula is parsed once into an Abstract Syntax Tree and
evaluated from the tree, never from the raw string.

This ensures:
    - Operator precedence is decided in exactly one place (the parser)
    - Evaluation is a pure walk over immutable nodes
    - Formulas can be analyzed and serialized without re-parsing

ARCHITECTURAL RULE:
    Nodes are structure only.
    Evaluation belongs in the evaluator, rendering in serialization,
    metrics in the analyzer.
"""

from abc import ABC
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class Expression(ABC):
    """
    Base class for all AST expressions.

    It exists to provide type-safety for the expression hierarchy.

    DO NOT:
        - Add evaluation logic here (belongs in evaluator)
        - Add string representations (belongs in serialization)
    """
    pass


class BinaryOperator(Enum):
    """
    Arithmetic operators supported in formulas.

    ADD and SUBTRACT bind weaker than MULTIPLY and DIVIDE.
    All four are left-associative.
    """

    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"


class UnaryOperator(Enum):
    """Prefix operators. Negation binds tighter than any binary operator."""

    NEGATE = "-"


@dataclass(frozen=True)
class NumberLiteral(Expression):
    """
    A numeric constant.

    Examples:
        - 40
        - 0.3
        - 100.001

    Properties:
        value: The literal as a float
        position: Offset in the source formula (ignored for equality)
    """

    value: float
    position: Optional[int] = field(default=None, compare=False)


@dataclass(frozen=True)
class VariableReference(Expression):
    """
    References a variable bound at evaluation time.

    Examples:
        - n
        - dist
        - x

    IMPORTANT:
        This object does NOT validate that the variable is bound.
        Lookup happens in the evaluator.
    """

    name: str
    position: Optional[int] = field(default=None, compare=False)


@dataclass(frozen=True)
class UnaryExpression(Expression):
    """
    Represents a prefix operation.

    Example:
        -1 * ceil(x)

    Becomes (for the left operand):
        UnaryExpression(
            operator=UnaryOperator.NEGATE,
            operand=NumberLiteral(1.0)
        )
    """

    operator: UnaryOperator
    operand: Expression
    position: Optional[int] = field(default=None, compare=False)


@dataclass(frozen=True)
class BinaryExpression(Expression):
    """
    Represents a binary arithmetic expression.

    Example:
        floor(40 / n) * dist

    Becomes:
        BinaryExpression(
            operator=BinaryOperator.MULTIPLY,
            left=FunctionCall(
                name="floor",
                arguments=(
                    BinaryExpression(
                        operator=BinaryOperator.DIVIDE,
                        left=NumberLiteral(40.0),
                        right=VariableReference("n"),
                    ),
                ),
            ),
            right=VariableReference("dist"),
        )

    IMPORTANT:
        This object is immutable (frozen=True).
        It does NOT evaluate itself.
    """

    operator: BinaryOperator
    left: Expression
    right: Expression
    position: Optional[int] = field(default=None, compare=False)


@dataclass(frozen=True)
class FunctionCall(Expression):
    """
    A call to a registered function.

    The parser has already checked that ``name`` exists in the
    function registry and that ``len(arguments)`` matches its arity.
    """

    name: str
    arguments: Tuple[Expression, ...] = ()
    position: Optional[int] = field(default=None, compare=False)
