"""
Questionnaire Analyzer — early diagnostics for answer formulas.

This module provides lightweight, read-only analysis:
    - Per-formula metrics (depth, node count, variables, functions)
    - Formulas that fail to parse
    - Variables a formula uses but its possible answer does not declare
    - Declared variables no formula uses
    - Answer variables missing from the questionnaire declarations
    - Possible answers pointing at unknown questions

IMPORTANT: This is analysis only. It does NOT evaluate formulas and
does NOT modify the questionnaire. Scoring never depends on it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Set

from surveyscore.errors import FormulaError
from surveyscore.expressions import (
    BinaryExpression,
    Expression,
    FunctionCall,
    NumberLiteral,
    UnaryExpression,
    VariableReference,
)
from surveyscore.functions import FunctionSpec
from surveyscore.model import Questionnaire
from surveyscore.parser import DEFAULT_MAX_DEPTH, DEFAULT_MAX_TOKENS, parse_formula


@dataclass
class FormulaMetrics:
    """Metrics about a single expression tree."""
    depth: int = 0
    node_count: int = 0
    variable_references: Set[str] = field(default_factory=set)
    function_calls: Set[str] = field(default_factory=set)


def analyze_formula(expr: Expression | None) -> FormulaMetrics:
    """Recursively analyze an expression tree."""
    if expr is None:
        return FormulaMetrics()

    metrics = FormulaMetrics(depth=1, node_count=1)

    if isinstance(expr, BinaryExpression):
        children = [expr.left, expr.right]
    elif isinstance(expr, UnaryExpression):
        children = [expr.operand]
    elif isinstance(expr, FunctionCall):
        metrics.function_calls.add(expr.name)
        children = list(expr.arguments)
    elif isinstance(expr, VariableReference):
        metrics.variable_references.add(expr.name)
        children = []
    elif isinstance(expr, NumberLiteral):
        children = []
    else:
        raise TypeError(f"Unsupported Expression type: {type(expr)}")

    for child in children:
        sub = analyze_formula(child)
        metrics.depth = max(metrics.depth, 1 + sub.depth)
        metrics.node_count += sub.node_count
        metrics.variable_references.update(sub.variable_references)
        metrics.function_calls.update(sub.function_calls)

    return metrics


@dataclass
class QuestionnaireReport:
    """Analysis report for a questionnaire's formulas."""

    questionnaire_name: str
    total_questions: int = 0
    total_possible_answers: int = 0

    # Per possible answer id
    metrics: Dict[str, FormulaMetrics] = field(default_factory=dict)
    parse_errors: Dict[str, str] = field(default_factory=dict)
    undeclared_variables: Dict[str, Set[str]] = field(default_factory=dict)
    unused_variables: Dict[str, Set[str]] = field(default_factory=dict)
    undefined_variables: Set[str] = field(default_factory=set)
    orphan_answers: List[str] = field(default_factory=list)

    # Complexity
    max_formula_depth: int = 0
    function_usage: Dict[str, int] = field(default_factory=dict)

    warnings: List[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not (
            self.parse_errors
            or self.undeclared_variables
            or self.undefined_variables
            or self.orphan_answers
        )

    def add_warning(self, msg: str) -> None:
        """Add a warning to the report."""
        if msg not in self.warnings:
            self.warnings.append(msg)


def analyze_questionnaire(
    questionnaire: Questionnaire,
    registry: Optional[Mapping[str, FunctionSpec]] = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
    max_tokens: int = DEFAULT_MAX_TOKENS,
) -> QuestionnaireReport:
    """
    Analyze every possible answer's formula in a questionnaire.

    Checks for:
    - Formula syntax (with the same registry and limits used for scoring)
    - Variable declarations versus variable references
    - Possible answers whose question does not exist

    Returns a QuestionnaireReport with metrics and warnings.
    """
    report = QuestionnaireReport(questionnaire_name=questionnaire.name)
    report.total_questions = len(questionnaire.questions)
    report.total_possible_answers = len(questionnaire.possible_answers)

    question_names = {q.name for q in questionnaire.questions}
    declared_names = {v.name for v in questionnaire.variables}

    for possible in questionnaire.possible_answers:
        if possible.question not in question_names:
            report.orphan_answers.append(possible.id)
        if questionnaire.variables:
            report.undefined_variables.update(set(possible.variables) - declared_names)

        try:
            expr = parse_formula(possible.formula, registry, max_depth, max_tokens)
        except FormulaError as e:
            report.parse_errors[possible.id] = str(e)
            continue

        metrics = analyze_formula(expr)
        report.metrics[possible.id] = metrics
        report.max_formula_depth = max(report.max_formula_depth, metrics.depth)
        for name in metrics.function_calls:
            report.function_usage[name] = report.function_usage.get(name, 0) + 1

        declared = set(possible.variables)
        undeclared = metrics.variable_references - declared
        unused = declared - metrics.variable_references
        if undeclared:
            report.undeclared_variables[possible.id] = undeclared
        if unused:
            report.unused_variables[possible.id] = unused

    # Warning flags
    for answer_id, message in report.parse_errors.items():
        report.add_warning(f"Formula of {answer_id} does not parse: {message}")

    for answer_id, names in report.undeclared_variables.items():
        report.add_warning(
            f"Formula of {answer_id} uses undeclared variables: {', '.join(sorted(names))}"
        )

    for answer_id, names in report.unused_variables.items():
        report.add_warning(
            f"Possible answer {answer_id} declares unused variables: {', '.join(sorted(names))}"
        )

    if report.undefined_variables:
        report.add_warning(
            f"Undefined variable references: {', '.join(sorted(report.undefined_variables))}"
        )

    if report.orphan_answers:
        report.add_warning(
            f"Possible answers without a question: {', '.join(report.orphan_answers)}"
        )

    return report


__all__ = [
    "FormulaMetrics",
    "QuestionnaireReport",
    "analyze_formula",
    "analyze_questionnaire",
]
