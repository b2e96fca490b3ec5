"""
Serialization helpers for surveyscore objects (Expression, SessionScore, Questionnaire).

Provides explicit dict representations, JSON/YAML round-trip for
questionnaires, the canonical JSON byte encoding used by the signed
envelope, and rendering of an AST back to formula text.

The canonical encoding is part of the envelope wire contract: changing
it invalidates every envelope issued under the same algorithm tag.
"""
from __future__ import annotations

import json
from typing import Any, Dict

import yaml

from surveyscore.model import (
    Answer,
    PossibleAnswer,
    Question,
    Questionnaire,
    Session,
    Variable,
    VariableValue,
)
from surveyscore.expressions import (
    Expression,
    BinaryExpression,
    BinaryOperator,
    FunctionCall,
    NumberLiteral,
    UnaryExpression,
    UnaryOperator,
    VariableReference,
)
from surveyscore.scoring import AnswerScore, SessionScore


# ---------------------------------------------------------------------------
# Canonical bytes
# ---------------------------------------------------------------------------

def canonical_json(payload: Any) -> bytes:
    """
    Encode a JSON-compatible value as canonical-json-v1 bytes.

    UTF-8, keys sorted, no insignificant whitespace, NaN/Infinity rejected.
    List order is preserved.

    Raises:
        TypeError: If the payload holds a non-JSON type or a non-string key
        ValueError: If the payload holds NaN or infinity
    """
    _check_keys(payload)
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    ).encode("utf-8")


def _check_keys(value: Any) -> None:
    # json.dumps would silently turn 1, 1.5, True and None keys into strings
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"Object keys must be str, not {type(key).__name__}: {key!r}")
            _check_keys(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _check_keys(item)


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------

def expr_to_dict(expr: Expression | None) -> Any:
    if expr is None:
        return None
    if isinstance(expr, BinaryExpression):
        return {
            "type": "binary",
            "operator": expr.operator.value,
            "left": expr_to_dict(expr.left),
            "right": expr_to_dict(expr.right),
        }
    if isinstance(expr, VariableReference):
        return {"type": "var", "name": expr.name}
    if isinstance(expr, NumberLiteral):
        return {"type": "num", "value": expr.value}
    if isinstance(expr, UnaryExpression):
        return {
            "type": "unary",
            "operator": expr.operator.value,
            "operand": expr_to_dict(expr.operand),
        }
    if isinstance(expr, FunctionCall):
        return {
            "type": "call",
            "name": expr.name,
            "arguments": [expr_to_dict(arg) for arg in expr.arguments],
        }
    raise TypeError(f"Unsupported Expression type: {type(expr)}")


def expr_from_dict(d: Any) -> Expression | None:
    if d is None:
        return None
    t = d.get("type")
    if t == "binary":
        op = BinaryOperator(d["operator"])
        left = expr_from_dict(d["left"])
        right = expr_from_dict(d["right"])
        return BinaryExpression(operator=op, left=left, right=right)
    if t == "var":
        return VariableReference(d["name"])
    if t == "num":
        return NumberLiteral(float(d["value"]))
    if t == "unary":
        op = UnaryOperator(d["operator"])
        operand = expr_from_dict(d["operand"])
        return UnaryExpression(operator=op, operand=operand)
    if t == "call":
        args = tuple(expr_from_dict(arg) for arg in d.get("arguments", []))
        return FunctionCall(name=d["name"], arguments=args)
    raise TypeError(f"Unsupported expression dict type: {t}")


_PRECEDENCE = {
    BinaryOperator.ADD: 1,
    BinaryOperator.SUBTRACT: 1,
    BinaryOperator.MULTIPLY: 2,
    BinaryOperator.DIVIDE: 2,
}
_UNARY_PRECEDENCE = 3
_ATOM_PRECEDENCE = 4


def _precedence(expr: Expression) -> int:
    if isinstance(expr, BinaryExpression):
        return _PRECEDENCE[expr.operator]
    if isinstance(expr, UnaryExpression):
        return _UNARY_PRECEDENCE
    if isinstance(expr, NumberLiteral) and expr.value < 0:
        return _UNARY_PRECEDENCE
    return _ATOM_PRECEDENCE


def _format_number(value: float) -> str:
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


def _wrap(expr: Expression, parenthesize: bool) -> str:
    text = format_expression(expr)
    return f"({text})" if parenthesize else text


def format_expression(expr: Expression) -> str:
    """
    Render an AST as formula text with the minimum parentheses needed.

    Parsing the result yields an equal AST.
    """
    if isinstance(expr, NumberLiteral):
        return _format_number(expr.value)
    if isinstance(expr, VariableReference):
        return expr.name
    if isinstance(expr, UnaryExpression):
        return expr.operator.value + _wrap(expr.operand, _precedence(expr.operand) < _UNARY_PRECEDENCE)
    if isinstance(expr, BinaryExpression):
        prec = _PRECEDENCE[expr.operator]
        left = _wrap(expr.left, _precedence(expr.left) < prec)
        # Left-associative: an equal-precedence right operand needs parentheses
        right = _wrap(expr.right, _precedence(expr.right) <= prec)
        return f"{left} {expr.operator.value} {right}"
    if isinstance(expr, FunctionCall):
        args = ", ".join(format_expression(arg) for arg in expr.arguments)
        return f"{expr.name}({args})"
    raise TypeError(f"Unsupported Expression type: {type(expr)}")


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------

def answer_score_to_dict(a: AnswerScore) -> Dict[str, Any]:
    return {
        "answer_id": a.answer_id,
        "question": a.question,
        "formula": a.formula,
        "bindings": dict(a.bindings),
        "value": a.value,
    }


def answer_score_from_dict(d: Dict[str, Any]) -> AnswerScore:
    return AnswerScore(
        formula=d["formula"],
        bindings={k: float(v) for k, v in d.get("bindings", {}).items()},
        value=float(d["value"]),
        question=d.get("question"),
        answer_id=d.get("answer_id"),
    )


def session_score_to_dict(s: SessionScore) -> Dict[str, Any]:
    return {
        "session_id": s.session_id,
        "answers": [answer_score_to_dict(a) for a in s.answers],
        "scores": s.scores,
        "total": s.total,
    }


def session_score_from_dict(d: Dict[str, Any]) -> SessionScore:
    """
    Rebuild a SessionScore. The total is recomputed from the answers.

    Raises:
        ValueError: If a stored "total" disagrees with the recomputed one
    """
    score = SessionScore(
        answers=tuple(answer_score_from_dict(a) for a in d.get("answers", [])),
        session_id=d.get("session_id"),
    )
    stored = d.get("total")
    if stored is not None and float(stored) != score.total:
        raise ValueError(f"Stored total {stored!r} does not match answers (total {score.total!r})")
    return score


# ---------------------------------------------------------------------------
# Questionnaires and sessions
# ---------------------------------------------------------------------------

def variable_to_dict(v: Variable) -> Dict[str, Any]:
    return {"name": v.name, "description": v.description}


def variable_from_dict(d: Dict[str, Any]) -> Variable:
    return Variable(name=d["name"], description=d.get("description"))


def question_to_dict(q: Question) -> Dict[str, Any]:
    return {"name": q.name, "text": q.text}


def question_from_dict(d: Dict[str, Any]) -> Question:
    return Question(name=d["name"], text=d.get("text", ""))


def possible_answer_to_dict(p: PossibleAnswer) -> Dict[str, Any]:
    return {"id": p.id, "question": p.question, "formula": p.formula, "variables": p.variables}


def possible_answer_from_dict(d: Dict[str, Any]) -> PossibleAnswer:
    return PossibleAnswer(
        id=str(d["id"]),
        question=d["question"],
        formula=d["formula"],
        variables=list(d.get("variables", [])),
    )


def questionnaire_to_dict(q: Questionnaire) -> Dict[str, Any]:
    return {
        "name": q.name,
        "variables": [variable_to_dict(v) for v in q.variables],
        "questions": [question_to_dict(x) for x in q.questions],
        "possible_answers": [possible_answer_to_dict(p) for p in q.possible_answers],
        "metadata": q.metadata,
    }


def questionnaire_from_dict(d: Dict[str, Any]) -> Questionnaire:
    q = Questionnaire(name=d.get("name", ""))
    q.variables = [variable_from_dict(v) for v in d.get("variables", [])]
    q.questions = [question_from_dict(x) for x in d.get("questions", [])]
    q.possible_answers = [possible_answer_from_dict(p) for p in d.get("possible_answers", [])]
    q.metadata = d.get("metadata", {})
    return q


def questionnaire_to_json(q: Questionnaire) -> str:
    return json.dumps(questionnaire_to_dict(q), sort_keys=True)


def questionnaire_from_json(s: str) -> Questionnaire:
    d = json.loads(s)
    return questionnaire_from_dict(d)


def questionnaire_to_yaml(q: Questionnaire) -> str:
    return yaml.safe_dump(questionnaire_to_dict(q), sort_keys=False)


def questionnaire_from_yaml(s: str) -> Questionnaire:
    d = yaml.safe_load(s)
    return questionnaire_from_dict(d)


def session_from_dict(d: Dict[str, Any], questionnaire: Questionnaire) -> Session:
    """
    Build a Session from submitted answers, resolving possible answers by id.

    Expected shape::

        {"id": "s-1",
         "answers": [{"id": "a-1", "possible_answer": "pa-7",
                      "values": {"n": 5, "dist": 3}}]}

    Raises:
        KeyError: If an answer references an unknown possible answer
    """
    answers = []
    for item in d.get("answers", []):
        possible = questionnaire.get_possible_answer(str(item["possible_answer"]))
        if possible is None:
            raise KeyError(f"Unknown possible answer: {item['possible_answer']}")
        values = [VariableValue(name=k, value=float(v)) for k, v in item.get("values", {}).items()]
        answers.append(Answer(possible_answer=possible, variable_values=values, id=item.get("id")))
    return Session(id=d.get("id"), answers=answers)
