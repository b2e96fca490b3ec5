"""
surveyscore — formula scoring core for questionnaire sessions.

Turns per-answer formulas plus respondent-supplied variable values into
a numeric session score, and seals computed results in a signed
envelope so they can travel through untrusted hands and be verified
later without a lookup.

ARCHITECTURAL GUARANTEE:
------------------------
This package contains ZERO knowledge of:
    - Persistence
    - HTTP routing or authentication
    - Questionnaire lifecycle

Pipeline:
    formula text → tokenizer → parser → evaluator → scoring → envelope
"""

from surveyscore.envelope import Envelope, EnvelopeSigner
from surveyscore.errors import (
    EvalError,
    EvalErrorKind,
    FormulaError,
    IntegrityError,
    IntegrityErrorKind,
    LexError,
    ParseError,
    ParseErrorKind,
    ScoringError,
    SurveyScoreError,
)
from surveyscore.functions import DEFAULT_REGISTRY, FunctionRegistry, FunctionSpec
from surveyscore.parser import parse_formula
from surveyscore.evaluator import evaluate
from surveyscore.scoring import (
    AnswerScore,
    ScoringEngine,
    SessionScore,
    evaluate_formula,
    score_session,
)

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_REGISTRY",
    "AnswerScore",
    "Envelope",
    "EnvelopeSigner",
    "EvalError",
    "EvalErrorKind",
    "FormulaError",
    "FunctionRegistry",
    "FunctionSpec",
    "IntegrityError",
    "IntegrityErrorKind",
    "LexError",
    "ParseError",
    "ParseErrorKind",
    "ScoringEngine",
    "ScoringError",
    "SessionScore",
    "SurveyScoreError",
    "evaluate",
    "evaluate_formula",
    "parse_formula",
    "score_session",
]
