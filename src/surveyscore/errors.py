"""
Error taxonomy for the scoring core.

Every failure is surfaced to the caller as a typed exception carrying a
``kind`` enum plus the position or name that caused it. Nothing in this
package converts an error into a default score.

Hierarchy:
    SurveyScoreError
        FormulaError
            LexError
            ParseError
            EvalError
            BindingError
        ScoringError
        IntegrityError
        ConfigError
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class SurveyScoreError(Exception):
    """Root of all errors raised by surveyscore."""


class FormulaError(SurveyScoreError):
    """
    Raised when a single formula cannot be turned into a score.

    Properties:
        position: Character offset in the formula text, when known
    """

    def __init__(self, message: str, position: Optional[int] = None):
        super().__init__(message)
        self.position = position


class LexError(FormulaError):
    """Raised by the tokenizer on a character outside the formula alphabet."""

    def __init__(self, position: int, char: str):
        super().__init__(f"Unexpected character {char!r} at position {position}", position)
        self.char = char


class ParseErrorKind(Enum):
    UNEXPECTED_TOKEN = "unexpected_token"
    UNMATCHED_PAREN = "unmatched_paren"
    UNKNOWN_FUNCTION = "unknown_function"
    WRONG_ARITY = "wrong_arity"
    TOO_COMPLEX = "too_complex"


class ParseError(FormulaError):
    """
    Raised by the parser on syntactic or registry mismatch.

    Properties:
        kind: ParseErrorKind
        position: Offset of the offending token
        name: Function name for UNKNOWN_FUNCTION / WRONG_ARITY
    """

    def __init__(
        self,
        kind: ParseErrorKind,
        message: str,
        position: Optional[int] = None,
        name: Optional[str] = None,
    ):
        super().__init__(message, position)
        self.kind = kind
        self.name = name


class EvalErrorKind(Enum):
    UNKNOWN_VARIABLE = "unknown_variable"
    DIVISION_BY_ZERO = "division_by_zero"
    DOMAIN_ERROR = "domain_error"


class EvalError(FormulaError):
    """
    Raised by the evaluator on a semantic failure.

    Properties:
        kind: EvalErrorKind
        name: Variable or function name involved, when there is one
    """

    def __init__(
        self,
        kind: EvalErrorKind,
        message: str,
        position: Optional[int] = None,
        name: Optional[str] = None,
    ):
        super().__init__(message, position)
        self.kind = kind
        self.name = name


class BindingError(FormulaError):
    """Raised when an answer binds the same variable name twice."""

    def __init__(self, name: str):
        super().__init__(f"Variable {name!r} is bound more than once")
        self.name = name


class ScoringError(SurveyScoreError):
    """
    Raised by the aggregator when one answer aborts a session.

    Properties:
        index: Zero-based position of the failing answer in the input
        answer_id: Identifier of the failing answer, if it has one
        cause: The underlying FormulaError
    """

    def __init__(self, index: int, answer_id: Optional[object], cause: FormulaError):
        label = f"answer #{index}" if answer_id is None else f"answer #{index} (id={answer_id})"
        super().__init__(f"Scoring failed at {label}: {cause}")
        self.index = index
        self.answer_id = answer_id
        self.cause = cause


class IntegrityErrorKind(Enum):
    SIGNATURE_MISMATCH = "signature_mismatch"
    MALFORMED = "malformed"


class IntegrityError(SurveyScoreError):
    """Raised when an envelope cannot be verified. Always a hard rejection."""

    def __init__(self, kind: IntegrityErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class ConfigError(SurveyScoreError):
    """Raised when configuration cannot be loaded or validated."""
