"""
Session scoring — per-answer formula evaluation and session aggregation.

Central orchestrator for turning a respondent's answers into a score:
  1. Tokenize and parse each answer's formula
  2. Evaluate it against the answer's variable bindings
  3. Collect one AnswerScore per answer, in input order
  4. Expose the session total as the left-to-right sum of those values

Failure policy is fail-fast and all-or-nothing: the first formula error
aborts the session and is re-raised as ScoringError naming the answer.
No partial total is ever returned.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

from surveyscore.config import ScoringConfig
from surveyscore.errors import FormulaError, ScoringError
from surveyscore.evaluator import evaluate
from surveyscore.expressions import Expression
from surveyscore.functions import FunctionSpec, resolve_registry
from surveyscore.model import Answer, Session
from surveyscore.parser import DEFAULT_MAX_DEPTH, DEFAULT_MAX_TOKENS, parse_formula

logger = logging.getLogger(__name__)

FormulaInput = Tuple[str, Mapping[str, float]]
ScorableAnswer = Union[Answer, FormulaInput]


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AnswerScore:
    """Score of one answered question.

    ``bindings`` is stored as a read-only view of a private copy. Scores
    compare by value but are unhashable, since a mapping field has no hash.
    """
    formula: str
    bindings: Mapping[str, float]
    value: float
    question: Optional[str] = None
    answer_id: Optional[str] = None

    __hash__ = None

    def __post_init__(self):
        object.__setattr__(self, "bindings", MappingProxyType(dict(self.bindings)))


@dataclass(frozen=True)
class SessionScore:
    """Ordered answer scores of one session.

    The total is derived on every access and never stored, so it cannot
    drift from the answers it summarizes.
    """
    answers: Tuple[AnswerScore, ...] = field(default_factory=tuple)
    session_id: Optional[str] = None

    @property
    def total(self) -> float:
        # Plain left-to-right addition; sum() compensates on newer Pythons
        total = 0.0
        for answer in self.answers:
            total += answer.value
        return total

    @property
    def scores(self) -> list[float]:
        return [answer.value for answer in self.answers]

    def breakdown(self) -> Dict[str, float]:
        """Subtotal per question name, in order of first appearance.

        Answers without a question name are grouped under "".
        """
        subtotals: Dict[str, float] = {}
        for answer in self.answers:
            key = answer.question or ""
            subtotals[key] = subtotals.get(key, 0.0) + answer.value
        return subtotals


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class ScoringEngine:
    """Evaluates answer formulas and aggregates session scores.

    Usage::

        engine = ScoringEngine.from_config(load_config())
        result = engine.score_session([
            ("floor(40 / n) * dist", {"n": 5, "dist": 3}),
            ("-1 * ceil(0.3 * x)", {"x": 100.001}),
        ])
        result.total  # -7.0

    Parameters:
        registry: Function registry (default floor/ceil/round/sin).
        max_depth: Parser nesting and AST depth limit.
        max_tokens: Parser token limit.
        cache_size: Parsed-formula cache entries keyed by formula text
            (0 disables the cache).

    The engine holds no mutable state besides the optional cache, which
    never changes results. One instance may be shared across threads.
    """

    def __init__(
        self,
        registry: Optional[Mapping[str, FunctionSpec]] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        cache_size: int = 0,
    ) -> None:
        self.registry = resolve_registry(registry)
        self.max_depth = max_depth
        self.max_tokens = max_tokens
        if cache_size > 0:
            self._parse = functools.lru_cache(maxsize=cache_size)(self._parse_uncached)
        else:
            self._parse = self._parse_uncached

    @classmethod
    def from_config(
        cls,
        config: ScoringConfig,
        registry: Optional[Mapping[str, FunctionSpec]] = None,
    ) -> ScoringEngine:
        return cls(
            registry=registry,
            max_depth=config.parser.max_depth,
            max_tokens=config.parser.max_tokens,
            cache_size=config.cache_size,
        )

    def _parse_uncached(self, formula: str) -> Expression:
        return parse_formula(formula, self.registry, self.max_depth, self.max_tokens)

    def parse(self, formula: str) -> Expression:
        """Parse formula text with this engine's registry and limits."""
        return self._parse(formula)

    def evaluate(self, formula: str, bindings: Mapping[str, float]) -> float:
        """Tokenize, parse and evaluate one formula.

        Raises:
            LexError, ParseError, EvalError: Unwrapped, straight from the stage that failed.
        """
        return evaluate(self.parse(formula), bindings, self.registry)

    def score_answer(self, answer: ScorableAnswer) -> AnswerScore:
        """Score a single Answer or (formula, bindings) pair."""
        if isinstance(answer, Answer):
            possible = answer.possible_answer
            bindings = answer.bindings()
            value = self.evaluate(possible.formula, bindings)
            return AnswerScore(
                formula=possible.formula,
                bindings=bindings,
                value=value,
                question=possible.question,
                answer_id=answer.id,
            )

        formula, bindings = answer
        bindings = dict(bindings)
        return AnswerScore(formula=formula, bindings=bindings, value=self.evaluate(formula, bindings))

    def score_session(
        self,
        answers: Union[Session, Sequence[ScorableAnswer]],
        session_id: Optional[str] = None,
    ) -> SessionScore:
        """Score every answer of a session, failing on the first error.

        Parameters:
            answers: A Session, or an ordered sequence of Answer objects
                and/or (formula, bindings) pairs.
            session_id: Identifier recorded on the result (taken from the
                Session when one is passed).

        Returns:
            SessionScore with one AnswerScore per input answer.

        Raises:
            ScoringError: Wrapping the first LexError, ParseError,
                EvalError or BindingError, with the answer's index and id.
        """
        if isinstance(answers, Session):
            session_id = answers.id if session_id is None else session_id
            answers = answers.answers

        scored = []
        for index, answer in enumerate(answers):
            try:
                scored.append(self.score_answer(answer))
            except FormulaError as e:
                answer_id = answer.id if isinstance(answer, Answer) else None
                logger.warning(
                    "Session %s aborted at answer #%d (id=%s): %s",
                    session_id, index, answer_id, e,
                )
                raise ScoringError(index, answer_id, e) from e

        result = SessionScore(answers=tuple(scored), session_id=session_id)
        logger.info(
            "Scored session %s: %d answers, total=%s",
            session_id, len(scored), result.total,
        )
        return result


_default_engine = ScoringEngine()


def evaluate_formula(formula: str, bindings: Mapping[str, float]) -> float:
    """Evaluate one formula with the default registry and limits."""
    return _default_engine.evaluate(formula, bindings)


def score_session(answers: Union[Session, Iterable[ScorableAnswer]]) -> SessionScore:
    """Score a session with the default registry and limits."""
    if not isinstance(answers, Session):
        answers = list(answers)
    return _default_engine.score_session(answers)


__all__ = [
    "AnswerScore",
    "ScoringEngine",
    "SessionScore",
    "evaluate_formula",
    "score_session",
]
