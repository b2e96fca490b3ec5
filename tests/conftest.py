"""Shared test fixtures for surveyscore."""

from __future__ import annotations

import pytest

from surveyscore.envelope import EnvelopeSigner
from surveyscore.examples import build_example_questionnaire, build_example_session
from surveyscore.model import Questionnaire, Session
from surveyscore.scoring import ScoringEngine

TEST_SIGNING_KEY = "test-signing-key-0123456789"


@pytest.fixture
def signer() -> EnvelopeSigner:
    """Signer built through the same constructor production code uses."""
    return EnvelopeSigner(TEST_SIGNING_KEY)


@pytest.fixture
def engine() -> ScoringEngine:
    return ScoringEngine()


@pytest.fixture
def questionnaire() -> Questionnaire:
    return build_example_questionnaire()


@pytest.fixture
def example_session(questionnaire: Questionnaire) -> Session:
    return build_example_session(questionnaire)


@pytest.fixture
def reference_answers() -> list:
    """The reference (formula, bindings) triple that totals -7."""
    return [
        ("floor(40 / n) * dist", {"n": 5.0, "dist": 3.0}),
        ("round(sin(x * y) / 2)", {"x": 3.5, "y": -2.5}),
        ("-1 * ceil(0.3 * x)", {"x": 100.001}),
    ]
