"""Property-based tests using Hypothesis.

Tests universal invariants that should hold for ANY valid input:
- Default functions agree with the math module
- round() ties away from zero and lands within 0.5 of its input
- Session totals are the in-order sum of the answer scores
- Evaluation is deterministic
- Formatting an AST and reparsing it is lossless
- Sealed envelopes open to the sealed payload, and nothing else does
"""

from __future__ import annotations

import math

from hypothesis import assume, given, settings
from hypothesis import strategies as st

from surveyscore.envelope import Envelope, EnvelopeSigner
from surveyscore.errors import IntegrityError, IntegrityErrorKind
from surveyscore.evaluator import evaluate
from surveyscore.expressions import (
    BinaryExpression,
    BinaryOperator,
    FunctionCall,
    NumberLiteral,
    UnaryExpression,
    UnaryOperator,
    VariableReference,
)
from surveyscore.functions import round_half_away_from_zero
from surveyscore.parser import parse_formula
from surveyscore.scoring import ScoringEngine
from surveyscore.serialization import format_expression

# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

finite_values = st.floats(min_value=-1e6, max_value=1e6, allow_nan=False, allow_infinity=False)

small_ints = st.integers(min_value=-1000, max_value=1000)

variable_names = st.sampled_from(["x", "y", "n", "dist", "_tmp", "a1"])

# Non-negative literals only: the parser never produces a negative literal
literals = st.floats(min_value=0.0, max_value=1e9, allow_nan=False, allow_infinity=False).map(NumberLiteral)

leaves = st.one_of(literals, variable_names.map(VariableReference))

expressions = st.recursive(
    leaves,
    lambda children: st.one_of(
        st.builds(BinaryExpression, st.sampled_from(list(BinaryOperator)), children, children),
        st.builds(UnaryExpression, st.just(UnaryOperator.NEGATE), children),
        st.builds(
            FunctionCall,
            st.sampled_from(["floor", "ceil", "round", "sin"]),
            st.tuples(children),
        ),
    ),
    max_leaves=12,
)

json_payloads = st.recursive(
    st.one_of(
        st.none(),
        st.booleans(),
        st.integers(min_value=-(2 ** 53), max_value=2 ** 53),
        finite_values,
        st.text(max_size=20),
    ),
    lambda children: st.one_of(
        st.lists(children, max_size=5),
        st.dictionaries(st.text(max_size=10), children, max_size=5),
    ),
    max_leaves=20,
)


# ---------------------------------------------------------------------------
# Function properties
# ---------------------------------------------------------------------------

class TestFunctionProperties:

    @given(x=finite_values)
    def test_floor_ceil_match_math(self, x):
        assert evaluate(parse_formula("floor(x)"), {"x": x}) == math.floor(x)
        assert evaluate(parse_formula("ceil(x)"), {"x": x}) == math.ceil(x)

    @given(x=finite_values)
    def test_sin_matches_math(self, x):
        assert evaluate(parse_formula("sin(x)"), {"x": x}) == math.sin(x)

    @given(x=finite_values)
    def test_round_is_integral_and_close(self, x):
        r = round_half_away_from_zero(x)
        assert r.is_integer()
        assert abs(r - x) <= 0.5

    @given(n=small_ints)
    def test_round_ties_away_from_zero(self, n):
        tie = n + math.copysign(0.5, n) if n != 0 else 0.5
        expected = n + math.copysign(1.0, n) if n != 0 else 1.0
        assert round_half_away_from_zero(tie) == expected
        assert round_half_away_from_zero(-tie) == -expected

    @given(x=finite_values)
    def test_round_is_odd(self, x):
        assert round_half_away_from_zero(-x) == -round_half_away_from_zero(x)


# ---------------------------------------------------------------------------
# Aggregation properties
# ---------------------------------------------------------------------------

class TestAggregationProperties:

    @given(values=st.lists(finite_values, max_size=20))
    def test_total_is_in_order_sum(self, values):
        engine = ScoringEngine()
        answers = [("v", {"v": v}) for v in values]
        result = engine.score_session(answers)
        expected = 0.0
        for v in values:
            expected += v
        assert result.total == expected
        assert result.scores == [float(v) for v in values]

    @given(a=finite_values, b=finite_values)
    def test_two_answer_additivity(self, a, b):
        engine = ScoringEngine()
        result = engine.score_session([("x * 2", {"x": a}), ("floor(y)", {"y": b})])
        assert result.total == engine.evaluate("x * 2", {"x": a}) + engine.evaluate("floor(y)", {"y": b})


# ---------------------------------------------------------------------------
# Expression properties
# ---------------------------------------------------------------------------

class TestExpressionProperties:

    @given(expr=expressions)
    @settings(max_examples=200)
    def test_format_then_parse_is_identity(self, expr):
        assert parse_formula(format_expression(expr), max_depth=150) == expr

    @given(expr=expressions, x=finite_values, y=finite_values)
    def test_evaluation_is_deterministic(self, expr, x, y):
        bindings = {"x": x, "y": y, "n": 1.0, "dist": 2.0, "_tmp": 3.0, "a1": 4.0}
        try:
            first = evaluate(expr, bindings)
        except Exception as e:
            # Failures must be deterministic too
            try:
                evaluate(expr, bindings)
            except Exception as again:
                assert type(again) is type(e)
                assert str(again) == str(e)
            else:
                raise AssertionError("second evaluation unexpectedly succeeded")
            return
        second = evaluate(expr, bindings)
        assert first.hex() == second.hex()
        assert math.isfinite(first)


# ---------------------------------------------------------------------------
# Envelope properties
# ---------------------------------------------------------------------------

class TestEnvelopeProperties:

    signer = EnvelopeSigner("property-test-key")

    @given(payload=json_payloads)
    def test_seal_open_roundtrip(self, payload):
        assert self.signer.open(self.signer.seal(payload)) == payload

    @given(payload=json_payloads)
    def test_token_roundtrip(self, payload):
        token = self.signer.seal(payload).to_token()
        assert self.signer.open_token(token) == payload

    @given(payload=json_payloads, data=st.data())
    def test_any_flipped_payload_bit_rejected(self, payload, data):
        envelope = self.signer.seal(payload)
        index = data.draw(st.integers(min_value=0, max_value=len(envelope.payload) - 1))
        bit = data.draw(st.integers(min_value=0, max_value=7))
        mutated = bytearray(envelope.payload)
        mutated[index] ^= 1 << bit
        try:
            self.signer.open(Envelope(bytes(mutated), envelope.mac))
        except IntegrityError as e:
            assert e.kind == IntegrityErrorKind.SIGNATURE_MISMATCH
        else:
            raise AssertionError("tampered envelope was accepted")

    @given(payload=json_payloads, key=st.binary(min_size=1, max_size=64))
    def test_other_keys_rejected(self, payload, key):
        assume(key != b"property-test-key")
        envelope = EnvelopeSigner(key).seal(payload)
        try:
            self.signer.open(envelope)
        except IntegrityError as e:
            assert e.kind == IntegrityErrorKind.SIGNATURE_MISMATCH
        else:
            raise AssertionError("envelope signed with another key was accepted")
