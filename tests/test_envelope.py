"""
Tests for the signed envelope.

These tests verify:
    - seal/open round trip for JSON payloads and session scores
    - Any single flipped byte is rejected with SignatureMismatch
    - Malformed envelopes and tokens are rejected with Malformed
    - The canonical encoding is stable
"""

from __future__ import annotations

import logging

import pytest

from surveyscore.config import EnvelopeConfig, ScoringConfig
from surveyscore.envelope import ALGORITHM, Envelope, EnvelopeSigner
from surveyscore.errors import IntegrityError, IntegrityErrorKind


def flip(data: bytes, index: int) -> bytes:
    mutated = bytearray(data)
    mutated[index] ^= 0x01
    return bytes(mutated)


class TestRoundTrip:
    """Test that sealed payloads open to equal values."""

    @pytest.mark.parametrize("payload", [
        {"total": -7.0, "scores": [24.0, 0.0, -31.0]},
        [1, 2, 3],
        "plain string",
        {"unicode": "énergie ⚡", "nested": {"b": [None, True, False]}},
        0,
        None,
    ])
    def test_open_returns_payload(self, signer, payload):
        assert signer.open(signer.seal(payload)) == payload

    def test_token_round_trip(self, signer):
        token = signer.seal({"total": -7.0}).to_token()
        assert token.startswith(ALGORITHM + ".")
        assert signer.open_token(token) == {"total": -7.0}

    def test_session_score_round_trip(self, signer, engine, example_session):
        score = engine.score_session(example_session)
        restored = signer.open_session_score(signer.seal_session_score(score))
        assert restored == score
        assert restored.total == pytest.approx(-7.0, abs=1e-7)

    def test_seal_is_deterministic(self, signer):
        a = signer.seal({"b": 1, "a": [1, 2]})
        b = signer.seal({"a": [1, 2], "b": 1})
        assert a == b

    def test_str_and_bytes_keys_agree(self):
        assert EnvelopeSigner("k3y").seal([1]) == EnvelopeSigner(b"k3y").seal([1])


class TestCanonicalEncoding:
    """The encoding is part of the wire contract."""

    def test_exact_bytes(self, signer):
        envelope = signer.seal({"b": [1, 2.5], "a": "é"})
        assert envelope.payload == '{"a":"é","b":[1,2.5]}'.encode("utf-8")

    def test_nan_rejected(self, signer):
        with pytest.raises(ValueError):
            signer.seal({"x": float("nan")})

    def test_non_json_rejected(self, signer):
        with pytest.raises(TypeError):
            signer.seal({"x": object()})

    @pytest.mark.parametrize("payload", [
        {1: "a"},
        {1.5: "a"},
        {True: "a"},
        {None: "a"},
        {"a": 1, 2: "b"},
        {"nested": [{"ok": {3: "no"}}]},
    ])
    def test_non_string_keys_rejected(self, signer, payload):
        """Keys would come back as strings, so the payload could not round-trip."""
        with pytest.raises(TypeError):
            signer.seal(payload)


class TestTampering:
    """Test that any modification is detected."""

    def test_every_payload_byte_flip_rejected(self, signer):
        envelope = signer.seal({"total": -7.0, "session": "s-1"})
        for i in range(len(envelope.payload)):
            tampered = Envelope(flip(envelope.payload, i), envelope.mac, envelope.algorithm)
            with pytest.raises(IntegrityError) as exc_info:
                signer.open(tampered)
            assert exc_info.value.kind == IntegrityErrorKind.SIGNATURE_MISMATCH

    def test_every_mac_byte_flip_rejected(self, signer):
        envelope = signer.seal([1, 2, 3])
        for i in range(len(envelope.mac)):
            tampered = Envelope(envelope.payload, flip(envelope.mac, i), envelope.algorithm)
            with pytest.raises(IntegrityError) as exc_info:
                signer.open(tampered)
            assert exc_info.value.kind == IntegrityErrorKind.SIGNATURE_MISMATCH

    def test_wrong_key_rejected(self, signer):
        envelope = EnvelopeSigner("another-key").seal({"total": 1.0})
        with pytest.raises(IntegrityError) as exc_info:
            signer.open(envelope)
        assert exc_info.value.kind == IntegrityErrorKind.SIGNATURE_MISMATCH

    def test_truncated_mac_rejected(self, signer):
        envelope = signer.seal({"total": 1.0})
        with pytest.raises(IntegrityError) as exc_info:
            signer.open(Envelope(envelope.payload, envelope.mac[:-1]))
        assert exc_info.value.kind == IntegrityErrorKind.SIGNATURE_MISMATCH

    def test_rejection_is_logged(self, signer, caplog):
        envelope = signer.seal({"total": 1.0})
        with caplog.at_level(logging.WARNING, logger="surveyscore.envelope"):
            with pytest.raises(IntegrityError):
                signer.open(Envelope(flip(envelope.payload, 0), envelope.mac))
        assert "signature mismatch" in caplog.text


class TestMalformed:
    """Test rejection of envelopes that cannot be verified at all."""

    def test_unknown_algorithm(self, signer):
        envelope = signer.seal({"total": 1.0})
        with pytest.raises(IntegrityError) as exc_info:
            signer.open(Envelope(envelope.payload, envelope.mac, "HS512-CJ9"))
        assert exc_info.value.kind == IntegrityErrorKind.MALFORMED

    @pytest.mark.parametrize("token, kind", [
        ("", IntegrityErrorKind.MALFORMED),
        ("HS256-CJ1", IntegrityErrorKind.MALFORMED),
        ("HS256-CJ1.abc", IntegrityErrorKind.MALFORMED),
        ("HS256-CJ1.a.b.c", IntegrityErrorKind.MALFORMED),
        ("HS256-CJ1.a.b", IntegrityErrorKind.MALFORMED),
        ("HS256-CJ1.e30.AAAA", IntegrityErrorKind.SIGNATURE_MISMATCH),
    ])
    def test_bad_tokens(self, signer, token, kind):
        with pytest.raises(IntegrityError) as exc_info:
            signer.open_token(token)
        assert exc_info.value.kind == kind

    @pytest.mark.parametrize("junk", ["!!*", "+", "/", " ", "=", "é"])
    def test_characters_outside_base64url_rejected(self, signer, junk):
        algorithm, payload, mac = signer.seal({"total": -7.0}).to_token().split(".")
        token = ".".join([algorithm, payload[:4] + junk + payload[4:], mac])
        with pytest.raises(IntegrityError) as exc_info:
            signer.open_token(token)
        assert exc_info.value.kind == IntegrityErrorKind.MALFORMED

    def test_junk_in_mac_segment_rejected(self, signer):
        algorithm, payload, mac = signer.seal([1]).to_token().split(".")
        with pytest.raises(IntegrityError) as exc_info:
            signer.open_token(".".join([algorithm, payload, mac + "!"]))
        assert exc_info.value.kind == IntegrityErrorKind.MALFORMED

    def test_padded_segment_rejected(self, signer):
        # '{"a":1}' is 7 bytes, so its standard encoding ends in "=="
        algorithm, payload, mac = signer.seal({"a": 1}).to_token().split(".")
        assert len(payload) == 10
        with pytest.raises(IntegrityError) as exc_info:
            signer.open_token(".".join([algorithm, payload + "==", mac]))
        assert exc_info.value.kind == IntegrityErrorKind.MALFORMED

    def test_non_canonical_trailing_bits_rejected(self):
        """'e31' decodes to the same bytes as 'e30' but is not its encoding."""
        with pytest.raises(IntegrityError) as exc_info:
            Envelope.from_token("HS256-CJ1.e31.AAAA")
        assert exc_info.value.kind == IntegrityErrorKind.MALFORMED

    def test_each_envelope_has_one_token(self, signer):
        envelope = signer.seal({"total": -7.0})
        assert Envelope.from_token(envelope.to_token()) == envelope

    def test_wrong_segment_count_is_malformed(self):
        with pytest.raises(IntegrityError) as exc_info:
            Envelope.from_token("only.two")
        assert exc_info.value.kind == IntegrityErrorKind.MALFORMED

    def test_invalid_base64_is_malformed(self):
        with pytest.raises(IntegrityError) as exc_info:
            Envelope.from_token("HS256-CJ1.a.AAAA")
        assert exc_info.value.kind == IntegrityErrorKind.MALFORMED

    def test_not_an_envelope(self, signer):
        with pytest.raises(IntegrityError) as exc_info:
            signer.open({"payload": b"{}", "mac": b""})
        assert exc_info.value.kind == IntegrityErrorKind.MALFORMED

    def test_signed_non_json_payload_is_malformed(self, signer):
        """A correctly signed payload that is not JSON is still never returned."""
        raw = b"\xff\xfe not json"
        envelope = Envelope(raw, signer._mac(raw))
        with pytest.raises(IntegrityError) as exc_info:
            signer.open(envelope)
        assert exc_info.value.kind == IntegrityErrorKind.MALFORMED

    def test_signed_payload_that_is_not_a_session_score(self, signer):
        envelope = signer.seal({"unexpected": True, "answers": [{"value": 1.0}]})
        with pytest.raises(IntegrityError) as exc_info:
            signer.open_session_score(envelope)
        assert exc_info.value.kind == IntegrityErrorKind.MALFORMED

    def test_inconsistent_total_is_malformed(self, signer):
        envelope = signer.seal({"answers": [{"formula": "1", "value": 1.0}], "total": 2.0})
        with pytest.raises(IntegrityError) as exc_info:
            signer.open_session_score(envelope)
        assert exc_info.value.kind == IntegrityErrorKind.MALFORMED


class TestKeyHandling:
    """Test key injection."""

    def test_empty_key_rejected(self):
        with pytest.raises(ValueError):
            EnvelopeSigner("")

    def test_from_config(self):
        config = ScoringConfig(envelope=EnvelopeConfig(signing_key="from-config"))
        signer = EnvelopeSigner.from_config(config)
        assert signer.open(EnvelopeSigner("from-config").seal([1])) == [1]

    def test_from_default_config_fails_without_key(self):
        with pytest.raises(ValueError):
            EnvelopeSigner.from_config(ScoringConfig())

    def test_repr_hides_key(self, signer):
        assert "test-signing-key" not in repr(signer)
