"""
Signed envelope for handing results to an untrusted party.

A payload is encoded as canonical JSON bytes and signed with
HMAC-SHA256 under a shared secret. The issuing process can later verify
an envelope it receives back without any server-side lookup.

Wire form (``Envelope.to_token``)::

    HS256-CJ1.<base64url payload>.<base64url mac>

The algorithm tag names both the MAC (HMAC-SHA256) and the payload
encoding (canonical-json-v1). Any change to either needs a new tag;
envelopes issued under the old tag then stop verifying.

Verification is all-or-nothing: a mismatch or a malformed envelope
raises IntegrityError and no part of the payload is returned.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from typing import Any, Union

from surveyscore.config import ScoringConfig
from surveyscore.errors import IntegrityError, IntegrityErrorKind
from surveyscore.scoring import SessionScore
from surveyscore.serialization import canonical_json, session_score_from_dict, session_score_to_dict

logger = logging.getLogger(__name__)

ALGORITHM = "HS256-CJ1"
_DIGEST = hashlib.sha256


@dataclass(frozen=True)
class Envelope:
    """
    A payload and the MAC that vouches for it.

    Properties:
        payload: Canonical payload bytes
        mac: HMAC over ``payload``
        algorithm: Tag naming the MAC and the payload encoding
    """

    payload: bytes
    mac: bytes
    algorithm: str = ALGORITHM

    def to_token(self) -> str:
        return ".".join([self.algorithm, _b64encode(self.payload), _b64encode(self.mac)])

    @classmethod
    def from_token(cls, token: str) -> Envelope:
        """
        Parse the wire form produced by ``to_token``.

        Raises:
            IntegrityError(MALFORMED): On a wrong segment count or bad base64
        """
        if not isinstance(token, str):
            raise IntegrityError(IntegrityErrorKind.MALFORMED, "Envelope token must be a string")
        parts = token.split(".")
        if len(parts) != 3:
            raise IntegrityError(
                IntegrityErrorKind.MALFORMED,
                f"Envelope token must have 3 segments, got {len(parts)}",
            )
        algorithm, payload, mac = parts
        return cls(payload=_b64decode(payload), mac=_b64decode(mac), algorithm=algorithm)


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64decode(segment: str) -> bytes:
    padded = segment + "=" * (-len(segment) % 4)
    try:
        data = base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
    except (binascii.Error, UnicodeEncodeError, ValueError) as e:
        raise IntegrityError(IntegrityErrorKind.MALFORMED, f"Invalid base64 segment: {e}") from e
    # Exactly one spelling per byte string: no padding, no stray trailing bits
    if _b64encode(data) != segment:
        raise IntegrityError(IntegrityErrorKind.MALFORMED, "Non-canonical base64 segment")
    return data


class EnvelopeSigner:
    """
    Seals payloads into envelopes and opens them again.

    The key is injected at construction and never changes for the
    lifetime of the signer. Rotating it means building a new signer.

    Usage::

        signer = EnvelopeSigner.from_config(load_config())
        token = signer.seal({"total": -7.0}).to_token()
        payload = signer.open(Envelope.from_token(token))
    """

    def __init__(self, key: Union[bytes, str]):
        if isinstance(key, str):
            key = key.encode("utf-8")
        if not key:
            raise ValueError("Signing key must not be empty")
        self._key = bytes(key)

    @classmethod
    def from_config(cls, config: ScoringConfig) -> EnvelopeSigner:
        return cls(config.envelope.signing_key.get_secret_value())

    def __repr__(self) -> str:
        return f"EnvelopeSigner(algorithm={ALGORITHM!r})"

    def _mac(self, payload: bytes) -> bytes:
        return hmac.new(self._key, payload, _DIGEST).digest()

    def seal(self, payload: Any) -> Envelope:
        """
        Encode and sign a JSON-compatible payload.

        Tuples come back as lists after ``open``; everything else
        round-trips to an equal value.

        Raises:
            TypeError, ValueError: If the payload cannot be canonically encoded
        """
        data = canonical_json(payload)
        return Envelope(payload=data, mac=self._mac(data), algorithm=ALGORITHM)

    def open(self, envelope: Envelope) -> Any:
        """
        Verify an envelope and return its payload.

        Raises:
            IntegrityError(MALFORMED): Unknown algorithm tag or undecodable payload
            IntegrityError(SIGNATURE_MISMATCH): MAC does not match the payload
        """
        if not isinstance(envelope, Envelope):
            raise IntegrityError(IntegrityErrorKind.MALFORMED, "Not an envelope")
        if envelope.algorithm != ALGORITHM:
            logger.warning("Rejected envelope with unknown algorithm %r", envelope.algorithm)
            raise IntegrityError(
                IntegrityErrorKind.MALFORMED,
                f"Unsupported envelope algorithm: {envelope.algorithm!r}",
            )
        if not isinstance(envelope.payload, bytes) or not isinstance(envelope.mac, bytes):
            raise IntegrityError(IntegrityErrorKind.MALFORMED, "Envelope fields must be bytes")

        expected = self._mac(envelope.payload)
        if not hmac.compare_digest(expected, envelope.mac):
            logger.warning("Rejected envelope: signature mismatch")
            raise IntegrityError(IntegrityErrorKind.SIGNATURE_MISMATCH, "Envelope signature mismatch")

        try:
            return json.loads(envelope.payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise IntegrityError(IntegrityErrorKind.MALFORMED, f"Envelope payload is not canonical JSON: {e}") from e

    def open_token(self, token: str) -> Any:
        return self.open(Envelope.from_token(token))

    def seal_session_score(self, score: SessionScore) -> Envelope:
        return self.seal(session_score_to_dict(score))

    def open_session_score(self, envelope: Envelope) -> SessionScore:
        """
        Verify an envelope holding a SessionScore.

        Raises:
            IntegrityError: On verification failure, or if the verified
                payload does not describe a SessionScore
        """
        payload = self.open(envelope)
        try:
            return session_score_from_dict(payload)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise IntegrityError(IntegrityErrorKind.MALFORMED, f"Payload is not a session score: {e}") from e


__all__ = [
    "ALGORITHM",
    "Envelope",
    "EnvelopeSigner",
]
