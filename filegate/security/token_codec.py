"""Compact, URL-safe signed tokens describing a file access grant.

Token format::

    base64url(canonical-json-payload) + "." + base64url(hmac-sha256(payload-segment))

Both segments are base64url without padding, so neither can contain ".".
The signature covers the *encoded* payload segment, never the decoded
struct; the JSON serialization is therefore fixed (sorted keys, no
whitespace) and used identically when signing and verifying.
"""
from __future__ import annotations

import base64
import binascii
import hmac
import json
from dataclasses import dataclass
from hashlib import sha256
from typing import Any

from .errors import MalformedTokenError

ACTIONS = ("view", "download")

_LOCATION_FIELDS = ("tenantId", "scope", "ownerId", "filename")


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(segment: str) -> bytes:
    """Decode unpadded base64url; raises ValueError on anything outside the alphabet."""
    if not isinstance(segment, str):
        raise ValueError("segment must be a string")
    if "+" in segment or "/" in segment:
        raise ValueError("segment is not base64url")
    padding = "=" * (-len(segment) % 4)
    try:
        return base64.b64decode(
            (segment + padding).encode("ascii"), altchars=b"-_", validate=True
        )
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ValueError(str(e)) from e


@dataclass(frozen=True)
class AccessGrant:
    """What a token authorizes. Timestamps are epoch milliseconds."""

    tenant_id: str
    scope: str
    owner_id: str
    filename: str
    action: str
    issued_at: int
    expires_at: int

    def __post_init__(self):
        for name in ("tenant_id", "scope", "owner_id", "filename"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise ValueError(f"{name} must be a non-empty string")
        if self.action not in ACTIONS:
            raise ValueError(f"action must be one of {ACTIONS}")
        for name in ("issued_at", "expires_at"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer timestamp")
        if self.expires_at <= self.issued_at:
            raise ValueError("expires_at must be later than issued_at")

    def to_payload(self) -> dict[str, Any]:
        return {
            "tenantId": self.tenant_id,
            "scope": self.scope,
            "ownerId": self.owner_id,
            "filename": self.filename,
            "action": self.action,
            "issuedAt": self.issued_at,
            "expiresAt": self.expires_at,
        }

    @classmethod
    def from_payload(cls, payload: Any) -> "AccessGrant":
        if not isinstance(payload, dict):
            raise MalformedTokenError("Token payload is not an object")
        missing = [
            k
            for k in (*_LOCATION_FIELDS, "action", "issuedAt", "expiresAt")
            if k not in payload
        ]
        if missing:
            raise MalformedTokenError(
                f"Token payload is missing fields: {', '.join(missing)}"
            )
        try:
            return cls(
                tenant_id=payload["tenantId"],
                scope=payload["scope"],
                owner_id=payload["ownerId"],
                filename=payload["filename"],
                action=payload["action"],
                issued_at=payload["issuedAt"],
                expires_at=payload["expiresAt"],
            )
        except ValueError as e:
            raise MalformedTokenError(f"Token payload is invalid: {e}") from e


def canonical_json(payload: dict[str, Any]) -> bytes:
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


class TokenCodec:
    """Encode, decode and sign access grants with a process-wide secret.

    The secret is read-only after construction and is never part of repr(),
    log output or exception messages.
    """

    __slots__ = ("_key",)

    def __init__(self, secret: str | bytes):
        if not secret:
            raise RuntimeError("No signing key configured")
        self._key = secret if isinstance(secret, bytes) else str(secret).encode("utf-8")

    def __repr__(self) -> str:
        return "TokenCodec(secret=***)"

    def _sign(self, payload_segment: str) -> str:
        digest = hmac.new(self._key, payload_segment.encode("ascii"), sha256).digest()
        return b64url_encode(digest)

    def encode(self, grant: AccessGrant) -> str:
        payload_segment = b64url_encode(canonical_json(grant.to_payload()))
        return f"{payload_segment}.{self._sign(payload_segment)}"

    @staticmethod
    def split(token: str) -> tuple[str, str]:
        """Split on the first "." only; both halves must be non-empty."""
        if not isinstance(token, str) or "." not in token:
            raise MalformedTokenError("Token must have a payload and a signature")
        payload_segment, signature_segment = token.split(".", 1)
        if not payload_segment or not signature_segment or "." in signature_segment:
            raise MalformedTokenError("Token must have exactly two segments")
        return payload_segment, signature_segment

    @staticmethod
    def decode_payload(payload_segment: str) -> dict[str, Any]:
        """Decode a payload segment without checking any signature."""
        try:
            raw = b64url_decode(payload_segment)
            payload = json.loads(raw.decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as e:
            raise MalformedTokenError("Token payload could not be decoded") from e
        if not isinstance(payload, dict):
            raise MalformedTokenError("Token payload is not an object")
        return payload

    def decode(self, token: str) -> AccessGrant:
        payload_segment, _signature = self.split(token)
        return AccessGrant.from_payload(self.decode_payload(payload_segment))

    def verify_signature(self, payload_segment: str, signature_segment: str) -> bool:
        # Compared as text: lenient base64 would accept non-canonical trailing bits
        try:
            expected = self._sign(payload_segment).encode("ascii")
            provided = str(signature_segment).encode("utf-8")
        except UnicodeEncodeError:
            return False
        return hmac.compare_digest(provided, expected)
