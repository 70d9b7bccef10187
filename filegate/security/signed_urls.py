"""Issue and verify signed file URLs.

Contract:
- Issuance validates the request into a ``GrantInput`` before any codec call
  and raises ``InvalidGrantError`` on bad input. It never touches storage;
  existence checks belong to the caller.
- Verification never raises for malformed, tampered or expired tokens. It
  returns a ``VerificationResult`` that callers branch on (403 vs 410).
- The signature is checked before any payload field is read, and an invalid
  result carries no grant fields.
"""
from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog
from flask import current_app

from .errors import InvalidGrantError, MalformedTokenError
from .token_codec import ACTIONS, AccessGrant, TokenCodec

logger = structlog.get_logger(__name__)

EXTENSION_KEY = "filegate.signed_urls"

MS_PER_MINUTE = 60_000


def _now_ms() -> int:
    return int(time.time() * 1000)


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _require_id(
    data: Mapping[str, Any], camel: str, snake: str, strip: bool = True
) -> str:
    value = _pick(data, camel, snake)
    if value is None or isinstance(value, (bool, dict, list)):
        raise InvalidGrantError(f"Missing required field: {camel}")
    value = str(value)
    if not value.strip():
        raise InvalidGrantError(f"Missing required field: {camel}")
    # Filenames are kept verbatim, ids are trimmed
    return value.strip() if strip else value


def validate_expires_in(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidGrantError("expiresInMinutes must be a positive integer")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or value <= 0:
        raise InvalidGrantError("expiresInMinutes must be a positive integer")
    return value


def validate_action(value: Any) -> str:
    if value is None:
        return "view"
    if value not in ACTIONS:
        raise InvalidGrantError("action must be 'view' or 'download'")
    return value


@dataclass(frozen=True)
class GrantInput:
    """An accepted issuance request."""

    tenant_id: str
    scope: str
    owner_id: str
    filename: str
    action: str = "view"
    expires_in_minutes: int | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "GrantInput":
        """Validate a loose request body (camelCase or snake_case keys)."""
        if not isinstance(data, Mapping):
            raise InvalidGrantError("Request body must be an object")
        return cls(
            tenant_id=_require_id(data, "tenantId", "tenant_id"),
            scope=_require_id(data, "scope", "scope"),
            owner_id=_require_id(data, "ownerId", "owner_id"),
            filename=_require_id(data, "filename", "filename", strip=False),
            action=validate_action(data.get("action")),
            expires_in_minutes=validate_expires_in(
                _pick(data, "expiresInMinutes", "expires_in_minutes")
            ),
        )


@dataclass(frozen=True)
class SignedUrl:
    url: str
    expires_at: int
    token: str = field(repr=False)


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    expired: bool = False
    tenant_id: str | None = None
    scope: str | None = None
    owner_id: str | None = None
    filename: str | None = None
    action: str | None = None
    expires_at: int | None = None

    @classmethod
    def ok(cls, grant: AccessGrant) -> "VerificationResult":
        return cls(
            valid=True,
            expired=False,
            tenant_id=grant.tenant_id,
            scope=grant.scope,
            owner_id=grant.owner_id,
            filename=grant.filename,
            action=grant.action,
            expires_at=grant.expires_at,
        )

    @classmethod
    def invalid(cls) -> "VerificationResult":
        return cls(valid=False, expired=False)

    @classmethod
    def expired_grant(cls) -> "VerificationResult":
        return cls(valid=False, expired=True)

    def to_dict(self) -> dict[str, Any]:
        if not self.valid:
            return {"valid": False, "expired": self.expired}
        return {
            "valid": True,
            "expired": False,
            "tenantId": self.tenant_id,
            "scope": self.scope,
            "ownerId": self.owner_id,
            "filename": self.filename,
            "action": self.action,
        }


class SignedUrlService:
    """Issue and verify ``/files/secure/<token>`` URLs.

    Stateless apart from its read-only codec and settings, so one instance is
    shared by every request.
    """

    def __init__(
        self,
        codec: TokenCodec,
        default_ttl_minutes: int = 60,
        upload_ttl_minutes: int = 1440,
        url_prefix: str = "/files/secure",
        clock: Callable[[], int] | None = None,
    ):
        self.codec = codec
        self.default_ttl_minutes = int(default_ttl_minutes)
        self.upload_ttl_minutes = int(upload_ttl_minutes)
        self.url_prefix = "/" + url_prefix.strip("/")
        self._clock = clock or _now_ms

    def now_ms(self) -> int:
        return int(self._clock())

    def generate_signed_url(
        self,
        grant_input: GrantInput | Mapping[str, Any],
        expires_in_minutes: int | None = None,
        action: str | None = None,
        default_ttl_minutes: int | None = None,
    ) -> SignedUrl:
        """Sign a grant for ``grant_input``; explicit arguments override its fields."""
        if not isinstance(grant_input, GrantInput):
            grant_input = GrantInput.from_mapping(grant_input)
        minutes = validate_expires_in(expires_in_minutes)
        if minutes is None:
            minutes = grant_input.expires_in_minutes
        if minutes is None:
            minutes = default_ttl_minutes or self.default_ttl_minutes
        action = validate_action(action or grant_input.action)

        issued_at = self.now_ms()
        try:
            grant = AccessGrant(
                tenant_id=grant_input.tenant_id,
                scope=grant_input.scope,
                owner_id=grant_input.owner_id,
                filename=grant_input.filename,
                action=action,
                issued_at=issued_at,
                expires_at=issued_at + minutes * MS_PER_MINUTE,
            )
        except ValueError as e:
            raise InvalidGrantError(str(e)) from e

        token = self.codec.encode(grant)
        return SignedUrl(
            url=f"{self.url_prefix}/{token}", expires_at=grant.expires_at, token=token
        )

    def generate_upload_url(
        self, grant_input: GrantInput | Mapping[str, Any], **kwargs
    ) -> SignedUrl:
        kwargs.setdefault("default_ttl_minutes", self.upload_ttl_minutes)
        return self.generate_signed_url(grant_input, **kwargs)

    def verify_signed_url(self, token: Any) -> VerificationResult:
        try:
            payload_segment, signature_segment = self.codec.split(token)
        except MalformedTokenError:
            return VerificationResult.invalid()

        if not self.codec.verify_signature(payload_segment, signature_segment):
            return VerificationResult.invalid()

        try:
            grant = AccessGrant.from_payload(self.codec.decode_payload(payload_segment))
        except MalformedTokenError:
            # Signed by us but unreadable: deny rather than guess
            logger.warning("signed_url_undecodable_payload")
            return VerificationResult.invalid()

        if self.now_ms() > grant.expires_at:
            return VerificationResult.expired_grant()
        return VerificationResult.ok(grant)

    def get_time_remaining(self, expires_at: int) -> int:
        """Whole seconds until ``expires_at`` (epoch ms), never negative."""
        remaining_ms = int(expires_at) - self.now_ms()
        return max(0, remaining_ms // 1000)

    def token_from_url(self, url: str | None) -> str | None:
        if not url:
            return None
        path = url.split("?", 1)[0].split("#", 1)[0]
        marker = "/secure/"
        idx = path.find(marker)
        if idx == -1:
            return None
        return path[idx + len(marker) :] or None


def build_signed_url_service(config: Mapping[str, Any]) -> SignedUrlService:
    """Construct the process-wide service from Flask config."""
    key = config.get("FILE_SIGNING_KEY") or config.get("SECRET_KEY")
    return SignedUrlService(
        TokenCodec(key),
        default_ttl_minutes=config.get("SIGNED_URL_DEFAULT_TTL_MINUTES", 60),
        upload_ttl_minutes=config.get("SIGNED_URL_UPLOAD_TTL_MINUTES", 1440),
        url_prefix=config.get("SIGNED_URL_PREFIX", "/files/secure"),
    )


def init_signed_urls(app) -> SignedUrlService:
    service = build_signed_url_service(app.config)
    app.extensions[EXTENSION_KEY] = service
    return service


def signed_url_service() -> SignedUrlService:
    """Return the service bound to the current app."""
    service = current_app.extensions.get(EXTENSION_KEY)
    if service is None:
        service = init_signed_urls(current_app)
    return service
