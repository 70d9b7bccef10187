"""Move clients from legacy ``?token=`` file links to signed URLs.

Two URL shapes are understood:

- legacy: ``.../uploads/{tenantId}/{scope}/{ownerId}/{filename}?token=<jwt>``
- signed: ``.../files/secure/{payload}.{signature}``

Conversion is best-effort and never raises: any failure yields a
``ConversionResult`` that keeps the original URL, with a ``reason`` saying
why. A converted URL is not a legacy URL, so converting twice is the same as
converting once.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Optional
from urllib.parse import unquote

import structlog

from filegate.security.errors import MalformedTokenError
from filegate.security.token_codec import TokenCodec

logger = structlog.get_logger(__name__)

LEGACY_MARKERS = ("?token=", "&token=")
SIGNED_MARKER = "/files/secure/"


@dataclass(frozen=True)
class GrantFields:
    """Where a file lives; enough to request a fresh signed URL."""

    tenant_id: str
    scope: str
    owner_id: str
    filename: str

    def as_issuance_payload(self) -> dict:
        return {
            "tenantId": self.tenant_id,
            "scope": self.scope,
            "ownerId": self.owner_id,
            "filename": self.filename,
        }


# (fields, action, expires_in_minutes) -> signed url (relative or absolute)
Issuer = Callable[[GrantFields, str, Optional[int]], str]


@dataclass(frozen=True)
class ConversionResult:
    url: str
    converted: bool
    reason: str

    @classmethod
    def unchanged(cls, url: str, reason: str) -> "ConversionResult":
        return cls(url=url, converted=False, reason=reason)

    @classmethod
    def converted_to(cls, url: str) -> "ConversionResult":
        return cls(url=url, converted=True, reason="converted")


def is_legacy_url(url) -> bool:
    if not url or not isinstance(url, str):
        return False
    return any(marker in url for marker in LEGACY_MARKERS)


def _fields(tenant_id, scope, owner_id, filename) -> GrantFields | None:
    values = (tenant_id, scope, owner_id, filename)
    if not all(isinstance(v, str) and v for v in values):
        return None
    return GrantFields(tenant_id, scope, owner_id, filename)


def _from_signed_path(path: str) -> GrantFields | None:
    token = path.split(SIGNED_MARKER, 1)[1]
    if not token:
        return None
    payload_segment = token.split(".", 1)[0]
    try:
        payload = TokenCodec.decode_payload(payload_segment)
    except MalformedTokenError:
        logger.warning("signed_url_payload_undecodable")
        return None
    return _fields(
        payload.get("tenantId"),
        payload.get("scope"),
        payload.get("ownerId"),
        payload.get("filename"),
    )


def _from_legacy_path(path: str) -> GrantFields | None:
    parts = path.split("/")
    if "uploads" not in parts:
        return None
    idx = parts.index("uploads")
    if len(parts) < idx + 5:
        return None
    tenant_id, scope, owner_id, raw_name = parts[idx + 1 : idx + 5]
    return _fields(tenant_id, scope, owner_id, unquote(raw_name))


def extract_grant_from_url(url) -> GrantFields | None:
    """Recover file location from a signed or legacy URL; ``None`` if impossible.

    Signed URLs are read without checking the signature; this is metadata for
    re-issuing a link, not an authorization decision.
    """
    if not url or not isinstance(url, str):
        return None
    path = url.split("?", 1)[0].split("#", 1)[0]
    if SIGNED_MARKER in path:
        return _from_signed_path(path)
    return _from_legacy_path(path)


def _absolute(url: str, base_url: str) -> str:
    if url.startswith(("http://", "https://")) or not base_url:
        return url
    return base_url.rstrip("/") + "/" + url.lstrip("/")


class UrlMigrator:
    """Convert legacy links with an injected issuer.

    ``issuer`` is either a local :class:`~filegate.security.SignedUrlService`
    wrapped by :func:`service_issuer`, or a remote
    :class:`~filegate.client.SignedUrlClient`.
    """

    def __init__(self, issuer: Issuer, base_url: str = ""):
        self.issuer = issuer
        self.base_url = base_url or ""

    def convert(
        self, url, action: str = "view", expires_in_minutes: int | None = None
    ) -> ConversionResult:
        if not is_legacy_url(url):
            return ConversionResult.unchanged(url or "", "not_legacy")

        fields = extract_grant_from_url(url)
        if fields is None:
            logger.warning("legacy_url_unextractable", url_prefix=url.split("?", 1)[0])
            return ConversionResult.unchanged(url, "unextractable")

        try:
            issued = self.issuer(fields, action, expires_in_minutes)
        except Exception as e:
            logger.warning(
                "legacy_url_issuance_failed",
                error_type=type(e).__name__,
                **asdict(fields),
            )
            return ConversionResult.unchanged(url, "issuance_failed")

        if not issued:
            return ConversionResult.unchanged(url, "issuance_failed")
        return ConversionResult.converted_to(_absolute(issued, self.base_url))


def convert_to_signed_url(
    url,
    issuer: Issuer,
    base_url: str = "",
    action: str = "view",
    expires_in_minutes: int | None = None,
) -> str:
    """Return a signed URL for a legacy link, or ``url`` unchanged."""
    return UrlMigrator(issuer, base_url).convert(url, action, expires_in_minutes).url


def service_issuer(service) -> Issuer:
    """Adapt a local SignedUrlService into an issuer."""

    def issue(fields: GrantFields, action: str, expires_in_minutes: int | None) -> str:
        return service.generate_signed_url(
            fields.as_issuance_payload(),
            expires_in_minutes=expires_in_minutes,
            action=action,
        ).url

    return issue
