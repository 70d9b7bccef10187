"""Security helpers package (token codec, signed URLs, CORS allow-list).

Exposes the pieces needed to issue and verify self-contained, time-limited
file access tokens without any server-side token state.
"""

from .errors import (
    ExpiredGrantError,
    FileGateError,
    InvalidGrantError,
    InvalidSignatureError,
    MalformedTokenError,
    PathTraversalError,
    StoredFileNotFoundError,
    TenantMismatchError,
)
from .signed_urls import (
    GrantInput,
    SignedUrl,
    SignedUrlService,
    VerificationResult,
    signed_url_service,
)
from .token_codec import AccessGrant, TokenCodec

__all__ = [
    "AccessGrant",
    "ExpiredGrantError",
    "FileGateError",
    "GrantInput",
    "InvalidGrantError",
    "InvalidSignatureError",
    "MalformedTokenError",
    "PathTraversalError",
    "SignedUrl",
    "SignedUrlService",
    "StoredFileNotFoundError",
    "TenantMismatchError",
    "TokenCodec",
    "VerificationResult",
    "signed_url_service",
]
