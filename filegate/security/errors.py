"""Error taxonomy for signed file access.

Every error carries the HTTP status the gateway maps it to and a public
message that is safe to return to clients. Messages never include token
contents or key material.
"""
from __future__ import annotations


class FileGateError(Exception):
    """Base class for all signed file access errors."""

    http_status = 500
    public_message = "An internal error occurred."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class MalformedTokenError(FileGateError):
    """Token is structurally broken: wrong shape, bad base64, bad JSON or fields."""

    http_status = 400
    public_message = "Malformed token"


class InvalidSignatureError(FileGateError):
    http_status = 403
    public_message = "Invalid or tampered URL"


class ExpiredGrantError(FileGateError):
    http_status = 410
    public_message = "This link has expired. Please request a new one."


class InvalidGrantError(FileGateError):
    """Issuance-time validation failure (missing fields, bad action or TTL)."""

    http_status = 400
    public_message = "Invalid grant request"


class TenantMismatchError(FileGateError):
    http_status = 403
    public_message = "Access denied: You don't have access to this tenant's files"


class StoredFileNotFoundError(FileGateError, FileNotFoundError):
    """The grant is fine but nothing exists at the storage location."""

    http_status = 404
    public_message = "File not found"


class PathTraversalError(FileGateError):
    """A resolved storage path escapes the storage root."""

    http_status = 403
    public_message = "Forbidden"
