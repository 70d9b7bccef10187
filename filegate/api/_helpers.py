"""Small helpers shared by the file-serving route modules."""
from __future__ import annotations

from flask import current_app, send_file
from flask_login import current_user

from filegate import storage
from filegate.security.errors import TenantMismatchError


def caller_tenant_id() -> str:
    return str(current_user.tenant_id)


def require_same_tenant(tenant_id) -> None:
    """Raise TenantMismatchError unless ``tenant_id`` is the caller's tenant."""
    if str(tenant_id) != caller_tenant_id():
        raise TenantMismatchError()


def token_prefix(token: str | None) -> str:
    """Enough of a token to correlate log lines, never enough to replay it."""
    return (token or "")[:20]


def send_stored_file(
    path: str,
    filename: str,
    action: str = "view",
    max_age: int | None = None,
):
    """Stream a stored file with the gateway's content and security headers."""
    download = action == "download"
    response = send_file(
        path,
        mimetype=storage.content_type_for(path),
        as_attachment=download,
        download_name=filename,
        conditional=True,
    )
    if not download:
        response.headers["Content-Disposition"] = "inline"

    if max_age is None:
        max_age = int(current_app.config.get("SIGNED_URL_CACHE_SECONDS", 300))
    response.headers["Cache-Control"] = f"private, max-age={max(0, int(max_age))}"
    response.headers.pop("Expires", None)

    response.headers["Cross-Origin-Resource-Policy"] = "cross-origin"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "SAMEORIGIN"
    return response
