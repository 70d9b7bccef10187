"""Signed URL endpoints.

Mounts served by this module (blueprint prefix ``/files``):

- POST /files/signed-url
    - Authenticated. Issue one signed URL for a file in the caller's tenant.
    - Body: {filename, scope, ownerId, tenantId?, action?, expiresInMinutes?}
    - 400 missing/invalid fields, 403 tenant mismatch, 404 file absent.
- POST /files/signed-urls/batch
    - Authenticated. Body: {files: [{filename, scope, ownerId, tenantId?}], action?,
      expiresInMinutes?}. 403 if any file belongs to another tenant.
- GET|OPTIONS /files/secure/<token>
    - Authentication optional: the token signature carries the trust, but a
      signed-in caller from another tenant is refused.
    - 410 expired, 403 invalid/tampered or tenant mismatch, 404 missing on disk,
      else the file bytes.
"""
from __future__ import annotations

import structlog
from flask import current_app, jsonify, make_response, request
from flask_login import current_user, login_required

from filegate import limiter, storage
from filegate.api import files_bp
from filegate.error_utils import deny
from filegate.security.cors import apply_cors_headers
from filegate.security.errors import (
    ExpiredGrantError,
    InvalidGrantError,
    InvalidSignatureError,
    StoredFileNotFoundError,
    TenantMismatchError,
)
from filegate.security.signed_urls import (
    GrantInput,
    signed_url_service,
    validate_action,
    validate_expires_in,
)

from ._helpers import caller_tenant_id, require_same_tenant, send_stored_file, token_prefix

logger = structlog.get_logger(__name__)

REQUIRED_FIELDS = ("filename", "scope", "ownerId")


def _issuance_limit() -> str:
    return current_app.config.get("RATELIMIT_ISSUANCE", "120 per minute")


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if body is None:
        body = {}
    if not isinstance(body, dict):
        raise InvalidGrantError("Request body must be a JSON object")
    return body


@files_bp.route("/signed-url", methods=["POST"])
@login_required
@limiter.limit(_issuance_limit)
def issue_signed_url():
    """Issue a signed URL for one existing file."""
    body = _json_body()
    if any(body.get(k) in (None, "") for k in REQUIRED_FIELDS):
        raise InvalidGrantError("Missing required fields: filename, scope, ownerId")

    grant = GrantInput.from_mapping(
        {**body, "tenantId": body.get("tenantId") or caller_tenant_id()}
    )
    require_same_tenant(grant.tenant_id)

    path = storage.resolve_file_path(
        grant.tenant_id, grant.scope, grant.owner_id, grant.filename
    )
    if not storage.file_exists(path):
        logger.warning(
            "signed_url_file_missing",
            tenant_id=grant.tenant_id,
            scope=grant.scope,
            owner_id=grant.owner_id,
            filename=grant.filename,
        )
        raise StoredFileNotFoundError()

    service = signed_url_service()
    signed = service.generate_signed_url(grant)
    logger.info(
        "signed_url_issued",
        tenant_id=grant.tenant_id,
        scope=grant.scope,
        owner_id=grant.owner_id,
        filename=grant.filename,
        action=grant.action,
        expires_at=signed.expires_at,
    )
    return jsonify(
        {
            "success": True,
            "data": {
                "url": signed.url,
                "expiresAt": signed.expires_at,
                "expiresIn": service.get_time_remaining(signed.expires_at),
            },
        }
    )


@files_bp.route("/signed-urls/batch", methods=["POST"])
@login_required
@limiter.limit(_issuance_limit)
def issue_signed_urls_batch():
    """Issue signed URLs for several files at once; all or nothing."""
    body = _json_body()
    files = body.get("files")
    if not isinstance(files, list) or not files:
        raise InvalidGrantError("Missing or invalid files array")
    if not all(isinstance(f, dict) for f in files):
        raise InvalidGrantError("Each file must be an object")

    caller = caller_tenant_id()
    if any(str(f.get("tenantId") or caller) != caller for f in files):
        logger.warning("batch_signed_url_tenant_mismatch", file_count=len(files))
        return (
            jsonify(
                {
                    "success": False,
                    "error": "Access denied: Some files don't belong to your tenant",
                }
            ),
            403,
        )

    action = validate_action(body.get("action"))
    expires_in = validate_expires_in(body.get("expiresInMinutes"))
    grants = [
        GrantInput.from_mapping(
            {
                **f,
                "tenantId": f.get("tenantId") or caller,
                "action": action,
                "expiresInMinutes": expires_in,
            }
        )
        for f in files
    ]

    service = signed_url_service()
    data = []
    for grant in grants:
        signed = service.generate_signed_url(grant)
        data.append(
            {"filename": grant.filename, "url": signed.url, "expiresAt": signed.expires_at}
        )

    logger.info(
        "batch_signed_urls_issued", tenant_id=caller, file_count=len(data), action=action
    )
    return jsonify({"success": True, "data": data})


@files_bp.route("/secure/<path:token>", methods=["GET", "OPTIONS"])
@limiter.exempt
def serve_secure_file(token: str):
    """Serve a file named by a signed token."""
    if request.method == "OPTIONS":
        return apply_cors_headers(make_response("", 200), preflight=True)

    service = signed_url_service()
    result = service.verify_signed_url(token)
    if not result.valid:
        if result.expired:
            logger.warning("signed_url_expired", token_prefix=token_prefix(token))
            return deny(ExpiredGrantError)
        logger.warning("signed_url_invalid", token_prefix=token_prefix(token))
        return deny(InvalidSignatureError)

    # Anonymous callers ride on the signature; signed-in callers must match its tenant
    if current_user.is_authenticated and caller_tenant_id() != str(result.tenant_id):
        logger.warning(
            "signed_url_tenant_mismatch",
            tenant_id=result.tenant_id,
            caller_tenant_id=caller_tenant_id(),
            token_prefix=token_prefix(token),
        )
        return deny(TenantMismatchError)

    path = storage.resolve_file_path(
        result.tenant_id, result.scope, result.owner_id, result.filename
    )
    if not storage.file_exists(path):
        logger.error(
            "signed_url_file_missing",
            tenant_id=result.tenant_id,
            scope=result.scope,
            owner_id=result.owner_id,
            filename=result.filename,
        )
        raise StoredFileNotFoundError()

    logger.info(
        "signed_url_serving",
        tenant_id=result.tenant_id,
        scope=result.scope,
        owner_id=result.owner_id,
        filename=result.filename,
        action=result.action,
    )
    max_age = min(
        int(current_app.config.get("SIGNED_URL_CACHE_SECONDS", 300)),
        service.get_time_remaining(result.expires_at),
    )
    response = send_stored_file(path, result.filename, result.action, max_age=max_age)
    return apply_cors_headers(response)
