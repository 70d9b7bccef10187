"""Uploads and legacy path-based file routes.

Mounts served by this module (blueprint prefix ``/uploads``):

- POST /uploads
    - Authenticated multipart upload. Form fields: scope, taskId,
      workOrderId, reportId, logoType, plus one or more file parts.
    - Each stored file comes back with a signed view URL (upload TTL).
- GET|OPTIONS /uploads/<tenantId>/<scope>/<ownerId>/<filename>
    - Legacy links carrying ``?token=<jwt>`` (or a Bearer header).
    - 410 once LEGACY_URLS_ENABLED is turned off.
- DELETE /uploads/<tenantId>/<scope>/<ownerId>/<filename>
    - Authenticated. Quota tracking is updated before the file is unlinked.
"""
from __future__ import annotations

import os
from urllib.parse import quote

import jwt
import structlog
from flask import current_app, jsonify, make_response, request
from flask_login import current_user, login_required

from filegate import limiter, storage, tracking
from filegate.api import uploads_bp
from filegate.auth import tenant_from_token
from filegate.error_utils import handle_api_exception, safe_log_error
from filegate.models import Tenant, db
from filegate.security.cors import apply_cors_headers
from filegate.security.errors import StoredFileNotFoundError
from filegate.security.signed_urls import signed_url_service

from ._helpers import caller_tenant_id, require_same_tenant, send_stored_file

logger = structlog.get_logger(__name__)

LEGACY_METHODS = "GET, OPTIONS, DELETE"
LEGACY_HEADERS = "Origin, X-Requested-With, Content-Type, Accept, Authorization"


def _upload_size(file_storage) -> int:
    stream = file_storage.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def _external_base() -> str:
    scheme = request.headers.get("X-Forwarded-Proto", request.scheme)
    scheme = scheme.split(",")[0].strip() or request.scheme
    return f"{scheme}://{request.host}"


def _logo_rejection(tenant: Tenant, files):
    """Return an error response if a logo upload breaks the branding rules."""
    if not tenant.custom_branding:
        return (
            jsonify(
                {
                    "success": False,
                    "error": "Custom branding is not enabled for this tenant",
                }
            ),
            403,
        )
    if not current_user.is_tenant_owner:
        return (
            jsonify(
                {"success": False, "error": "Only the tenant owner can upload logos"}
            ),
            403,
        )
    allowed = current_app.config.get("ALLOWED_LOGO_MIME_TYPES", set())
    max_bytes = int(current_app.config.get("LOGO_MAX_BYTES", 2 * 1024 * 1024))
    for f, size in files:
        if (f.mimetype or "").lower() not in allowed:
            return (
                jsonify(
                    {
                        "success": False,
                        "error": "Invalid file type. Only images are allowed for logos.",
                    }
                ),
                400,
            )
        if size > max_bytes:
            return (
                jsonify(
                    {
                        "success": False,
                        "error": f"Logo too large. Maximum size is {max_bytes // (1024 * 1024)}MB",
                    }
                ),
                413,
            )
    return None


@uploads_bp.route("", methods=["POST"])
@login_required
def upload_files():
    """Store uploaded files under the caller's tenant and sign a view URL for each."""
    files = [f for _, f in request.files.items(multi=True) if f]
    if not files:
        return jsonify({"success": False, "error": "No files found"}), 400

    scope = (request.form.get("scope") or "").strip()
    owner_id = storage.owner_id_from(
        request.form.get("taskId"),
        request.form.get("workOrderId"),
        request.form.get("reportId"),
        request.form.get("logoType"),
    )

    tenant = db.session.get(Tenant, caller_tenant_id())
    if tenant is None:
        return jsonify({"success": False, "error": "Tenant not found"}), 404

    sized = [(f, _upload_size(f)) for f in files]
    total = sum(size for _, size in sized)
    check = tracking.check_upload_allowed(tenant, total)
    if not check.allowed:
        logger.warning(
            "upload_storage_limit_exceeded",
            tenant_id=tenant.id,
            upload_bytes=total,
            current_usage_bytes=check.current_usage_bytes,
            limit_bytes=check.limit_bytes,
        )
        return (
            jsonify(
                {
                    "success": False,
                    "error": check.reason,
                    "details": check.details(total),
                }
            ),
            413,
        )

    if scope == "logo":
        rejection = _logo_rejection(tenant, sized)
        if rejection is not None:
            return rejection

    scope_dir = storage.scope_dir(scope)
    storage.ensure_dirs(storage.tenant_dir(tenant.id, scope_dir, owner_id))
    service = signed_url_service()
    base = _external_base()
    category = tracking.category_for_scope(scope)

    def taken(candidate):
        path = storage.resolve_file_path(tenant.id, scope_dir, owner_id, candidate)
        return storage.file_exists(path) or tracking.is_tracked(tenant.id, candidate)

    results = []
    for f, size in sized:
        original_name = os.path.basename(f.filename or "")
        name = storage.stored_filename(original_name, taken=taken)
        dest_path = storage.resolve_file_path(tenant.id, scope_dir, owner_id, name)
        f.save(dest_path)

        signed = service.generate_upload_url(
            {
                "tenantId": tenant.id,
                "scope": scope_dir,
                "ownerId": owner_id,
                "filename": name,
            }
        )
        rel_path = f"/uploads/{tenant.id}/{scope_dir}/{owner_id}/{quote(name)}"

        try:
            tracking.track_file_upload(
                tenant_id=tenant.id,
                filename=name,
                original_name=original_name,
                mime_type=f.mimetype,
                size_bytes=size,
                category=category,
                file_path=rel_path,
            )
        except Exception as e:
            safe_log_error(
                logger, "file_tracking_failed", exc_info=e, tenant_id=tenant.id, filename=name
            )

        results.append(
            {
                "url": f"{base}{signed.url}",
                "signedUrl": signed.url,
                "path": rel_path,
                "name": original_name,
                "size": size,
                "mimetype": f.mimetype,
                "filename": name,
                "scope": scope_dir,
                "ownerId": owner_id,
            }
        )

    logger.info(
        "files_uploaded",
        tenant_id=tenant.id,
        scope=scope_dir,
        owner_id=owner_id,
        file_count=len(results),
        upload_bytes=total,
    )
    return jsonify({"success": True, "data": results})


def _legacy_caller_tenant(tenant_id: str) -> str | None:
    """Tenant proven by a Bearer header or a ``?token=`` JWT, else None."""
    if current_user.is_authenticated:
        return caller_tenant_id()
    token = request.args.get("token")
    if not token:
        return None
    try:
        return tenant_from_token(token)
    except jwt.InvalidTokenError as e:
        logger.info(
            "legacy_token_rejected", reason=type(e).__name__, tenant_id=tenant_id
        )
        return None


@uploads_bp.route(
    "/<tenant_id>/<scope>/<owner_id>/<filename>", methods=["GET", "OPTIONS"]
)
@limiter.exempt
def legacy_file(tenant_id, scope, owner_id, filename):
    """Serve a file addressed by its storage path (pre-signed-URL links)."""
    if request.method == "OPTIONS":
        response = make_response("", 200)
        return apply_cors_headers(
            response, methods=LEGACY_METHODS, headers=LEGACY_HEADERS, preflight=True
        )

    if not current_app.config.get("LEGACY_URLS_ENABLED", True):
        return (
            jsonify(
                {
                    "success": False,
                    "error": "This link format is no longer supported. Please request a new link.",
                }
            ),
            410,
        )

    caller_tenant = _legacy_caller_tenant(tenant_id)
    if caller_tenant is not None:
        if caller_tenant != str(tenant_id):
            logger.warning(
                "legacy_tenant_mismatch", tenant_id=tenant_id, caller_tenant_id=caller_tenant
            )
            return jsonify({"success": False, "error": "Forbidden: Tenant mismatch"}), 403
    elif current_app.config.get("LEGACY_PATH_FALLBACK_ENABLED", False):
        logger.warning(
            "legacy_path_fallback_served",
            tenant_id=tenant_id,
            scope=scope,
            owner_id=owner_id,
            has_token=bool(request.args.get("token")),
        )
    else:
        return jsonify({"success": False, "error": "Authentication required"}), 401

    # werkzeug has already percent-decoded the filename segment
    path = storage.resolve_file_path(tenant_id, scope, owner_id, filename)
    if not storage.file_exists(path):
        raise StoredFileNotFoundError()

    response = send_stored_file(path, filename, "view")
    return apply_cors_headers(response, methods=LEGACY_METHODS, headers=LEGACY_HEADERS)


@uploads_bp.route(
    "/<tenant_id>/<scope>/<owner_id>/<filename>",
    methods=["DELETE"],
    provide_automatic_options=False,
)
@login_required
def delete_file(tenant_id, scope, owner_id, filename):
    """Delete a stored file, releasing its bytes from the tenant's quota first."""
    require_same_tenant(tenant_id)

    path = storage.resolve_file_path(tenant_id, scope, owner_id, filename)
    if not storage.file_exists(path):
        raise StoredFileNotFoundError()

    try:
        result = tracking.track_file_deletion(tenant_id, filename)
    except Exception:
        return handle_api_exception(
            logger,
            "file_deletion_tracking_failed",
            public_message="Failed to update storage quota. Please try again.",
            tenant_id=tenant_id,
            filename=filename,
        )
    if not result.tracked:
        logger.warning(
            "file_deletion_untracked",
            tenant_id=tenant_id,
            filename=filename,
            reason=result.reason,
        )

    try:
        os.remove(path)
    except FileNotFoundError:
        raise StoredFileNotFoundError()

    logger.info(
        "file_deleted", tenant_id=tenant_id, scope=scope, owner_id=owner_id, filename=filename
    )
    return jsonify(
        {
            "success": True,
            "message": "File deleted successfully",
            "data": {"filename": filename},
        }
    )
