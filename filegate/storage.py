"""
Tenant file storage helpers.

Layout:
    <STORAGE_ROOT>/<tenantId>/<scope>/<ownerId>/<filename>

STORAGE_ROOT may be an absolute or relative path. If relative, it's resolved
under app.instance_path. Every path handed out by this module is confirmed to
stay inside the storage root.
"""
from __future__ import annotations

import os
import re
import time
from collections.abc import Callable

from flask import current_app

from filegate.security.errors import PathTraversalError

# Upload form scope -> directory name under the tenant root
SCOPE_DIRS = {
    "workOrder": "work_orders",
    "report": "reports",
    "logo": "branding",
    "subtasks": "subtasks",
}
DEFAULT_SCOPE_DIR = "tasks"

# Extensions the gateway serves with a specific Content-Type
MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".pdf": "application/pdf",
    ".svg": "image/svg+xml",
    ".txt": "text/plain",
    ".csv": "text/csv",
    ".json": "application/json",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def storage_root() -> str:
    base = current_app.config.get("STORAGE_ROOT") or "uploads"
    if os.path.isabs(base):
        return base
    return os.path.join(current_app.instance_path, base)


def scope_dir(scope: str | None) -> str:
    return SCOPE_DIRS.get((scope or "").strip(), DEFAULT_SCOPE_DIR)


def owner_id_from(*candidates: str | None) -> str:
    for c in candidates:
        c = (c or "").strip()
        if c:
            return c
    return "misc"


def sanitize_filename(name: str | None) -> str:
    # Keep non-ASCII letters (Greek etc.); only strip characters unsafe in paths
    s = re.sub(r'[<>:"/\\|?*]', "_", name or "")
    s = re.sub(r"\s+", "_", s)
    return s or "file"


def stored_filename(
    original: str | None,
    now_ms: int | None = None,
    taken: Callable[[str], bool] | None = None,
) -> str:
    """``{epoch_ms}-{sanitized}``, with ``-1``, ``-2``... before the extension
    while ``taken(name)`` reports a clash."""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    safe = sanitize_filename(original)
    name = f"{stamp}-{safe}"
    if taken is None:
        return name
    stem, ext = os.path.splitext(safe)
    n = 0
    while taken(name):
        n += 1
        name = f"{stamp}-{stem}-{n}{ext}"
    return name



def content_type_for(path: str) -> str:
    ext = os.path.splitext(path)[1].lower()
    return MIME_TYPES.get(ext, "application/octet-stream")


def _check_segment(value: str) -> str:
    value = str(value or "")
    if not value or value in {".", ".."} or "/" in value or "\\" in value or "\x00" in value:
        raise PathTraversalError(f"Illegal path segment: {value!r}")
    return value


def tenant_dir(tenant_id: str, scope: str, owner_id: str) -> str:
    root = os.path.abspath(storage_root())
    path = os.path.abspath(
        os.path.join(
            root, _check_segment(tenant_id), _check_segment(scope), _check_segment(owner_id)
        )
    )
    if os.path.commonpath([root, path]) != root:
        raise PathTraversalError("Path escapes storage root")
    return path


def resolve_file_path(tenant_id: str, scope: str, owner_id: str, filename: str) -> str:
    """Join the storage root with a grant's location, refusing traversal."""
    base = tenant_dir(tenant_id, scope, owner_id)
    path = os.path.abspath(os.path.join(base, _check_segment(filename)))
    if os.path.dirname(path) != base:
        raise PathTraversalError("Path escapes storage root")
    return path


def file_exists(path: str) -> bool:
    return os.path.isfile(path)


def ensure_dirs(*paths: str) -> None:
    for p in paths:
        os.makedirs(p, exist_ok=True)
