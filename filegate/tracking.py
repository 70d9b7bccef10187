"""
File tracking and storage quota accounting.

This module centralizes logic for:
- Recording each stored upload (TrackedFile rows)
- Keeping Tenant.storage_used_bytes in step with uploads and deletions
- The storage-limit check used before accepting an upload, which reads
  Tenant.storage_used_bytes
- Reconciling that column with the tracked rows when they drift apart

Design notes
------------
- Usage is recorded once, when a file is tracked. Callers must not add the
  upload size again elsewhere or usage is double-counted.
- Deletion tracking runs *before* the file is unlinked; if it raises the
  caller keeps the file so disk and quota never disagree.

All helpers accept an optional SQLAlchemy session. If omitted, db.session is used.
"""
from __future__ import annotations

from dataclasses import dataclass

import structlog
from flask import current_app
from sqlalchemy import func

from filegate.models import FileCategory, Tenant, TrackedFile, db

logger = structlog.get_logger(__name__)

GB = 1024 * 1024 * 1024


def category_for_scope(scope: str | None) -> FileCategory:
    if scope == "logo":
        return FileCategory.LOGO
    if scope == "workOrder":
        return FileCategory.WORKORDER_ATTACHMENT
    return FileCategory.OTHER


def storage_limit_bytes(tenant: Tenant) -> int | None:
    """Return the tenant's storage limit, or None for unlimited."""
    if tenant.storage_limit_bytes is not None:
        return int(tenant.storage_limit_bytes)
    default = current_app.config.get("DEFAULT_STORAGE_LIMIT_BYTES")
    return int(default) if default is not None else None


def storage_used_bytes(tenant: Tenant) -> int:
    """The tenant's recorded usage, the figure every quota decision reads."""
    return int(tenant.storage_used_bytes or 0)


def tracked_bytes(tenant_id: str, session=None) -> int:
    """Sum of tracked file sizes for a tenant."""
    s = session or db.session
    total = (
        s.query(func.coalesce(func.sum(TrackedFile.size_bytes), 0))
        .filter(TrackedFile.tenant_id == tenant_id)
        .scalar()
        or 0
    )
    return int(total)


def reconcile_storage_used(tenant_id: str, session=None) -> int:
    """Reset the tenant's recorded usage to the sum of its tracked files."""
    s = session or db.session
    tenant = s.get(Tenant, tenant_id)
    if tenant is None:
        return 0
    total = tracked_bytes(tenant_id, session=s)
    if int(tenant.storage_used_bytes or 0) != total:
        logger.warning(
            "storage_usage_drift",
            tenant_id=tenant_id,
            recorded_bytes=int(tenant.storage_used_bytes or 0),
            tracked_bytes=total,
        )
    try:
        tenant.storage_used_bytes = total
        s.commit()
    except Exception:
        s.rollback()
        raise
    return total


@dataclass
class StorageCheck:
    allowed: bool
    current_usage_bytes: int
    limit_bytes: int | None
    reason: str | None = None

    def details(self, upload_size: int) -> dict:
        """Human-readable figures for a 413 response."""
        limit = "unlimited" if self.limit_bytes is None else f"{self.limit_bytes / GB:.2f}GB"
        return {
            "currentUsage": f"{self.current_usage_bytes / GB:.2f}GB",
            "limit": limit,
            "uploadSize": f"{upload_size / GB:.2f}GB",
        }


def check_upload_allowed(tenant: Tenant, upload_bytes: int) -> StorageCheck:
    """Check whether the tenant can store ``upload_bytes`` more."""
    used = storage_used_bytes(tenant)
    limit = storage_limit_bytes(tenant)
    if limit is None or used + int(upload_bytes) <= limit:
        return StorageCheck(allowed=True, current_usage_bytes=used, limit_bytes=limit)
    return StorageCheck(
        allowed=False,
        current_usage_bytes=used,
        limit_bytes=limit,
        reason="Storage limit exceeded",
    )


def track_file_upload(
    tenant_id: str,
    filename: str,
    original_name: str,
    mime_type: str,
    size_bytes: int,
    category: FileCategory,
    file_path: str,
    session=None,
) -> TrackedFile:
    """Record an upload and add its size to the tenant's usage."""
    s = session or db.session
    try:
        row = TrackedFile(
            tenant_id=tenant_id,
            filename=filename,
            original_name=original_name or filename,
            mime_type=mime_type or "application/octet-stream",
            size_bytes=int(size_bytes),
            category=category,
            file_path=file_path,
        )
        s.add(row)
        tenant = s.get(Tenant, tenant_id)
        if tenant is not None:
            tenant.storage_used_bytes = int(tenant.storage_used_bytes or 0) + int(
                size_bytes
            )
        s.commit()
    except Exception:
        s.rollback()
        raise
    logger.info(
        "file_tracked",
        tenant_id=tenant_id,
        filename=filename,
        size_bytes=int(size_bytes),
        category=category.value,
    )
    return row


def is_tracked(tenant_id: str, filename: str, session=None) -> bool:
    s = session or db.session
    return (
        s.query(TrackedFile.id).filter_by(tenant_id=tenant_id, filename=filename).first()
        is not None
    )


@dataclass
class DeletionTracking:
    tracked: bool
    reason: str | None = None


def track_file_deletion(tenant_id: str, filename: str, session=None) -> DeletionTracking:
    """Remove the tracking row and release its bytes from the tenant's usage.

    Returns ``tracked=False`` when no row exists. Database errors propagate so
    the caller can abort the deletion.
    """
    s = session or db.session
    row = s.query(TrackedFile).filter_by(tenant_id=tenant_id, filename=filename).first()
    if row is None:
        return DeletionTracking(tracked=False, reason="File not found in metadata")
    try:
        tenant = s.get(Tenant, tenant_id)
        if tenant is not None:
            tenant.storage_used_bytes = max(
                0, int(tenant.storage_used_bytes or 0) - int(row.size_bytes)
            )
        s.delete(row)
        s.commit()
    except Exception:
        s.rollback()
        raise
    return DeletionTracking(tracked=True)
