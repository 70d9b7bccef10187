"""
Database models for the file gateway.

Only what the gateway needs to authenticate callers and account for stored
bytes: tenants, their users, and one tracking row per stored file.
"""
import secrets
from datetime import datetime
from enum import Enum

from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import check_password_hash, generate_password_hash

# Initialize SQLAlchemy instance
db = SQLAlchemy()


def _new_tenant_id() -> str:
    return secrets.token_hex(12)


class FileCategory(Enum):
    """What an upload is used for; drives quota reporting."""

    LOGO = "logo"
    WORKORDER_ATTACHMENT = "workorder_attachment"
    OTHER = "other"


class Tenant(db.Model):
    """
    A customer organisation. All of its files live under
    ``<STORAGE_ROOT>/<tenant.id>/``.
    """

    __tablename__ = "tenants"

    id = db.Column(db.String(64), primary_key=True, default=_new_tenant_id)
    name = db.Column(db.String(120), nullable=False)
    # None means "use DEFAULT_STORAGE_LIMIT_BYTES"
    storage_limit_bytes = db.Column(db.BigInteger)
    storage_used_bytes = db.Column(db.BigInteger, default=0, nullable=False)
    custom_branding = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    users = db.relationship(
        "User", backref="tenant", lazy="dynamic", cascade="all, delete-orphan"
    )
    files = db.relationship(
        "TrackedFile", backref="tenant", lazy="dynamic", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Tenant {self.id} {self.name!r}>"


class User(UserMixin, db.Model):
    """
    User model for authentication. Every user belongs to exactly one tenant.
    """

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    tenant_id = db.Column(
        db.String(64), db.ForeignKey("tenants.id"), nullable=False, index=True
    )
    is_tenant_owner = db.Column(db.Boolean, default=False, nullable=False)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    last_login = db.Column(db.DateTime)

    def set_password(self, password: str) -> None:
        """
        Hash and set the user's password.

        Args:
            password: Plain text password to hash
        """
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        """
        Check if the provided password matches the stored hash.

        Args:
            password: Plain text password to check

        Returns:
            bool: True if password matches, False otherwise
        """
        return check_password_hash(self.password_hash, password)

    def __repr__(self):
        return f"<User {self.username}>"


class TrackedFile(db.Model):
    """
    One row per stored upload, used for quota accounting and to keep
    cleanup jobs away from files that are still referenced.
    """

    __tablename__ = "tracked_files"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "filename", name="uq_tracked_file_tenant"),
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.String(64), db.ForeignKey("tenants.id"), nullable=False, index=True
    )
    filename = db.Column(db.String(255), nullable=False)
    original_name = db.Column(db.String(255), nullable=False)
    mime_type = db.Column(db.String(100), nullable=False)
    size_bytes = db.Column(db.BigInteger, nullable=False)
    category = db.Column(db.Enum(FileCategory), default=FileCategory.OTHER, nullable=False)
    file_path = db.Column(db.String(500), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<TrackedFile {self.tenant_id}/{self.filename}>"
