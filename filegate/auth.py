"""Bearer-token authentication.

Callers authenticate with ``Authorization: Bearer <jwt>``. The same JWT is
what older file links carry in their ``?token=`` query parameter, so the
legacy serving route decodes it with :func:`tenant_from_token`.

Claims: ``sub`` (user id), ``tenantId``, ``iat``, ``exp``.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import structlog
from flask import current_app, jsonify
from flask_login import LoginManager

from filegate.models import User, db

logger = structlog.get_logger(__name__)

login_manager = LoginManager()


def _jwt_key() -> str:
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def issue_access_token(user: User, expires_minutes: int | None = None) -> tuple[str, int]:
    """Return ``(token, expires_in_seconds)`` for ``user``."""
    minutes = int(expires_minutes or current_app.config.get("JWT_EXPIRES_MINUTES", 720))
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "tenantId": str(user.tenant_id),
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
    }
    token = jwt.encode(
        payload, _jwt_key(), algorithm=current_app.config.get("JWT_ALGORITHM", "HS256")
    )
    return token, minutes * 60


def decode_access_token(token: str) -> dict:
    """Decode and verify a bearer JWT. Raises ``jwt.InvalidTokenError``."""
    return jwt.decode(
        token,
        _jwt_key(),
        algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        options={"require": ["sub", "exp"]},
    )


def _load_user(user_id) -> User | None:
    try:
        user = db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        return None
    if user is None or not user.is_active:
        return None
    return user


def tenant_from_token(token: str) -> str | None:
    """Return the tenant a legacy ``?token=`` JWT belongs to.

    Falls back to the ``sub`` user's tenant when the token predates the
    ``tenantId`` claim. Raises ``jwt.InvalidTokenError`` for bad tokens.
    """
    claims = decode_access_token(token)
    tenant_id = claims.get("tenantId")
    if not tenant_id and claims.get("sub"):
        user = _load_user(claims["sub"])
        tenant_id = user.tenant_id if user else None
    return str(tenant_id) if tenant_id else None


def bearer_token(request) -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


def init_auth(app) -> None:
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        """Load user by ID for Flask-Login."""
        return _load_user(user_id)

    @login_manager.request_loader
    def load_user_from_request(request):
        token = bearer_token(request)
        if not token:
            return None
        try:
            claims = decode_access_token(token)
        except jwt.InvalidTokenError as e:
            logger.info("bearer_token_rejected", reason=type(e).__name__)
            return None
        user = _load_user(claims.get("sub"))
        if user is not None and claims.get("tenantId") and str(
            claims["tenantId"]
        ) != str(user.tenant_id):
            # User moved tenants since the token was issued
            return None
        return user

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"success": False, "error": "Authentication required"}), 401
