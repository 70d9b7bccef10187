"""Bearer token login.

- POST /api/auth/token
    - Body: {username, password}
    - 200 {success, data: {token, expiresIn}}; 401 on bad credentials.
"""
from datetime import datetime

import structlog
from flask import current_app, jsonify, request

from filegate import limiter
from filegate.api import api_bp
from filegate.auth import issue_access_token
from filegate.models import User, db

logger = structlog.get_logger(__name__)


def _auth_limit() -> str:
    return current_app.config.get("RATELIMIT_AUTH", "10 per minute")


@api_bp.route("/auth/token", methods=["POST"])
@limiter.limit(_auth_limit)
def issue_token():
    body = request.get_json(silent=True) or {}
    username = str(body.get("username") or "").strip() if isinstance(body, dict) else ""
    password = body.get("password") if isinstance(body, dict) else None
    if not username or not isinstance(password, str) or not password:
        return jsonify({"success": False, "error": "Username and password are required"}), 400

    user = User.query.filter_by(username=username).first()
    if user is None or not user.is_active or not user.check_password(password):
        logger.warning("login_failed", username=username)
        return jsonify({"success": False, "error": "Invalid username or password"}), 401

    token, expires_in = issue_access_token(user)
    user.last_login = datetime.utcnow()
    db.session.commit()

    logger.info("login_succeeded", user_id=user.id, tenant_id=user.tenant_id)
    return jsonify({"success": True, "data": {"token": token, "expiresIn": expires_in}})
