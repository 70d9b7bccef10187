"""Health endpoints for the API blueprint.

Mounts served by this module:

- GET /api/health
    - Purpose: liveness check used by load balancers and orchestration.
    - Parameters: none
"""

from flask import jsonify

from filegate import limiter
from filegate.api import api_bp


@api_bp.route("/health", methods=["GET"])
@limiter.exempt
def health_check():
    """Health check endpoint. No auth required."""
    return jsonify({"status": "healthy"})
