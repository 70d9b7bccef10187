"""HTTP surface of the gateway.

Blueprints:

- ``api_bp`` (``/api``): health check and bearer-token login
- ``files_bp`` (``/files``): signed URL issuance and ``/files/secure/<token>`` serving
- ``uploads_bp`` (``/uploads``): multipart uploads plus the legacy path-based
  routes kept for old ``?token=`` links

Route modules register themselves on these blueprints when imported; see
``filegate.register_blueprints``.
"""
from flask import Blueprint

api_bp = Blueprint("api", __name__)
files_bp = Blueprint("files", __name__)
uploads_bp = Blueprint("uploads", __name__)

from filegate.error_utils import error_response
from filegate.security.errors import FileGateError


def _handle_filegate_error(error: FileGateError):
    return error_response(error)


for _bp in (api_bp, files_bp, uploads_bp):
    _bp.register_error_handler(FileGateError, _handle_filegate_error)
