"""Tests for structured logging configuration and redaction."""
import logging
import os
import tempfile
from unittest.mock import MagicMock, patch

from filegate.error_utils import safe_log_error
from filegate.structured_logging import (
    add_request_context,
    censor_sensitive_data,
    configure_structlog,
    get_log_dir,
    rename_reserved_keys,
)


class TestGetLogDir:
    """Test log directory resolution."""

    def test_get_log_dir_returns_override_when_provided(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            assert get_log_dir(instance_path="/some/path", override=tmpdir) == tmpdir

    def test_get_log_dir_returns_env_var_when_no_override(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with patch.dict(os.environ, {"LOG_DIR": tmpdir}):
                assert get_log_dir(instance_path="/some/path") == tmpdir

    def test_get_log_dir_defaults_to_instance_logs(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with patch.dict(os.environ, {}, clear=True):
                result = get_log_dir(instance_path=tmpdir)
                assert result == os.path.join(tmpdir, "logs")
                assert os.path.isdir(result)


class TestProcessors:
    """Test the structlog processors."""

    def test_censor_redacts_credentials(self):
        event = {
            "event": "signed_url_issued",
            "token": "abc.def",
            "access_token": "jwt",
            "Authorization": "Bearer x",
            "signing_secret": "s",
            "password": "p",
            "tenant_id": "t1",
        }
        result = censor_sensitive_data(None, "info", dict(event))
        assert result["tenant_id"] == "t1"
        for key in ("token", "access_token", "Authorization", "signing_secret", "password"):
            assert result[key] == "***REDACTED***"

    def test_censor_keeps_token_prefix(self):
        result = censor_sensitive_data(
            None, "warning", {"token_prefix": "eyJhbGciOiJIUzI1NiIs", "has_token": True}
        )
        assert result["token_prefix"] == "eyJhbGciOiJIUzI1NiIs"
        assert result["has_token"] is True

    def test_reserved_keys_are_prefixed(self):
        result = rename_reserved_keys(None, "info", {"filename": "a.pdf", "scope": "tasks"})
        assert result == {"ctx_filename": "a.pdf", "scope": "tasks"}

    def test_request_context_masks_secure_token(self, app):
        with app.test_request_context("/files/secure/payload.signature"):
            result = add_request_context(None, "info", {"event": "x"})
        assert result["path"] == "/files/secure/***"
        assert result["method"] == "GET"
        assert "user_id" not in result

    def test_request_context_outside_request(self):
        assert add_request_context(None, "info", {"event": "x"}) == {"event": "x"}


class TestConfigureStructlog:
    def test_testing_mode_skips_file_logging(self, app):
        result = configure_structlog(app)
        assert result == {"log_dir": "", "app_log": "", "error_log": ""}


class TestSafeLogError:
    def test_logs_exception_details(self):
        logger = MagicMock()
        safe_log_error(logger, "file_tracking_failed", exc_info=ValueError("boom"), tenant_id="t1")
        logger.log.assert_called_once()
        args, kwargs = logger.log.call_args
        assert args == (logging.ERROR, "file_tracking_failed")
        assert kwargs["exception_type"] == "ValueError"
        assert kwargs["tenant_id"] == "t1"

    def test_never_raises(self):
        logger = MagicMock()
        logger.log.side_effect = RuntimeError("handler broken")
        safe_log_error(logger, "anything", exc_info=False)
