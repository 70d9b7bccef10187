from unittest.mock import MagicMock

import pytest
import requests

from filegate.client import IssuanceError, SignedUrlClient
from filegate.migration import GrantFields, UrlMigrator

FIELDS = GrantFields("t1", "tasks", "task-1", "a.pdf")


def _response(status_code, payload, reason="OK"):
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    resp.reason = reason
    resp.json.return_value = payload
    return resp


def _client(resp):
    session = MagicMock(spec=requests.Session)
    session.headers = {}
    session.post.return_value = resp
    return SignedUrlClient("https://gw.test/", "jwt-token", session=session), session


def test_request_signed_url():
    client, session = _client(
        _response(200, {"success": True, "data": {"url": "/files/secure/p.s", "expiresAt": 1}})
    )
    data = client.request_signed_url(FIELDS, action="download", expires_in_minutes=5)
    assert data["url"] == "/files/secure/p.s"
    assert session.headers["Authorization"] == "Bearer jwt-token"
    session.post.assert_called_once_with(
        "https://gw.test/files/signed-url",
        json={
            "tenantId": "t1",
            "scope": "tasks",
            "ownerId": "task-1",
            "filename": "a.pdf",
            "action": "download",
            "expiresInMinutes": 5,
        },
        timeout=10.0,
    )


def test_request_batch():
    client, session = _client(_response(200, {"success": True, "data": [{"url": "/x"}]}))
    assert client.request_batch([FIELDS]) == [{"url": "/x"}]
    body = session.post.call_args.kwargs["json"]
    assert body["files"][0]["filename"] == "a.pdf"
    assert "expiresInMinutes" not in body


def test_error_response_raises():
    client, _ = _client(_response(403, {"success": False, "error": "Access denied"}, "FORBIDDEN"))
    with pytest.raises(IssuanceError) as excinfo:
        client.request_signed_url(FIELDS)
    assert excinfo.value.status_code == 403
    assert "Access denied" in str(excinfo.value)


def test_non_json_error_uses_reason():
    resp = _response(502, None, "Bad Gateway")
    resp.json.side_effect = ValueError("no json")
    client, _ = _client(resp)
    with pytest.raises(IssuanceError, match="Bad Gateway"):
        client.request_signed_url(FIELDS)


def test_client_as_migration_issuer():
    client, _ = _client(
        _response(200, {"success": True, "data": {"url": "/files/secure/p.s"}})
    )
    migrator = UrlMigrator(client.issue, base_url=client.base_url)
    result = migrator.convert("https://old.test/uploads/t1/tasks/task-1/a.pdf?token=x")
    assert result.converted
    assert result.url == "https://gw.test/files/secure/p.s"


def test_client_failure_keeps_legacy_url():
    client, _ = _client(_response(500, {"success": False, "error": "boom"}))
    url = "https://old.test/uploads/t1/tasks/task-1/a.pdf?token=x"
    result = UrlMigrator(client.issue).convert(url)
    assert result.url == url
    assert result.reason == "issuance_failed"
