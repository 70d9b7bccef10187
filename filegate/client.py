"""HTTP client for the signed URL issuance endpoints.

Front-end services and scripts that hold a bearer token use this to request
signed links from a running gateway, e.g. when rewriting stored legacy
links::

    client = SignedUrlClient("https://files.example.com", token)
    migrator = UrlMigrator(client.issue, base_url=client.base_url)
    migrator.convert(old_url).url
"""
from __future__ import annotations

import requests

from filegate.migration import GrantFields


class IssuanceError(RuntimeError):
    """The gateway refused or failed to issue a signed URL."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code


class SignedUrlClient:
    def __init__(
        self,
        base_url: str,
        access_token: str,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers["Authorization"] = f"Bearer {access_token}"

    def _post(self, path: str, body: dict):
        resp = self.session.post(f"{self.base_url}{path}", json=body, timeout=self.timeout)
        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        if resp.status_code != 200 or not payload.get("success"):
            raise IssuanceError(resp.status_code, payload.get("error") or resp.reason)
        return payload["data"]

    def request_signed_url(
        self,
        fields: GrantFields,
        action: str = "view",
        expires_in_minutes: int | None = None,
    ) -> dict:
        """POST /files/signed-url; returns ``{url, expiresAt, expiresIn}``."""
        body = {**fields.as_issuance_payload(), "action": action}
        if expires_in_minutes is not None:
            body["expiresInMinutes"] = expires_in_minutes
        return self._post("/files/signed-url", body)

    def request_batch(
        self,
        files: list[GrantFields],
        action: str = "view",
        expires_in_minutes: int | None = None,
    ) -> list[dict]:
        body = {"files": [f.as_issuance_payload() for f in files], "action": action}
        if expires_in_minutes is not None:
            body["expiresInMinutes"] = expires_in_minutes
        return self._post("/files/signed-urls/batch", body)

    def issue(
        self, fields: GrantFields, action: str = "view", expires_in_minutes: int | None = None
    ) -> str:
        """Issuer callable for :class:`~filegate.migration.UrlMigrator`."""
        return self.request_signed_url(fields, action, expires_in_minutes)["url"]
