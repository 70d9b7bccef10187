from filegate.security import SignedUrlService, TokenCodec
from filegate.security.signed_urls import signed_url_service
from filegate.security.token_codec import b64url_decode, b64url_encode

GRANT = {"tenantId": "t1", "scope": "tasks", "ownerId": "task-1", "filename": "report.pdf"}


def _issue(client, headers, **body):
    return client.post("/files/signed-url", json={**GRANT, **body}, headers=headers)


def test_issue_and_fetch_signed_url(app, client, auth_headers, storage_file):
    storage_file(data=b"%PDF-1.4 hello")
    rv = _issue(client, auth_headers())
    assert rv.status_code == 200
    data = rv.get_json()["data"]
    assert data["url"].startswith("/files/secure/")
    assert 3590 <= data["expiresIn"] <= 3600
    assert isinstance(data["expiresAt"], int)

    # No Authorization header: the token alone grants access
    rv = client.get(data["url"])
    assert rv.status_code == 200
    assert rv.data == b"%PDF-1.4 hello"
    assert rv.headers["Content-Type"] == "application/pdf"
    assert rv.headers["Content-Disposition"] == "inline"
    assert rv.headers["Cache-Control"] == "private, max-age=300"
    assert rv.headers["Cross-Origin-Resource-Policy"] == "cross-origin"
    assert rv.headers["X-Content-Type-Options"] == "nosniff"
    assert rv.headers["X-Frame-Options"] == "SAMEORIGIN"
    assert rv.headers["Access-Control-Allow-Origin"] == "*"


def test_download_action_sets_attachment(client, auth_headers, storage_file):
    storage_file()
    url = _issue(client, auth_headers(), action="download").get_json()["data"]["url"]
    rv = client.get(url)
    assert rv.status_code == 200
    assert rv.headers["Content-Disposition"].startswith("attachment")
    assert "report.pdf" in rv.headers["Content-Disposition"]


def test_cache_lifetime_capped_by_remaining_time(app, client, storage_file):
    storage_file()
    with app.app_context():
        signed = signed_url_service().generate_signed_url(GRANT, expires_in_minutes=2)
        app.config["SIGNED_URL_CACHE_SECONDS"] = 3600
    rv = client.get(signed.url)
    assert rv.status_code == 200
    max_age = int(rv.headers["Cache-Control"].split("max-age=")[1])
    assert 110 <= max_age <= 120


def test_allowed_origin_is_echoed(client, auth_headers, storage_file):
    storage_file()
    url = _issue(client, auth_headers()).get_json()["data"]["url"]
    rv = client.get(url, headers={"Origin": "https://app.example.com"})
    assert rv.headers["Access-Control-Allow-Origin"] == "https://app.example.com"
    assert rv.headers["Access-Control-Allow-Credentials"] == "true"

    rv = client.get(url, headers={"Origin": "http://evil.test"})
    assert rv.headers["Access-Control-Allow-Origin"] == "*"
    assert "Access-Control-Allow-Credentials" not in rv.headers


def test_preflight(client):
    rv = client.options("/files/secure/anything", headers={"Origin": "http://localhost:3000"})
    assert rv.status_code == 200
    assert rv.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
    assert rv.headers["Access-Control-Max-Age"] == "86400"
    assert "GET" in rv.headers["Access-Control-Allow-Methods"]


def test_tampered_token_is_403(client, auth_headers, storage_file):
    storage_file()
    url = _issue(client, auth_headers()).get_json()["data"]["url"]
    token = url.rsplit("/", 1)[1]
    payload_segment, signature_segment = token.split(".", 1)
    raw = bytearray(b64url_decode(payload_segment))
    raw[5] ^= 0x01
    rv = client.get(f"/files/secure/{b64url_encode(bytes(raw))}.{signature_segment}")
    assert rv.status_code == 403
    assert rv.get_json()["error"] == "Invalid or tampered URL"


def test_secure_url_other_tenant_caller_is_403(client, auth_headers, storage_file):
    storage_file()
    url = _issue(client, auth_headers()).get_json()["data"]["url"]

    # Anonymous holders and same-tenant callers get the file
    assert client.get(url).status_code == 200
    assert client.get(url, headers=auth_headers("member")).status_code == 200

    rv = client.get(url, headers=auth_headers("other"))
    assert rv.status_code == 403
    assert rv.get_json()["error"] == "Access denied: You don't have access to this tenant's files"


def test_garbage_token_is_403(client):
    rv = client.get("/files/secure/not-a-token")
    assert rv.status_code == 403


def test_expired_token_is_410(app, client, storage_file):
    storage_file()
    with app.app_context():
        live = signed_url_service()
        issued_in_past = SignedUrlService(
            TokenCodec(app.config["FILE_SIGNING_KEY"]),
            clock=lambda: live.now_ms() - 2 * 60_000,
        )
        signed = issued_in_past.generate_signed_url(GRANT, expires_in_minutes=1)
    rv = client.get(signed.url)
    assert rv.status_code == 410
    assert rv.get_json()["error"] == "This link has expired. Please request a new one."


def test_missing_file_is_404(app, client):
    with app.app_context():
        signed = signed_url_service().generate_signed_url(GRANT)
    rv = client.get(signed.url)
    assert rv.status_code == 404


def test_issue_requires_auth(client):
    rv = client.post("/files/signed-url", json=GRANT)
    assert rv.status_code == 401
    assert rv.get_json()["success"] is False


def test_issue_rejects_invalid_bearer(client):
    rv = client.post(
        "/files/signed-url", json=GRANT, headers={"Authorization": "Bearer nope"}
    )
    assert rv.status_code == 401


def test_issue_missing_fields_is_400(client, auth_headers):
    rv = client.post(
        "/files/signed-url", json={"filename": "x.pdf"}, headers=auth_headers()
    )
    assert rv.status_code == 400
    assert "Missing required fields" in rv.get_json()["error"]


def test_issue_bad_action_is_400(client, auth_headers, storage_file):
    storage_file()
    rv = _issue(client, auth_headers(), action="delete")
    assert rv.status_code == 400


def test_issue_other_tenant_is_403(client, auth_headers, storage_file):
    storage_file(tenant_id="t2")
    rv = _issue(client, auth_headers("owner"), tenantId="t2")
    assert rv.status_code == 403


def test_issue_defaults_to_caller_tenant(client, auth_headers, storage_file):
    storage_file(tenant_id="t2")
    body = {k: v for k, v in GRANT.items() if k != "tenantId"}
    rv = client.post("/files/signed-url", json=body, headers=auth_headers("other"))
    assert rv.status_code == 200


def test_issue_missing_file_is_404(client, auth_headers):
    rv = _issue(client, auth_headers())
    assert rv.status_code == 404


def test_issue_traversal_is_403(client, auth_headers):
    rv = _issue(client, auth_headers(), ownerId="..")
    assert rv.status_code == 403


def test_batch_issue(client, auth_headers):
    body = {
        "files": [
            {"scope": "tasks", "ownerId": "task-1", "filename": "a.png"},
            {"tenantId": "t1", "scope": "reports", "ownerId": "r-1", "filename": "b.pdf"},
        ],
        "action": "download",
        "expiresInMinutes": 5,
    }
    rv = client.post("/files/signed-urls/batch", json=body, headers=auth_headers())
    assert rv.status_code == 200
    data = rv.get_json()["data"]
    assert [d["filename"] for d in data] == ["a.png", "b.pdf"]
    assert all(d["url"].startswith("/files/secure/") for d in data)


def test_batch_rejects_foreign_tenant(client, auth_headers):
    body = {
        "files": [
            {"scope": "tasks", "ownerId": "task-1", "filename": "a.png"},
            {"tenantId": "t2", "scope": "tasks", "ownerId": "task-1", "filename": "b.png"},
        ]
    }
    rv = client.post("/files/signed-urls/batch", json=body, headers=auth_headers())
    assert rv.status_code == 403
    assert "data" not in rv.get_json()


def test_batch_requires_files(client, auth_headers):
    for body in ({}, {"files": []}, {"files": "a.png"}, {"files": ["a.png"]}):
        rv = client.post("/files/signed-urls/batch", json=body, headers=auth_headers())
        assert rv.status_code == 400


def test_health(client):
    rv = client.get("/api/health")
    assert rv.status_code == 200
    assert rv.get_json() == {"status": "healthy"}


def test_token_login(client):
    rv = client.post("/api/auth/token", json={"username": "owner", "password": "pass1234"})
    assert rv.status_code == 200
    data = rv.get_json()["data"]
    assert data["expiresIn"] == 720 * 60

    rv = client.post(
        "/files/signed-urls/batch",
        json={"files": [{"scope": "tasks", "ownerId": "o", "filename": "f.png"}]},
        headers={"Authorization": f"Bearer {data['token']}"},
    )
    assert rv.status_code == 200


def test_token_login_bad_password(client):
    rv = client.post("/api/auth/token", json={"username": "owner", "password": "wrong"})
    assert rv.status_code == 401


def test_unknown_route_is_json_404(client):
    rv = client.get("/nope")
    assert rv.status_code == 404
    assert rv.get_json()["success"] is False
