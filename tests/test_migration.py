import pytest

from filegate.migration import (
    GrantFields,
    UrlMigrator,
    convert_to_signed_url,
    extract_grant_from_url,
    is_legacy_url,
    service_issuer,
)
from filegate.security import SignedUrlService, TokenCodec

LEGACY = "https://files.example.com/uploads/t1/tasks/task-1/my%20report.pdf?token=eyJhbGciOi"


@pytest.fixture()
def service():
    return SignedUrlService(TokenCodec("migration-secret"), clock=lambda: 1_700_000_000_000)


def test_is_legacy_url():
    assert is_legacy_url(LEGACY)
    assert is_legacy_url("/uploads/t1/tasks/o/f.png?size=2&token=abc")
    assert not is_legacy_url("/files/secure/abc.def")
    assert not is_legacy_url("")
    assert not is_legacy_url(None)
    assert not is_legacy_url(42)


def test_extract_from_legacy_url():
    assert extract_grant_from_url(LEGACY) == GrantFields(
        tenant_id="t1", scope="tasks", owner_id="task-1", filename="my report.pdf"
    )


def test_extract_legacy_url_with_secure_scope():
    url = "https://files.example.com/uploads/t1/secure/owner-1/a.pdf?token=x"
    assert extract_grant_from_url(url) == GrantFields("t1", "secure", "owner-1", "a.pdf")


def test_extract_from_api_prefixed_legacy_url():
    fields = extract_grant_from_url("/api/v1/uploads/t2/work_orders/wo-9/a.png?token=x")
    assert fields == GrantFields("t2", "work_orders", "wo-9", "a.png")


def test_extract_from_signed_url(service):
    signed = service.generate_signed_url(
        {"tenantId": "t1", "scope": "reports", "ownerId": "r-1", "filename": "q3.xlsx"}
    )
    fields = extract_grant_from_url(f"https://files.example.com{signed.url}")
    assert fields == GrantFields("t1", "reports", "r-1", "q3.xlsx")


@pytest.mark.parametrize(
    "url",
    [
        "/uploads/t1/tasks?token=abc",
        "/somewhere/else/file.png?token=abc",
        "/files/secure/not-base64!.sig",
        "/files/secure/",
        None,
    ],
)
def test_extract_failures(url):
    assert extract_grant_from_url(url) is None


def test_convert_legacy_url(service):
    migrator = UrlMigrator(service_issuer(service), base_url="https://files.example.com")
    result = migrator.convert(LEGACY)
    assert result.converted
    assert result.reason == "converted"
    assert result.url.startswith("https://files.example.com/files/secure/")

    token = service.token_from_url(result.url)
    verified = service.verify_signed_url(token)
    assert verified.valid
    assert verified.filename == "my report.pdf"


def test_convert_is_idempotent(service):
    issuer = service_issuer(service)
    once = convert_to_signed_url(LEGACY, issuer, base_url="https://files.example.com")
    twice = convert_to_signed_url(once, issuer, base_url="https://files.example.com")
    assert twice == once


def test_convert_leaves_non_legacy_urls(service):
    migrator = UrlMigrator(service_issuer(service))
    result = migrator.convert("https://cdn.example.com/logo.png")
    assert not result.converted
    assert result.reason == "not_legacy"
    assert result.url == "https://cdn.example.com/logo.png"
    assert migrator.convert(None).url == ""


def test_convert_reports_unextractable(service):
    result = UrlMigrator(service_issuer(service)).convert("/elsewhere/x.png?token=abc")
    assert result == result.unchanged("/elsewhere/x.png?token=abc", "unextractable")


def test_convert_survives_issuer_failure():
    def broken(fields, action, expires_in_minutes):
        raise RuntimeError("gateway down")

    result = UrlMigrator(broken).convert(LEGACY)
    assert not result.converted
    assert result.reason == "issuance_failed"
    assert result.url == LEGACY


def test_convert_passes_action_and_ttl():
    seen = {}

    def issuer(fields, action, expires_in_minutes):
        seen.update(fields=fields, action=action, minutes=expires_in_minutes)
        return "/files/secure/p.s"

    url = convert_to_signed_url(
        LEGACY, issuer, base_url="https://gw.test/", action="download", expires_in_minutes=5
    )
    assert url == "https://gw.test/files/secure/p.s"
    assert seen["action"] == "download"
    assert seen["minutes"] == 5
    assert seen["fields"].owner_id == "task-1"
