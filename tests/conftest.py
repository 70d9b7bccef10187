import os

import pytest

from config.settings import TestingConfig
from filegate import create_app
from filegate.auth import issue_access_token
from filegate.models import Tenant, User, db


@pytest.fixture()
def app(tmp_path):
    # Per-test storage root so files never leak between tests
    cfg = type(
        "IsolatedTestingConfig",
        (TestingConfig,),
        {"STORAGE_ROOT": str(tmp_path / "uploads")},
    )
    flask_app = create_app(cfg)
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        t1 = Tenant(id="t1", name="Tenant One", custom_branding=True)
        t2 = Tenant(id="t2", name="Tenant Two")
        db.session.add_all([t1, t2])
        owner = User(
            username="owner", email="owner@example.com", tenant_id="t1", is_tenant_owner=True
        )
        owner.set_password("pass1234")
        member = User(username="member", email="member@example.com", tenant_id="t1")
        member.set_password("pass1234")
        other = User(username="other", email="other@example.com", tenant_id="t2")
        other.set_password("pass1234")
        db.session.add_all([owner, member, other])
        db.session.commit()
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def auth_headers(app):
    """Return a factory producing Bearer headers for a seeded user."""

    def _headers(username="owner"):
        with app.app_context():
            user = User.query.filter_by(username=username).first()
            token, _ = issue_access_token(user)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def access_token(app):
    """Return a factory producing raw JWTs (the legacy ?token= credential)."""

    def _token(username="owner"):
        with app.app_context():
            user = User.query.filter_by(username=username).first()
            token, _ = issue_access_token(user)
        return token

    return _token


@pytest.fixture()
def storage_file(app):
    """Write a file into tenant storage and return its path."""

    def _write(
        tenant_id="t1", scope="tasks", owner_id="task-1", filename="report.pdf", data=b"%PDF-1.4 test"
    ):
        root = os.path.join(app.config["STORAGE_ROOT"], tenant_id, scope, owner_id)
        os.makedirs(root, exist_ok=True)
        path = os.path.join(root, filename)
        with open(path, "wb") as f:
            f.write(data)
        return path

    return _write
