import pytest

from app.dms import create_app
from app.dms.auth import _login_attempts
from app.dms.constants import Role
from app.dms.db import session_scope
from app.dms.models import Base
from app.dms.modules.document_types.service import create_document_type
from app.dms.modules.users.service import create_user

PASSWORD = "correct-horse-42"

ROLE_EMAILS = {
    Role.ADMIN: "admin@example.com",
    Role.AUTHOR: "author@example.com",
    Role.REVIEWER: "reviewer@example.com",
    Role.QA: "qa@example.com",
    Role.APPROVER: "approver@example.com",
    Role.VIEWER: "viewer@example.com",
}


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.delenv("AUTO_CREATE_SCHEMA", raising=False)
    monkeypatch.delenv("BOOTSTRAP_DEFAULTS", raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def users(app) -> dict[Role, str]:
    """One enabled user per role; returns role -> user id."""
    ids = {}
    with session_scope(app) as s:
        for role, email in ROLE_EMAILS.items():
            u = create_user(
                s,
                name=f"{role.value} User",
                email=email,
                password=PASSWORD,
                role=role,
                signature=f"{role.value} statement",
            )
            ids[role] = u.id
    return ids


@pytest.fixture()
def doc_type_id(app, users) -> str:
    with session_scope(app) as s:
        dt = create_document_type(s, {"type": "Procedure", "description": "SOPs"}, users[Role.ADMIN])
        return dt.id


@pytest.fixture()
def s(app):
    """Plain session for service-level tests; the test decides when to commit."""
    session = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(autouse=True)
def _reset_login_attempts():
    _login_attempts.clear()
    yield
    _login_attempts.clear()


@pytest.fixture()
def client(app, users):
    return app.test_client()


@pytest.fixture()
def login(client):
    """Sign in as the fixture user for a role; returns the CSRF token for mutations."""

    def _login(role: Role) -> str:
        r = client.post("/auth/login", json={"email": ROLE_EMAILS[role], "password": PASSWORD})
        assert r.status_code == 200, r.json
        return r.json["csrf_token"]

    return _login
