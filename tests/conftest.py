import pytest
from werkzeug.security import generate_password_hash

from app.hse import auth as auth_module
from app.hse import create_app
from app.hse.db import session_scope
from app.hse.models import Base, Permission, Role, User
from app.hse.modules.document_control.service import FileRef, create_document
from app.hse.modules.esign.provider import LocalSigningProvider
from app.hse.notifier import RecordingNotifier

PERMISSIONS = (
    "docs.view",
    "docs.create",
    "docs.edit",
    "docs.publish",
    "docs.archive",
    "docs.dispose",
    "docs.exports",
    "approvals.view",
    "approvals.submit",
    "approvals.decide",
    "approvals.assign",
    "esign.request",
    "esign.retry",
    "distribution.send",
    "distribution.view",
    "change_requests.create",
    "change_requests.resolve",
    "external_docs.view",
    "external_docs.manage",
)

ROLE_PERMISSIONS = {
    "admin": PERMISSIONS,
    "reviewer": ("docs.view", "approvals.view", "approvals.decide", "distribution.view", "change_requests.create"),
    "employee": ("docs.view", "distribution.view", "external_docs.view"),
}

# key -> (email, full name, position, department, role)
USERS = {
    "admin": ("admin@example.com", "Hana Admin", "HSE Document Controller", "HSE", "admin"),
    "andi": ("andi@example.com", "Andi Pratama", "Section Head HSE", "HSE", "reviewer"),
    "budi": ("budi@example.com", "Budi Santoso", "PJO", "Operations", "reviewer"),
    "citra": ("citra@example.com", "Citra Lestari", "Safety Officer", "HSE", "reviewer"),
    "dewi": ("dewi@example.com", "Dewi Anggraini", "Operator", "Production", "employee"),
}


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    for k in (
        "S3_ENDPOINT",
        "S3_REGION",
        "S3_BUCKET",
        "S3_ACCESS_KEY_ID",
        "S3_SECRET_ACCESS_KEY",
        "ESIGN_PROVIDER",
        "ESIGN_WEBHOOK_SECRET",
        "NOTIFIER_BACKEND",
        "NOTIFIER_WEBHOOK_URL",
    ):
        monkeypatch.delenv(k, raising=False)
    auth_module._login_attempts.clear()

    app = create_app()
    app.config["TESTING"] = True
    app.config["WORKFLOW_RETRY_BACKOFF_SECONDS"] = 0.0

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    app.extensions["hse_notifier"] = RecordingNotifier()
    app.extensions["hse_signing_provider"] = LocalSigningProvider()

    with session_scope(app) as s:
        perms = {key: Permission(key=key, name=key) for key in PERMISSIONS}
        roles = {}
        for role_key, keys in ROLE_PERMISSIONS.items():
            r = Role(key=role_key, name=role_key.title())
            r.permissions.extend(perms[k] for k in keys)
            roles[role_key] = r
        users = []
        for email, name, position, department, role_key in USERS.values():
            u = User(
                email=email,
                password_hash=generate_password_hash("pw"),
                is_active=True,
                full_name=name,
                position=position,
                department=department,
            )
            u.roles.append(roles[role_key])
            users.append(u)
        s.add_all(list(perms.values()) + list(roles.values()) + users)

    return app


@pytest.fixture()
def users(app) -> dict[str, int]:
    with session_scope(app) as s:
        by_email = {u.email: u.id for u in s.query(User).all()}
    return {key: by_email[row[0]] for key, row in USERS.items()}


@pytest.fixture()
def s(app):
    session = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def notifier(app) -> RecordingNotifier:
    return app.extensions["hse_notifier"]


@pytest.fixture()
def provider(app) -> LocalSigningProvider:
    return app.extensions["hse_signing_provider"]


@pytest.fixture()
def user(s, users):
    """Look up a seeded user by key: user("andi")."""

    def _get(key: str) -> User:
        return s.get(User, users[key])

    return _get


@pytest.fixture()
def make_document(s, user):
    def _make(code: str = "HSE-SOP-001", *, department: str = "HSE", sign_required: bool = True, title: str | None = None):
        d = create_document(
            s,
            document_code=code,
            title=title or f"{code} Working at Height",
            category="SOP",
            department=department,
            file=FileRef(file_name=f"{code.lower()}.pdf", file_path=f"documents/{code}/v1r0/{code.lower()}.pdf", file_size=1024),
            user=user("admin"),
            sign_required=sign_required,
        )
        s.commit()
        return d

    return _make


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def login(client):
    """Log in through the JSON endpoint and return the CSRF token for later writes."""

    def _login(email: str, password: str = "pw") -> str:
        r = client.post("/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.json
        return r.json["csrf_token"]

    return _login
