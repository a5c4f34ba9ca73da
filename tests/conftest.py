"""
Shared pytest fixtures for the Video Production CRM test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - owner: Agency signed up through the API (token, user, tenant)
    - owner_headers / editor / editor_headers: JWT headers per role
    - agency_client, project, version: Pre-created domain entities
"""

import uuid

import pytest

from app import create_app
from app.models import db as _db
from app.models.auth import ROLE_EDITOR, User, Workspace, WorkspaceMember
from app.services.jwt_service import generate_access_token
from app.utils.crypto import hash_password

PASSWORD = "SecurePass123!"


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}


def signup(client, *, slug: str | None = None, email: str | None = None) -> dict:
    """Register an agency through the API and return ``{token, user, tenant}``."""
    slug = slug or f"agency-{uuid.uuid4().hex[:8]}"
    res = client.post("/api/v1/auth/signup", json={
        "email": email or f"owner-{slug}@videoagency.com",
        "password": PASSWORD,
        "first_name": "Olga",
        "last_name": "Owner",
        "tenant_name": f"Agency {slug}",
        "tenant_slug": slug,
    })
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def make_user(tenant_id: int, *, role: str = ROLE_EDITOR, email: str | None = None) -> User:
    """Create an active user plus its workspace membership."""
    user = User(
        tenant_id=tenant_id,
        email=email or f"{role.lower()}-{uuid.uuid4().hex[:6]}@videoagency.com",
        password_hash=hash_password(PASSWORD),
        first_name="Eddie",
        last_name=role.title(),
        role=role,
        is_active=True,
    )
    _db.session.add(user)
    _db.session.flush()
    workspace = Workspace.query.filter_by(tenant_id=tenant_id).first()
    if workspace is not None:
        _db.session.add(WorkspaceMember(workspace_id=workspace.id, user_id=user.id, role=role))
    _db.session.commit()
    return user


def headers_for(user: User) -> dict:
    return auth_headers(generate_access_token(user.id, user.tenant_id, user.role))


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def owner(client):
    return signup(client)


@pytest.fixture()
def owner_headers(owner):
    return auth_headers(owner["token"])


@pytest.fixture()
def editor(owner):
    return make_user(owner["tenant"]["id"], role=ROLE_EDITOR)


@pytest.fixture()
def editor_headers(editor):
    return headers_for(editor)


@pytest.fixture()
def agency_client(client, owner_headers):
    res = client.post("/api/v1/clients", json={
        "name": "Carla Client",
        "email": "carla@brandcorp.com",
        "company_name": "Brand Corp",
    }, headers=owner_headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


@pytest.fixture()
def project(client, owner_headers, agency_client):
    res = client.post("/api/v1/projects", json={
        "name": "Launch Teaser",
        "client_id": agency_client["id"],
        "description": "30 second teaser with logo reveal and voiceover",
    }, headers=owner_headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


@pytest.fixture()
def version(client, owner_headers, project):
    res = client.post(f"/api/v1/projects/{project['id']}/versions", json={
        "file_url": "https://cdn.videoagency.com/teaser-v1.mp4",
        "file_name": "teaser-v1.mp4",
        "file_size": 1024,
    }, headers=owner_headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()
