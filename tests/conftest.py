import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from app.db.session import build_engine, create_db_and_tables, get_session
from app.main import app
from app.models.user import UserRole
from app.services.auth import AuthContext, AuthService
from app.services.post import PostService
from app.services.s3 import S3Service, get_s3_service

PASSWORD = "correct-horse"


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def s3_client():
    return MagicMock()


@pytest.fixture
def storage(s3_client):
    with patch("app.services.s3.boto3.client", return_value=s3_client):
        return S3Service()


@pytest.fixture
def admin(session):
    return AuthService(session).create_user("admin@example.com", PASSWORD, name="Admin", role=UserRole.ADMIN)


@pytest.fixture
def reader(session):
    return AuthService(session).create_user("reader@example.com", PASSWORD, name="Reader")


@pytest.fixture
def admin_auth(admin):
    return AuthContext.for_user(admin)


@pytest.fixture
def reader_auth(reader):
    return AuthContext.for_user(reader)


@pytest.fixture
def post_service(session, storage):
    return PostService(session, storage=storage)


@pytest.fixture
def post_payload():
    def build(**overrides):
        payload = {
            "title": "Hello blocks",
            "slug": "hello-blocks",
            "content": [{"type": "paragraph", "content": "First words of the post"}],
            "tags": ["Python"],
            "published": True,
        }
        payload.update(overrides)
        return payload
    return build


@pytest.fixture
def client(session, storage):
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_s3_service] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(session, admin):
    token = AuthService(session).create_access_token(admin)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def reader_headers(session, reader):
    token = AuthService(session).create_access_token(reader)
    return {"Authorization": f"Bearer {token}"}
