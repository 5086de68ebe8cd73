import os
from typing import Generator

# Configure an in-memory database before importing the app.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("TOGGLE_DELAY_SECONDS", "0")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from taskboard import models  # noqa: E402
from taskboard.auth import hash_password  # noqa: E402
from taskboard.cache import views  # noqa: E402
from taskboard.database import Base, SessionLocal, engine, get_db  # noqa: E402
from taskboard.main import app  # noqa: E402
from taskboard.repositories import ensure_roles  # noqa: E402

PASSWORD = "Secret123!"


@pytest.fixture(autouse=True)
def clean_db():
    """Reset schema and cached views for each test for isolation."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    views.clear()
    yield
    views.clear()


@pytest.fixture()
def db_session(clean_db):
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(db_session) -> Generator[TestClient, None, None]:
    """FastAPI test client sharing the test session and running startup hooks."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def user_factory(db_session):
    """Create users directly in the test database."""

    def _create_user(
        email: str,
        password: str = PASSWORD,
        name: str = None,
        roles=("user",),
        is_active: bool = True,
    ) -> models.User:
        user = models.User(
            email=email,
            name=name or email.split("@")[0],
            password_hash=hash_password(password),
            is_active=is_active,
        )
        db_session.add(user)
        db_session.flush()
        ensure_roles(db_session, user, roles)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture()
def todo_factory(db_session):
    def _create_todo(description: str, complete: bool = False, user=None) -> models.Todo:
        todo = models.Todo(
            description=description,
            complete=complete,
            user_id=user.id if user is not None else None,
        )
        db_session.add(todo)
        db_session.commit()
        db_session.refresh(todo)
        return todo

    return _create_todo


@pytest.fixture()
def sign_in(client):
    """Sign in through the credentials form and keep the session cookie."""

    def _sign_in(email: str, password: str = PASSWORD, callback_url: str = "/dashboard"):
        return client.post(
            "/api/auth/callback/credentials",
            data={"email": email, "password": password, "callbackUrl": callback_url},
            follow_redirects=False,
        )

    return _sign_in
