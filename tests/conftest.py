"""Shared fixtures: in-memory database, data service and API client."""
import os

# Must be set before config is imported
os.environ["PASSWORD_HASH_ITERATIONS"] = "1000"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("RESEND_API_KEY", None)
os.environ.pop("REQUIRE_EMAIL_CONFIRMATION", None)

import pytest
from fastapi.testclient import TestClient

from auth_endpoints import get_db, hash_password
from journal_models import User, get_engine, get_session_factory, init_db
from main import app
from trading_data import TradingDataService


@pytest.fixture
def engine():
    engine = get_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = get_session_factory(engine)()
    yield session
    session.close()


def make_user(db, email="trader@example.com", password="secret123"):
    user = User(email=email, password_hash=hash_password(password), email_confirmed=True)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def user(db):
    return make_user(db)


@pytest.fixture
def service(db, user):
    return TradingDataService(db, user)


@pytest.fixture
def client(engine):
    factory = get_session_factory(engine)

    def override_get_db():
        session = factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def sign_up_and_in(client, email="trader@example.com", password="secret123"):
    """Create an account through the API and return auth headers"""
    response = client.post("/api/auth/signup", json={
        "email": email,
        "password": password,
        "confirmPassword": password,
    })
    assert response.status_code == 201, response.text

    response = client.post("/api/auth/signin", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def auth_headers(client):
    return sign_up_and_in(client)
