import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.append(str(Path(__file__).resolve().parents[1]))

from app.core.broadcast import channel_hub
from app.core.config import settings
from app.db.base import Base
from app.db.models import Booking, User, UserRole  # noqa: F401
from app.db.session import get_db
from app.main import app

TEST_DATABASE_URL = "sqlite+pysqlite:///:memory:"
TEST_PASSWORD = "StrongPass123"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def reset_database() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    channel_hub.reset()


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch) -> Path:
    target = tmp_path / "uploads"
    monkeypatch.setattr(settings, "upload_dir", str(target))
    return target


@pytest.fixture()
def db_session() -> Session:
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def make_user(db_session):
    counter = {"value": 0}

    def factory(role: UserRole = UserRole.CUSTOMER, email: str | None = None) -> User:
        counter["value"] += 1
        user = User(
            email=email or f"{role.value}{counter['value']}@example.com",
            hashed_password="x",
            first_name="Test",
            last_name=f"User{counter['value']}",
            phone="+385911234567",
            role=role.value,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return factory


@pytest.fixture()
def client() -> TestClient:
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def register_and_login(client, monkeypatch):
    def factory(email: str, admin: bool = False, first_name: str = "Ana") -> str:
        if admin:
            monkeypatch.setattr(settings, "admin_emails", [*settings.admin_emails, email])
        payload = {
            "email": email,
            "password": TEST_PASSWORD,
            "first_name": first_name,
            "last_name": "Horvat",
            "phone": "+385911234567",
        }
        register_response = client.post("/auth/register", json=payload)
        assert register_response.status_code == 201

        login_response = client.post("/auth/login", json={"email": email, "password": TEST_PASSWORD})
        assert login_response.status_code == 200
        return login_response.json()["access_token"]

    return factory

