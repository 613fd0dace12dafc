from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from pontocarro.core.config import Settings
from pontocarro.core.database import Database
from pontocarro.main import create_app
from pontocarro.services.email import EmailDeliveryError, Mailer
from pontocarro.services.rate_limit import RateLimiter
from pontocarro.services.storage import ImageStorage, StorageError


CDN = "https://cdn.example.com/pontocarro"
PASSWORD = "Abcdef1!"


class FakeStorage(ImageStorage):
    """In-memory image host."""

    def __init__(self) -> None:
        self.objects: Dict[str, bytes] = {}
        self.fail_saves_after: Optional[int] = None
        self.fail_deletes = False
        self.closed = False

    def save(self, key: str, data: bytes, content_type: str) -> None:
        if self.fail_saves_after is not None and len(self.objects) >= self.fail_saves_after:
            raise StorageError(f"cannot store {key}")
        self.objects[key] = data

    def delete(self, key: str) -> None:
        if self.fail_deletes:
            raise StorageError(f"cannot delete {key}")
        self.objects.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        if self.fail_deletes:
            raise StorageError(f"cannot delete {prefix}")
        keys = [key for key in self.objects if key.startswith(prefix)]
        for key in keys:
            del self.objects[key]
        return len(keys)

    def object_url(self, key: str) -> str:
        return f"https://bucket.example.com/{key}"

    def close(self) -> None:
        self.closed = True


class FakeMailer(Mailer):
    """Records messages instead of sending them."""

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings, sleep=lambda seconds: None)
        self.sent: List[Dict[str, str]] = []
        self.fail = False

    @property
    def transport_name(self) -> str:
        return "fake"

    def send(self, to_email: str, subject: str, html: str) -> None:
        if self.fail:
            raise EmailDeliveryError("Não foi possível enviar o e-mail")
        self.sent.append({"to": to_email, "subject": subject, "html": html})


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        JWT_SECRET_KEY="test-access-secret",
        JWT_REFRESH_SECRET_KEY="test-refresh-secret",
        BCRYPT_ROUNDS=4,
        IMAGE_STORAGE="local",
        MEDIA_ROOT=str(tmp_path / "media"),
        IMAGE_CDN_BASE_URL=CDN + "/",
        FRONTEND_URL="https://pontocarro.example.com",
        MAIL_RETRY_DELAY_SECONDS=0,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def database() -> Database:
    return Database("sqlite://")


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def mailer(settings) -> FakeMailer:
    return FakeMailer(settings)


@pytest.fixture
def client(settings, database, storage, mailer):
    app = create_app(
        settings,
        database=database,
        storage=storage,
        mailer=mailer,
        rate_limiter=RateLimiter(None),
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db_session(client, database):
    session = database.session()
    yield session
    session.close()


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def register_user(client: TestClient, email: str = "ana@example.com", **overrides) -> dict:
    payload = {
        "username": "Ana Souza",
        "email": email,
        "password": PASSWORD,
        "confirmPassword": PASSWORD,
    }
    payload.update(overrides)
    response = client.post("/auth/register", json=payload)
    assert response.status_code == 201, response.json()
    return response.json()


def vehicle_payload(**overrides) -> dict:
    payload = {
        "title": "Civic EXL impecável",
        "brand": "Honda",
        "vehicleModel": "Civic",
        "engine": "2.0",
        "year": 2020,
        "price": 115000,
        "mileage": 42000,
        "state": "SP",
        "city": "São Paulo",
        "fuel": "Flex",
        "transmission": "Automático",
        "bodyType": "Sedã",
        "color": "Prata",
        "description": "Único dono, revisões na concessionária.",
        "features": ["Ar-condicionado", "Bancos de couro"],
        "announcerName": "Ana Souza",
        "announcerEmail": "ana@example.com",
        "announcerPhone": "(11) 98765-4321",
    }
    payload.update(overrides)
    return payload


def create_vehicle(client: TestClient, token: str, **overrides) -> dict:
    response = client.post("/vehicles", json=vehicle_payload(**overrides), headers=auth_headers(token))
    assert response.status_code == 201, response.json()
    return response.json()


def image_files(count: int, content_type: str = "image/jpeg", size: int = 128):
    return [
        ("images", (f"foto{index}.jpg", b"\xff\xd8" + b"x" * size, content_type))
        for index in range(count)
    ]
