from __future__ import annotations

import io
import os
import struct
import tempfile
import zlib
from typing import Callable, Generator

# Configure the app for tests before anything imports it
_TEST_DB_DIR = tempfile.mkdtemp(prefix="chirp-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DB_DIR, 'chirp.db')}"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["RUN_MIGRATIONS"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("RESEND_API_KEY", None)

import cloudinary.uploader  # noqa: E402
import fakeredis  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from PIL import Image  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from chirp import cache  # noqa: E402
from chirp.auth import create_access_token  # noqa: E402
from chirp.db import Base, SessionLocal, engine  # noqa: E402
from chirp.main import app, run_startup_tasks  # noqa: E402
from chirp.models import User  # noqa: E402
from chirp.services.passwords import hash_password  # noqa: E402

DEFAULT_PASSWORD = "secret123"


class FakeCloudinary:
    """Records uploads and deletions instead of calling the asset provider."""

    def __init__(self):
        self.uploads: list[dict] = []
        self.destroyed: list[str] = []
        self.fail_uploads = 0

    def upload(self, file, **options):
        if self.fail_uploads > 0:
            self.fail_uploads -= 1
            raise RuntimeError("provider unavailable")
        index = len(self.uploads) + 1
        public_id = f"{options.get('folder', 'test')}/asset{index}"
        self.uploads.append({"file": file, "options": options, "public_id": public_id})
        return {
            "secure_url": f"https://res.cloudinary.com/test/image/upload/{public_id}.png",
            "public_id": public_id,
            "bytes": 1234,
            "width": 10,
            "height": 10,
            "format": "png",
        }

    def destroy(self, public_id, **options):
        self.destroyed.append(public_id)
        return {"result": "ok"}


@pytest.fixture(scope="session", autouse=True)
def bootstrap() -> None:
    Base.metadata.create_all(bind=engine)
    run_startup_tasks()


@pytest.fixture(autouse=True)
def fake_redis() -> Generator[fakeredis.FakeRedis, None, None]:
    client = fakeredis.FakeRedis(decode_responses=True)
    client.flushall()
    cache.set_redis_client(client)
    yield client
    client.flushall()


@pytest.fixture(autouse=True)
def fake_cloudinary(monkeypatch) -> FakeCloudinary:
    fake = FakeCloudinary()
    monkeypatch.setattr(cloudinary.uploader, "upload", fake.upload)
    monkeypatch.setattr(cloudinary.uploader, "destroy", fake.destroy)
    return fake


@pytest.fixture(autouse=True)
def clean_tables() -> Generator[None, None, None]:
    yield
    with engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture()
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture()
def db() -> Generator[Session, None, None]:
    """Create a database session for testing."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def make_user(db: Session) -> Callable[..., User]:
    """Factory creating users directly in the database."""

    def _make_user(username: str, email: str | None = None, password: str = DEFAULT_PASSWORD) -> User:
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            password_hash=hash_password(password),
            profile_photo_url="https://res.cloudinary.com/chirp/image/upload/v1/defaults/profile.png",
            profile_photo_key="defaults/profile",
            cover_photo_url="https://res.cloudinary.com/chirp/image/upload/v1/defaults/cover.webp",
            cover_photo_key="defaults/cover",
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


def png_bytes(size: tuple[int, int] = (8, 8), color: str = "red") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def png_header_only(width: int, height: int) -> bytes:
    """A PNG with just IHDR and IEND: tiny on disk, huge once decoded."""

    def chunk(kind: bytes, data: bytes) -> bytes:
        return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data))

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IEND", b"")
