"""
Tests for download tracking.

Covers the TrackingService against an in-memory database and the REST
endpoint against a throwaway SQLite file.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from codecollab.core.database import Base, get_db
from codecollab.core.security import create_access_token
from codecollab.main import app
from codecollab.models.download import DownloadEvent
from codecollab.schemas.tracking import DownloadTrackRequest
from codecollab.services.tracking import TrackingService


class TestDownloadTrackRequest:
    """Test request coercion."""

    @pytest.mark.parametrize("raw, expected", [(120, 120), ("64", 64), ("lots", 0), (None, 0), (-5, 0)])
    def test_bytes_coerced(self, raw, expected):
        assert DownloadTrackRequest(bytes=raw).bytes == expected

    def test_all_fields_optional(self):
        request = DownloadTrackRequest()

        assert request.filename is None
        assert request.bytes == 0


class TestTrackingService:
    """Test the append-only download sink."""

    async def test_record_download(self, db_session):
        service = TrackingService(db_session)

        event = await service.record_download(
            "user-1", DownloadTrackRequest(filename="main.py", language="python", bytes=42)
        )

        assert event.id is not None
        assert event.user_id == "user-1"
        assert event.bytes == 42
        assert event.created_at is not None

    async def test_records_are_appended(self, db_session):
        service = TrackingService(db_session)
        await service.record_download("user-1", DownloadTrackRequest(filename="a.c"))
        await service.record_download("user-1", DownloadTrackRequest(filename="a.c"))
        await service.record_download("user-2", DownloadTrackRequest(filename="b.js"))

        downloads = await service.downloads_for_user("user-1")

        assert [d.filename for d in downloads] == ["a.c", "a.c"]


@pytest.fixture
def tracking_client(tmp_path):
    """TestClient whose database is a fresh SQLite file."""
    db_file = tmp_path / "tracking.db"

    async def override_get_db():
        engine = create_async_engine(f"sqlite+aiosqlite:///{db_file}", poolclass=NullPool)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)() as session:
            yield session
        await engine.dispose()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app), db_file
    app.dependency_overrides.pop(get_db, None)


def stored_downloads(db_file):
    engine = create_engine(f"sqlite:///{db_file}")
    try:
        with Session(engine) as session:
            return list(session.scalars(select(DownloadEvent)))
    finally:
        engine.dispose()


class TestTrackDownloadEndpoint:
    """Test POST /api/track/download."""

    def test_requires_token(self, tracking_client):
        client, _ = tracking_client

        response = client.post("/api/track/download", json={"filename": "x.py"})

        assert response.status_code == 401
        assert response.json()["detail"] == "No token"

    def test_rejects_bad_token(self, tracking_client):
        client, _ = tracking_client

        response = client.post(
            "/api/track/download",
            json={"filename": "x.py"},
            headers={"Authorization": "Bearer nonsense"},
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token"

    def test_records_download(self, tracking_client):
        client, db_file = tracking_client
        token = create_access_token("user-7")

        response = client.post(
            "/api/track/download",
            json={"filename": "main.cpp", "language": "cpp", "bytes": "2048"},
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True}

        (download,) = stored_downloads(db_file)
        assert download.user_id == "user-7"
        assert download.filename == "main.cpp"
        assert download.language == "cpp"
        assert download.bytes == 2048
