"""Tests for generation record persistence against SQLite."""

import dataclasses

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from conftest import FakeStorage
from photoset.core.database import Base, engine_options, normalize_database_url
from photoset.models import ProductImageSet  # noqa: F401
from photoset.models.domain import AngleStatus, AngleTask, CameraAngle, GenerationRequest
from photoset.services import image_sets


@pytest.fixture
async def db(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session
    await engine.dispose()


def _done(angle: CameraAngle, url: str) -> AngleTask:
    return AngleTask(angle).start().complete(url)


def _failed(angle: CameraAngle, message: str) -> AngleTask:
    return AngleTask(angle).start().fail(message, retry_count=3)


REQUEST = GenerationRequest(
    original_image_url="/uploads/products/mug.png",
    camera_angles=["wide", "medium", "bogus"],
    additional_notes="morning light",
)


class TestSessionStatus:
    def test_all_completed(self):
        tasks = [_done(CameraAngle.MEDIUM, "/uploads/a.png"), _done(CameraAngle.WIDE, "/uploads/b.png")]
        assert image_sets.session_status(tasks) == "completed"

    def test_partial_is_failed(self):
        tasks = [_done(CameraAngle.MEDIUM, "/uploads/a.png"), _failed(CameraAngle.WIDE, "x")]
        assert image_sets.session_status(tasks) == "failed"

    def test_empty_is_failed(self):
        assert image_sets.session_status([]) == "failed"


class TestRequestParams:
    def test_params_survive_storage(self):
        params = image_sets.request_to_params(REQUEST)
        params["unknown_field"] = 1
        restored = image_sets.params_to_request(params)
        assert restored == REQUEST


class TestImageSetRecords:
    async def test_processing_record(self, db):
        record = await image_sets.create_processing_record(db, "acme", "s1", REQUEST, title="Mug shoot")

        assert record.id
        assert record.status == "processing"
        assert record.camera_angles == ["wide", "medium"]
        assert [g["status"] for g in record.generated_images] == ["processing", "processing"]
        assert record.to_dict()["title"] == "Mug shoot"

    async def test_save_partial_result(self, db):
        record = await image_sets.create_processing_record(db, "acme", "s1", REQUEST)
        tasks = [_done(CameraAngle.MEDIUM, "/uploads/a.png"), _failed(CameraAngle.WIDE, "render rejected")]

        record = await image_sets.save_generation_result(db, record, tasks)

        data = record.to_dict()
        assert data["status"] == "failed"
        assert data["generatedImageUrl"] == "/uploads/a.png"
        assert data["errorMessage"] == "render rejected"
        assert [g["angle"] for g in data["generatedImages"]] == ["medium", "wide"]

    async def test_mark_failed(self, db):
        record = await image_sets.create_processing_record(db, "acme", "s1", REQUEST)
        record = await image_sets.mark_failed(db, record, "Product analysis failed")
        assert record.status == "failed"
        assert record.error_message == "Product analysis failed"

    async def test_tenant_scoping(self, db):
        mine = await image_sets.create_processing_record(db, "acme", "s1", REQUEST)
        await image_sets.create_processing_record(db, "acme", "s2", REQUEST)
        await image_sets.create_processing_record(db, "other", "s3", REQUEST)
        await db.commit()

        listed = await image_sets.list_image_sets(db, "acme")
        assert {r.session_id for r in listed} == {"s1", "s2"}
        assert len(await image_sets.list_image_sets(db, "acme", limit=1)) == 1

        assert await image_sets.get_image_set(db, "other", mine.id) is None
        assert not await image_sets.delete_image_set(db, "other", mine.id)
        assert await image_sets.delete_image_set(db, "acme", mine.id)
        assert await image_sets.get_image_set(db, "acme", mine.id) is None

    async def test_list_filters_and_pages(self, db):
        mug = await image_sets.create_processing_record(db, "acme", "s1", REQUEST, title="Red Mug shoot")
        await image_sets.create_processing_record(db, "acme", "s2", REQUEST, title="Teapot")
        outdoor = dataclasses.replace(REQUEST, background_type="outdoor")
        await image_sets.create_processing_record(db, "acme", "s3", outdoor, title="Mug picnic")
        await image_sets.mark_failed(db, mug, "render rejected")
        await db.commit()

        async def ids(**filters):
            return {r.session_id for r in await image_sets.list_image_sets(db, "acme", **filters)}

        assert await ids(search="mug") == {"s1", "s3"}
        assert await ids(background_type="outdoor") == {"s3"}
        assert await ids(status="failed") == {"s1"}
        assert await ids(search="mug", status="processing") == {"s3"}
        assert await image_sets.count_image_sets(db, "acme", search="MUG") == 2
        assert await image_sets.count_image_sets(db, "other") == 0

        first = await image_sets.list_image_sets(db, "acme", limit=2, page=1)
        second = await image_sets.list_image_sets(db, "acme", limit=2, page=2)
        assert len(first) == 2
        assert len(second) == 1
        assert {r.session_id for r in first + second} == {"s1", "s2", "s3"}

    async def test_generated_files_deleted(self, db):
        storage = FakeStorage()
        kept = await storage.save_image(b"a", "image/png")
        record = await image_sets.create_processing_record(db, "acme", "s1", REQUEST)
        tasks = [_done(CameraAngle.MEDIUM, kept), _done(CameraAngle.WIDE, "/uploads/product-images/gone.png")]
        record = await image_sets.save_generation_result(db, record, tasks)

        urls = image_sets.generated_file_urls(record)
        assert urls == [kept, "/uploads/product-images/gone.png"]
        assert REQUEST.original_image_url not in urls

        deleted, not_found = await image_sets.delete_generated_files(storage, urls)
        assert deleted == 1
        assert not_found == ["/uploads/product-images/gone.png"]
        assert storage.saved == {}


class TestEngineOptions:
    def test_postgres_urls_use_asyncpg(self):
        assert normalize_database_url("postgresql://u:p@db/x") == "postgresql+asyncpg://u:p@db/x"
        assert normalize_database_url("postgres://u:p@db/x") == "postgresql+asyncpg://u:p@db/x"
        assert normalize_database_url("sqlite+aiosqlite:///t.db") == "sqlite+aiosqlite:///t.db"

    def test_sqlite_has_no_pool_sizing(self):
        assert engine_options("sqlite+aiosqlite:///t.db") == {"echo": False}
        assert engine_options("postgresql+asyncpg://db/x")["pool_pre_ping"] is True
