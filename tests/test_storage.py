"""Tests for reference path resolution and local storage."""

from unittest.mock import MagicMock

import pytest

from photoset.core.config import get_settings
from photoset.core.errors import InvalidReferencePath
from photoset.core.flags import get_flags
from photoset.core.storage import (
    LocalStorage,
    S3Storage,
    get_storage,
    mime_type_for,
    read_reference,
    resolve_reference_path,
)


class TestResolveReferencePath:
    def test_upload_path(self, storage_root):
        path = resolve_reference_path("/uploads/products/mug.png")
        assert path == (storage_root / "products" / "mug.png").resolve()

    def test_http_url_with_upload_path(self, storage_root):
        path = resolve_reference_path("https://cdn.example.com/uploads/products/mug.png?v=2")
        assert path == (storage_root / "products" / "mug.png").resolve()

    @pytest.mark.parametrize("url", [
        "",
        "   ",
        "/etc/passwd",
        "/uploads/../secrets.txt",
        "/uploads/products/../../outside.png",
        "https:///uploads/x.png",
        "https://cdn.example.com/static/x.png",
    ])
    def test_rejected(self, url):
        with pytest.raises(InvalidReferencePath):
            resolve_reference_path(url)


class TestReadReference:
    def test_reads_bytes_and_mime_type(self, original_image_url):
        image = read_reference(original_image_url)
        assert image.mime_type == "image/png"
        assert image.data.startswith(b"\x89PNG")
        assert image.url == original_image_url

    def test_missing_file(self):
        with pytest.raises(InvalidReferencePath):
            read_reference("/uploads/products/missing.png")

    def test_mime_types(self):
        assert mime_type_for("a.webp") == "image/webp"
        assert mime_type_for("a.JPG") == "image/jpeg"
        assert mime_type_for("a") == "image/jpeg"


class TestLocalStorage:
    async def test_save_image(self, storage_root):
        url = await LocalStorage().save_image(b"data", "image/webp")
        assert url.startswith("/uploads/product-images/")
        assert url.endswith(".webp")
        assert (storage_root / url.removeprefix("/uploads/")).read_bytes() == b"data"

    async def test_delete_file(self, storage_root):
        storage = LocalStorage()
        url = await storage.save_image(b"data", "image/png")

        assert await storage.delete_file(url)
        assert not (storage_root / url.removeprefix("/uploads/")).exists()
        assert not await storage.delete_file(url)

    @pytest.mark.parametrize("url", ["", "/etc/passwd", "/uploads/../outside.png"])
    async def test_delete_ignores_foreign_paths(self, url):
        assert not await LocalStorage().delete_file(url)


class TestS3Storage:
    async def test_put_object(self, monkeypatch):
        monkeypatch.setenv("S3_BUCKET_NAME", "shots")
        monkeypatch.setenv("AWS_REGION", "eu-west-1")
        get_settings.cache_clear()
        storage = S3Storage()
        storage._client = MagicMock()

        url = await storage.save_image(b"data", "image/png")

        kwargs = storage._client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "shots"
        assert kwargs["ContentType"] == "image/png"
        assert kwargs["Key"].startswith("product-images/")
        assert url == f"https://shots.s3.eu-west-1.amazonaws.com/{kwargs['Key']}"

    async def test_delete_object(self, monkeypatch):
        monkeypatch.setenv("S3_BUCKET_NAME", "shots")
        monkeypatch.setenv("AWS_REGION", "eu-west-1")
        get_settings.cache_clear()
        storage = S3Storage()
        storage._client = MagicMock()

        assert await storage.delete_file("https://shots.s3.eu-west-1.amazonaws.com/product-images/a.png")
        storage._client.delete_object.assert_called_once_with(Bucket="shots", Key="product-images/a.png")

        assert not await storage.delete_file("https://other.example.com/product-images/a.png")
        assert storage._client.delete_object.call_count == 1

    def test_backend_follows_flag(self, monkeypatch):
        assert isinstance(get_storage(), LocalStorage)
        monkeypatch.setenv("FF_USE_S3", "true")
        get_flags.cache_clear()
        assert isinstance(get_storage(), S3Storage)
