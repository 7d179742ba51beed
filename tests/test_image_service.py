"""Tests for image validation, resizing and download."""

import io

import pytest
from PIL import Image

from app.backend.services.image_service import ImageDecodeError, ImageFetchError, ImageService


def make_image(size, image_format: str, mode: str = "RGB") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, "white").save(buffer, format=image_format)
    return buffer.getvalue()


class TestEncode:
    """Tests for ImageService.encode."""

    def test_small_png_passes_through(self, png_bytes):
        encoded = ImageService().encode(png_bytes)

        assert encoded.data == png_bytes
        assert encoded.mime_type == "image/png"

    def test_jpeg_mime_type(self):
        data = make_image((30, 20), "JPEG")

        encoded = ImageService().encode(data)

        assert encoded.data == data
        assert encoded.mime_type == "image/jpeg"

    def test_oversized_image_is_downscaled(self):
        data = make_image((3000, 1500), "JPEG")

        encoded = ImageService(max_dimension=2048).encode(data)

        assert encoded.mime_type == "image/jpeg"
        with Image.open(io.BytesIO(encoded.data)) as image:
            assert image.size == (2048, 1024)

    def test_unsupported_format_is_reencoded_as_png(self):
        data = make_image((30, 20), "BMP")

        encoded = ImageService().encode(data)

        assert encoded.mime_type == "image/png"
        with Image.open(io.BytesIO(encoded.data)) as image:
            assert image.format == "PNG"
            assert image.size == (30, 20)

    def test_garbage_bytes_rejected(self):
        with pytest.raises(ImageDecodeError):
            ImageService().encode(b"definitely not an image")

    def test_empty_bytes_rejected(self):
        with pytest.raises(ImageDecodeError, match="Empty image"):
            ImageService().encode(b"")


class TestFetch:
    """Tests for ImageService.fetch (served by the mock transport in conftest)."""

    @pytest.mark.asyncio
    async def test_downloads_image(self, image_service, png_bytes, license_image_url):
        encoded = await image_service.fetch(license_image_url)

        assert encoded.data == png_bytes
        assert encoded.mime_type == "image/png"

    @pytest.mark.asyncio
    async def test_error_status(self, image_service):
        with pytest.raises(ImageFetchError, match="404"):
            await image_service.fetch("https://images.example.com/missing.png")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", ["ftp://images.example.com/license.png", "license.png"])
    async def test_rejects_non_http_urls(self, image_service, url):
        with pytest.raises(ImageFetchError):
            await image_service.fetch(url)
