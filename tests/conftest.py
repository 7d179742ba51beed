"""Pytest configuration and fixtures."""

import io
import os
from typing import Generator

import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image

# The app refuses to start without a provider key
os.environ.setdefault("GROQ_API_KEY", "test-key")

from app.backend.main import app  # noqa: E402
from app.backend.services.image_service import ImageService, get_image_service  # noqa: E402
from app.backend.services.llm import (  # noqa: E402
    ImageParserService,
    TextParserService,
    get_image_parser,
    get_text_parser,
)

LICENSE_IMAGE_URL = "https://images.example.com/license.png"


class FakeGateway:
    """Stands in for LLMGateway: returns queued responses and records every call."""

    def __init__(self):
        self.responses: list = []
        self.calls: list[dict] = []

    def queue(self, *responses) -> "FakeGateway":
        self.responses.extend(responses)
        return self

    async def complete_chat(self, model, prompt, image=None):
        self.calls.append({"model": model, "prompt": prompt, "image": image})
        if not self.responses:
            raise AssertionError("Unexpected LLM call")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _make_png(size: tuple[int, int] = (40, 25)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, "white").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    """A tiny valid PNG."""
    return _make_png()


@pytest.fixture
def license_image_url() -> str:
    """URL the mocked image host answers with png_bytes."""
    return LICENSE_IMAGE_URL


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def image_service(png_bytes: bytes) -> ImageService:
    """Image service whose downloads are served by an in-memory transport."""

    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == LICENSE_IMAGE_URL:
            return httpx.Response(200, content=png_bytes, headers={"content-type": "image/png"})
        return httpx.Response(404, text="not found")

    return ImageService(transport=httpx.MockTransport(handler))


@pytest.fixture
def text_parser(fake_gateway: FakeGateway) -> TextParserService:
    return TextParserService(gateway=fake_gateway, model="text-model")


@pytest.fixture
def image_parser(fake_gateway: FakeGateway, image_service: ImageService) -> ImageParserService:
    return ImageParserService(gateway=fake_gateway, image_service=image_service, model="vision-model")


@pytest.fixture
def client(
    text_parser: TextParserService,
    image_parser: ImageParserService,
    image_service: ImageService,
) -> Generator[TestClient, None, None]:
    """Create a test client with the LLM-backed services wired to the fake gateway."""
    app.dependency_overrides[get_text_parser] = lambda: text_parser
    app.dependency_overrides[get_image_parser] = lambda: image_parser
    app.dependency_overrides[get_image_service] = lambda: image_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
