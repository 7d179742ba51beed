"""
Image acquisition for ID document parsing.

Turns uploaded bytes or an image URL into an EncodedImage the LLM gateway
can attach to a chat message. Pillow verifies and, when needed, downscales
or re-encodes the image; httpx downloads remote images.
"""

import io
import logging

import httpx
from PIL import Image, UnidentifiedImageError

from .llm.gateway import EncodedImage

logger = logging.getLogger(__name__)

# Formats vision models accept as-is; anything else is re-encoded to PNG.
PASSTHROUGH_FORMATS = {"JPEG", "PNG", "WEBP", "GIF"}


class ImageDecodeError(Exception):
    """Raised when provided bytes are not a readable image."""

    pass


class ImageFetchError(Exception):
    """Raised when an image URL cannot be downloaded."""

    pass


class ImageService:
    """
    Service for preparing license images.

    Images larger than max_dimension on their longest side are downscaled
    before being sent to the model.
    """

    def __init__(
        self,
        max_dimension: int = 2048,
        fetch_timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the image service.

        Args:
            max_dimension: Longest allowed side in pixels.
            fetch_timeout: Timeout in seconds for image downloads.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self.max_dimension = max_dimension
        self.fetch_timeout = fetch_timeout
        self._transport = transport

    def encode(self, data: bytes) -> EncodedImage:
        """
        Validate image bytes and prepare them for the model.

        Raises:
            ImageDecodeError: If the bytes are empty or not an image.
        """
        if not data:
            raise ImageDecodeError("Empty image provided")

        try:
            with Image.open(io.BytesIO(data)) as image:
                image.load()
                image_format = image.format or ""
                oversized = max(image.size) > self.max_dimension

                if image_format in PASSTHROUGH_FORMATS and not oversized:
                    return EncodedImage(data=data, mime_type=Image.MIME[image_format])

                output_format = image_format if image_format in PASSTHROUGH_FORMATS else "PNG"
                if oversized:
                    ratio = self.max_dimension / max(image.size)
                    new_size = (round(image.size[0] * ratio), round(image.size[1] * ratio))
                    logger.info("Downscaling image from %s to %s", image.size, new_size)
                    image = image.resize(new_size, Image.Resampling.LANCZOS)

                if output_format == "JPEG" and image.mode not in ("RGB", "L"):
                    image = image.convert("RGB")

                buffer = io.BytesIO()
                image.save(buffer, format=output_format)
        except (UnidentifiedImageError, OSError) as e:
            raise ImageDecodeError(f"Uploaded file is not a readable image: {e}") from e

        return EncodedImage(data=buffer.getvalue(), mime_type=Image.MIME[output_format])

    async def fetch(self, url: str) -> EncodedImage:
        """
        Download an image and prepare it for the model.

        Raises:
            ImageFetchError: If the URL is not http(s), unreachable, or answers non-2xx.
            ImageDecodeError: If the downloaded content is not an image.
        """
        try:
            scheme = httpx.URL(url).scheme
        except httpx.InvalidURL as e:
            raise ImageFetchError(f"Invalid image URL: {e}") from e
        if scheme not in ("http", "https"):
            raise ImageFetchError("Image URL must use http or https")

        logger.info("Downloading image from URL")
        try:
            async with httpx.AsyncClient(
                timeout=self.fetch_timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Image download failed with status %s", e.response.status_code)
            raise ImageFetchError(
                f"Image URL returned status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error("Image download failed: %s", e)
            raise ImageFetchError(f"Could not download image: {e}") from e

        logger.info("Downloaded image: %d bytes", len(response.content))
        return self.encode(response.content)


# =============================================================================
# Singleton Factory
# =============================================================================

_image_service: ImageService | None = None


def get_image_service() -> ImageService:
    """Get or create the image service singleton."""
    global _image_service
    if _image_service is None:
        from ..config import get_settings

        settings = get_settings()
        _image_service = ImageService(
            max_dimension=settings.max_image_dimension,
            fetch_timeout=settings.image_fetch_timeout_seconds,
        )
    return _image_service
