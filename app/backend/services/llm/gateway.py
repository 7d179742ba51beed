"""
Thin gateway to an OpenAI-compatible chat completions API.

Issues a single-message request (plain text, or text plus one image) and
returns the raw text content. No retries happen here; callers decide.
"""

import base64
import logging
from dataclasses import dataclass
from typing import Any

from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from .exceptions import NotConfiguredError, UpstreamTransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncodedImage:
    """Image bytes ready to be attached to a chat message."""

    data: bytes
    mime_type: str = "image/jpeg"

    @property
    def data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("utf-8")
        return f"data:{self.mime_type};base64,{encoded}"


def _mask_key(api_key: str) -> str:
    if len(api_key) > 10:
        return f"{api_key[:6]}...{api_key[-4:]}"
    return "***"


def build_messages(prompt: str, image: EncodedImage | None = None) -> list[dict[str, Any]]:
    """Build the single user message, multimodal when an image is attached."""
    if image is None:
        return [{"role": "user", "content": prompt}]

    return [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": image.data_url}},
            ],
        }
    ]


class LLMGateway:
    """
    Chat completion client with fixed, deterministic generation parameters.

    Uses the openai SDK's async client so the provider can be swapped by
    changing the base URL (Groq by default).
    """

    def __init__(
        self,
        api_key: str | None,
        base_url: str | None = None,
        max_tokens: int = 2048,
        timeout: float = 60.0,
        json_mode: bool = True,
        client: Any = None,
    ):
        """
        Initialize the gateway.

        Args:
            api_key: Provider API key. Required.
            base_url: OpenAI-compatible API root.
            max_tokens: Upper bound on generated tokens per call.
            timeout: Per-request timeout in seconds.
            json_mode: Request strict JSON object output from the provider.
            client: Pre-built async client (tests inject a fake here).

        Raises:
            NotConfiguredError: If no API key is provided.
        """
        if not api_key:
            raise NotConfiguredError(
                "LLM API key not configured. Set GROQ_API_KEY environment variable."
            )

        self.max_tokens = max_tokens
        self.json_mode = json_mode

        if client is None:
            client = AsyncOpenAI(
                api_key=api_key,
                base_url=base_url,
                timeout=timeout,
                max_retries=0,
            )
        self._client = client

        logger.info(
            "LLM gateway configured: base_url=%s, api_key=%s, timeout=%.1fs",
            base_url,
            _mask_key(api_key),
            timeout,
        )

    async def complete_chat(
        self,
        model: str,
        prompt: str,
        image: EncodedImage | None = None,
    ) -> str:
        """
        Send one chat completion request and return the message content.

        Args:
            model: Model identifier.
            prompt: User prompt text.
            image: Optional image attached as a second content part.

        Returns:
            The raw text content of the first choice ("" if the provider sent none).

        Raises:
            UpstreamTransportError: On network failure, timeout or non-success status.
        """
        request: dict[str, Any] = {
            "model": model,
            "messages": build_messages(prompt, image),
            "temperature": 0.0,
            "max_tokens": self.max_tokens,
        }
        if self.json_mode:
            request["response_format"] = {"type": "json_object"}

        logger.info(
            "Calling LLM: model=%s, image=%s, prompt_chars=%d",
            model,
            "yes" if image is not None else "no",
            len(prompt),
        )

        try:
            response = await self._client.chat.completions.create(**request)
        except APIStatusError as e:
            logger.error("LLM provider returned %s: %s", e.status_code, e.body)
            raise UpstreamTransportError(
                f"LLM provider returned {e.status_code}: {e.body}",
                status_code=e.status_code,
                body=e.body,
            ) from e
        except APIConnectionError as e:
            logger.error("LLM provider request failed: %s", e)
            raise UpstreamTransportError(f"LLM provider request failed: {e}") from e

        content = response.choices[0].message.content or ""
        logger.info("Received LLM response: model=%s, content_chars=%d", model, len(content))
        return content


# =============================================================================
# Singleton Factory
# =============================================================================

_llm_gateway: LLMGateway | None = None


def get_llm_gateway() -> LLMGateway:
    """Get or create the LLM gateway singleton."""
    global _llm_gateway
    if _llm_gateway is None:
        from ...config import get_settings

        settings = get_settings()
        _llm_gateway = LLMGateway(
            api_key=settings.groq_api_key,
            base_url=settings.llm_base_url,
            max_tokens=settings.llm_max_tokens,
            timeout=settings.llm_timeout_seconds,
            json_mode=settings.llm_json_mode,
        )
    return _llm_gateway
