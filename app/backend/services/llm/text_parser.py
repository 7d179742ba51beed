"""
Personal information extraction from free text.

The model fills a fixed seven-field JSON template; a regex pass then fills
phone number and ZIP code when the model left them empty.
"""

import logging
import re

from ...models import IdDocumentRecord, PersonRecord
from .gateway import LLMGateway
from .normalizer import parse_person, resolve_with_retry

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r"(\+?\d{1,3}[-.\s]?)?\(?([0-9]{3})\)?[-.\s]?([0-9]{3})[-.\s]?([0-9]{4})")
ZIP_RE = re.compile(r"\b\d{5}(?:-\d{4})?\b")


def build_text_prompt(input_text: str) -> str:
    return f"""Extract personal information from this text. Return ONLY valid JSON with these exact fields (use empty string for missing fields, never null):

{{
  "name": "",
  "street": "",
  "city": "",
  "state": "",
  "country": "",
  "zip_code": "",
  "phone_number": ""
}}

Text to parse: {input_text}

IMPORTANT:
- Never fabricate values
- Preserve exact spellings and numbers from input
- Use empty string for missing fields
- Return only valid JSON"""


def apply_regex_fallback(person: PersonRecord, input_text: str) -> PersonRecord:
    """Fill an empty phone number or ZIP code from the source text; never override."""
    if not person.phone_number:
        match = PHONE_RE.search(input_text)
        if match:
            person.phone_number = match.group(0).strip()
            logger.info("Phone number filled from regex fallback")

    if not person.zip_code:
        match = ZIP_RE.search(input_text)
        if match:
            person.zip_code = match.group(0)
            logger.info("ZIP code filled from regex fallback")

    return person


class TextParserService:
    """Extracts a PersonRecord from free text via the LLM gateway."""

    def __init__(self, gateway: LLMGateway, model: str = "llama-3.3-70b-versatile"):
        self.gateway = gateway
        self.model = model

    async def parse_text(self, input_text: str) -> PersonRecord:
        """
        Extract personal information from free text.

        Raises:
            InvalidResponseFormat: If the model output is not valid JSON after one retry.
            UpstreamTransportError: If the LLM provider call fails.
        """
        prompt = build_text_prompt(input_text)
        raw = await self.gateway.complete_chat(self.model, prompt)

        outcome = await resolve_with_retry(raw, parse_person, self.gateway, self.model, prompt)
        person = outcome.unwrap()

        return apply_regex_fallback(person, input_text)

    async def parse_text_as_id_document(self, input_text: str) -> IdDocumentRecord:
        """Text fallback for ID parsing: person fields remapped, document fields empty."""
        person = await self.parse_text(input_text)
        return IdDocumentRecord.from_person(person)


# =============================================================================
# Singleton Factory
# =============================================================================

_text_parser: TextParserService | None = None


def get_text_parser() -> TextParserService:
    """Get or create the text parser singleton."""
    global _text_parser
    if _text_parser is None:
        from ...config import get_settings
        from .gateway import get_llm_gateway

        _text_parser = TextParserService(
            gateway=get_llm_gateway(),
            model=get_settings().text_parser_model,
        )
    return _text_parser
