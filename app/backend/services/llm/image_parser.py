"""
Driver's license extraction from images using a vision model.

Flow:
1. Field-by-field extraction prompt with the image attached
2. Normalization (one corrective retry on invalid JSON), standardization, warnings
3. Focused re-extraction of mandatory fields still empty after step 2
"""

import logging
from typing import TYPE_CHECKING

from ...models import IdDocumentRecord, coerce_text
from .exceptions import UpstreamTransportError
from .gateway import EncodedImage, LLMGateway
from .normalizer import (
    DATE_FIELD_LABELS,
    FIELD_LABELS,
    ID_DOCUMENT_FIELD_ALIASES,
    add_warning,
    load_json_object,
    map_fields,
    parse_id_document,
    resolve_with_retry,
    standardize_date_field,
    standardize_eye_color,
    standardize_id_document,
)

if TYPE_CHECKING:
    from ..image_service import ImageService

logger = logging.getLogger(__name__)


# =============================================================================
# Extraction Prompts
# =============================================================================

ID_EXTRACTION_PROMPT = """You are reading a photo or scan of a driver's license or state ID card.
Extract the information below EXACTLY as printed. Read every label on the card, front side, including small print near the photo and along the edges.

## Field-by-field rules

1. **fullName**: Labels "NAME", "LN"/"FN" (last/first), or numbered fields "1" (last name) and "2" (first and middle names). If last and first names are printed on separate lines, return them as "LAST, FIRST MIDDLE". Include suffixes (JR, SR, III).

2. **dateOfBirth**: Labels "DOB", "Date of Birth", "BIRTH DATE", or field "3". US cards print MM/DD/YYYY. Return yyyy-mm-dd when you are certain of the order.

3. **address**: Usually directly below the name, field "8". First line is the street (with apartment/unit), second line is "CITY, ST ZIP". Split into street, city, state (2-letter code), zipCode (5 digits or ZIP+4). country is "USA" for US cards.

4. **documentNumber**: Labels "DL", "DLN", "LIC#", "License No", "ID", "NO", or field "4d". Usually the most prominent number near the top. Copy every character exactly, keep leading letters and zeros.

5. **expirationDate**: Labels "EXP", "Expires", "EXPIRATION", or field "4b". Return yyyy-mm-dd when certain.

6. **issueDate**: Labels "ISS", "Issued", "ISSUE DATE", or field "4a". Return yyyy-mm-dd when certain.

7. **licenseClass**: Labels "CLASS", "CL", or field "9". Typically a single letter (A, B, C, D, M) or "CDL-A".

8. **endorsements**: Labels "END", "ENDORSEMENTS", or field "9a". "NONE" means empty string.

9. **restrictions**: Labels "REST", "RESTR", "RESTRICTIONS", or field "12". "NONE" means empty string. Codes such as "B" may mean corrective lenses; copy the code as printed.

10. **sex**: Labels "SEX", "S", or field "15". Usually "M", "F" or "X".

11. **eyeColor**: Labels "EYES", "EYE", or field "18". Usually a three-letter code (BRN, BLU, GRN, HZL, GRY, BLK). It is printed near height and sex, often in the lower half of the card.

12. **height**: Labels "HGT", "HT", "HEIGHT", or field "16". Keep the printed format, e.g. 5'-10" or 6'00".

13. **detectedCountry** / **detectedState**: The issuing country and state, usually in the card header ("ILLINOIS", "CALIFORNIA USA").

14. **barcodePresent**: true if a PDF417 barcode or magnetic stripe is visible, otherwise false.

15. **confidences**: Optional. Per-field confidence between 0.0 and 1.0.

16. **boxes**: Optional. Per-field bounding box [x, y, width, height], normalized to 0-1.

## Output

Return ONLY valid JSON with these exact fields (use empty string for missing fields):

{
  "fullName": "",
  "dateOfBirth": "",
  "address": {
    "street": "",
    "city": "",
    "state": "",
    "country": "",
    "zipCode": ""
  },
  "documentNumber": "",
  "expirationDate": "",
  "issueDate": "",
  "licenseClass": "",
  "endorsements": "",
  "restrictions": "",
  "sex": "",
  "eyeColor": "",
  "height": "",
  "detectedCountry": "",
  "detectedState": "",
  "barcodePresent": false,
  "warnings": [],
  "confidences": {},
  "boxes": {}
}

IMPORTANT:
- Return only valid JSON
- Normalize dates to yyyy-mm-dd format when certain
- Add warnings for uncertain data
- Never fabricate information
- Use empty strings for missing fields"""

FOCUSED_FIELDS = (
    "full_name",
    "date_of_birth",
    "document_number",
    "eye_color",
    "expiration_date",
    "license_class",
)

# Any of these still empty after the first pass triggers the focused pass.
FOCUS_TRIGGER_FIELDS = ("full_name", "eye_color", "date_of_birth", "document_number")

FOCUSED_EXTRACTION_PROMPT = """Look at this driver's license again. Some fields could not be read on the first attempt.
Find ONLY these fields:

- fullName: "NAME", "LN"/"FN", or fields 1 and 2
- dateOfBirth: "DOB" or field 3 (yyyy-mm-dd)
- documentNumber: "DL", "DLN", "LIC#", "NO" or field 4d, copied exactly
- eyeColor: "EYES" or field 18 (e.g. BRN, BLU)
- expirationDate: "EXP" or field 4b (yyyy-mm-dd)
- licenseClass: "CLASS" or field 9

Return a minimal JSON object with exactly these keys:
{"fullName": "", "dateOfBirth": "", "documentNumber": "", "eyeColor": "", "expirationDate": "", "licenseClass": ""}

Use an empty string for anything you cannot read. Never guess."""


class ImageParserService:
    """Extracts an IdDocumentRecord from a license image via a vision model."""

    def __init__(
        self,
        gateway: LLMGateway,
        image_service: "ImageService",
        model: str = "meta-llama/llama-4-scout-17b-16e-instruct",
    ):
        self.gateway = gateway
        self.image_service = image_service
        self.model = model

    async def parse_image(self, image: EncodedImage) -> IdDocumentRecord:
        """
        Extract driver's license data from an image.

        Raises:
            InvalidResponseFormat: If the model output is not valid JSON after one retry.
            UpstreamTransportError: If the LLM provider call fails.
        """
        logger.info("Starting image parsing: %d bytes, %s", len(image.data), image.mime_type)
        raw = await self.gateway.complete_chat(self.model, ID_EXTRACTION_PROMPT, image)

        outcome = await resolve_with_retry(
            raw, parse_id_document, self.gateway, self.model, ID_EXTRACTION_PROMPT, image
        )
        record = standardize_id_document(outcome.unwrap())

        missing = [f for f in FOCUS_TRIGGER_FIELDS if not getattr(record, f).strip()]
        if missing:
            logger.info("Mandatory fields missing after first pass: %s", missing)
            await self._focused_reextraction(record, image)

        return record

    async def parse_image_from_url(self, image_url: str) -> IdDocumentRecord:
        """Download an image, then run the same pipeline as an upload."""
        image = await self.image_service.fetch(image_url)
        return await self.parse_image(image)

    async def _focused_reextraction(self, record: IdDocumentRecord, image: EncodedImage) -> None:
        """
        Ask again for the mandatory fields only and backfill empty ones.

        Failures here are logged and never escalate; the first-pass record stands.
        """
        try:
            raw = await self.gateway.complete_chat(self.model, FOCUSED_EXTRACTION_PROMPT, image)
        except UpstreamTransportError as e:
            logger.warning("Focused re-extraction call failed: %s", e)
            return

        try:
            focused = map_fields(load_json_object(raw), ID_DOCUMENT_FIELD_ALIASES)
        except ValueError as e:
            logger.warning("Focused re-extraction returned invalid JSON: %s", e)
            return

        backfilled = []
        for field_name in FOCUSED_FIELDS:
            # Same coercion as the first pass, so a bare number backfills as text
            value = coerce_text(focused.get(field_name))
            if getattr(record, field_name).strip() or not isinstance(value, str) or not value.strip():
                continue

            value = value.strip()
            if field_name == "eye_color":
                value = standardize_eye_color(value)
            setattr(record, field_name, value)
            if field_name in DATE_FIELD_LABELS:
                standardize_date_field(record, field_name)

            add_warning(record, f"{FIELD_LABELS[field_name]} extracted on retry attempt")
            backfilled.append(field_name)

        logger.info("Focused re-extraction backfilled: %s", backfilled or "nothing")


# =============================================================================
# Singleton Factory
# =============================================================================

_image_parser: ImageParserService | None = None


def get_image_parser() -> ImageParserService:
    """Get or create the image parser singleton."""
    global _image_parser
    if _image_parser is None:
        from ...config import get_settings
        from ..image_service import get_image_service
        from .gateway import get_llm_gateway

        _image_parser = ImageParserService(
            gateway=get_llm_gateway(),
            image_service=get_image_service(),
            model=get_settings().image_parser_model,
        )
    return _image_parser
