"""Tests for driver's license extraction from images."""

import json

import pytest

from app.backend.services.image_service import ImageFetchError
from app.backend.services.llm import EncodedImage, InvalidResponseFormat, UpstreamTransportError
from app.backend.services.llm.image_parser import FOCUSED_EXTRACTION_PROMPT, ID_EXTRACTION_PROMPT


def license_json(**overrides) -> str:
    payload = {
        "fullName": "John Michael Smith",
        "dateOfBirth": "1985-06-15",
        "address": {
            "street": "123 MAIN ST",
            "city": "SPRINGFIELD",
            "state": "IL",
            "country": "USA",
            "zipCode": "62701",
        },
        "documentNumber": "S123456789",
        "expirationDate": "2028-06-15",
        "issueDate": "2024-06-15",
        "licenseClass": "D",
        "endorsements": "",
        "restrictions": "",
        "sex": "M",
        "eyeColor": "BRN",
        "height": "6'00\"",
        "detectedCountry": "USA",
        "detectedState": "IL",
        "barcodePresent": True,
        "warnings": [],
        "confidences": {"fullName": 0.97},
        "boxes": {},
    }
    payload.update(overrides)
    return json.dumps(payload)


@pytest.fixture
def license_image(png_bytes: bytes) -> EncodedImage:
    return EncodedImage(data=png_bytes, mime_type="image/png")


class TestParseImage:
    """Tests for ImageParserService.parse_image."""

    @pytest.mark.asyncio
    async def test_complete_response_needs_one_call(self, image_parser, fake_gateway, license_image):
        fake_gateway.queue(license_json())

        record = await image_parser.parse_image(license_image)

        assert record.full_name == "John Michael Smith"
        assert record.document_number == "S123456789"
        assert record.address.zip_code == "62701"
        assert record.eye_color == "Brown"
        assert record.barcode_present is True
        assert record.confidences == {"fullName": 0.97}
        assert record.warnings == []

        assert len(fake_gateway.calls) == 1
        call = fake_gateway.calls[0]
        assert call["model"] == "vision-model"
        assert call["prompt"] == ID_EXTRACTION_PROMPT
        assert call["image"] is license_image

    @pytest.mark.asyncio
    async def test_dates_are_standardized(self, image_parser, fake_gateway, license_image):
        fake_gateway.queue(license_json(dateOfBirth="1985-6-15", expirationDate="06/15/2028"))

        record = await image_parser.parse_image(license_image)

        assert record.date_of_birth == "1985-06-15"
        assert record.expiration_date == "2028-06-15"
        assert record.warnings == []

    @pytest.mark.asyncio
    async def test_unparseable_date_is_kept_with_warning(self, image_parser, fake_gateway, license_image):
        fake_gateway.queue(license_json(issueDate="UNREADABLE"))

        record = await image_parser.parse_image(license_image)

        assert record.issue_date == "UNREADABLE"
        assert record.warnings == ["Issue date format may be uncertain"]

    @pytest.mark.asyncio
    async def test_model_warnings_are_kept(self, image_parser, fake_gateway, license_image):
        fake_gateway.queue(license_json(fullName="SMITH, JOHN", warnings=["Glare over address"]))

        record = await image_parser.parse_image(license_image)

        assert record.warnings == [
            "Glare over address",
            "Full name contains a comma and may be in 'Last, First' order",
        ]

    @pytest.mark.asyncio
    async def test_retry_after_invalid_json_is_standardized(self, image_parser, fake_gateway, license_image):
        fake_gateway.queue("I see a driver's license.", license_json(eyeColor="BLU"))

        record = await image_parser.parse_image(license_image)

        assert record.eye_color == "Blue"
        assert len(fake_gateway.calls) == 2
        assert fake_gateway.calls[1]["image"] is license_image

    @pytest.mark.asyncio
    async def test_two_invalid_responses_fail(self, image_parser, fake_gateway, license_image):
        fake_gateway.queue("not json", "still not json")

        with pytest.raises(InvalidResponseFormat):
            await image_parser.parse_image(license_image)

        assert len(fake_gateway.calls) == 2

    @pytest.mark.asyncio
    async def test_upstream_error_on_first_pass_propagates(self, image_parser, fake_gateway, license_image):
        fake_gateway.queue(UpstreamTransportError("LLM provider returned 500", status_code=500))

        with pytest.raises(UpstreamTransportError):
            await image_parser.parse_image(license_image)


class TestFocusedReextraction:
    """Second, narrower pass when mandatory fields come back empty."""

    @pytest.mark.asyncio
    async def test_backfills_missing_fields(self, image_parser, fake_gateway, license_image):
        fake_gateway.queue(
            license_json(eyeColor="", dateOfBirth=""),
            json.dumps({"eyeColor": "HZL", "dateOfBirth": "06/15/1985", "fullName": "IGNORED"}),
        )

        record = await image_parser.parse_image(license_image)

        assert record.eye_color == "Hazel"
        assert record.date_of_birth == "1985-06-15"
        # Fields already filled on the first pass are never overwritten
        assert record.full_name == "John Michael Smith"

        assert "Eye color extracted on retry attempt" in record.warnings
        assert "Date of birth extracted on retry attempt" in record.warnings
        assert "Full name extracted on retry attempt" not in record.warnings
        assert "Eye color not found on document (required field)" in record.warnings

        assert len(fake_gateway.calls) == 2
        assert fake_gateway.calls[1]["prompt"] == FOCUSED_EXTRACTION_PROMPT
        assert fake_gateway.calls[1]["image"] is license_image

    @pytest.mark.asyncio
    async def test_not_triggered_by_optional_fields(self, image_parser, fake_gateway, license_image):
        fake_gateway.queue(license_json(expirationDate="", licenseClass=""))

        record = await image_parser.parse_image(license_image)

        assert len(fake_gateway.calls) == 1
        assert record.warnings == ["Expiration date not found on document (required field)"]

    @pytest.mark.asyncio
    async def test_invalid_json_keeps_first_pass(self, image_parser, fake_gateway, license_image):
        fake_gateway.queue(license_json(documentNumber=""), "I could not read it")

        record = await image_parser.parse_image(license_image)

        assert record.document_number == ""
        assert record.warnings == ["Document number not found on document (critical field)"]
        assert len(fake_gateway.calls) == 2

    @pytest.mark.asyncio
    async def test_upstream_error_keeps_first_pass(self, image_parser, fake_gateway, license_image):
        fake_gateway.queue(
            license_json(fullName=""),
            UpstreamTransportError("LLM provider returned 429", status_code=429),
        )

        record = await image_parser.parse_image(license_image)

        assert record.full_name == ""
        assert record.warnings == ["Full name not found on document (critical field)"]

    @pytest.mark.asyncio
    async def test_blank_values_ignored_and_numbers_backfilled_as_text(
        self, image_parser, fake_gateway, license_image
    ):
        fake_gateway.queue(
            license_json(eyeColor="", licenseClass=""),
            json.dumps({"eyeColor": "   ", "licenseClass": 7}),
        )

        record = await image_parser.parse_image(license_image)

        assert record.eye_color == ""
        assert "Eye color extracted on retry attempt" not in record.warnings
        assert record.license_class == "7"
        assert "License class extracted on retry attempt" in record.warnings

    @pytest.mark.asyncio
    async def test_numeric_document_number_backfilled(self, image_parser, fake_gateway, license_image):
        fake_gateway.queue(
            license_json(documentNumber=""),
            json.dumps({"documentNumber": 123456789}),
        )

        record = await image_parser.parse_image(license_image)

        assert record.document_number == "123456789"
        assert "Document number extracted on retry attempt" in record.warnings

    @pytest.mark.asyncio
    async def test_null_values_ignored(self, image_parser, fake_gateway, license_image):
        fake_gateway.queue(
            license_json(fullName=""),
            json.dumps({"fullName": None, "licenseClass": None}),
        )

        record = await image_parser.parse_image(license_image)

        assert record.full_name == ""
        assert record.license_class == "D"
        assert record.warnings == ["Full name not found on document (critical field)"]


class TestParseImageFromUrl:
    @pytest.mark.asyncio
    async def test_downloads_then_parses(self, image_parser, fake_gateway, png_bytes, license_image_url):
        fake_gateway.queue(license_json())

        record = await image_parser.parse_image_from_url(license_image_url)

        assert record.document_number == "S123456789"
        sent = fake_gateway.calls[0]["image"]
        assert sent.data == png_bytes
        assert sent.mime_type == "image/png"

    @pytest.mark.asyncio
    async def test_download_failure_skips_llm(self, image_parser, fake_gateway):
        with pytest.raises(ImageFetchError):
            await image_parser.parse_image_from_url("https://images.example.com/missing.png")

        assert fake_gateway.calls == []
