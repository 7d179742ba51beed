"""
Normalization of raw LLM output into typed records.

Handles:
- JSON parsing (code fences, prose around the object, key aliasing)
- One corrective retry when the output is not valid JSON
- Field standardization (dates, eye color)
- Data-quality warnings (uncertain dates, missing mandatory fields, name format)
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Generic, TypeVar

from dateutil import parser as date_parser
from pydantic import BaseModel, ValidationError

from ...models import IdDocumentRecord, PersonRecord
from .exceptions import PARSE_FAILURE_MESSAGE, InvalidResponseFormat
from .gateway import EncodedImage

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)


# =============================================================================
# Field Alias Tables
# =============================================================================
# Keys are folded (lowercase, no "_", "-" or spaces) before lookup, so
# "zipCode", "zip_code" and "ZIP CODE" all resolve to the same entry.

PERSON_FIELD_ALIASES: dict[str, str] = {
    "name": "name",
    "fullname": "name",
    "street": "street",
    "streetaddress": "street",
    "city": "city",
    "state": "state",
    "province": "state",
    "country": "country",
    "zipcode": "zip_code",
    "zip": "zip_code",
    "postalcode": "zip_code",
    "phonenumber": "phone_number",
    "phone": "phone_number",
}

ADDRESS_FIELD_ALIASES: dict[str, str] = {
    "street": "street",
    "streetaddress": "street",
    "city": "city",
    "state": "state",
    "province": "state",
    "country": "country",
    "zipcode": "zip_code",
    "zip": "zip_code",
    "postalcode": "zip_code",
}

ID_DOCUMENT_FIELD_ALIASES: dict[str, str] = {
    "fullname": "full_name",
    "name": "full_name",
    "dateofbirth": "date_of_birth",
    "dob": "date_of_birth",
    "birthdate": "date_of_birth",
    "address": "address",
    "documentnumber": "document_number",
    "licensenumber": "document_number",
    "dlnumber": "document_number",
    "idnumber": "document_number",
    "expirationdate": "expiration_date",
    "expirydate": "expiration_date",
    "dateofexpiry": "expiration_date",
    "issuedate": "issue_date",
    "dateofissue": "issue_date",
    "licenseclass": "license_class",
    "class": "license_class",
    "endorsements": "endorsements",
    "restrictions": "restrictions",
    "sex": "sex",
    "gender": "sex",
    "eyecolor": "eye_color",
    "eyes": "eye_color",
    "height": "height",
    "detectedcountry": "detected_country",
    "detectedstate": "detected_state",
    "barcodepresent": "barcode_present",
    "warnings": "warnings",
    "confidences": "confidences",
    "boxes": "boxes",
}

_KEY_SEPARATORS = re.compile(r"[\s_\-]")


def fold_key(key: str) -> str:
    """Fold a JSON key for alias lookup."""
    return _KEY_SEPARATORS.sub("", key).lower()


def map_fields(payload: dict[str, Any], aliases: dict[str, str]) -> dict[str, Any]:
    """
    Rename external JSON keys to internal field names.

    Unknown keys are dropped. When two keys resolve to the same field the
    first one wins.
    """
    mapped: dict[str, Any] = {}
    for key, value in payload.items():
        field_name = aliases.get(fold_key(str(key)))
        if field_name is None or field_name in mapped:
            continue
        mapped[field_name] = value
    return mapped


# =============================================================================
# Parse Outcomes
# =============================================================================


@dataclass(frozen=True)
class ParseOk(Generic[R]):
    """Response parsed into a record."""

    record: R

    def unwrap(self) -> R:
        return self.record


@dataclass(frozen=True)
class RetryableParseFailure:
    """Response was not usable JSON; a corrective retry may still succeed."""

    error: Exception
    raw: str


@dataclass(frozen=True)
class TerminalParseFailure:
    """Both the first response and the corrective retry were unusable."""

    error: Exception

    def unwrap(self):
        raise InvalidResponseFormat(PARSE_FAILURE_MESSAGE) from self.error


ParseAttempt = ParseOk | RetryableParseFailure
ParseOutcome = ParseOk | TerminalParseFailure

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*(.*?)\s*```$", re.DOTALL)


def load_json_object(raw: str) -> dict[str, Any]:
    """
    Decode a JSON object from raw model output.

    Accepts a bare object, one wrapped in a Markdown code fence, or one
    surrounded by prose.

    Raises:
        ValueError: If no JSON object can be decoded (json.JSONDecodeError included).
    """
    text = (raw or "").strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start or (start == 0 and end == len(text) - 1):
            raise
        payload = json.loads(text[start:end + 1])

    if not isinstance(payload, dict):
        raise ValueError(f"Expected a JSON object, got {type(payload).__name__}")
    return payload


def _parse_record(
    raw: str,
    model_cls: type[R],
    prepare: Callable[[dict[str, Any]], dict[str, Any]],
) -> ParseAttempt:
    try:
        payload = load_json_object(raw)
        record = model_cls.model_validate(prepare(payload))
    except (ValueError, ValidationError) as e:
        return RetryableParseFailure(error=e, raw=raw)
    return ParseOk(record)


def _prepare_person(payload: dict[str, Any]) -> dict[str, Any]:
    return map_fields(payload, PERSON_FIELD_ALIASES)


def _prepare_id_document(payload: dict[str, Any]) -> dict[str, Any]:
    mapped = map_fields(payload, ID_DOCUMENT_FIELD_ALIASES)
    address = mapped.get("address")
    if isinstance(address, dict):
        mapped["address"] = map_fields(address, ADDRESS_FIELD_ALIASES)
    elif isinstance(address, str):
        mapped["address"] = {"street": address}
    return mapped


def parse_person(raw: str) -> ParseAttempt:
    """Parse raw model output into a PersonRecord."""
    return _parse_record(raw, PersonRecord, _prepare_person)


def parse_id_document(raw: str) -> ParseAttempt:
    """Parse raw model output into an IdDocumentRecord."""
    return _parse_record(raw, IdDocumentRecord, _prepare_id_document)


# =============================================================================
# Corrective Retry
# =============================================================================

CORRECTIVE_INSTRUCTION = (
    "The previous response was not valid JSON. Return only a valid JSON object "
    "with the requested fields. No explanatory text."
)


def build_retry_prompt(original_prompt: str) -> str:
    """Corrective instruction followed by the original request."""
    return f"{CORRECTIVE_INSTRUCTION}\n\n{original_prompt}"


async def resolve_with_retry(
    raw: str,
    parse: Callable[[str], ParseAttempt],
    gateway: Any,
    model: str,
    prompt: str,
    image: EncodedImage | None = None,
) -> ParseOutcome:
    """
    Parse a response, issuing at most one corrective retry.

    Args:
        raw: First response from the gateway.
        parse: parse_person or parse_id_document.
        gateway: LLMGateway used for the retry call.
        model: Model identifier for the retry call.
        prompt: The original prompt, repeated after the corrective instruction.
        image: Image payload to re-attach on retry, if the first call had one.

    Returns:
        ParseOk with the record, or TerminalParseFailure wrapping the
        ORIGINAL parse error.
    """
    first = parse(raw)
    if isinstance(first, ParseOk):
        return first

    logger.warning("Invalid JSON response (%s), retrying with stricter prompt", first.error)
    retry_raw = await gateway.complete_chat(model, build_retry_prompt(prompt), image)

    second = parse(retry_raw)
    if isinstance(second, ParseOk):
        logger.info("Corrective retry returned valid JSON")
        return second

    logger.error("Failed to parse JSON response after retry: %s", second.error)
    return TerminalParseFailure(error=first.error)


# =============================================================================
# Field Standardization
# =============================================================================

# Ordered: US month/day/year is preferred over European day/month/year when
# both would match.
DATE_PATTERNS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%m.%d.%Y",
    "%m/%d/%y",
    "%m-%d-%y",
    "%d.%m.%Y",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%Y%m%d",
    "%m%d%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%d-%b-%Y",
    "%d %b, %Y",
)

_CANONICAL_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DATE_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))

DATE_FIELD_LABELS = {
    "date_of_birth": "Date of birth",
    "expiration_date": "Expiration date",
    "issue_date": "Issue date",
}

FIELD_LABELS = {
    "full_name": "Full name",
    "document_number": "Document number",
    "eye_color": "Eye color",
    "license_class": "License class",
    **DATE_FIELD_LABELS,
}

MANDATORY_FIELDS = (
    ("full_name", "critical"),
    ("date_of_birth", "critical"),
    ("document_number", "critical"),
    ("eye_color", "required"),
    ("expiration_date", "required"),
)

EYE_COLOR_ALIASES = {
    "BRO": "Brown",
    "BRN": "Brown",
    "BR": "Brown",
    "BROWN": "Brown",
    "BLU": "Blue",
    "BL": "Blue",
    "BLUE": "Blue",
    "GRN": "Green",
    "GR": "Green",
    "GREEN": "Green",
    "HZL": "Hazel",
    "HAZ": "Hazel",
    "HAZEL": "Hazel",
    "GRY": "Gray",
    "GRAY": "Gray",
    "GREY": "Gray",
    "BLK": "Black",
    "BLACK": "Black",
    "AMB": "Amber",
    "AMBER": "Amber",
}


def is_canonical_date(value: str) -> bool:
    """True for a real calendar date written strictly as yyyy-mm-dd."""
    if not _CANONICAL_DATE_RE.match(value):
        return False
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def standardize_date(value: str) -> str:
    """
    Rewrite a date to yyyy-mm-dd.

    Tries the known patterns in order, then a permissive dateutil parse.
    Returns the input unchanged when nothing understands it.
    """
    text = value.strip()
    if not text:
        return value

    for pattern in DATE_PATTERNS:
        try:
            return datetime.strptime(text, pattern).strftime("%Y-%m-%d")
        except ValueError:
            continue

    # A bare number (year, partial stamp) would be completed with today's date.
    if text.isdigit():
        return value

    # Parse against two different defaults; if they disagree, dateutil filled
    # in a missing day, month or year and the date is only partial.
    try:
        first = date_parser.parse(text, default=_DATE_DEFAULTS[0])
        second = date_parser.parse(text, default=_DATE_DEFAULTS[1])
    except (ValueError, OverflowError):
        return value
    if first.date() != second.date():
        return value
    return first.strftime("%Y-%m-%d")


def standardize_eye_color(value: str) -> str:
    """Expand eye color abbreviations (BRN -> Brown); unknown values pass through."""
    return EYE_COLOR_ALIASES.get(value.strip().upper(), value)


def add_warning(record: IdDocumentRecord, message: str) -> None:
    """Append a warning unless it is already present."""
    if message not in record.warnings:
        record.warnings.append(message)


def standardize_date_field(record: IdDocumentRecord, field_name: str) -> None:
    value = getattr(record, field_name)
    if not value:
        return
    value = standardize_date(value)
    setattr(record, field_name, value)
    if not is_canonical_date(value):
        add_warning(record, f"{DATE_FIELD_LABELS[field_name]} format may be uncertain")


def check_mandatory_fields(record: IdDocumentRecord) -> None:
    for field_name, criticality in MANDATORY_FIELDS:
        if not getattr(record, field_name).strip():
            add_warning(
                record,
                f"{FIELD_LABELS[field_name]} not found on document ({criticality} field)",
            )


def check_name_format(record: IdDocumentRecord) -> None:
    name = record.full_name.strip()
    if not name:
        return
    if "," in name:
        add_warning(record, "Full name contains a comma and may be in 'Last, First' order")
    if len(name) < 3:
        add_warning(record, "Full name is very short and may be partially extracted")


def document_number_suffix(document_number: str) -> str:
    """Last four characters of a document number, the only part ever logged."""
    return document_number[-4:] if len(document_number) > 4 else "****"


def standardize_id_document(record: IdDocumentRecord) -> IdDocumentRecord:
    """
    Standardize an extracted ID record in place and attach quality warnings.

    Applied once per parsed record: dates to yyyy-mm-dd, eye color
    abbreviations expanded, then mandatory-field and name checks.
    """
    for field_name in DATE_FIELD_LABELS:
        standardize_date_field(record, field_name)

    if record.eye_color:
        record.eye_color = standardize_eye_color(record.eye_color)

    check_mandatory_fields(record)
    check_name_format(record)

    if record.document_number:
        logger.info(
            "Processed document with number ending in: %s",
            document_number_suffix(record.document_number),
        )

    return record
