"""
Pydantic models for the personal information parser.

Defines the extracted record types (person, ID document), the request and
response envelopes of the parse endpoints, and the error payload.

Records use snake_case attribute names internally and camelCase on the wire.
"""

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def coerce_text(value: Any) -> Any:
    """Turn LLM nulls and bare numbers into the strings the records promise."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return value


class RecordModel(BaseModel):
    """Base for extracted records: camelCase aliases, either name accepted."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# =============================================================================
# Extracted Records
# =============================================================================


class PersonRecord(RecordModel):
    """
    Personal information extracted from free text or returned by lookup.

    Every field is a string; an empty string means unknown.
    """

    name: str = Field(default="", description="Full name of the person", examples=["John Smith"])
    street: str = Field(default="", description="Street address", examples=["123 Main Street"])
    city: str = Field(default="", description="City name", examples=["Springfield"])
    state: str = Field(default="", description="State or province", examples=["IL"])
    country: str = Field(default="", description="Country", examples=["USA"])
    zip_code: str = Field(default="", description="ZIP or postal code", examples=["62701"])
    phone_number: str = Field(default="", description="Phone number", examples=["(555) 123-4567"])

    @field_validator(
        "name", "street", "city", "state", "country", "zip_code", "phone_number",
        mode="before",
    )
    @classmethod
    def null_to_empty(cls, v: Any) -> Any:
        return coerce_text(v)


class AddressRecord(RecordModel):
    """Address block printed on an ID document."""

    street: str = Field(default="", examples=["123 MAIN ST"])
    city: str = Field(default="", examples=["SPRINGFIELD"])
    state: str = Field(default="", examples=["IL"])
    country: str = Field(default="", examples=["USA"])
    zip_code: str = Field(default="", examples=["62701"])

    @field_validator("street", "city", "state", "country", "zip_code", mode="before")
    @classmethod
    def null_to_empty(cls, v: Any) -> Any:
        return coerce_text(v)


ID_DOCUMENT_TEXT_FIELDS = (
    "full_name",
    "date_of_birth",
    "document_number",
    "expiration_date",
    "issue_date",
    "license_class",
    "endorsements",
    "restrictions",
    "sex",
    "eye_color",
    "height",
    "detected_country",
    "detected_state",
)


class IdDocumentRecord(RecordModel):
    """
    Driver's license / ID document data.

    Attributes:
        full_name: Full name as it appears on the ID (typically LAST, FIRST MIDDLE).
        date_of_birth: Date of birth, canonically yyyy-mm-dd.
        warnings: Data-quality notes; accumulates, never replaced.
        confidences: Optional per-field confidence scores in [0, 1].
        boxes: Optional per-field bounding boxes [x, y, width, height], normalized.
    """

    full_name: str = Field(default="", description="Full name as it appears on the ID", examples=["SMITH, JOHN MICHAEL"])
    date_of_birth: str = Field(default="", description="Date of birth in yyyy-mm-dd format", examples=["1985-06-15"])
    address: AddressRecord = Field(default_factory=AddressRecord, description="Address information from the ID")
    document_number: str = Field(default="", description="Driver's license or ID document number", examples=["S123456789"])
    expiration_date: str = Field(default="", description="Expiration date in yyyy-mm-dd format", examples=["2028-06-15"])
    issue_date: str = Field(default="", description="Issue date in yyyy-mm-dd format", examples=["2024-06-15"])
    license_class: str = Field(default="", description="License class", examples=["D"])
    endorsements: str = Field(default="", description="License endorsements")
    restrictions: str = Field(default="", description="License restrictions", examples=["CORRECTIVE LENSES"])
    sex: str = Field(default="", description="Sex/Gender", examples=["M"])
    eye_color: str = Field(default="", description="Eye color", examples=["Brown"])
    height: str = Field(default="", description="Height", examples=["6'00\""])
    detected_country: str = Field(default="", description="Detected country from ID analysis", examples=["USA"])
    detected_state: str = Field(default="", description="Detected state from ID analysis", examples=["IL"])
    barcode_present: bool = Field(default=False, description="Whether a barcode was detected on the ID")
    warnings: list[str] = Field(default_factory=list, description="Warning messages about data quality")
    confidences: dict[str, float] = Field(default_factory=dict, description="Confidence scores for extracted fields")
    boxes: dict[str, list[float]] = Field(default_factory=dict, description="Bounding boxes for detected fields")

    @field_validator(*ID_DOCUMENT_TEXT_FIELDS, mode="before")
    @classmethod
    def null_to_empty(cls, v: Any) -> Any:
        return coerce_text(v)

    @field_validator("address", mode="before")
    @classmethod
    def null_address(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("barcode_present", mode="before")
    @classmethod
    def null_barcode(cls, v: Any) -> Any:
        return False if v is None else v

    @field_validator("warnings", mode="before")
    @classmethod
    def clean_warnings(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v.strip() else []
        if isinstance(v, list):
            return [str(w) for w in v if w is not None and str(w).strip()]
        return v

    @field_validator("confidences", mode="before")
    @classmethod
    def clean_confidences(cls, v: Any) -> dict[str, float]:
        """Drop non-numeric scores and clamp the rest into [0, 1]."""
        if not isinstance(v, dict):
            return {}
        cleaned: dict[str, float] = {}
        for key, score in v.items():
            if isinstance(score, bool) or not isinstance(score, (int, float)):
                continue
            cleaned[str(key)] = max(0.0, min(1.0, float(score)))
        return cleaned

    @field_validator("boxes", mode="before")
    @classmethod
    def clean_boxes(cls, v: Any) -> dict[str, list[float]]:
        """Keep only [x, y, w, h] boxes made of four numbers."""
        if not isinstance(v, dict):
            return {}
        cleaned: dict[str, list[float]] = {}
        for key, box in v.items():
            if not isinstance(box, (list, tuple)) or len(box) != 4:
                continue
            if any(isinstance(n, bool) or not isinstance(n, (int, float)) for n in box):
                continue
            cleaned[str(key)] = [float(n) for n in box]
        return cleaned

    @classmethod
    def from_person(cls, person: PersonRecord) -> "IdDocumentRecord":
        """Remap a text-extracted person into an ID record; document fields stay empty."""
        return cls(
            full_name=person.name,
            address=AddressRecord(
                street=person.street,
                city=person.city,
                state=person.state,
                country=person.country,
                zip_code=person.zip_code,
            ),
        )


# =============================================================================
# Request / Response Envelopes
# =============================================================================


class ParseRequest(BaseModel):
    """Request body for POST /parse."""

    input_text: str | None = Field(
        default=None,
        validation_alias=AliasChoices("inputText", "input_text"),
        description="Text containing personal information to parse using AI",
        examples=[
            "My name is Jim Croce, I live in 2944 Monaco dr, Manchester, Colorado, "
            "USA, 92223. My phone number is 893-366-8888."
        ],
    )
    id: str | None = Field(
        default=None,
        description="ID to lookup stored person data",
        examples=["jim-croce"],
    )


class ParseResponse(RecordModel):
    """Response for POST /parse."""

    source: Literal["id_lookup", "text"] = Field(..., description="Source of the data")
    data: PersonRecord = Field(..., description="Extracted personal information")


class ParseIdResponse(RecordModel):
    """Response for POST /parse/id."""

    source: Literal["id_lookup", "image", "text"] = Field(..., description="Source of the data")
    data: IdDocumentRecord = Field(..., description="Extracted ID document information")


class ErrorDetail(BaseModel):
    """Client error payload (400 / 422) as raised through HTTPException."""

    detail: str


class ProblemDetails(BaseModel):
    """Error payload returned for server-side failures (500)."""

    title: str
    status: int
    detail: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(default="healthy")
    message: str = Field(default="")
    version: str = Field(default="1.0.0")
