"""
Static lookup of pre-seeded person and ID records.

Consulted before any LLM call. The mappings are built once at import and
exposed read-only; callers receive copies.
"""

import logging
from types import MappingProxyType
from typing import Mapping

from ..models import AddressRecord, IdDocumentRecord, PersonRecord

logger = logging.getLogger(__name__)


PERSON_INDEX: Mapping[str, PersonRecord] = MappingProxyType({
    "person-1": PersonRecord(
        name="John Smith",
        street="123 Main Street",
        city="Springfield",
        state="IL",
        country="USA",
        zip_code="62701",
        phone_number="(555) 123-4567",
    ),
    "person-2": PersonRecord(
        name="Jane Doe",
        street="456 Oak Avenue",
        city="Chicago",
        state="IL",
        country="USA",
        zip_code="60601",
        phone_number="(555) 987-6543",
    ),
    "person-3": PersonRecord(
        name="Michael Johnson",
        street="789 Elm Drive",
        city="New York",
        state="NY",
        country="USA",
        zip_code="10001",
        phone_number="(555) 456-7890",
    ),
    "jim-croce": PersonRecord(
        name="Jim Croce",
        street="2944 Monaco Dr",
        city="Manchester",
        state="Colorado",
        country="USA",
        zip_code="92223",
        phone_number="893-366-8888",
    ),
})

ID_DOCUMENT_INDEX: Mapping[str, IdDocumentRecord] = MappingProxyType({
    "id-1": IdDocumentRecord(
        full_name="SMITH, JOHN MICHAEL",
        date_of_birth="1985-06-15",
        address=AddressRecord(
            street="123 MAIN ST",
            city="SPRINGFIELD",
            state="IL",
            country="USA",
            zip_code="62701",
        ),
        document_number="S123456789",
        expiration_date="2028-06-15",
        issue_date="2024-06-15",
        license_class="D",
        endorsements="",
        restrictions="CORRECTIVE LENSES",
        sex="M",
        eye_color="BRN",
        height="6'00\"",
        detected_country="USA",
        detected_state="IL",
        barcode_present=True,
        confidences={"name": 0.95, "date_of_birth": 0.98, "address": 0.92},
    ),
    "id-2": IdDocumentRecord(
        full_name="DOE, JANE ELIZABETH",
        date_of_birth="1990-03-22",
        address=AddressRecord(
            street="456 OAK AVE",
            city="CHICAGO",
            state="IL",
            country="USA",
            zip_code="60601",
        ),
        document_number="D987654321",
        expiration_date="2029-03-22",
        issue_date="2025-03-22",
        license_class="D",
        endorsements="",
        restrictions="",
        sex="F",
        eye_color="BLU",
        height="5'06\"",
        detected_country="USA",
        detected_state="IL",
        barcode_present=True,
        confidences={"name": 0.97, "date_of_birth": 0.99, "address": 0.94},
    ),
})


class LookupService:
    """Read-only id -> record lookup over the seeded indexes."""

    def __init__(
        self,
        person_index: Mapping[str, PersonRecord] = PERSON_INDEX,
        id_document_index: Mapping[str, IdDocumentRecord] = ID_DOCUMENT_INDEX,
    ):
        self._person_index = person_index
        self._id_document_index = id_document_index

    def get_person_by_id(self, record_id: str) -> PersonRecord | None:
        """Return a copy of the seeded person, or None when the id is unknown."""
        person = self._person_index.get(record_id)
        logger.info("Person lookup for ID %s: %s", record_id, "hit" if person is not None else "miss")
        return person.model_copy(deep=True) if person is not None else None

    def get_id_document_by_id(self, record_id: str) -> IdDocumentRecord | None:
        """Return a copy of the seeded ID record, or None when the id is unknown."""
        document = self._id_document_index.get(record_id)
        logger.info("ID document lookup for ID %s: %s", record_id, "hit" if document is not None else "miss")
        return document.model_copy(deep=True) if document is not None else None


_lookup_service = LookupService()


def get_lookup_service() -> LookupService:
    """Return the process-wide lookup service."""
    return _lookup_service
