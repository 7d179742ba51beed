"""
Router for personal information and ID document parsing.

Handles:
- POST /parse: id lookup, else free-text extraction
- POST /parse/id: id lookup, else image upload, image URL, or text fallback
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from ..models import ErrorDetail, ParseIdResponse, ParseRequest, ParseResponse, ProblemDetails
from ..services.image_service import ImageDecodeError, ImageFetchError, ImageService, get_image_service
from ..services.llm import ImageParserService, TextParserService, get_image_parser, get_text_parser
from ..services.lookup_service import LookupService, get_lookup_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/parse", tags=["parse"])

ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorDetail},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ProblemDetails},
}


@router.post("", response_model=ParseResponse, responses=ERROR_RESPONSES)
async def parse(
    request: ParseRequest,
    lookup_service: Annotated[LookupService, Depends(get_lookup_service)],
    text_parser: Annotated[TextParserService, Depends(get_text_parser)],
) -> ParseResponse:
    """
    Parse personal information from text, or look up stored person data by ID.

    1. If `id` matches a stored record, it is returned as-is (`source: id_lookup`).
    2. Otherwise `inputText` is sent to the LLM (`source: text`).

    Available IDs: jim-croce, person-1, person-2, person-3
    """
    if request.id:
        stored_person = lookup_service.get_person_by_id(request.id)
        if stored_person is not None:
            logger.info("Returning stored person data for ID: %s", request.id)
            return ParseResponse(source="id_lookup", data=stored_person)

        logger.warning("Person with ID %s not found, falling back to text parsing", request.id)

    if not request.input_text or not request.input_text.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Either 'id' for lookup or 'inputText' for AI parsing is required",
        )

    logger.info("Parsing text input (%d chars)", len(request.input_text))
    person = await text_parser.parse_text(request.input_text)
    return ParseResponse(source="text", data=person)


@router.post("/id", response_model=ParseIdResponse, responses=ERROR_RESPONSES)
async def parse_id(
    lookup_service: Annotated[LookupService, Depends(get_lookup_service)],
    text_parser: Annotated[TextParserService, Depends(get_text_parser)],
    image_parser: Annotated[ImageParserService, Depends(get_image_parser)],
    image_service: Annotated[ImageService, Depends(get_image_service)],
    id: Annotated[str | None, Form(description="ID to lookup stored ID data")] = None,
    input_text: Annotated[
        str | None, Form(alias="inputText", description="Text fallback input if no image provided")
    ] = None,
    image_url: Annotated[
        str | None, Form(alias="imageUrl", description="URL to driver's license image")
    ] = None,
    image: Annotated[
        UploadFile | None, File(description="Driver's license image (JPG, PNG, WebP)")
    ] = None,
) -> ParseIdResponse:
    """
    Parse driver's license information, or look up stored ID data by ID.

    Priority: `id` lookup, then uploaded `image`, then `imageUrl`, then
    `inputText` (person fields remapped into the ID record).
    """
    if id:
        stored_document = lookup_service.get_id_document_by_id(id)
        if stored_document is not None:
            logger.info("Returning stored ID data for ID: %s", id)
            return ParseIdResponse(source="id_lookup", data=stored_document)

        logger.warning("ID data with ID %s not found, falling back to image parsing", id)

    image_bytes = b""
    if image is not None:
        try:
            image_bytes = await image.read()
        finally:
            await image.close()

    try:
        if image_bytes:
            logger.info("Parsing uploaded image file: %s (%d bytes)", image.filename, len(image_bytes))
            encoded = image_service.encode(image_bytes)
            return ParseIdResponse(source="image", data=await image_parser.parse_image(encoded))

        if image_url and image_url.strip():
            logger.info("Parsing image from URL")
            document = await image_parser.parse_image_from_url(image_url.strip())
            return ParseIdResponse(source="image", data=document)
    except ImageDecodeError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except ImageFetchError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if input_text and input_text.strip():
        logger.info("Falling back to text parsing")
        document = await text_parser.parse_text_as_id_document(input_text)
        return ParseIdResponse(source="text", data=document)

    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=(
            "Either 'id' for lookup, image file/URL for parsing, "
            "or 'inputText' for fallback is required"
        ),
    )
