"""
LLM service package for personal information and ID document extraction.

This package provides modular LLM functionality split into:
- gateway: Chat completion calls to the provider
- normalizer: JSON parsing, corrective retry, standardization and warnings
- text_parser: Free-text extraction into PersonRecord
- image_parser: License image extraction into IdDocumentRecord
"""

from .exceptions import (
    PARSE_FAILURE_MESSAGE,
    InvalidResponseFormat,
    NotConfiguredError,
    ParserServiceError,
    UpstreamTransportError,
)
from .gateway import EncodedImage, LLMGateway, get_llm_gateway
from .image_parser import ImageParserService, get_image_parser
from .normalizer import (
    parse_id_document,
    parse_person,
    resolve_with_retry,
    standardize_date,
    standardize_eye_color,
    standardize_id_document,
)
from .text_parser import TextParserService, get_text_parser

__all__ = [
    "PARSE_FAILURE_MESSAGE",
    "EncodedImage",
    "ImageParserService",
    "InvalidResponseFormat",
    "LLMGateway",
    "NotConfiguredError",
    "ParserServiceError",
    "TextParserService",
    "UpstreamTransportError",
    "get_image_parser",
    "get_llm_gateway",
    "get_text_parser",
    "parse_id_document",
    "parse_person",
    "resolve_with_retry",
    "standardize_date",
    "standardize_eye_color",
    "standardize_id_document",
]
