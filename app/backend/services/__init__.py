"""
Services package for the personal information parser.

Contains:
- llm: LLM gateway, response normalization, text and image extraction
- image_service: Image validation, downscaling and URL download
- lookup_service: Static pre-seeded record lookup
"""

from .image_service import ImageService
from .lookup_service import LookupService

__all__ = ["ImageService", "LookupService"]
