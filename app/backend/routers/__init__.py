"""
Routers package for FastAPI endpoints.

- parse: Personal information and ID document parsing
"""

from . import parse

__all__ = ["parse"]
