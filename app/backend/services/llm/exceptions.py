"""
Shared exceptions for LLM service modules.
"""

from typing import Any

PARSE_FAILURE_MESSAGE = "Failed to parse response from AI model"


class ParserServiceError(Exception):
    """Base class for parsing pipeline failures."""

    pass


class NotConfiguredError(ParserServiceError):
    """Raised when a required secret or setting is missing at startup."""

    pass


class UpstreamTransportError(ParserServiceError):
    """Raised when the LLM provider is unreachable or answers with an error status."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class InvalidResponseFormat(ParserServiceError):
    """Raised when LLM output cannot be parsed even after the corrective retry."""

    def __init__(self, message: str = PARSE_FAILURE_MESSAGE):
        super().__init__(message)
