"""Exception types raised by the mock server."""

from __future__ import annotations


class MockServerError(Exception):
    """Base exception for all application-specific errors."""


class CorpusError(MockServerError):
    """Raised when the token corpus cannot be built (missing or empty text)."""


class ConfigError(MockServerError):
    """Raised when server configuration is invalid."""


class AuthenticationError(MockServerError):
    """Raised when a request fails bearer-token authentication.

    Carries the OpenAI-style error ``code`` and the exact JSON ``body``
    returned to the client.
    """

    def __init__(self, code: str, body: str) -> None:
        super().__init__(code)
        self.code = code
        self.body = body
