"""
Exception hierarchy shared by the AI layer, the matcher and the HTTP surface.
"""


class AIProviderError(Exception):
    """A language-model provider call failed."""


class UnsupportedProviderError(AIProviderError):
    """No provider implementation is registered for the requested type."""


class MissingAPIKeyError(AIProviderError):
    """The provider has no API key configured."""


class LLMResponseError(Exception):
    """Model output could not be parsed into the expected JSON shape."""


class MatchServiceError(Exception):
    """Base error for request handling; carries the HTTP status to report."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(MatchServiceError):
    status_code = 400


class AuthenticationError(MatchServiceError):
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class NotFoundError(MatchServiceError):
    status_code = 404


class StorageError(MatchServiceError):
    status_code = 500
