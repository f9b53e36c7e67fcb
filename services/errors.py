from typing import Optional


class FeedbackServiceError(Exception):
    """Base class for errors raised while producing IELTS feedback."""


class ClientInputError(FeedbackServiceError):
    """The caller sent something we cannot work with."""

    def __init__(self, message: str, status_code: int = 400, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


class ParseError(ClientInputError):
    """Raised by the multipart decoder for bodies it cannot split."""

    def __init__(self, details: str):
        super().__init__("Malformed multipart body", status_code=400, details=details)


class UpstreamServiceError(FeedbackServiceError):
    """A transcription or generation call failed at the transport or service level."""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.message = message
        self.status_code = status_code


class ConfigurationError(FeedbackServiceError):
    """A required setting, usually an API key, is missing."""

    def __init__(self, setting: str):
        super().__init__(f"{setting} not configured")
        self.setting = setting


class ResponseShapeError(FeedbackServiceError):
    """The generation service returned text that is not a usable feedback document."""
