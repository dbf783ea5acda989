from typing import Optional


class SkinAIException(Exception):
    """Base exception for SkinAI API"""
    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)

    @property
    def user_message(self) -> str:
        """Message safe to return to the caller"""
        return self.public_message


class InvalidImageError(SkinAIException):
    """Raised when the uploaded image is too large, of an unsupported type or undecodable"""
    status_code = 400
    public_message = "Invalid image"

    @property
    def user_message(self) -> str:
        return str(self)


class InvalidPreferencesError(SkinAIException):
    """Raised when preference fields are unknown or malformed"""
    status_code = 400
    public_message = "Invalid preferences"

    @property
    def user_message(self) -> str:
        return str(self)


class UnparseableResponseError(SkinAIException):
    """Raised when neither completion attempt produced valid JSON"""
    status_code = 502
    public_message = "Failed to analyze skin"


class ProviderUnavailableError(SkinAIException):
    """Raised when the completion provider fails (network, rate limit, 5xx)"""
    status_code = 503
    public_message = "Analysis service temporarily unavailable"


class ProviderTimeoutError(ProviderUnavailableError):
    """Raised when a provider call exceeds its deadline"""
    status_code = 504
    public_message = "Analysis service timed out"


class RateLimitError(SkinAIException):
    """Raised when rate limit is exceeded"""
    status_code = 429
    public_message = "Too many requests. Please try again later."

    def __init__(self, retry_after: int, message: Optional[str] = None):
        super().__init__(message)
        self.retry_after = retry_after


class ExtractionError(Exception):
    """JSON could not be pulled out of a completion. Internal to the retry loop."""


class NoJsonFound(ExtractionError):
    """No '{' ... '}' span in the completion text"""


class MalformedJson(ExtractionError):
    """A brace-delimited span was found but did not deserialize"""

    def __init__(self, parser_message: str):
        super().__init__(f"Malformed JSON: {parser_message}")
        self.parser_message = parser_message
