from .exceptions import (
    SkinAIException,
    InvalidImageError,
    InvalidPreferencesError,
    UnparseableResponseError,
    ProviderUnavailableError,
    ProviderTimeoutError,
    RateLimitError,
)

__all__ = [
    "SkinAIException",
    "InvalidImageError",
    "InvalidPreferencesError",
    "UnparseableResponseError",
    "ProviderUnavailableError",
    "ProviderTimeoutError",
    "RateLimitError",
]
