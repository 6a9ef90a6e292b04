"""
Error types for the memory pipeline.

Provider clients raise these; step controllers catch them and turn them
into a ProcessingError for the user. Messages here are user-facing.
"""

from typing import Optional


ERROR_MESSAGES = {
    "NO_API_KEY": "Please provide your Gemini API key to continue",
    "INVALID_IMAGE": "Please upload a valid image file (JPEG, PNG, or WebP)",
    "IMAGE_TOO_LARGE": "Image file is too large. Please use an image under 10MB",
    "NETWORK_ERROR": "Network error. Please check your connection and try again",
    "API_ERROR": "API error occurred. Please try again",
    "QUOTA_EXCEEDED": "API quota exceeded. Please check your API usage limits.",
    "SAFETY_REJECTED": "Content was rejected for safety reasons. Please try different content.",
    "INVALID_API_KEY": "Invalid API key. Please check your API key.",
    "PROCESSING_TIMEOUT": "Video generation timed out. Please try again.",
    "PROCESSING_FAILED": "Failed to process image. Please try a different image.",
}


class ValidationError(ValueError):
    """Uploaded file has a disallowed type or is too large."""

    def __init__(self, message: str, code: str = "INVALID_IMAGE"):
        super().__init__(message)
        self.code = code


class MissingCredentialError(ValueError):
    """A step needs a credential that is not configured."""

    code = "NO_API_KEY"

    def __init__(self, message: str = ERROR_MESSAGES["NO_API_KEY"]):
        super().__init__(message)


class ProviderError(RuntimeError):
    """A provider call failed. `provider` is "gemini", "veo" or "replicate"."""

    def __init__(
        self,
        message: str,
        provider: str,
        retryable: bool = True,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.retryable = retryable
        self.code = code


class GenerationTimeoutError(TimeoutError):
    """Veo did not finish within the polling budget."""

    code = "PROCESSING_TIMEOUT"
    provider = "veo"

    def __init__(self, message: str = ERROR_MESSAGES["PROCESSING_TIMEOUT"], attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


def translate_provider_error(
    error: Exception,
    provider: str,
    default_message: str = ERROR_MESSAGES["API_ERROR"],
) -> ProviderError:
    """
    Map a raw SDK/HTTP failure onto one of the fixed user-facing messages.

    Matching is done on the error text, the same way for every provider.
    Already-translated errors pass through untouched.
    """
    if isinstance(error, ProviderError):
        return error

    text = str(error).lower()
    if "quota" in text or "resource_exhausted" in text or "429" in text:
        code = "QUOTA_EXCEEDED"
    elif "safety" in text or "blocked" in text:
        code = "SAFETY_REJECTED"
    elif "api key" in text or "api_key" in text or "unauthenticated" in text or "401" in text:
        code = "INVALID_API_KEY"
    elif isinstance(error, (ConnectionError, OSError)) or "connection" in text:
        code = "NETWORK_ERROR"
    else:
        return ProviderError(default_message, provider=provider, code="API_ERROR")

    retryable = code != "INVALID_API_KEY"
    return ProviderError(ERROR_MESSAGES[code], provider=provider, retryable=retryable, code=code)
