"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class YtAudioError(Exception):
    """Base exception for all application-specific errors."""


class RequestValidationError(YtAudioError):
    """Raised when a request carries a missing URL or an unsupported format."""


class ResolutionError(YtAudioError):
    """Raised when no content identifier can be derived from a URL."""


class MetadataUnavailableError(YtAudioError):
    """
    Raised internally when title/thumbnail lookup fails.
    Callers degrade to default metadata instead of failing.
    """


class ExtractionExhaustedError(YtAudioError):
    """Raised when every strategy in the extraction ladder has failed."""

    def __init__(self, message: str, attempts: list[str] | None = None):
        super().__init__(message)
        self.attempts = attempts or []


class ProcessLaunchError(YtAudioError):
    """Raised when the extraction tool cannot be started at all."""


class StoreUnavailableError(YtAudioError):
    """Raised when the persistent key-value store cannot be accessed."""


class ConfigurationError(YtAudioError):
    """Raised for issues related to configuration loading or validation."""
