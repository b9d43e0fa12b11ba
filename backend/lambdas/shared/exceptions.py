"""Custom exceptions shared across Lambda handlers."""

from __future__ import annotations

from typing import Iterable


class ConfigurationError(RuntimeError):
    """Raised when required environment settings are missing or invalid."""


class ModelNotFoundError(ConfigurationError):
    """Raised when a model identifier is not present in the registry."""


class ExternalServiceError(RuntimeError):
    """Raised when downstream services return recoverable errors."""


class SchemaValidationError(ExternalServiceError):
    """Raised when a structured model response does not match the requested schema."""


class NormalizationFailure(ValueError):
    """Raised when no blog content can be recovered from a model response."""


class GenerationCancelled(RuntimeError):
    """Raised when the caller abandons a generation before it completes."""


class GenerationError(RuntimeError):
    """Raised when every candidate model failed to produce usable content."""

    def __init__(self, message: str, attempts: Iterable = ()) -> None:
        self.attempts = list(attempts)
        if self.attempts:
            details = "; ".join(f"{attempt.model_id}: {attempt.reason}" for attempt in self.attempts)
            message = f"{message} ({details})"
        super().__init__(message)
