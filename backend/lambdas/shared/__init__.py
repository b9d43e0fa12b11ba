"""Shared helpers reused across Lambda handlers."""

from .config import get_env, get_int_env, get_float_env, get_bool_env, get_list_env
from .exceptions import (
    ConfigurationError,
    ExternalServiceError,
    GenerationCancelled,
    GenerationError,
    ModelNotFoundError,
    NormalizationFailure,
    SchemaValidationError,
)
from .logging import configure_cli_logging, get_logger

__all__ = [
    "get_env",
    "get_int_env",
    "get_float_env",
    "get_bool_env",
    "get_list_env",
    "ConfigurationError",
    "ExternalServiceError",
    "GenerationCancelled",
    "GenerationError",
    "ModelNotFoundError",
    "NormalizationFailure",
    "SchemaValidationError",
    "configure_cli_logging",
    "get_logger",
]
