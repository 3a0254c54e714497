"""Error handling for the configuration layer."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Base exception for all configuration-related errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:  # pyright: ignore[reportAny] # Flexible config error context
        """Initialize ConfigError.

        Args:
            message: Error message
            context: Additional context information for debugging
        """
        super().__init__(message)
        self.context: dict[str, Any] = context or {}  # pyright: ignore[reportAny] # Flexible config error context


class ConfigLoadError(ConfigError):
    """Exception raised when a configuration file cannot be read or parsed."""

    def __init__(
        self,
        message: str,
        file_path: str | None = None,
        context: dict[str, Any] | None = None,  # pyright: ignore[reportAny] # Flexible config error context
    ) -> None:
        full_context = context or {}
        if file_path is not None:
            full_context["file_path"] = file_path

        super().__init__(message, full_context)
        self.file_path: str | None = file_path


class EnvLoadError(ConfigError):
    """Exception raised when an environment override cannot be interpreted."""

    def __init__(
        self,
        message: str,
        env_var: str | None = None,
        context: dict[str, Any] | None = None,  # pyright: ignore[reportAny] # Flexible config error context
    ) -> None:
        full_context = context or {}
        if env_var is not None:
            full_context["env_var"] = env_var

        super().__init__(message, full_context)
        self.env_var: str | None = env_var


class ConfigMergeError(ConfigError):
    """Exception raised when configuration sources cannot be merged."""

    def __init__(
        self,
        message: str,
        config_path: str = "",
        context: dict[str, Any] | None = None,  # pyright: ignore[reportAny] # Flexible config error context
    ) -> None:
        full_context = context or {}
        if config_path:
            full_context["config_path"] = config_path

        super().__init__(message, full_context)
        self.config_path: str = config_path


class ConfigValidationError(ConfigError):
    """Exception raised when merged configuration fails model validation."""

    def __init__(
        self,
        message: str,
        pydantic_error: ValidationError | None = None,
        context: dict[str, Any] | None = None,  # pyright: ignore[reportAny] # Flexible config error context
    ) -> None:
        """Initialize ConfigValidationError.

        Args:
            message: Error message
            pydantic_error: Original Pydantic ValidationError
            context: Additional context information
        """
        full_context = context or {}
        if pydantic_error is not None:
            full_context["validation_errors"] = self._format_validation_errors(pydantic_error)

        super().__init__(message, full_context)
        self.pydantic_error: ValidationError | None = pydantic_error

    def _format_validation_errors(self, error: ValidationError) -> list[dict[str, Any]]:  # pyright: ignore[reportAny] # Flexible error formatting
        return [
            {
                "field": ".".join(str(loc) for loc in err["loc"]),
                "message": err["msg"],
                "type": err["type"],
            }
            for err in error.errors()
        ]


def handle_config_error(error: Exception, operation: str) -> ConfigError:
    """Wrap any exception raised while configuring the meter in a ConfigError.

    Args:
        error: Original exception
        operation: Description of the operation that failed

    Returns:
        The error itself if it already is a ConfigError, otherwise a wrapper
    """
    logger.debug("Configuration error during %s: %s", operation, error, exc_info=True)

    if isinstance(error, ConfigError):
        return error

    if isinstance(error, ValidationError):
        return ConfigValidationError(
            f"Configuration validation failed during {operation}",
            pydantic_error=error,
        )

    wrapped_error = ConfigError(
        f"Configuration error during {operation}: {error}",
        context={"operation": operation, "original_error_type": type(error).__name__},
    )
    wrapped_error.__cause__ = error
    return wrapped_error


def suggest_config_fix(error: ConfigError) -> str | None:
    """Suggest a fix for a configuration error.

    Args:
        error: Configuration error

    Returns:
        Suggested fix or None if no suggestion available
    """
    if isinstance(error, ConfigLoadError):
        if error.file_path:
            return f"Check that the file exists and contains a YAML mapping: {error.file_path}"
        return "Check that the configuration file exists and contains a YAML mapping"

    if isinstance(error, EnvLoadError):
        if error.env_var:
            return f"Check the format and value of environment variable: {error.env_var}"
        return "Check the format and values of OBJECT_METER_ environment variables"

    if isinstance(error, ConfigValidationError) and error.pydantic_error:
        errors = error.pydantic_error.errors()
        if len(errors) == 1:
            field_path = ".".join(str(loc) for loc in errors[0]["loc"])
            return f"Fix validation error in field '{field_path}': {errors[0]['msg']}"
        return f"Fix {len(errors)} validation errors in the configuration"

    if isinstance(error, ConfigMergeError):
        if error.config_path:
            return f"Check for type conflicts in configuration path: {error.config_path}"
        return "Check for type conflicts between the file and environment overrides"

    return None
