"""Custom exceptions for configuration management."""

from photostack.errors import PhotostackError


class ConfigError(PhotostackError):
    """Raised when configuration data cannot be processed."""
