"""Errors raised when the service is missing required configuration."""


class ConfigurationError(RuntimeError):
    """Raised when a credential or endpoint is absent from the environment."""


__all__ = ["ConfigurationError"]
