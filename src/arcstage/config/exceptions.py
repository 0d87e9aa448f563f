"""Configuration errors."""


class ConfigError(Exception):
    """Raised when configuration files, environment, or CLI overrides are invalid."""
