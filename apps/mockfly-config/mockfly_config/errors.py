"""Exceptions raised while loading and resolving mock configuration."""

from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when a configuration cannot be loaded, validated or merged.

    Any ``ConfigError`` aborts the whole load: no partial route set is served.
    """


class ConfigFileError(ConfigError):
    """Raised when the configuration file (or a referenced file) cannot be read or parsed."""


class PatternError(ValueError):
    """Raised when a route pattern uses malformed syntax."""
