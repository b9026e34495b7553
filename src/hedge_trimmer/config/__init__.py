"""
Configuration package for the hedge trimmer.

This package provides configuration management with support for YAML/JSON files,
environment variable overrides, and Pydantic-based validation.
"""

from .config_manager import (
    ConfigManager,
    ConfigurationError,
    HedgeTrimmerConfig,
    MonitorSettings,
    LoggingSettings,
    BrokerSettings,
    PaperPositionSettings,
    LogLevel,
    build_logging_config,
    load_config,
)

__all__ = [
    'ConfigManager',
    'ConfigurationError',
    'HedgeTrimmerConfig',
    'MonitorSettings',
    'LoggingSettings',
    'BrokerSettings',
    'PaperPositionSettings',
    'LogLevel',
    'build_logging_config',
    'load_config',
]
