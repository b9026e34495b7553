"""
Configuration Manager for the hedge trimmer.

This module provides centralized configuration management with support for:
- YAML and JSON configuration files
- Environment variable overrides (optionally loaded from a .env file)
- Pydantic-based validation
- Default values for optional parameters

Configuration is validated once at startup. Any failure is raised as
ConfigurationError, which the entry point treats as fatal.
"""

import os
import json
import yaml
from pathlib import Path
from typing import List, Optional, Union, Dict, Any
from dotenv import load_dotenv
from pydantic import BaseModel, Field, validator, ValidationError
from enum import Enum


class ConfigurationError(Exception):
    """Invalid or unreadable configuration. Fatal at startup."""


class LogLevel(str, Enum):
    """Supported log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class MonitorSettings(BaseModel):
    """Monitoring cycle and trim parameters."""
    symbol: str = Field(default="EURUSD", description="Monitored instrument symbol")
    check_interval_seconds: int = Field(
        default=1, ge=1,
        description="Seconds between monitoring cycles"
    )
    trim_fraction: float = Field(
        default=0.75, ge=0.1, le=0.95,
        description="Share of the losing loss winners must cover, and share of each loser to close"
    )
    max_retries: int = Field(
        default=3, ge=1, le=10,
        description="Maximum close attempts per position"
    )
    retry_backoff_seconds: float = Field(
        default=1.0, ge=0,
        description="Backoff unit; the n-th retry waits n times this value"
    )
    log_interval_seconds: float = Field(
        default=60.0, ge=0,
        description="Minimum seconds between periodic status messages"
    )

    @validator('symbol')
    def validate_symbol(cls, v):
        if not v or not v.strip():
            raise ValueError("Monitored symbol cannot be empty")
        return v.strip()


class LoggingSettings(BaseModel):
    """Logging verbosity and output settings."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Root logging level")
    enable_logging: bool = Field(default=True, description="Log cycle and trim activity")
    enable_detailed_logging: bool = Field(
        default=False,
        description="Log hedging summaries, per-attempt results and stack traces"
    )
    console: bool = Field(default=True, description="Log to console")
    colors: bool = Field(default=True, description="Colorize console output")
    file: bool = Field(default=False, description="Write JSON logs to a rotating file")
    file_path: str = Field(default="logs/hedge_trimmer.log", description="Path to log file")
    error_file: bool = Field(default=False, description="Write errors to a separate file")
    error_file_path: str = Field(default="logs/errors.log", description="Path to error log file")


class PaperPositionSettings(BaseModel):
    """Seed position for the paper broker."""
    id: Optional[Union[int, str]] = Field(default=None, description="Position id (auto if omitted)")
    symbol: Optional[str] = Field(default=None, description="Symbol (monitored symbol if omitted)")
    side: str = Field(description="'long'/'buy' or 'short'/'sell'")
    volume: int = Field(gt=0, description="Volume in units")
    entry_price: float = Field(gt=0, description="Entry price")
    net_profit: Optional[float] = Field(
        default=None,
        description="Fixed net profit (marked to the price when omitted)"
    )

    @validator('side')
    def validate_side(cls, v):
        if v.strip().lower() not in ('long', 'buy', 'short', 'sell'):
            raise ValueError("side must be one of 'long', 'buy', 'short', 'sell'")
        return v.strip().lower()


class BrokerSettings(BaseModel):
    """Broker collaborator settings."""
    type: str = Field(default="paper", description="'paper' or 'ccxt'")

    # ccxt
    exchange_id: str = Field(default="binanceusdm", description="CCXT exchange identifier")
    api_key: Optional[str] = Field(default=None, description="API key for authentication")
    api_secret: Optional[str] = Field(default=None, description="API secret for authentication")
    sandbox: bool = Field(default=True, description="Use sandbox environment")
    units_per_contract: float = Field(
        default=1.0, gt=0,
        description="Volume units represented by one exchange contract"
    )

    # paper
    initial_price: float = Field(default=1.1150, gt=0, description="Initial bid price")
    latency_seconds: float = Field(default=0.0, ge=0, description="Simulated call latency")
    failure_rate: float = Field(default=0.0, ge=0, le=1.0, description="Simulated close failure rate")
    seed: Optional[int] = Field(default=None, description="Random seed for failure injection")
    positions: List[PaperPositionSettings] = Field(
        default_factory=list,
        description="Positions to open at startup"
    )

    @validator('type')
    def validate_type(cls, v):
        if v not in ("paper", "ccxt"):
            raise ValueError("broker type must be 'paper' or 'ccxt'")
        return v


class HedgeTrimmerConfig(BaseModel):
    """Complete hedge trimmer configuration."""
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    broker: BrokerSettings = Field(default_factory=BrokerSettings)


class ConfigManager:
    """
    Configuration manager for the hedge trimmer.

    Handles loading configuration from YAML/JSON files with support for:
    - Environment variable overrides
    - Validation using Pydantic models
    - Default values for optional parameters
    - Saving configuration back to file

    Environment Variables:
        HEDGE_SYMBOL: Override monitored symbol
        HEDGE_CHECK_INTERVAL: Override check interval (seconds)
        HEDGE_TRIM_FRACTION: Override trim fraction
        HEDGE_MAX_RETRIES: Override max close retries
        HEDGE_LOG_LEVEL: Override log level
        HEDGE_BROKER_TYPE: Override broker type (paper/ccxt)
        HEDGE_API_KEY: Override API key
        HEDGE_API_SECRET: Override API secret
        HEDGE_SANDBOX: Override sandbox mode (true/false)
    """

    # Environment variable mappings
    ENV_MAPPINGS = {
        'HEDGE_SYMBOL': ('monitor', 'symbol'),
        'HEDGE_CHECK_INTERVAL': ('monitor', 'check_interval_seconds'),
        'HEDGE_TRIM_FRACTION': ('monitor', 'trim_fraction'),
        'HEDGE_MAX_RETRIES': ('monitor', 'max_retries'),
        'HEDGE_LOG_LEVEL': ('logging', 'level'),
        'HEDGE_BROKER_TYPE': ('broker', 'type'),
        'HEDGE_API_KEY': ('broker', 'api_key'),
        'HEDGE_API_SECRET': ('broker', 'api_secret'),
        'HEDGE_SANDBOX': ('broker', 'sandbox'),
    }

    BOOL_FIELDS = [
        ('broker', 'sandbox'),
    ]

    INT_FIELDS = [
        ('monitor', 'check_interval_seconds'),
        ('monitor', 'max_retries'),
    ]

    FLOAT_FIELDS = [
        ('monitor', 'trim_fraction'),
    ]

    def __init__(
        self,
        config_path: Optional[Union[str, Path]] = None,
        env_file: Optional[Union[str, Path]] = '.env'
    ):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to configuration file (YAML or JSON)
            env_file: Optional .env file loaded before environment overrides
        """
        self._config_path: Optional[Path] = Path(config_path) if config_path else None
        self._env_file = env_file
        self._config: Optional[HedgeTrimmerConfig] = None
        self._raw_config: Dict[str, Any] = {}

    def load_config(self, config_path: Optional[Union[str, Path]] = None) -> HedgeTrimmerConfig:
        """
        Load configuration from file.

        Args:
            config_path: Path to configuration file. If not provided, uses the path
                        specified during initialization.

        Returns:
            HedgeTrimmerConfig: Validated configuration object

        Raises:
            ConfigurationError: If the file is missing, malformed or invalid
        """
        if config_path:
            self._config_path = Path(config_path)

        if not self._config_path:
            raise ConfigurationError("No configuration path specified")

        if not self._config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self._config_path}"
            )

        # Load raw configuration from file
        self._raw_config = self._load_file(self._config_path)

        # Apply environment variable overrides
        if self._env_file:
            load_dotenv(self._env_file, override=False)
        self._apply_env_overrides()

        self._config = self.validate(self._raw_config)
        return self._config

    @staticmethod
    def validate(raw_config: Dict[str, Any]) -> HedgeTrimmerConfig:
        """
        Validate a raw configuration mapping.

        Raises:
            ConfigurationError: If configuration fails validation
        """
        try:
            return HedgeTrimmerConfig(**raw_config)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

    def _load_file(self, path: Path) -> Dict[str, Any]:
        """
        Load configuration from file based on extension.

        Args:
            path: Path to configuration file

        Returns:
            Dict containing configuration data

        Raises:
            ConfigurationError: If file format is not supported or malformed
        """
        suffix = path.suffix.lower()

        try:
            with open(path, 'r', encoding='utf-8') as f:
                if suffix in ['.yaml', '.yml']:
                    data = yaml.safe_load(f) or {}
                elif suffix == '.json':
                    data = json.load(f)
                else:
                    raise ConfigurationError(
                        f"Unsupported configuration format: {suffix}. "
                        "Use .yaml, .yml, or .json"
                    )
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML format: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON format: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError("Configuration root must be a mapping")
        return data

    def _apply_env_overrides(self) -> None:
        """
        Apply environment variable overrides to configuration.

        Environment variables take precedence over file configuration.
        """
        for env_var, (section, key) in self.ENV_MAPPINGS.items():
            value = os.getenv(env_var)
            if value is not None:
                converted_value = self._convert_env_value(env_var, value, section, key)

                if not isinstance(self._raw_config.get(section), dict):
                    self._raw_config[section] = {}

                self._raw_config[section][key] = converted_value

    def _convert_env_value(
        self, env_var: str, value: str, section: str, key: str
    ) -> Union[str, bool, int, float]:
        """
        Convert environment variable string to appropriate type.

        Args:
            env_var: Environment variable name (for error messages)
            value: String value from environment variable
            section: Configuration section name
            key: Configuration key name

        Returns:
            Converted value with appropriate type
        """
        if (section, key) in self.BOOL_FIELDS:
            return value.lower() in ('true', '1', 'yes', 'on')

        if (section, key) in self.INT_FIELDS:
            try:
                return int(value)
            except ValueError:
                raise ConfigurationError(
                    f"Environment variable {env_var} must be an integer, got: {value}"
                )

        if (section, key) in self.FLOAT_FIELDS:
            try:
                return float(value)
            except ValueError:
                raise ConfigurationError(
                    f"Environment variable {env_var} must be a number, got: {value}"
                )

        return value

    def save_config(
        self, config_path: Optional[Union[str, Path]] = None, format: str = 'yaml'
    ) -> None:
        """
        Save current configuration to file.

        Args:
            config_path: Path to save configuration. If not provided, uses the
                        path specified during initialization.
            format: Output format ('yaml' or 'json')

        Raises:
            ValueError: If no configuration is loaded or format is invalid
        """
        if not self._config:
            raise ValueError("No configuration loaded to save")

        save_path = Path(config_path) if config_path else self._config_path
        if not save_path:
            raise ValueError("No save path specified")

        save_path.parent.mkdir(parents=True, exist_ok=True)

        config_dict = json.loads(self._config.json())

        with open(save_path, 'w', encoding='utf-8') as f:
            if format.lower() in ['yaml', 'yml']:
                yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)
            elif format.lower() == 'json':
                json.dump(config_dict, f, indent=2)
            else:
                raise ValueError(f"Unsupported format: {format}. Use 'yaml' or 'json'")

    def get_config(self) -> HedgeTrimmerConfig:
        """
        Get the current configuration.

        Raises:
            ValueError: If no configuration is loaded
        """
        if not self._config:
            raise ValueError("No configuration loaded. Call load_config() first.")
        return self._config

    def get_monitor_params(self) -> MonitorSettings:
        """Get monitoring cycle parameters."""
        return self.get_config().monitor

    def get_logging_params(self) -> LoggingSettings:
        """Get logging parameters."""
        return self.get_config().logging

    def get_broker_params(self) -> BrokerSettings:
        """Get broker parameters."""
        return self.get_config().broker

    def reload(self) -> HedgeTrimmerConfig:
        """Reload configuration from file."""
        return self.load_config(self._config_path)

    @property
    def is_loaded(self) -> bool:
        """Check if configuration is loaded."""
        return self._config is not None

    @classmethod
    def create_default_config(cls, config_path: Union[str, Path]) -> HedgeTrimmerConfig:
        """
        Create a default configuration file.

        Args:
            config_path: Path where to save the default configuration

        Returns:
            HedgeTrimmerConfig: Default configuration object
        """
        config_path = Path(config_path)
        manager = cls()
        manager._config = HedgeTrimmerConfig()
        manager._config_path = config_path

        format = 'yaml' if config_path.suffix in ['.yaml', '.yml'] else 'json'
        manager.save_config(format=format)

        return manager._config


def build_logging_config(config: HedgeTrimmerConfig) -> Dict[str, Any]:
    """
    Translate LoggingSettings into the dictionary setup_logging() expects.

    Args:
        config: Validated configuration

    Returns:
        Logging configuration dictionary
    """
    settings = config.logging
    log_dir, log_name = os.path.split(settings.file_path)
    error_dir, error_name = os.path.split(settings.error_file_path)

    return {
        'logging': {
            'level': settings.level.value,
            'console': settings.console,
            'console_config': {'colors': settings.colors},
            'file': settings.file,
            'file_config': {'directory': log_dir or '.', 'filename': log_name},
            'error_file': settings.error_file,
            'error_file_config': {'directory': error_dir or '.', 'filename': error_name},
        }
    }


# Convenience function for quick access
def load_config(config_path: Union[str, Path]) -> HedgeTrimmerConfig:
    """
    Load configuration from file.

    Args:
        config_path: Path to configuration file

    Returns:
        HedgeTrimmerConfig: Validated configuration object
    """
    manager = ConfigManager(config_path)
    return manager.load_config()
