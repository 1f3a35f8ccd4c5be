"""
Configuration management system with environment variable loading and validation.
"""

import math
import os
import yaml
from pathlib import Path
from typing import Optional, Dict, Any, List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
import logging

from models.pii import ScanMode

logger = logging.getLogger(__name__)


class PIIConfig(BaseSettings):
    """PII scanning and notification configuration."""
    model_config = SettingsConfigDict(env_prefix='PII_', extra='ignore')

    scan_mode: ScanMode = Field(default=ScanMode.OFF)
    notifications_enabled: bool = Field(default=True)
    dedup_cache_size: int = Field(default=500, ge=1, le=100000)
    signature_findings: int = Field(default=5, ge=1, le=50)
    message_findings: int = Field(default=3, ge=1, le=20)
    value_preview_length: int = Field(default=40, ge=1, le=1000)
    message_max_length: int = Field(default=250, ge=10, le=4000)


class ProfilingProtectionConfig(BaseSettings):
    """Chameleon (profiling protection) configuration."""
    model_config = SettingsConfigDict(env_prefix='PROFILING_PROTECTION_', extra='ignore')

    enabled: bool = Field(default=False)
    ml_enabled: bool = Field(default=True)
    threshold_percent: float = Field(default=95.0)
    tick_minutes: int = Field(default=5, ge=1, le=1440)
    min_delay_minutes: int = Field(default=5, ge=0, le=1440)
    max_delay_minutes: int = Field(default=10, ge=0, le=1440)
    classification_timeout_seconds: float = Field(default=2.0, gt=0, le=60)

    @field_validator('max_delay_minutes')
    @classmethod
    def validate_delay_range(cls, v, info):
        """Validate that the cooldown window is not inverted."""
        min_delay = info.data.get('min_delay_minutes')
        if min_delay is not None and v < min_delay:
            raise ValueError(
                f"max_delay_minutes ({v}) must be >= min_delay_minutes ({min_delay})"
            )
        return v


class ChangeLogConfig(BaseSettings):
    """Cookie change log configuration."""
    model_config = SettingsConfigDict(env_prefix='CHANGELOG_', extra='ignore')

    limit: int = Field(default=2000, ge=1, le=100000)
    attribution_window_seconds: float = Field(default=0.5, gt=0, le=60)


class StorageConfig(BaseSettings):
    """Persisted key-value store configuration."""
    model_config = SettingsConfigDict(env_prefix='STORAGE_', extra='ignore')

    backend: str = Field(default='memory')
    redis_url: str = Field(default='redis://localhost:6379/0')
    key_prefix: str = Field(default='cookie_guard')
    socket_timeout: int = Field(default=5, ge=1, le=60)

    @field_validator('backend')
    @classmethod
    def validate_backend(cls, v):
        """Validate storage backend."""
        valid_backends = {'memory', 'redis'}
        if v.lower() not in valid_backends:
            raise ValueError(f"Invalid storage backend: {v}. Must be one of {valid_backends}")
        return v.lower()


class ModelConfig(BaseSettings):
    """Classifier oracle configuration."""
    model_config = SettingsConfigDict(env_prefix='MODEL_', extra='ignore')

    path: Optional[Path] = Field(None)
    training_base_timestamp: float = Field(default=1707145200)


class MonitoringConfig(BaseSettings):
    """Logging configuration."""
    model_config = SettingsConfigDict(env_prefix='', extra='ignore')

    log_level: str = Field(default='INFO')
    log_format: str = Field(default='json')

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        """Validate log format."""
        valid_formats = {'json', 'console'}
        if v.lower() not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return v.lower()


class Config(BaseSettings):
    """Main configuration class."""
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore'
    )

    # Environment
    environment: str = Field(default='development')
    debug: bool = Field(default=False)

    # Sub-configurations
    pii: PIIConfig = Field(default_factory=PIIConfig)
    profiling_protection: ProfilingProtectionConfig = Field(default_factory=ProfilingProtectionConfig)
    changelog: ChangeLogConfig = Field(default_factory=ChangeLogConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        """Validate environment."""
        valid_envs = {'development', 'staging', 'production', 'test'}
        if v.lower() not in valid_envs:
            raise ValueError(f"Invalid environment: {v}. Must be one of {valid_envs}")
        return v.lower()

    def validate_config(self) -> List[str]:
        """
        Validate configuration and return warnings/errors.

        Returns:
            List of messages prefixed with ERROR or WARNING
        """
        messages = []

        threshold = self.profiling_protection.threshold_percent
        if not math.isfinite(threshold) or not 0 <= threshold <= 100:
            messages.append(
                f"WARNING: profiling protection threshold {threshold} is outside 0-100 "
                f"and will be clamped"
            )

        if self.model.path is not None and not self.model.path.exists():
            messages.append(
                f"WARNING: model file {self.model.path} not found; "
                f"classification will fail safe"
            )

        if self.environment == 'production' and self.storage.backend == 'memory':
            messages.append(
                "WARNING: in-memory storage in production loses state on restart"
            )

        return messages


CONFIG_PATH_ENV = 'COOKIE_GUARD_CONFIG'


class YAMLConfigLoader:
    """Load configuration sections from YAML files."""

    @staticmethod
    def load_yaml_config(config_path: Path) -> Dict[str, Any]:
        """
        Read a YAML file whose top level maps section names to settings.

        A missing, unreadable or non-mapping file yields an empty dict so the
        environment defaults still apply.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            logger.warning(f"Config file not found: {config_path}")
            return {}

        try:
            with open(config_path, 'r') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error loading config from {config_path}: {e}")
            return {}

        if data is None:
            return {}
        if not isinstance(data, dict):
            logger.error(f"Config file {config_path} must contain a mapping, got {type(data).__name__}")
            return {}

        unknown = sorted(set(data) - set(Config.model_fields))
        if unknown:
            logger.warning(f"Ignoring unknown config sections in {config_path}: {', '.join(unknown)}")

        logger.info(f"Loaded configuration from {config_path}")
        return {key: value for key, value in data.items() if key in Config.model_fields}

    @staticmethod
    def merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge two section dicts; `override` wins."""
        result = dict(base)
        for key, value in override.items():
            if isinstance(result.get(key), dict) and isinstance(value, dict):
                result[key] = YAMLConfigLoader.merge_configs(result[key], value)
            else:
                result[key] = value
        return result


_config: Optional[Config] = None


def get_config() -> Config:
    """Return the configuration built by init_config()."""
    if _config is None:
        raise RuntimeError("Configuration not initialized. Call init_config() first.")
    return _config


def init_config(
    env_file: Optional[str] = None,
    yaml_config_path: Optional[Path] = None
) -> Config:
    """
    Build the global configuration.

    Environment variables (and the optional .env file) provide the base;
    sections of the YAML file, given explicitly or through
    COOKIE_GUARD_CONFIG, override them.

    Raises:
        ValueError: If validation reports an ERROR
    """
    global _config

    yaml_config_path = yaml_config_path or os.environ.get(CONFIG_PATH_ENV)
    yaml_config = YAMLConfigLoader.load_yaml_config(Path(yaml_config_path)) if yaml_config_path else {}

    env_kwargs: Dict[str, Any] = {'_env_file': env_file} if env_file else {}
    # Nested sections passed as init kwargs skip their own env lookup, so
    # YAML sections are merged over the env-built values field by field
    merged = YAMLConfigLoader.merge_configs(Config(**env_kwargs).model_dump(), yaml_config)
    _config = Config(**env_kwargs, **merged)

    for msg in _config.validate_config():
        if msg.startswith('ERROR'):
            logger.error(msg)
            raise ValueError(msg)
        logger.warning(msg)

    logger.info(
        f"Configuration initialized for {_config.environment} "
        f"(storage={_config.storage.backend}, pii_scan_mode={_config.pii.scan_mode.value})"
    )
    return _config


def reset_config() -> None:
    """Drop the global configuration (tests, reloads)."""
    global _config
    _config = None
