"""
Core module initialization.
"""

from .config import (
    Config,
    get_config,
    init_config,
    reset_config,
    PIIConfig,
    ProfilingProtectionConfig,
    ChangeLogConfig,
    StorageConfig,
    ModelConfig,
    MonitoringConfig,
    YAMLConfigLoader
)

__all__ = [
    'Config',
    'get_config',
    'init_config',
    'reset_config',
    'PIIConfig',
    'ProfilingProtectionConfig',
    'ChangeLogConfig',
    'StorageConfig',
    'ModelConfig',
    'MonitoringConfig',
    'YAMLConfigLoader',
]
