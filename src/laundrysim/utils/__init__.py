"""工具模块：配置与日志"""

from .config import (
    ConfigManager,
    ConfigValidationError,
    LaundrySimConfig,
    ValidationResult,
    check_config,
    get_config,
    get_default_config,
    load_config,
    load_scenario_preset,
    merge_config,
    validate_config,
)
from .logging_utils import setup_logging

__all__ = [
    'ConfigManager',
    'ConfigValidationError',
    'LaundrySimConfig',
    'ValidationResult',
    'check_config',
    'get_config',
    'get_default_config',
    'load_config',
    'load_scenario_preset',
    'merge_config',
    'validate_config',
    'setup_logging',
]
