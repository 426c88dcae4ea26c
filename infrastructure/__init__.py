"""
Infrastructure package for path management, configuration and the error taxonomy.
"""

from .exceptions import (
    HydroBasinError,
    InputError,
    ExternalToolError,
    DataUnavailableError,
    DateParseError,
    NoPourPointError,
    GridAlignmentError,
    ConfigurationError,
)
from .path_manager import AbsolutePathManager, BasinWorkspace, DemCacheEntry
from .configuration_manager import (
    ConfigurationManager,
    DelineationConfig,
    HydroBasinConfig,
    WaterBalanceConfig,
)

__all__ = [
    'HydroBasinError',
    'InputError',
    'ExternalToolError',
    'DataUnavailableError',
    'DateParseError',
    'NoPourPointError',
    'GridAlignmentError',
    'ConfigurationError',
    'AbsolutePathManager',
    'BasinWorkspace',
    'DemCacheEntry',
    'ConfigurationManager',
    'DelineationConfig',
    'HydroBasinConfig',
    'WaterBalanceConfig',
]
