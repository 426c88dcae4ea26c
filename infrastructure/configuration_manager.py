"""
ConfigurationManager for parameterized and reproducible workflows.
"""

import json
import os
import yaml
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Any, Union, Optional
from dataclasses import dataclass, asdict, field, fields
import logging

from .exceptions import ConfigurationError
from .path_manager import AbsolutePathManager, FileAccessError

logger = logging.getLogger(__name__)

TERRACLIMATE_URL = (
    "http://thredds.northwestknowledge.net:8080/thredds/dodsC/"
    "agg_terraclimate_{var}_1958_CurrentYear_GLOBE.nc"
)

MAX_DEM_ZOOM = 14


def _known_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - names)
    if unknown:
        raise ConfigurationError([f"Unknown {cls.__name__} key: {key}" for key in unknown])
    return dict(data)


@dataclass
class DelineationConfig:
    """Parameters of the basin delineation workflow"""
    out_dir: str = "basin_work"
    dem_zoom: int = 12
    snap_dist: float = 500.0
    quiet: bool = True

    # Terrain toolchain parameters (cells / map units)
    breach_dist: int = 10000
    stream_threshold: int = 1000
    burn_dist: float = 10.0
    n_workers: Optional[int] = None  # None -> cores - 1
    dem_filename: str = "dem.tif"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DelineationConfig':
        """Create from dictionary"""
        return cls(**_known_fields(cls, data))

    @property
    def workers(self) -> int:
        if self.n_workers:
            return int(self.n_workers)
        return max(1, (os.cpu_count() or 1) - 1)

    def validate(self) -> List[str]:
        """Validate delineation parameters"""
        errors = []

        if not self.out_dir:
            errors.append("out_dir cannot be empty")

        if not isinstance(self.dem_zoom, int) or isinstance(self.dem_zoom, bool):
            errors.append(f"dem_zoom must be an integer, got {self.dem_zoom!r}")
        elif not (0 <= self.dem_zoom <= MAX_DEM_ZOOM):
            errors.append(f"dem_zoom must be between 0 and {MAX_DEM_ZOOM}")

        if self.snap_dist is None or self.snap_dist < 0:
            errors.append("snap_dist cannot be negative")

        if self.breach_dist <= 0:
            errors.append("breach_dist must be positive")

        if self.stream_threshold <= 0:
            errors.append("stream_threshold must be positive")

        if self.burn_dist < 0:
            errors.append("burn_dist cannot be negative")

        if self.n_workers is not None and self.n_workers < 1:
            errors.append("n_workers must be at least 1")

        if not str(self.dem_filename).lower().endswith(('.tif', '.tiff')):
            errors.append("dem_filename must be a GeoTIFF name")

        return errors


@dataclass
class WaterBalanceConfig:
    """Parameters of the monthly water-balance workflow"""
    ppt_var: str = "ppt"
    aet_var: str = "aet"
    quiet: bool = True
    terraclimate_url: str = TERRACLIMATE_URL
    grid_padding_cells: int = 1
    mm_to_m: float = 0.001

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WaterBalanceConfig':
        """Create from dictionary"""
        return cls(**_known_fields(cls, data))

    def validate(self) -> List[str]:
        """Validate water-balance parameters"""
        errors = []

        for name in ('ppt_var', 'aet_var'):
            value = getattr(self, name)
            if not value or not str(value).isidentifier():
                errors.append(f"{name} must be a TerraClimate variable name, got {value!r}")

        if self.ppt_var == self.aet_var:
            errors.append("ppt_var and aet_var must differ")

        if '{var}' not in self.terraclimate_url:
            errors.append("terraclimate_url must contain a '{var}' placeholder")

        if self.grid_padding_cells < 0:
            errors.append("grid_padding_cells cannot be negative")

        if self.mm_to_m <= 0:
            errors.append("mm_to_m must be positive")

        return errors


@dataclass
class HydroBasinConfig:
    """Complete configuration file: one section per workflow"""
    delineation: DelineationConfig = field(default_factory=DelineationConfig)
    water_balance: WaterBalanceConfig = field(default_factory=WaterBalanceConfig)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'delineation': self.delineation.to_dict(),
            'water_balance': self.water_balance.to_dict(),
            'metadata': dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HydroBasinConfig':
        data = data or {}
        return cls(
            delineation=DelineationConfig.from_dict(data.get('delineation') or {}),
            water_balance=WaterBalanceConfig.from_dict(data.get('water_balance') or {}),
            metadata=dict(data.get('metadata') or {}),
        )

    def validate(self) -> List[str]:
        return (
            [f"delineation.{e}" for e in self.delineation.validate()] +
            [f"water_balance.{e}" for e in self.water_balance.validate()]
        )


class ConfigurationManager:
    """
    Loading, saving and validation of workflow configuration files.
    """

    def __init__(self, config_format: str = 'yaml', path_manager: Optional[AbsolutePathManager] = None):
        """
        Initialize configuration manager.

        Args:
            config_format: Format for configuration files ('yaml' or 'json')
            path_manager: Resolves relative configuration paths (defaults to the current directory)
        """
        self.config_format = config_format.lower()
        if self.config_format not in ['yaml', 'json']:
            raise ConfigurationError(f"config_format must be 'yaml' or 'json', got '{config_format}'")

        self.path_manager = path_manager or AbsolutePathManager(Path.cwd())
        logger.debug(f"Initialized ConfigurationManager with format: {self.config_format}")

    def create_default_config(self) -> HydroBasinConfig:
        """Default configuration for both workflows"""
        return HydroBasinConfig(
            metadata={
                'created_date': datetime.now().isoformat(),
                'created_by': 'ConfigurationManager',
                'version': '1.0',
                'description': 'Default configuration for basin delineation and monthly water balance'
            }
        )

    def load(self, config_file: Union[str, Path]) -> HydroBasinConfig:
        """
        Load and validate a configuration file.

        Raises:
            FileAccessError: If the file cannot be read or parsed
            ConfigurationError: If a value is unknown or invalid
        """
        abs_config_path = self.path_manager.validate_path(config_file, must_be_file=True)

        try:
            with open(abs_config_path, 'r', encoding='utf-8') as f:
                if self.config_format == 'yaml':
                    config_dict = yaml.safe_load(f)
                else:
                    config_dict = json.load(f)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise FileAccessError(str(abs_config_path), "read configuration", str(e))

        if config_dict is not None and not isinstance(config_dict, dict):
            raise ConfigurationError("top level must be a mapping", abs_config_path)

        try:
            config = HydroBasinConfig.from_dict(config_dict or {})
        except TypeError as e:
            raise ConfigurationError(str(e), abs_config_path)
        except ConfigurationError as e:
            raise ConfigurationError(e.errors, abs_config_path)

        errors = config.validate()
        if errors:
            raise ConfigurationError(errors, abs_config_path)

        logger.info(f"Loaded configuration from: {abs_config_path}")
        return config

    def save(self, config: HydroBasinConfig, config_file: Union[str, Path]) -> Path:
        """
        Save configuration to file.

        Returns:
            Absolute path to saved configuration file
        """
        errors = config.validate()
        if errors:
            raise ConfigurationError(errors, config_file)

        abs_config_path = self.path_manager.ensure_file_writable(config_file)
        config.metadata['last_modified'] = datetime.now().isoformat()

        try:
            with open(abs_config_path, 'w', encoding='utf-8') as f:
                if self.config_format == 'yaml':
                    yaml.safe_dump(config.to_dict(), f, default_flow_style=False, indent=2, sort_keys=False)
                else:
                    json.dump(config.to_dict(), f, indent=2, ensure_ascii=False)
        except (OSError, yaml.YAMLError, TypeError) as e:
            raise FileAccessError(str(abs_config_path), "write configuration", str(e))

        logger.info(f"Saved configuration to: {abs_config_path}")
        return abs_config_path

    @staticmethod
    def format_for(config_file: Union[str, Path]) -> str:
        """Configuration format implied by a file extension"""
        return 'json' if str(config_file).lower().endswith('.json') else 'yaml'
