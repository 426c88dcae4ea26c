#!/usr/bin/env python3
"""
Climate Data Client for the monthly water balance
Reads gridded monthly TerraClimate variables from the THREDDS OPeNDAP aggregation
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import geopandas as gpd
import numpy as np
import pandas as pd
import xarray as xr
from affine import Affine
from rasterio.transform import from_origin

from infrastructure.configuration_manager import TERRACLIMATE_URL
from infrastructure.exceptions import ExternalToolError, InputError

logger = logging.getLogger(__name__)

GEOGRAPHIC_CRS = "EPSG:4326"


@dataclass
class ClimateGridStack:
    """
    Ordered monthly grids of one climate variable.

    ``values`` is shaped (months, rows, cols), north-up, with NaN marking
    cells without data. ``labels`` carry the layer date as ``<var>_YYYY-MM-DD``.
    """
    variable: str
    values: np.ndarray
    transform: Affine
    crs: str = GEOGRAPHIC_CRS
    labels: List[str] = field(default_factory=list)

    @classmethod
    def empty(cls, variable: str, crs: str = GEOGRAPHIC_CRS) -> 'ClimateGridStack':
        return cls(variable, np.empty((0, 0, 0), dtype=float), Affine.identity(), crs, [])

    @property
    def n_layers(self) -> int:
        return int(self.values.shape[0])

    @property
    def shape(self):
        return tuple(self.values.shape[1:])

    @property
    def is_empty(self) -> bool:
        return self.n_layers == 0 or self.values.size == 0


class ClimateDataClient:
    """Client for TerraClimate monthly grids served over OPeNDAP"""

    def __init__(self, url_template: str = TERRACLIMATE_URL, padding_cells: int = 1):
        self.url_template = url_template
        self.padding_cells = padding_cells

    def dataset_url(self, variable: str) -> str:
        return self.url_template.format(var=variable)

    def get_terraclimate_stack(self, basin: gpd.GeoDataFrame, start_date: str, end_date: str,
                               variable: str) -> ClimateGridStack:
        """
        Monthly grids of a TerraClimate variable covering a basin.

        Args:
            basin: Basin polygons with a CRS
            start_date: First day of the period (YYYY-MM-DD); the whole month is included
            end_date: Last day of the period (YYYY-MM-DD)
            variable: TerraClimate variable name, e.g. 'ppt' or 'aet'

        Returns:
            ClimateGridStack in EPSG:4326, empty when the request selects no
            month or no cell with data
        """
        if basin.crs is None:
            raise InputError(None, "basin has no CRS")

        west, south, east, north = basin.to_crs(GEOGRAPHIC_CRS).total_bounds
        start = pd.Timestamp(start_date).replace(day=1)
        end = pd.Timestamp(end_date)

        url = self.dataset_url(variable)
        logger.info(f"Opening TerraClimate '{variable}' for {start.date()} to {end.date()}")

        try:
            with xr.open_dataset(url) as ds:
                if variable not in ds:
                    raise ExternalToolError("TerraClimate OPeNDAP", f"variable '{variable}' not in dataset", url)
                subset = self._subset(ds[variable], west, south, east, north, start, end)
                if subset is None:
                    return ClimateGridStack.empty(variable)
                subset = subset.load()
        except OSError as e:
            raise ExternalToolError("TerraClimate OPeNDAP", str(e), url) from e

        return self._to_stack(subset, variable)

    def _subset(self, da: xr.DataArray, west, south, east, north, start, end) -> Optional[xr.DataArray]:
        """Time slice and padded bounding box; None when either is empty"""
        lat = da['lat'].values
        lon = da['lon'].values
        if lat.size < 2 or lon.size < 2:
            return None

        dy = abs(float(lat[1] - lat[0])) * self.padding_cells
        dx = abs(float(lon[1] - lon[0])) * self.padding_cells

        if lat[0] > lat[-1]:
            lat_slice = slice(north + dy, south - dy)
        else:
            lat_slice = slice(south - dy, north + dy)

        subset = da.sel(time=slice(start, end), lat=lat_slice, lon=slice(west - dx, east + dx))
        if subset.sizes['time'] == 0 or subset.sizes['lat'] == 0 or subset.sizes['lon'] == 0:
            logger.warning("TerraClimate subset selects no month or no cell")
            return None
        return subset

    def _to_stack(self, subset: xr.DataArray, variable: str) -> ClimateGridStack:
        subset = subset.sortby('time').sortby('lat', ascending=False).transpose('time', 'lat', 'lon')
        values = np.asarray(subset.values, dtype=float)

        if not np.isfinite(values).any():
            logger.warning(f"TerraClimate '{variable}' subset holds no valid cells")
            return ClimateGridStack.empty(variable)

        lat = subset['lat'].values
        lon = subset['lon'].values
        res_x = abs(float(lon[1] - lon[0])) if lon.size > 1 else 1.0 / 24.0
        res_y = abs(float(lat[1] - lat[0])) if lat.size > 1 else 1.0 / 24.0
        transform = from_origin(float(lon.min()) - res_x / 2, float(lat.max()) + res_y / 2, res_x, res_y)

        labels = [f"{variable}_{pd.Timestamp(t).strftime('%Y-%m-%d')}" for t in subset['time'].values]
        logger.info(f"Retrieved {len(labels)} monthly '{variable}' grids of shape {values.shape[1:]}")
        return ClimateGridStack(variable, values, transform, GEOGRAPHIC_CRS, labels)
