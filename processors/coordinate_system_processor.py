#!/usr/bin/env python3
"""
Coordinate System Processor
Reads polygon inputs (areas of interest, basins) and reconciles their
coordinate systems with the grids they are combined with
"""

import logging
from pathlib import Path
from typing import Union

import geopandas as gpd
import pyproj
from shapely.geometry.base import BaseGeometry

from infrastructure.exceptions import InputError

logger = logging.getLogger(__name__)

PolygonSource = Union[str, Path, gpd.GeoDataFrame, gpd.GeoSeries]

POLYGON_TYPES = ('Polygon', 'MultiPolygon')


class CoordinateSystemProcessor:
    """
    Standardize coordinate systems of vector inputs

    Every workflow input goes through here before it meets a raster:
    1. Read paths with geopandas, wrap series into frames
    2. Keep polygon features, reject inputs without any
    3. Reproject to the CRS of the grid being processed
    """

    def __init__(self, geographic_crs: str = "EPSG:4326"):
        self.geographic_crs = geographic_crs

    def read_polygons(self, source: PolygonSource, label: str = "polygon input") -> gpd.GeoDataFrame:
        """
        Resolve a path or in-memory geometry into polygon features with a CRS.

        Parameters:
        -----------
        source : path, GeoDataFrame or GeoSeries
            Vector input
        label : str
            Name used in error messages when the source is not a path

        Returns:
        --------
        GeoDataFrame holding only the polygon / multipolygon features
        """
        name = str(source) if isinstance(source, (str, Path)) else label

        if isinstance(source, (str, Path)):
            path = Path(source).expanduser()
            if not path.exists():
                raise InputError(path, "file does not exist")
            try:
                gdf = gpd.read_file(path)
            except Exception as e:
                raise InputError(path, f"cannot be read as a vector file: {e}") from e
        elif isinstance(source, gpd.GeoDataFrame):
            gdf = source.copy()
        elif isinstance(source, gpd.GeoSeries):
            gdf = gpd.GeoDataFrame(geometry=source.copy())
        elif isinstance(source, BaseGeometry):
            raise InputError(None, f"{label} is a bare geometry without a CRS; wrap it in a GeoDataFrame")
        else:
            raise InputError(None, f"{label} must be a path or a GeoDataFrame, got {type(source).__name__}")

        if gdf.crs is None:
            raise InputError(name, "no coordinate reference system defined")

        gdf = gdf[gdf.geometry.notna() & ~gdf.geometry.is_empty]
        polygons = gdf[gdf.geom_type.isin(POLYGON_TYPES)]
        if polygons.empty:
            raise InputError(name, "contains no polygon features")
        if len(polygons) < len(gdf):
            logger.warning(f"Dropped {len(gdf) - len(polygons)} non-polygon features from {name}")

        return polygons.reset_index(drop=True)

    @staticmethod
    def align_to_crs(gdf: gpd.GeoDataFrame, crs, label: str = "layer") -> gpd.GeoDataFrame:
        """Reproject to crs when needed; a frame without CRS is tagged with it"""
        if crs is None:
            return gdf
        target = pyproj.CRS.from_user_input(crs)
        if gdf.crs is None:
            logger.info(f"{label} has no CRS, assigning {target.to_string()}")
            return gdf.set_crs(target)
        if pyproj.CRS.from_user_input(gdf.crs) == target:
            return gdf
        logger.info(f"Reprojecting {label} from {gdf.crs.to_string()} to {target.to_string()}")
        return gdf.to_crs(target)

    @staticmethod
    def is_geographic(crs) -> bool:
        return pyproj.CRS.from_user_input(crs).is_geographic
