#!/usr/bin/env python3
"""
Watershed Polygonizer
Converts a watershed raster into a single dissolved boundary feature
"""

import logging
from pathlib import Path

import geopandas as gpd
import numpy as np
import rasterio
from rasterio.features import shapes
from shapely.geometry import shape
from shapely.ops import unary_union

from infrastructure.exceptions import ExternalToolError

logger = logging.getLogger(__name__)


def polygonize_watershed(watershed_path: Path, crs=None) -> gpd.GeoDataFrame:
    """
    Polygonize every valid cell of a watershed raster and dissolve into one feature.

    Parameters:
    -----------
    watershed_path : Path
        Watershed GeoTIFF; nodata and zero cells are outside the basin
    crs : optional
        CRS to assign; defaults to the raster CRS

    Returns:
    --------
    GeoDataFrame with one Polygon or MultiPolygon feature and an ``area`` column
    in CRS units
    """
    watershed_path = Path(watershed_path)
    if not watershed_path.exists():
        raise ExternalToolError("watershed", "watershed raster is missing", watershed_path)

    with rasterio.open(watershed_path) as src:
        data = src.read(1, masked=True)
        transform = src.transform
        raster_crs = src.crs

    values = data.astype('float64').filled(np.nan)
    valid = np.isfinite(values) & (values != 0)
    if not valid.any():
        raise ExternalToolError("watershed", "watershed raster has no valid cells", watershed_path)

    geometries = [
        shape(geom)
        for geom, value in shapes(valid.astype('uint8'), mask=valid, transform=transform)
        if value == 1
    ]
    boundary = unary_union(geometries)
    logger.info(f"Dissolved {len(geometries)} watershed polygons into one {boundary.geom_type}")

    basin = gpd.GeoDataFrame(
        {'basin_id': [1]},
        geometry=[boundary],
        crs=crs if crs is not None else raster_crs,
    )
    basin['area'] = basin.geometry.area
    return basin
