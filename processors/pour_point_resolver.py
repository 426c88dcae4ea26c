#!/usr/bin/env python3
"""
Pour Point Resolver

Turns the different ways a caller can specify a basin outlet into exactly
one point feature in the stream network CRS:
1. Explicit geometry supplied by the caller (used as-is)
2. Vector file on disk (reprojected to the stream network CRS)
3. Interactive selection on a DEM base map
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import geopandas as gpd
import pyproj
from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry

from infrastructure.exceptions import InputError, NoPourPointError
from .coordinate_system_processor import CoordinateSystemProcessor

logger = logging.getLogger(__name__)

PourPointInput = Union[None, str, Path, BaseGeometry, gpd.GeoSeries, gpd.GeoDataFrame]

SHAPEFILE_SIDECARS = ('.shp', '.shx', '.dbf', '.prj', '.cpg', '.qix', '.sbn', '.sbx')


def validate_single_point(gdf: gpd.GeoDataFrame, source: str) -> gpd.GeoDataFrame:
    """Exactly one non-empty point feature, else InputError"""
    if len(gdf) != 1:
        raise InputError(source, f"pour point input must hold exactly one feature, found {len(gdf)}")
    geom = gdf.geometry.iloc[0]
    if geom is None or geom.is_empty or geom.geom_type != 'Point':
        kind = 'empty geometry' if geom is None or geom.is_empty else geom.geom_type
        raise InputError(source, f"pour point must be a point geometry, found {kind}")
    return gdf.reset_index(drop=True)


class PourPointSource(ABC):
    """A way of obtaining the basin outlet"""

    @abstractmethod
    def resolve(self, stream_crs) -> gpd.GeoDataFrame:
        """Return a one-point GeoDataFrame ready to be written next to the stream network"""


class ExplicitPourPoint(PourPointSource):
    """Point geometry handed over by the caller"""

    def __init__(self, geometry: Union[BaseGeometry, gpd.GeoSeries, gpd.GeoDataFrame]):
        self.geometry = geometry

    def resolve(self, stream_crs) -> gpd.GeoDataFrame:
        if isinstance(self.geometry, gpd.GeoDataFrame):
            gdf = self.geometry.copy()
        elif isinstance(self.geometry, gpd.GeoSeries):
            gdf = gpd.GeoDataFrame(geometry=self.geometry.copy())
        elif isinstance(self.geometry, BaseGeometry):
            gdf = gpd.GeoDataFrame(geometry=[self.geometry])
        else:
            raise InputError(None, f"unsupported pour point type {type(self.geometry).__name__}")

        gdf = validate_single_point(gdf, "pour point")

        if gdf.crs is None:
            if stream_crs is not None:
                gdf = gdf.set_crs(stream_crs)
        elif stream_crs is not None and pyproj.CRS.from_user_input(gdf.crs) != pyproj.CRS.from_user_input(stream_crs):
            logger.warning(
                f"Explicit pour point CRS {gdf.crs.to_string()} differs from the stream network CRS; "
                "coordinates are used as given"
            )
        return gdf


class FilePourPoint(PourPointSource):
    """Pour point read from a vector file"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def resolve(self, stream_crs) -> gpd.GeoDataFrame:
        if not self.path.exists():
            raise InputError(self.path, "pour point file does not exist")
        try:
            gdf = gpd.read_file(self.path)
        except Exception as e:
            raise InputError(self.path, f"cannot be read as a vector file: {e}") from e

        gdf = validate_single_point(gdf, str(self.path))
        return CoordinateSystemProcessor.align_to_crs(gdf, stream_crs, label=f"pour point {self.path.name}")


class InteractivePourPoint(PourPointSource):
    """Pour point placed by the operator on a DEM base map with the streams drawn on top"""

    def __init__(self, picker, dem_path: Path, streams: gpd.GeoDataFrame):
        self.picker = picker
        self.dem_path = Path(dem_path)
        self.streams = streams

    def resolve(self, stream_crs) -> gpd.GeoDataFrame:
        picked = self.picker.pick(self.dem_path, self.streams)
        if picked is None:
            raise NoPourPointError()
        x, y = picked
        return gpd.GeoDataFrame(geometry=[Point(x, y)], crs=stream_crs)


def pour_point_source(pour_pt: PourPointInput, picker=None, dem_path: Optional[Path] = None,
                      streams: Optional[gpd.GeoDataFrame] = None) -> PourPointSource:
    """Pick the PourPointSource variant matching what the caller passed"""
    if isinstance(pour_pt, PourPointSource):
        return pour_pt
    if pour_pt is None:
        if picker is None:
            raise InputError(None, "no pour point given and no interactive picker available")
        if dem_path is None:
            raise InputError(None, "interactive pour point selection needs a DEM base map")
        return InteractivePourPoint(picker, dem_path, streams)
    if isinstance(pour_pt, (str, Path)):
        return FilePourPoint(pour_pt)
    if isinstance(pour_pt, (BaseGeometry, gpd.GeoSeries, gpd.GeoDataFrame)):
        return ExplicitPourPoint(pour_pt)
    raise InputError(None, f"unsupported pour point type {type(pour_pt).__name__}")


def write_pour_point(gdf: gpd.GeoDataFrame, path: Path) -> Path:
    """Write the pour point shapefile, replacing any previous one and its sidecar files"""
    path = Path(path)
    for suffix in SHAPEFILE_SIDECARS:
        path.with_suffix(suffix).unlink(missing_ok=True)
    out = gpd.GeoDataFrame({'id': range(1, len(gdf) + 1)}, geometry=list(gdf.geometry), crs=gdf.crs)
    out.to_file(path)
    logger.info(f"Pour point written to: {path}")
    return path
