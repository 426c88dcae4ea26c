#!/usr/bin/env python3
"""
Spatial Data Client for basin delineation
Downloads elevation tiles from the AWS Terrain Tiles service and merges them
into a single GeoTIFF covering an area of interest
"""

import logging
import math
from pathlib import Path
from typing import List, Optional, Tuple

import geopandas as gpd
import rasterio
import requests
from rasterio.merge import merge as rio_merge
from tqdm import tqdm

from infrastructure.exceptions import ExternalToolError, InputError

logger = logging.getLogger(__name__)

TERRAIN_TILES_URL = "https://s3.amazonaws.com/elevation-tiles-prod/geotiff/{z}/{x}/{y}.tif"
WEB_MERCATOR = "EPSG:3857"
MAX_MERCATOR_LAT = 85.0511
MIN_ZOOM = 0
MAX_ZOOM = 14


def download_with_progress(session, url, output_path, quiet=True, timeout=60):
    """Stream a download to disk with an optional progress bar"""
    response = session.get(url, stream=True, timeout=timeout)
    response.raise_for_status()

    total_size = int(response.headers.get('content-length', 0))
    block_size = 8192

    with open(output_path, "wb") as f, tqdm(
        total=total_size, unit='iB', unit_scale=True, desc=Path(output_path).name, disable=quiet
    ) as pbar:
        for chunk in response.iter_content(chunk_size=block_size):
            if chunk:
                f.write(chunk)
                pbar.update(len(chunk))

    return Path(output_path)


def lonlat_to_tile(lon: float, lat: float, zoom: int) -> Tuple[int, int]:
    """Slippy-map tile column and row containing a WGS84 coordinate"""
    n = 2 ** zoom
    lat = max(-MAX_MERCATOR_LAT, min(MAX_MERCATOR_LAT, lat))
    x = int(math.floor((lon + 180.0) / 360.0 * n))
    y = int(math.floor((1.0 - math.asinh(math.tan(math.radians(lat))) / math.pi) / 2.0 * n))
    return min(max(x, 0), n - 1), min(max(y, 0), n - 1)


def tiles_for_bounds(bounds: Tuple[float, float, float, float], zoom: int) -> List[Tuple[int, int, int]]:
    """
    All (z, x, y) tiles intersecting a WGS84 bounding box.

    Parameters:
    -----------
    bounds : tuple
        (west, south, east, north) in degrees
    zoom : int
        Tile zoom level

    Returns:
    --------
    list of (z, x, y) tuples, row-major from the north-west corner
    """
    west, south, east, north = bounds
    x_min, y_min = lonlat_to_tile(west, north, zoom)
    x_max, y_max = lonlat_to_tile(east, south, zoom)
    return [(zoom, x, y) for y in range(y_min, y_max + 1) for x in range(x_min, x_max + 1)]


class ElevationTileClient:
    """Client for the AWS Terrain Tiles GeoTIFF elevation service"""

    def __init__(self, url_template: str = TERRAIN_TILES_URL, session: Optional[requests.Session] = None,
                 quiet: bool = True):
        self.url_template = url_template
        self.quiet = quiet
        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': 'HydroBasin-Delineation-Client/1.0'
        })

    def get_dem_for_aoi(self, aoi: gpd.GeoDataFrame, zoom: int, output_path: Path) -> Path:
        """
        Download, merge and crop the elevation tiles covering an AOI.

        The merged DEM stays in Web Mercator, the native projection of the
        tile service, and is cropped to the AOI bounds in that projection.

        Parameters:
        -----------
        aoi : GeoDataFrame
            Area of interest with a CRS
        zoom : int
            Tile zoom level (0..14)
        output_path : Path
            Destination GeoTIFF

        Returns:
        --------
        Path of the written DEM
        """
        if not isinstance(zoom, int) or not (MIN_ZOOM <= zoom <= MAX_ZOOM):
            raise InputError(None, f"dem_zoom must be an integer between {MIN_ZOOM} and {MAX_ZOOM}, got {zoom!r}")
        if aoi.crs is None:
            raise InputError(None, "area of interest has no CRS")

        output_path = Path(output_path)
        bounds_ll = tuple(aoi.to_crs("EPSG:4326").total_bounds)
        bounds_merc = tuple(aoi.to_crs(WEB_MERCATOR).total_bounds)
        tiles = tiles_for_bounds(bounds_ll, zoom)
        logger.info(f"Fetching {len(tiles)} elevation tiles at zoom {zoom} for bounds {bounds_ll}")

        tile_dir = output_path.parent / "dem_tiles"
        tile_dir.mkdir(parents=True, exist_ok=True)

        tile_paths = []
        for z, x, y in tqdm(tiles, desc="DEM tiles", disable=self.quiet or len(tiles) < 2):
            tile_paths.append(self._download_tile(z, x, y, tile_dir))

        self._merge_tiles(tile_paths, output_path, bounds_merc)

        for path in tile_paths:
            path.unlink(missing_ok=True)
        try:
            tile_dir.rmdir()
        except OSError:
            logger.debug(f"Tile directory {tile_dir} not empty, leaving it in place")

        logger.info(f"DEM saved to: {output_path}")
        return output_path

    def _download_tile(self, z: int, x: int, y: int, tile_dir: Path) -> Path:
        url = self.url_template.format(z=z, x=x, y=y)
        local_tile = tile_dir / f"{z}_{x}_{y}.tif"
        try:
            return download_with_progress(self.session, url, local_tile, quiet=self.quiet)
        except requests.RequestException as e:
            local_tile.unlink(missing_ok=True)
            raise ExternalToolError("AWS Terrain Tiles", str(e), url) from e

    def _merge_tiles(self, tile_paths: List[Path], out_path: Path,
                     bounds: Tuple[float, float, float, float]) -> Path:
        """Merge tiles into a single GeoTIFF clipped to bounds (tile CRS units)"""
        src_files = [rasterio.open(p) for p in tile_paths]
        try:
            mosaic, out_trans = rio_merge(src_files, bounds=bounds)
            out_meta = src_files[0].meta.copy()
        finally:
            for src in src_files:
                src.close()

        if mosaic.size == 0:
            raise ExternalToolError("AWS Terrain Tiles", "merged DEM is empty", out_path)

        out_meta.update({
            "driver": "GTiff",
            "height": mosaic.shape[1],
            "width": mosaic.shape[2],
            "transform": out_trans,
            "compress": "lzw",
        })
        if out_meta.get("crs") is None:
            out_meta["crs"] = WEB_MERCATOR

        with rasterio.open(out_path, "w", **out_meta) as dest:
            dest.write(mosaic)
        return out_path
