#!/usr/bin/env python3
"""
WhiteboxTools Terrain Client
DEM conditioning, D8 flow routing, stream extraction and watershed rasters
through the official WhiteboxTools Python wrapper

Libraries Used:
- whitebox: Official WhiteboxTools Python wrapper
- rasterio: Raster I/O for stream burning
- geopandas: Reading the stream vector to burn
"""

import logging
from pathlib import Path
from typing import Optional

import geopandas as gpd
import numpy as np
import rasterio
import whitebox
from rasterio.features import rasterize

from infrastructure.exceptions import ExternalToolError, InputError
from .terrain_toolchain import TerrainArtifacts, TerrainRequest, TerrainToolchain

logger = logging.getLogger(__name__)


class WhiteboxTerrainClient(TerrainToolchain):
    """TerrainToolchain backed by WhiteboxTools"""

    name = "WhiteboxTools"

    BURNED_DEM = "dem_burned.tif"
    BREACHED_DEM = "dem_breached.tif"
    FILLED_DEM = "dem_filled.tif"
    D8_POINTER = "D8pointer.tif"
    FLOW_ACCUMULATION = "D8fac.tif"
    STREAMS_RASTER = "streams_derived.tif"
    STREAM_VECTOR = "stream_network.shp"
    SNAPPED_POUR_POINT = "pour_point_snapped.shp"
    WATERSHED = "watershed.tif"

    def __init__(self, backend=None, verbose: bool = False, n_workers: Optional[int] = None):
        """
        Args:
            backend: Object exposing the WhiteboxTools tool methods; a
                whitebox.WhiteboxTools instance is created on first use when None
            verbose: Let WhiteboxTools print its progress
            n_workers: Maximum processors WhiteboxTools may use
        """
        self._wbt = backend
        self.verbose = verbose
        self.n_workers = n_workers

    @property
    def wbt(self):
        if self._wbt is None:
            self._wbt = whitebox.WhiteboxTools()
        return self._wbt

    def _configure(self, work_dir: Path, verbose: bool, n_workers: Optional[int]):
        self.wbt.set_working_dir(str(work_dir))
        self.wbt.set_verbose_mode(bool(verbose))
        if n_workers:
            self.wbt.set_max_procs(int(n_workers))

    def _run(self, tool: str, output: Path, *args, **kwargs) -> Path:
        """Run one tool and check both its exit status and its output file"""
        logger.info(f"Running {tool} -> {output.name}")
        status = getattr(self.wbt, tool)(*args, **kwargs)
        if status not in (0, None):
            raise ExternalToolError(tool, f"exit status {status}", output)
        if not output.exists():
            raise ExternalToolError(tool, "output not written", output)
        return output

    def derive_flow_grids(self, request: TerrainRequest) -> TerrainArtifacts:
        params = request.parameters
        work_dir = Path(request.work_dir).resolve()
        dem = Path(request.dem).resolve()
        if not dem.exists():
            raise InputError(dem, "DEM does not exist")

        self._configure(work_dir, params.verbose or self.verbose, params.n_workers or self.n_workers)

        source_dem = dem
        if request.streams is not None:
            source_dem = self.burn_streams(dem, Path(request.streams), work_dir / self.BURNED_DEM, params.burn_dist)

        breached = work_dir / self.BREACHED_DEM
        filled = work_dir / self.FILLED_DEM
        pointer = work_dir / self.D8_POINTER
        accumulation = work_dir / self.FLOW_ACCUMULATION
        streams = work_dir / self.STREAMS_RASTER

        self._run('breach_depressions_least_cost', breached, str(source_dem), str(breached),
                  params.breach_dist, fill=True)
        self._run('fill_depressions', filled, str(breached), str(filled))
        self._run('d8_pointer', pointer, str(filled), str(pointer))
        self._run('d8_flow_accumulation', accumulation, str(pointer), str(accumulation),
                  out_type="cells", pntr=True)
        self._run('extract_streams', streams, str(accumulation), str(streams),
                  params.stream_threshold, zero_background=False)

        return TerrainArtifacts(
            tool=self.name,
            work_dir=work_dir,
            dem=dem,
            conditioned_dem=filled,
            d8_pointer=pointer,
            flow_accumulation=accumulation,
            streams_raster=streams,
        )

    def vectorize_streams(self, artifacts: TerrainArtifacts) -> Path:
        artifacts.verify('streams_raster', 'd8_pointer')
        output = artifacts.work_dir / self.STREAM_VECTOR
        artifacts.stream_vector = self._run('raster_streams_to_vector', output,
                                            str(artifacts.streams_raster), str(artifacts.d8_pointer), str(output))
        return output

    def snap_pour_point(self, artifacts: TerrainArtifacts, pour_point: Path, snap_dist: float) -> Path:
        artifacts.verify('streams_raster')
        output = artifacts.work_dir / self.SNAPPED_POUR_POINT
        artifacts.snapped_pour_point = self._run('jenson_snap_pour_points', output,
                                                 str(pour_point), str(artifacts.streams_raster), str(output),
                                                 snap_dist=float(snap_dist))
        return output

    def delineate_watershed(self, artifacts: TerrainArtifacts, pour_point: Path) -> Path:
        artifacts.verify('d8_pointer')
        output = artifacts.work_dir / self.WATERSHED
        artifacts.watershed = self._run('watershed', output,
                                        str(artifacts.d8_pointer), str(pour_point), str(output))
        return output

    @staticmethod
    def burn_streams(dem_path: Path, streams_path: Path, output: Path, burn_dist: float) -> Path:
        """Lower DEM cells crossed by an existing stream network by burn_dist"""
        try:
            streams = gpd.read_file(streams_path)
        except Exception as e:
            raise InputError(streams_path, f"cannot read stream network: {e}") from e

        with rasterio.open(dem_path) as src:
            dem = src.read(1).astype('float32')
            profile = src.profile.copy()
            transform = src.transform
            dem_crs = src.crs

        if streams.crs is None:
            streams = streams.set_crs(dem_crs)
        elif dem_crs is not None and streams.crs != dem_crs:
            streams = streams.to_crs(dem_crs)

        shapes = [(geom, 1) for geom in streams.geometry if geom is not None and not geom.is_empty]
        if shapes:
            stream_cells = rasterize(shapes, out_shape=dem.shape, transform=transform,
                                     fill=0, dtype='uint8', all_touched=True)
            nodata = profile.get('nodata')
            burnable = stream_cells == 1
            if nodata is not None:
                burnable &= ~np.isclose(dem, nodata)
            dem[burnable] -= burn_dist
            logger.info(f"Burned {int(burnable.sum())} stream cells by {burn_dist}")
        else:
            logger.warning(f"Stream network {streams_path} has no geometries, DEM left unburned")

        profile.update(dtype='float32', driver='GTiff')
        with rasterio.open(output, 'w', **profile) as dst:
            dst.write(dem, 1)
        return output
