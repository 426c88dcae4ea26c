"""
Basin Delineation Workflow

AOI polygon -> DEM -> flow grids and streams -> pour point -> snapped outlet
-> watershed raster -> single dissolved basin polygon in the DEM CRS.

All intermediate files stay in the working directory. Concurrent runs must
use distinct working directories.
"""

import logging
from pathlib import Path
from typing import Any, Optional, Union

import geopandas as gpd

from infrastructure.configuration_manager import DelineationConfig
from infrastructure.exceptions import InputError
from infrastructure.path_manager import BasinWorkspace
from clients.data_clients.spatial_client import ElevationTileClient
from clients.watershed_clients.terrain_toolchain import TerrainParameters, TerrainRequest, TerrainToolchain
from clients.watershed_clients.whitebox_client import WhiteboxTerrainClient
from clients.visualization_clients.point_picker import MatplotlibPointPicker, PointPicker
from processors.coordinate_system_processor import CoordinateSystemProcessor
from workflows.steps.base_step import configure_package_logging
from workflows.steps.dem_clipping_step import FetchDemStep
from workflows.steps.watershed_steps import (
    DelineateWatershed,
    DeriveFlowGrids,
    ResolvePourPoint,
    VectorizeStreams,
)

logger = logging.getLogger(__name__)


class BasinDelineation:
    """
    Basin delineation for one AOI and one outlet

    Key features:
    1. DEM cached per working directory and zoom
    2. Terrain analysis behind a replaceable toolchain
    3. Explicit, file-based or interactive pour point
    4. Snapping to the derived stream network
    """

    def __init__(self, config: Optional[DelineationConfig] = None,
                 dem_client: Optional[ElevationTileClient] = None,
                 toolchain: Optional[TerrainToolchain] = None,
                 picker: Optional[PointPicker] = None):
        self.config = config or DelineationConfig()
        errors = self.config.validate()
        if errors:
            raise InputError(None, "; ".join(errors))

        quiet = self.config.quiet
        configure_package_logging(quiet)

        self.workspace = None
        self.artifacts = None
        self.toolchain = toolchain or WhiteboxTerrainClient(verbose=not quiet, n_workers=self.config.workers)
        self.picker = picker
        self.crs_processor = CoordinateSystemProcessor()

        self.dem_step = FetchDemStep(dem_client=dem_client, quiet=quiet)
        self.flow_step = DeriveFlowGrids(self.toolchain, quiet=quiet)
        self.streams_step = VectorizeStreams(self.toolchain, quiet=quiet)
        self.pour_point_step = ResolvePourPoint(picker=picker, quiet=quiet)
        self.watershed_step = DelineateWatershed(self.toolchain, quiet=quiet)

    def terrain_parameters(self) -> TerrainParameters:
        return TerrainParameters(
            breach_dist=self.config.breach_dist,
            stream_threshold=self.config.stream_threshold,
            burn_dist=self.config.burn_dist,
            snap_dist=self.config.snap_dist,
            n_workers=self.config.workers,
            verbose=not self.config.quiet,
        )

    def run(self, aoi: Any, pour_pt: Any = None, streams: Optional[Union[str, Path]] = None) -> gpd.GeoDataFrame:
        """
        Delineate the basin draining to pour_pt inside aoi.

        Parameters:
        -----------
        aoi : path or GeoDataFrame
            Area of interest polygons
        pour_pt : None, path, shapely Point, GeoSeries or GeoDataFrame
            Outlet; None opens the interactive picker
        streams : path, optional
            Existing stream network to burn into the DEM

        Returns:
        --------
        GeoDataFrame with one basin polygon in the DEM CRS
        """
        aoi_gdf = self.crs_processor.read_polygons(aoi, label="area of interest")
        self.workspace = BasinWorkspace(self.config.out_dir, self.config.dem_filename)
        logger.info(f"Delineating basin in {self.workspace.root}")

        dem = self.dem_step.execute({
            'aoi': aoi_gdf,
            'dem_cache': self.workspace.dem_cache(self.config.dem_zoom),
        })

        request = TerrainRequest(
            dem=Path(dem['dem_file']),
            work_dir=self.workspace.root,
            parameters=self.terrain_parameters(),
            streams=Path(streams) if streams is not None else None,
        )
        flow = self.flow_step.execute({'request': request})
        artifacts = flow['artifacts']

        network = self.streams_step.execute({'artifacts': artifacts})

        if pour_pt is None and self.pour_point_step.picker is None:
            self.pour_point_step.picker = MatplotlibPointPicker()
        outlet = self.pour_point_step.execute({
            'pour_pt': pour_pt,
            'dem_file': artifacts.dem,
            'streams': network['streams'],
            'crs': network['crs'],
            'output': self.workspace.pour_point,
        })

        result = self.watershed_step.execute({
            'artifacts': artifacts,
            'pour_point_file': outlet['pour_point_file'],
            'snap_dist': self.config.snap_dist,
            'crs': network['crs'],
        })
        basin = result['basin']
        self.artifacts = artifacts
        for name, path in artifacts.as_dict().items():
            if path is not None:
                logger.debug(f"{name}: {path}")
        logger.info(f"Basin delineated: {float(basin['area'].iloc[0]):,.0f} square map units")
        return basin


def delineate_basin(aoi, out_dir="basin_work", dem_zoom=12, pour_pt=None, snap_dist=500,
                    quiet=True, config=None, dem_client=None, toolchain=None, picker=None,
                    streams=None) -> gpd.GeoDataFrame:
    """
    Delineate a watershed boundary from an AOI and an outlet.

    Parameters:
    -----------
    aoi : path or GeoDataFrame
        Area of interest polygons
    out_dir : str or Path
        Working directory for the DEM and every intermediate file
    dem_zoom : int
        Elevation tile zoom (0..14)
    pour_pt : None, path or geometry
        Outlet; None opens an interactive picker on the DEM
    snap_dist : float
        Snap the outlet to the nearest stream cell within this distance in
        map units; 0 disables snapping
    quiet : bool
        Only log warnings and silence the terrain toolchain
    config : DelineationConfig, optional
        Full parameter set; when given it replaces out_dir, dem_zoom,
        snap_dist and quiet
    dem_client, toolchain, picker : optional
        Replacements for the elevation tile client, the WhiteboxTools
        toolchain and the matplotlib picker
    streams : path, optional
        Existing stream network burned into the DEM before breaching

    Returns:
    --------
    GeoDataFrame with exactly one (multi)polygon feature in the DEM CRS
    """
    if config is None:
        config = DelineationConfig(out_dir=str(out_dir), dem_zoom=dem_zoom, snap_dist=snap_dist, quiet=quiet)
    workflow = BasinDelineation(config, dem_client=dem_client, toolchain=toolchain, picker=picker)
    return workflow.run(aoi, pour_pt=pour_pt, streams=streams)
