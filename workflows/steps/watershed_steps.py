"""
Watershed Steps for basin delineation

This module contains the terrain workflow steps:
- DeriveFlowGrids: DEM conditioning, D8 pointer, flow accumulation, stream raster
- VectorizeStreams: Stream raster to line vector in the DEM CRS
- ResolvePourPoint: Explicit, file or interactive outlet written to pour_point.shp
- DelineateWatershed: Snapping, watershed raster and dissolved boundary polygon
"""

from pathlib import Path
from typing import Dict, Any, Optional

import geopandas as gpd
import rasterio

from infrastructure.exceptions import ExternalToolError, HydroBasinError, InputError
from clients.watershed_clients.terrain_toolchain import TerrainRequest, TerrainToolchain
from processors.pour_point_resolver import pour_point_source, write_pour_point
from processors.watershed_polygonizer import polygonize_watershed
from workflows.steps.base_step import WorkflowStep


def raster_crs(path: Path):
    with rasterio.open(path) as src:
        return src.crs


class DeriveFlowGrids(WorkflowStep):
    """
    Derive flow direction, flow accumulation and stream rasters from the DEM
    """

    def __init__(self, toolchain: TerrainToolchain, quiet: bool = True):
        super().__init__(
            step_name="derive_flow_grids",
            step_category="terrain",
            description="Breach and fill the DEM, route D8 flow and extract streams",
            quiet=quiet
        )
        self.toolchain = toolchain

    def execute(self, inputs: Dict[str, Any]) -> Dict[str, Any]:
        self._log_step_start()

        try:
            self.validate_inputs(inputs, ['request'])
            request: TerrainRequest = inputs['request']
            self.validate_file_exists(request.dem)

            artifacts = self.toolchain.derive_flow_grids(request)
            created = artifacts.verify('d8_pointer', 'flow_accumulation', 'streams_raster')

            self._log_step_complete([str(p) for p in created])
            return {'success': True, 'artifacts': artifacts}

        except HydroBasinError as e:
            self._log_step_failed(str(e))
            raise


class VectorizeStreams(WorkflowStep):
    """
    Convert the stream raster to lines and tag them with the DEM CRS
    """

    def __init__(self, toolchain: TerrainToolchain, quiet: bool = True):
        super().__init__(
            step_name="vectorize_streams",
            step_category="terrain",
            description="Convert the derived stream raster to a line network",
            quiet=quiet
        )
        self.toolchain = toolchain

    def execute(self, inputs: Dict[str, Any]) -> Dict[str, Any]:
        self._log_step_start()

        try:
            self.validate_inputs(inputs, ['artifacts'])
            artifacts = inputs['artifacts']

            stream_file = self.toolchain.vectorize_streams(artifacts)
            artifacts.stream_vector = stream_file
            artifacts.verify('stream_vector')

            dem_crs = raster_crs(artifacts.dem)
            streams = gpd.read_file(stream_file)
            streams = streams.set_crs(dem_crs, allow_override=True) if dem_crs is not None else streams
            streams.to_file(stream_file)
            self.logger.info(f"Stream network has {len(streams)} segments")

            self._log_step_complete([str(stream_file)])
            return {'success': True, 'streams': streams, 'stream_file': stream_file, 'crs': dem_crs}

        except HydroBasinError as e:
            self._log_step_failed(str(e))
            raise


class ResolvePourPoint(WorkflowStep):
    """
    Resolve the basin outlet and write it next to the stream network
    """

    def __init__(self, picker=None, quiet: bool = True):
        super().__init__(
            step_name="resolve_pour_point",
            step_category="terrain",
            description="Resolve the outlet from a geometry, a file or an interactive pick",
            quiet=quiet
        )
        self.picker = picker

    def execute(self, inputs: Dict[str, Any]) -> Dict[str, Any]:
        self._log_step_start()

        try:
            self.validate_inputs(inputs, ['pour_pt', 'dem_file', 'streams', 'crs', 'output'])

            source = pour_point_source(
                inputs['pour_pt'],
                picker=self.picker,
                dem_path=inputs['dem_file'],
                streams=inputs['streams'],
            )
            self.logger.info(f"Resolving pour point with {type(source).__name__}")
            pour_point = source.resolve(inputs['crs'])

            output = write_pour_point(pour_point, Path(inputs['output']))

            self._log_step_complete([str(output)])
            return {'success': True, 'pour_point': pour_point, 'pour_point_file': output}

        except HydroBasinError as e:
            self._log_step_failed(str(e))
            raise


class DelineateWatershed(WorkflowStep):
    """
    Snap the outlet, trace its watershed and dissolve it into the basin boundary
    """

    def __init__(self, toolchain: TerrainToolchain, quiet: bool = True):
        super().__init__(
            step_name="delineate_watershed",
            step_category="terrain",
            description="Snap the pour point, build the watershed raster and polygonize it",
            quiet=quiet
        )
        self.toolchain = toolchain

    def execute(self, inputs: Dict[str, Any]) -> Dict[str, Any]:
        self._log_step_start()

        try:
            self.validate_inputs(inputs, ['artifacts', 'pour_point_file', 'snap_dist'])
            artifacts = inputs['artifacts']
            pour_point_file = self.validate_file_exists(inputs['pour_point_file'])
            snap_dist = float(inputs['snap_dist'])
            if snap_dist < 0:
                raise InputError(None, f"snap_dist cannot be negative, got {snap_dist}")

            outlet = pour_point_file
            if snap_dist > 0:
                outlet = self.toolchain.snap_pour_point(artifacts, pour_point_file, snap_dist)
                artifacts.snapped_pour_point = outlet
                artifacts.verify('snapped_pour_point')
                self.logger.info(f"Pour point snapped within {snap_dist} map units")
            else:
                self.logger.info("Snapping disabled, using the pour point as placed")

            watershed_file = self.toolchain.delineate_watershed(artifacts, outlet)
            artifacts.watershed = watershed_file
            artifacts.verify('watershed')

            basin = polygonize_watershed(watershed_file, crs=inputs.get('crs'))
            if basin.empty:
                raise ExternalToolError(artifacts.tool, "watershed polygon is empty", watershed_file)

            self._log_step_complete([str(watershed_file)])
            return {'success': True, 'basin': basin, 'watershed_file': watershed_file}

        except HydroBasinError as e:
            self._log_step_failed(str(e))
            raise
