"""
DEM Acquisition Step

Provides the elevation model of a working directory. A DEM already cached
at the requested zoom is reused without any network access; otherwise the
elevation tiles covering the AOI are fetched, merged and cropped.
"""

from pathlib import Path
from typing import Dict, Any, Optional

from infrastructure.exceptions import ExternalToolError, HydroBasinError
from infrastructure.path_manager import DemCacheEntry
from clients.data_clients.spatial_client import ElevationTileClient
from workflows.steps.base_step import WorkflowStep


class FetchDemStep(WorkflowStep):
    """
    Fetch (or reuse) the DEM for an area of interest
    """

    def __init__(self, dem_client: Optional[ElevationTileClient] = None, quiet: bool = True):
        super().__init__(
            step_name="fetch_dem",
            step_category="terrain",
            description="Download and merge elevation tiles covering the AOI",
            quiet=quiet
        )
        self.dem_client = dem_client or ElevationTileClient(quiet=quiet)

    def execute(self, inputs: Dict[str, Any]) -> Dict[str, Any]:
        """
        Parameters:
        -----------
        inputs : Dict[str, Any]
            'aoi' (GeoDataFrame) and 'dem_cache' (DemCacheEntry)

        Returns:
        --------
        Dict with 'dem_file' and 'fetched' (False when the cache was used)
        """
        self._log_step_start()

        try:
            self.validate_inputs(inputs, ['aoi', 'dem_cache'])
            cache: DemCacheEntry = inputs['dem_cache']

            if cache.is_cached():
                self.logger.info(f"Reusing cached DEM: {cache.path}")
                self._log_step_complete()
                return {'success': True, 'dem_file': cache.path, 'fetched': False}

            self.logger.info(f"Fetching DEM at zoom {cache.zoom}")
            dem_file = Path(self.dem_client.get_dem_for_aoi(inputs['aoi'], cache.zoom, cache.path))
            if not dem_file.exists():
                raise ExternalToolError("DEM download", "DEM file was not written", dem_file)
            cache.record(source=getattr(self.dem_client, 'url_template', None))

            self._log_step_complete([str(dem_file), str(cache.sidecar_path)])
            return {'success': True, 'dem_file': dem_file, 'fetched': True}

        except HydroBasinError as e:
            self._log_step_failed(str(e))
            raise
