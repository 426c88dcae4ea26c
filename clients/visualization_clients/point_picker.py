"""
Interactive pour point selection over a DEM base map.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Tuple

import geopandas as gpd
import matplotlib.pyplot as plt

from .plotting_client import PlottingClient

logger = logging.getLogger(__name__)


class PointPicker(ABC):
    """Blocking selection of a single map coordinate"""

    @abstractmethod
    def pick(self, dem_path: Path, streams: gpd.GeoDataFrame) -> Optional[Tuple[float, float]]:
        """
        Show the DEM and stream network and wait for the operator.

        Returns:
            (x, y) in the stream network CRS, or None when the session ended
            without a point
        """


class MatplotlibPointPicker(PointPicker):
    """Pour point picker using a matplotlib window and ``ginput``"""

    def __init__(self, plotting_client: Optional[PlottingClient] = None):
        self.plotting_client = plotting_client or PlottingClient()

    def pick(self, dem_path: Path, streams: gpd.GeoDataFrame) -> Optional[Tuple[float, float]]:
        fig, ax = self.plotting_client.plot_dem_base_map(dem_path)
        if not streams.empty:
            streams.plot(ax=ax, color='royalblue', linewidth=0.8)
        ax.set_title("Click the basin outlet, close the window to cancel")

        logger.info("Waiting for a pour point to be placed on the map")
        try:
            # timeout=0 blocks until a click or the window is closed
            clicks = plt.ginput(n=1, timeout=0, show_clicks=True)
        finally:
            plt.close(fig)

        if not clicks:
            return None
        x, y = clicks[0]
        logger.info(f"Pour point placed at ({x:.2f}, {y:.2f})")
        return float(x), float(y)
