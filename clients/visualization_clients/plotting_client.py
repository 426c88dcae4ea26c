#!/usr/bin/env python3
"""
Plotting Client for HydroBasin

Builds the monthly water-balance chart and the hillshade base map the pour
point picker draws on. Figures are returned to the caller; saving is explicit.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import rasterio
import seaborn as sns
from matplotlib.figure import Figure

logger = logging.getLogger(__name__)

SERIES_COLORS = {
    'PPT': 'steelblue',
    'AET': 'darkgreen',
    'Runoff': 'firebrick',
}
VOLUME_COLUMNS = {
    'ppt_vol_m3': 'PPT',
    'aet_vol_m3': 'AET',
    'runoff_vol_m3': 'Runoff',
}


def hillshade(elevation: np.ndarray, cell_x: float, cell_y: float,
              azimuth: float = 315.0, altitude: float = 45.0) -> np.ndarray:
    """
    Shaded relief of an elevation grid, values in [0, 1].

    NaN cells stay NaN so masked DEM areas render transparent.
    """
    dy, dx = np.gradient(elevation, abs(cell_y), abs(cell_x))
    slope = np.pi / 2.0 - np.arctan(np.hypot(dx, dy))
    aspect = np.arctan2(-dx, dy)
    az = np.radians(360.0 - azimuth + 90.0)
    alt = np.radians(altitude)
    shaded = np.sin(alt) * np.sin(slope) + np.cos(alt) * np.cos(slope) * np.cos(az - aspect)
    return (shaded + 1.0) / 2.0


class PlottingClient:
    """
    A client for generating the charts and maps used by the workflows.
    """

    def __init__(self, style: str = "whitegrid"):
        sns.set_theme(style=style)

    def plot_water_balance(self, data: pd.DataFrame, title: str = "Monthly Basin Water-Balance Volumes") -> Figure:
        """
        Line chart of monthly PPT, AET and runoff volumes in millions of m3.

        Parameters:
        -----------
        data : DataFrame
            Water-balance table with a ``date`` column and the three volume columns

        Returns:
        --------
        matplotlib Figure (not shown, not closed)
        """
        long_df = (
            data[['date'] + list(VOLUME_COLUMNS)]
            .rename(columns=VOLUME_COLUMNS)
            .melt(id_vars='date', var_name='Component', value_name='volume')
        )
        long_df['date'] = pd.to_datetime(long_df['date'])
        long_df['volume'] = long_df['volume'] / 1e6

        fig, ax = plt.subplots(figsize=(10, 5))
        sns.lineplot(data=long_df, x='date', y='volume', hue='Component',
                     hue_order=list(SERIES_COLORS), palette=SERIES_COLORS,
                     marker='o', linewidth=1.2, ax=ax)
        ax.axhline(0.0, color='grey', linewidth=0.6)
        ax.set_title(title, fontsize=14)
        ax.set_xlabel("Date")
        ax.set_ylabel("Volume (million m³)")
        ax.legend(title=None)
        fig.autofmt_xdate()
        fig.tight_layout()
        return fig

    def plot_dem_base_map(self, dem_path: Path, ax=None) -> Tuple[Figure, object]:
        """Hillshade of a DEM in map coordinates, for overlaying vectors"""
        with rasterio.open(dem_path) as src:
            elevation = src.read(1, masked=True).astype('float64').filled(np.nan)
            bounds = src.bounds
            cell_x, cell_y = src.res

        if ax is None:
            fig, ax = plt.subplots(figsize=(10, 10))
        else:
            fig = ax.figure

        extent = (bounds.left, bounds.right, bounds.bottom, bounds.top)
        ax.imshow(hillshade(elevation, cell_x, cell_y), cmap='Greys_r', extent=extent, origin='upper')
        ax.imshow(elevation, cmap='terrain', alpha=0.35, extent=extent, origin='upper')
        ax.set_xlabel("Easting")
        ax.set_ylabel("Northing")
        return fig, ax

    @staticmethod
    def save_figure(fig: Figure, output_path: Path, dpi: int = 150) -> Path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=dpi, bbox_inches='tight')
        logger.info(f"Saved plot to: {output_path}")
        return output_path

    @staticmethod
    def close(fig: Optional[Figure]):
        if fig is not None:
            plt.close(fig)
