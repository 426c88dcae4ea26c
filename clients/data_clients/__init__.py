"""
HydroBasin Data Clients Package
Provides client classes for the remote data the workflows consume

Available Clients:
- ElevationTileClient: Downloads and merges AWS Terrain Tiles into a DEM
- ClimateDataClient: Reads monthly TerraClimate grids over OPeNDAP
"""

from .climate_client import ClimateDataClient, ClimateGridStack
from .spatial_client import ElevationTileClient, download_with_progress, tiles_for_bounds

__all__ = [
    'ClimateDataClient',
    'ClimateGridStack',
    'ElevationTileClient',
    'download_with_progress',
    'tiles_for_bounds',
]
