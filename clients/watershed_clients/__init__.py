"""
Watershed Clients Package

Terrain analysis used by basin delineation: the toolchain interface and its
WhiteboxTools implementation.
"""

from .terrain_toolchain import TerrainArtifacts, TerrainParameters, TerrainRequest, TerrainToolchain
from .whitebox_client import WhiteboxTerrainClient

__all__ = [
    'TerrainArtifacts',
    'TerrainParameters',
    'TerrainRequest',
    'TerrainToolchain',
    'WhiteboxTerrainClient',
]
