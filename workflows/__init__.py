"""
HydroBasin Workflows Package

Available Workflows:
- delineate_basin: Watershed boundary from an AOI and an outlet
- calculate_runoff: Monthly PPT / AET / runoff volumes for a basin
"""

from .basin_delineation import BasinDelineation, delineate_basin
from .water_balance import RunoffResult, WaterBalanceWorkflow, calculate_runoff

__all__ = [
    'BasinDelineation',
    'delineate_basin',
    'RunoffResult',
    'WaterBalanceWorkflow',
    'calculate_runoff'
]
