"""
HydroBasin Workflow Steps Library

Step Categories:
- base_step: Common step interface, logging and validation
- dem_clipping_step: DEM download with per-zoom caching
- watershed_steps: Flow grids, stream network, pour point and watershed
- climate_steps: TerraClimate stacks and monthly volume aggregation
"""

from .base_step import WorkflowStep, configure_package_logging
from .dem_clipping_step import FetchDemStep
from .watershed_steps import (
    DeriveFlowGrids,
    VectorizeStreams,
    ResolvePourPoint,
    DelineateWatershed
)
from .climate_steps import (
    FetchClimateStacks,
    AggregateWaterBalance
)

__all__ = [
    'WorkflowStep',
    'configure_package_logging',
    'FetchDemStep',
    'DeriveFlowGrids',
    'VectorizeStreams',
    'ResolvePourPoint',
    'DelineateWatershed',
    'FetchClimateStacks',
    'AggregateWaterBalance'
]
