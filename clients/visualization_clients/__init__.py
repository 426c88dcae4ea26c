"""
Visualization clients for HydroBasin charts and the interactive pour point picker
"""

from .plotting_client import PlottingClient, hillshade
from .point_picker import MatplotlibPointPicker, PointPicker

__all__ = ["PlottingClient", "hillshade", "PointPicker", "MatplotlibPointPicker"]
