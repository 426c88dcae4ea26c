"""
Shared fixtures: synthetic rasters, a fake WhiteboxTools backend, fake data clients
"""

import shutil
from pathlib import Path

import matplotlib
matplotlib.use("Agg")

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
import rasterio
from rasterio.transform import from_origin
from shapely.geometry import LineString, Point, box

from clients.data_clients.climate_client import ClimateGridStack

WEB_MERCATOR = "EPSG:3857"

# 10 km x 10 km square in Web Mercator
AOI_BOUNDS = (1_000_000.0, 6_000_000.0, 1_010_000.0, 6_010_000.0)
DEM_CELL = 100.0


def write_raster(path, data, transform, crs=WEB_MERCATOR, nodata=None):
    path = Path(path)
    with rasterio.open(
        path, "w", driver="GTiff",
        height=data.shape[0], width=data.shape[1], count=1,
        dtype=data.dtype, crs=crs, transform=transform, nodata=nodata,
    ) as dst:
        dst.write(data, 1)
    return path


def copy_raster(src, dst):
    shutil.copyfile(src, dst)
    return Path(dst)


class FakeWhiteboxTools:
    """
    Stands in for whitebox.WhiteboxTools: same method names, writes small
    GeoTIFFs and shapefiles derived from the input DEM grid.
    The stream runs north-south through the middle column; the watershed is
    the central half of the grid.
    """

    def __init__(self, watershed_mode="ok", status=0, failing_tool=None):
        self.calls = []
        self.watershed_mode = watershed_mode
        self.status = status
        self.failing_tool = failing_tool
        self.working_dir = None
        self.verbose = None
        self.max_procs = None
        self.watershed_args = None

    def _record(self, name):
        self.calls.append(name)
        return self.status if name == self.failing_tool else 0

    def set_working_dir(self, path):
        self.working_dir = path

    def set_verbose_mode(self, value):
        self.verbose = value

    def set_max_procs(self, value):
        self.max_procs = value

    def _grid(self, path):
        with rasterio.open(path) as src:
            return src.read(1), src.transform, src.crs

    def breach_depressions_least_cost(self, dem, output, dist, fill=True):
        status = self._record("breach_depressions_least_cost")
        copy_raster(dem, output)
        return status

    def fill_depressions(self, dem, output):
        status = self._record("fill_depressions")
        copy_raster(dem, output)
        return status

    def d8_pointer(self, dem, output):
        status = self._record("d8_pointer")
        data, transform, crs = self._grid(dem)
        write_raster(output, np.ones(data.shape, dtype="int16"), transform, crs)
        return status

    def d8_flow_accumulation(self, i, output, out_type="cells", pntr=False):
        status = self._record("d8_flow_accumulation")
        data, transform, crs = self._grid(i)
        write_raster(output, np.ones(data.shape, dtype="float32"), transform, crs)
        return status

    def extract_streams(self, flow_accum, output, threshold, zero_background=False):
        status = self._record("extract_streams")
        data, transform, crs = self._grid(flow_accum)
        streams = np.zeros(data.shape, dtype="int16")
        streams[:, data.shape[1] // 2] = 1
        write_raster(output, streams, transform, crs, nodata=0)
        return status

    def raster_streams_to_vector(self, streams, d8_pntr, output):
        status = self._record("raster_streams_to_vector")
        data, transform, _ = self._grid(streams)
        col = data.shape[1] // 2
        x = transform.c + (col + 0.5) * transform.a
        top = transform.f
        bottom = transform.f + data.shape[0] * transform.e
        # WhiteboxTools writes no projection file
        gpd.GeoDataFrame({"FID": [1]}, geometry=[LineString([(x, top), (x, bottom)])]).to_file(output)
        return status

    def jenson_snap_pour_points(self, pour_pts, streams, output, snap_dist=0.0):
        status = self._record("jenson_snap_pour_points")
        data, transform, _ = self._grid(streams)
        stream_x = transform.c + (data.shape[1] // 2 + 0.5) * transform.a
        points = gpd.read_file(pour_pts)
        pt = points.geometry.iloc[0]
        if abs(pt.x - stream_x) <= snap_dist:
            pt = Point(stream_x, pt.y)
        gpd.GeoDataFrame({"FID": [1]}, geometry=[pt], crs=points.crs).to_file(output)
        return status

    def watershed(self, d8_pntr, pour_pts, output):
        status = self._record("watershed")
        self.watershed_args = (d8_pntr, pour_pts, output)
        if self.watershed_mode == "missing":
            return status
        data, transform, crs = self._grid(d8_pntr)
        shed = np.full(data.shape, -32768, dtype="int16")
        if self.watershed_mode == "ok":
            rows, cols = data.shape
            shed[rows // 4: 3 * rows // 4, cols // 4: 3 * cols // 4] = 1
        write_raster(output, shed, transform, crs, nodata=-32768)
        return status


class FakeDemClient:
    """Writes a synthetic DEM over the AOI instead of downloading tiles"""

    url_template = "memory://dem"

    def __init__(self):
        self.calls = []

    def get_dem_for_aoi(self, aoi, zoom, output_path):
        self.calls.append(zoom)
        west, south, east, north = aoi.to_crs(WEB_MERCATOR).total_bounds
        cols = int(round((east - west) / DEM_CELL))
        rows = int(round((north - south) / DEM_CELL))
        yy, xx = np.mgrid[0:rows, 0:cols]
        elevation = (1000.0 - yy + np.abs(xx - cols // 2)).astype("float32")
        return write_raster(output_path, elevation, from_origin(west, north, DEM_CELL, DEM_CELL))


class StubPicker:
    def __init__(self, result):
        self.result = result
        self.calls = 0

    def pick(self, dem_path, streams):
        self.calls += 1
        return self.result


class FakeClimateClient:
    """Serves prepared ClimateGridStacks by variable name"""

    def __init__(self, stacks):
        self.stacks = stacks
        self.requests = []

    def get_terraclimate_stack(self, basin, start_date, end_date, variable):
        self.requests.append((variable, start_date, end_date))
        return self.stacks.get(variable, ClimateGridStack.empty(variable))


def make_stack(variable, months, values_per_month, shape=(6, 6), origin=(-120.0, 50.0), res=1.0 / 24.0):
    """Monthly geographic stack with constant values per month"""
    data = np.stack([np.full(shape, v, dtype="float64") for v in values_per_month])
    labels = [f"{variable}_{pd.Timestamp(m).strftime('%Y-%m-%d')}" for m in months]
    transform = from_origin(origin[0], origin[1], res, res)
    return ClimateGridStack(variable, data, transform, "EPSG:4326", labels)


@pytest.fixture
def aoi():
    return gpd.GeoDataFrame({"name": ["square"]}, geometry=[box(*AOI_BOUNDS)], crs=WEB_MERCATOR)


@pytest.fixture
def fake_wbt():
    return FakeWhiteboxTools()


@pytest.fixture
def fake_dem_client():
    return FakeDemClient()


@pytest.fixture
def three_months():
    return pd.date_range("2020-01-01", periods=3, freq="MS")


@pytest.fixture
def basin_4326():
    # Inside the 6 x 6 cell grid starting at (-120, 50)
    return gpd.GeoDataFrame(geometry=[box(-119.95, 49.8, -119.8, 49.95)], crs="EPSG:4326")


@pytest.fixture
def sub_cell_basin():
    # Well inside cell (2, 2) of the same grid, touching no cell centre
    return gpd.GeoDataFrame(geometry=[box(-119.91, 49.89, -119.895, 49.905)], crs="EPSG:4326")
