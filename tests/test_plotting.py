"""
Tests for the water-balance chart, the DEM base map and the pour point picker
"""

from unittest import mock

import geopandas as gpd
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest
from rasterio.transform import from_origin
from shapely.geometry import LineString

from clients.visualization_clients.plotting_client import PlottingClient, hillshade
from clients.visualization_clients.point_picker import MatplotlibPointPicker

from conftest import write_raster


@pytest.fixture
def balance():
    return pd.DataFrame({
        'date': pd.date_range("2020-01-01", periods=4, freq="MS"),
        'ppt_vol_m3': [2e6, 3e6, 1e6, 0.5e6],
        'aet_vol_m3': [1e6, 1e6, 1.5e6, 0.5e6],
        'runoff_vol_m3': [1e6, 2e6, -0.5e6, 0.0],
        'year': [2020] * 4,
        'month': [1, 2, 3, 4],
    })


@pytest.fixture
def dem_path(tmp_path):
    yy, xx = np.mgrid[0:20, 0:20]
    return write_raster(tmp_path / "dem.tif", (500.0 + 3.0 * yy + xx).astype("float32"),
                        from_origin(0.0, 2000.0, 100.0, 100.0))


class TestWaterBalanceChart:

    def test_three_labelled_series(self, balance):
        fig = PlottingClient().plot_water_balance(balance)
        ax = fig.axes[0]

        assert [t.get_text() for t in ax.get_legend().get_texts()] == ["PPT", "AET", "Runoff"]
        assert ax.get_xlabel() == "Date"
        assert "million" in ax.get_ylabel()
        plt.close(fig)

    def test_volumes_in_millions(self, balance):
        fig = PlottingClient().plot_water_balance(balance)
        series = [list(np.asarray(line.get_ydata(), dtype=float)) for line in fig.axes[0].get_lines()]
        assert [1.0, 2.0, -0.5, 0.0] in series
        assert [2.0, 3.0, 1.0, 0.5] in series
        plt.close(fig)

    def test_save_figure(self, tmp_path, balance):
        client = PlottingClient()
        fig = client.plot_water_balance(balance, title="Test")
        out = client.save_figure(fig, tmp_path / "charts" / "wb.png")
        client.close(fig)
        assert out.exists()


class TestBaseMap:

    def test_hillshade_range(self):
        yy, xx = np.mgrid[0:30, 0:30]
        shaded = hillshade((np.sin(xx / 4.0) * 50 + yy * 2).astype(float), 30.0, 30.0)
        assert shaded.shape == (30, 30)
        assert np.nanmin(shaded) >= 0.0
        assert np.nanmax(shaded) <= 1.0

    def test_flat_surface_is_uniform(self):
        shaded = hillshade(np.full((5, 5), 10.0), 10.0, 10.0, altitude=45.0)
        np.testing.assert_allclose(shaded, (np.sin(np.radians(45.0)) + 1.0) / 2.0)

    def test_dem_extent(self, dem_path):
        fig, ax = PlottingClient().plot_dem_base_map(dem_path)
        left, right, bottom, top = ax.get_images()[0].get_extent()
        assert (left, right, bottom, top) == (0.0, 2000.0, 0.0, 2000.0)
        plt.close(fig)


class TestMatplotlibPointPicker:

    def test_click_returned_in_map_units(self, dem_path):
        streams = gpd.GeoDataFrame(geometry=[LineString([(1000, 0), (1000, 2000)])], crs="EPSG:3857")
        with mock.patch("clients.visualization_clients.point_picker.plt.ginput",
                        return_value=[(1000.0, 750.0)]) as ginput:
            picked = MatplotlibPointPicker().pick(dem_path, streams)

        assert picked == (1000.0, 750.0)
        ginput.assert_called_once_with(n=1, timeout=0, show_clicks=True)

    def test_window_closed(self, dem_path):
        streams = gpd.GeoDataFrame(geometry=[], crs="EPSG:3857")
        with mock.patch("clients.visualization_clients.point_picker.plt.ginput", return_value=[]):
            assert MatplotlibPointPicker().pick(dem_path, streams) is None
