"""
Tests for the TerraClimate client against an in-memory dataset
"""

from unittest import mock

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
import xarray as xr
from shapely.geometry import box

from clients.data_clients.climate_client import ClimateDataClient, ClimateGridStack
from infrastructure.exceptions import ExternalToolError, InputError

RES = 1.0 / 24.0


def terraclimate_like(variable="ppt", fill=None):
    """1/24 degree monthly grid around (-120, 50), latitude descending like TerraClimate"""
    lat = 50.5 - (np.arange(36) + 0.5) * RES
    lon = -120.5 + (np.arange(36) + 0.5) * RES
    time = pd.date_range("2019-11-01", "2020-06-01", freq="MS")
    if fill is None:
        data = np.arange(len(time), dtype=float)[:, None, None] + np.zeros((len(time), lat.size, lon.size))
    else:
        data = np.full((len(time), lat.size, lon.size), fill)
    return xr.Dataset(
        {variable: (("time", "lat", "lon"), data)},
        coords={"time": time, "lat": lat, "lon": lon},
    )


@pytest.fixture
def opendap():
    with mock.patch("clients.data_clients.climate_client.xr.open_dataset") as open_dataset:
        yield open_dataset


class TestClimateDataClient:

    def test_dataset_url(self):
        client = ClimateDataClient(url_template="http://host/agg_{var}.nc")
        assert client.dataset_url("aet") == "http://host/agg_aet.nc"

    def test_monthly_layers_for_basin(self, opendap, basin_4326):
        opendap.return_value = terraclimate_like()

        stack = ClimateDataClient().get_terraclimate_stack(basin_4326, "2020-01-15", "2020-03-31", "ppt")

        assert "agg_terraclimate_ppt_" in opendap.call_args[0][0]
        assert stack.n_layers == 3
        assert stack.labels == ["ppt_2020-01-01", "ppt_2020-02-01", "ppt_2020-03-01"]
        assert stack.crs == "EPSG:4326"
        assert stack.transform.a == pytest.approx(RES)
        assert stack.transform.e == pytest.approx(-RES)
        # layer values follow the month index of the source dataset
        assert np.all(stack.values[0] == 2.0)
        assert np.all(stack.values[2] == 4.0)

    def test_grid_covers_basin_with_padding(self, opendap, basin_4326):
        opendap.return_value = terraclimate_like()

        stack = ClimateDataClient(padding_cells=1).get_terraclimate_stack(
            basin_4326, "2020-01-01", "2020-01-31", "ppt")

        west, south, east, north = basin_4326.total_bounds
        rows, cols = stack.shape
        assert stack.transform.c <= west - RES + 1e-9
        assert stack.transform.f >= north + RES - 1e-9
        assert stack.transform.c + cols * RES >= east + RES - 1e-9
        assert stack.transform.f - rows * RES <= south - RES + 1e-9

    def test_north_up_even_when_source_ascends(self, opendap, basin_4326):
        ds = terraclimate_like().sortby("lat")
        opendap.return_value = ds

        stack = ClimateDataClient().get_terraclimate_stack(basin_4326, "2020-01-01", "2020-02-28", "ppt")
        assert stack.n_layers == 2
        assert stack.transform.e < 0

    def test_basin_outside_coverage(self, opendap):
        opendap.return_value = terraclimate_like()
        far = gpd.GeoDataFrame(geometry=[box(10, 10, 11, 11)], crs="EPSG:4326")

        stack = ClimateDataClient().get_terraclimate_stack(far, "2020-01-01", "2020-03-31", "ppt")
        assert stack.is_empty

    def test_period_outside_coverage(self, opendap, basin_4326):
        opendap.return_value = terraclimate_like()

        stack = ClimateDataClient().get_terraclimate_stack(basin_4326, "2030-01-01", "2030-03-31", "ppt")
        assert stack.is_empty

    def test_all_missing_values(self, opendap, basin_4326):
        opendap.return_value = terraclimate_like(fill=np.nan)

        stack = ClimateDataClient().get_terraclimate_stack(basin_4326, "2020-01-01", "2020-03-31", "ppt")
        assert stack.is_empty

    def test_basin_in_projected_crs(self, opendap, basin_4326):
        opendap.return_value = terraclimate_like()

        stack = ClimateDataClient().get_terraclimate_stack(
            basin_4326.to_crs("EPSG:3857"), "2020-01-01", "2020-01-31", "ppt")
        assert stack.n_layers == 1

    def test_variable_missing_from_dataset(self, opendap, basin_4326):
        opendap.return_value = terraclimate_like("aet")

        with pytest.raises(ExternalToolError, match="'ppt' not in dataset"):
            ClimateDataClient().get_terraclimate_stack(basin_4326, "2020-01-01", "2020-03-31", "ppt")

    def test_server_unreachable(self, opendap, basin_4326):
        opendap.side_effect = OSError("connection refused")

        with pytest.raises(ExternalToolError) as excinfo:
            ClimateDataClient().get_terraclimate_stack(basin_4326, "2020-01-01", "2020-03-31", "ppt")
        assert "connection refused" in str(excinfo.value)

    def test_basin_without_crs(self):
        with pytest.raises(InputError):
            ClimateDataClient().get_terraclimate_stack(
                gpd.GeoDataFrame(geometry=[box(0, 0, 1, 1)]), "2020-01-01", "2020-03-31", "ppt")


def test_empty_stack():
    stack = ClimateGridStack.empty("ppt")
    assert stack.is_empty
    assert stack.n_layers == 0
    assert stack.labels == []
