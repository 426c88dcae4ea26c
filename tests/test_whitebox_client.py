"""
Tests for the WhiteboxTools terrain client using a recording backend
"""

import numpy as np
import pytest
import rasterio
import geopandas as gpd
from rasterio.transform import from_origin
from shapely.geometry import LineString, Point

from clients.watershed_clients.terrain_toolchain import TerrainParameters, TerrainRequest
from clients.watershed_clients.whitebox_client import WhiteboxTerrainClient
from infrastructure.exceptions import ExternalToolError, InputError

from conftest import FakeWhiteboxTools, WEB_MERCATOR, write_raster

ORIGIN = (1_000_000.0, 6_001_000.0)


@pytest.fixture
def dem(tmp_path):
    data = np.full((10, 10), 100.0, dtype="float32")
    data[0, 0] = -9999.0
    return write_raster(tmp_path / "dem.tif", data, from_origin(*ORIGIN, 100.0, 100.0), nodata=-9999.0)


def request_for(dem, tmp_path, streams=None, **params):
    return TerrainRequest(dem=dem, work_dir=tmp_path, parameters=TerrainParameters(**params), streams=streams)


class TestDeriveFlowGrids:

    def test_tool_order_and_outputs(self, tmp_path, dem):
        wbt = FakeWhiteboxTools()
        artifacts = WhiteboxTerrainClient(backend=wbt).derive_flow_grids(
            request_for(dem, tmp_path, n_workers=2, verbose=True))

        assert wbt.calls == [
            "breach_depressions_least_cost",
            "fill_depressions",
            "d8_pointer",
            "d8_flow_accumulation",
            "extract_streams",
        ]
        assert artifacts.conditioned_dem.name == "dem_filled.tif"
        assert artifacts.d8_pointer.name == "D8pointer.tif"
        assert artifacts.flow_accumulation.name == "D8fac.tif"
        assert artifacts.streams_raster.name == "streams_derived.tif"
        assert artifacts.tool == "WhiteboxTools"
        assert wbt.working_dir == str(tmp_path.resolve())
        assert wbt.max_procs == 2
        assert wbt.verbose is True

    def test_missing_dem(self, tmp_path):
        with pytest.raises(InputError, match="DEM does not exist"):
            WhiteboxTerrainClient(backend=FakeWhiteboxTools()).derive_flow_grids(
                request_for(tmp_path / "none.tif", tmp_path))

    def test_nonzero_status(self, tmp_path, dem):
        wbt = FakeWhiteboxTools(status=2, failing_tool="fill_depressions")
        with pytest.raises(ExternalToolError, match="exit status 2") as excinfo:
            WhiteboxTerrainClient(backend=wbt).derive_flow_grids(request_for(dem, tmp_path))
        assert excinfo.value.path.endswith("dem_filled.tif")
        assert "d8_pointer" not in wbt.calls

    def test_existing_streams_are_burned(self, tmp_path, dem):
        streams_path = tmp_path / "rivers.shp"
        x = ORIGIN[0] + 550.0
        gpd.GeoDataFrame(geometry=[LineString([(x, ORIGIN[1] - 50.0), (x, ORIGIN[1] - 950.0)])],
                         crs=WEB_MERCATOR).to_file(streams_path)
        wbt = FakeWhiteboxTools()

        artifacts = WhiteboxTerrainClient(backend=wbt).derive_flow_grids(
            request_for(dem, tmp_path, streams=streams_path, burn_dist=10.0))

        with rasterio.open(tmp_path / "dem_burned.tif") as src:
            burned = src.read(1)
        assert burned[5, 5] == pytest.approx(90.0)
        assert burned[5, 0] == pytest.approx(100.0)
        assert burned[0, 0] == pytest.approx(-9999.0)
        assert artifacts.dem == dem.resolve()


class TestBurnStreams:

    def test_nodata_cells_untouched(self, tmp_path, dem):
        streams_path = tmp_path / "edge.shp"
        y = ORIGIN[1] - 50.0
        gpd.GeoDataFrame(geometry=[LineString([(ORIGIN[0] + 10.0, y), (ORIGIN[0] + 990.0, y)])],
                         crs=WEB_MERCATOR).to_file(streams_path)

        out = WhiteboxTerrainClient.burn_streams(dem, streams_path, tmp_path / "burned.tif", 5.0)

        with rasterio.open(out) as src:
            row = src.read(1)[0]
        assert row[0] == pytest.approx(-9999.0)
        np.testing.assert_allclose(row[1:], 95.0)

    def test_unreadable_streams(self, tmp_path, dem):
        with pytest.raises(InputError, match="cannot read stream network"):
            WhiteboxTerrainClient.burn_streams(dem, tmp_path / "none.shp", tmp_path / "burned.tif", 5.0)


class TestVectorSnapWatershed:

    @pytest.fixture
    def run(self, tmp_path, dem):
        wbt = FakeWhiteboxTools()
        client = WhiteboxTerrainClient(backend=wbt)
        return client, wbt, client.derive_flow_grids(request_for(dem, tmp_path))

    def test_stream_vector(self, tmp_path, run):
        client, _, artifacts = run
        output = client.vectorize_streams(artifacts)
        assert output == tmp_path.resolve() / "stream_network.shp"
        assert artifacts.stream_vector == output

    def test_snap_and_watershed(self, tmp_path, run):
        client, wbt, artifacts = run
        pour_point = tmp_path / "pp.shp"
        gpd.GeoDataFrame({'id': [1]}, geometry=[Point(ORIGIN[0] + 420.0, ORIGIN[1] - 500.0)],
                         crs=WEB_MERCATOR).to_file(pour_point)

        snapped = client.snap_pour_point(artifacts, pour_point, 200.0)
        watershed = client.delineate_watershed(artifacts, snapped)

        assert snapped.name == "pour_point_snapped.shp"
        assert watershed.name == "watershed.tif"
        assert gpd.read_file(snapped).geometry.iloc[0].x == pytest.approx(ORIGIN[0] + 550.0)
        assert wbt.calls[-2:] == ["jenson_snap_pour_points", "watershed"]

    def test_watershed_arguments_in_tool_order(self, tmp_path, run):
        client, wbt, artifacts = run
        pour_point = tmp_path / "pp.shp"
        gpd.GeoDataFrame({'id': [1]}, geometry=[Point(ORIGIN[0] + 550.0, ORIGIN[1] - 500.0)],
                         crs=WEB_MERCATOR).to_file(pour_point)

        watershed = client.delineate_watershed(artifacts, pour_point)

        assert wbt.watershed_args == (str(artifacts.d8_pointer), str(pour_point), str(watershed))
        assert artifacts.watershed == watershed
        assert watershed.exists()

    def test_missing_pointer_reported(self, run):
        client, _, artifacts = run
        artifacts.d8_pointer.unlink()
        with pytest.raises(ExternalToolError, match="d8_pointer"):
            client.delineate_watershed(artifacts, artifacts.work_dir / "pp.shp")

    def test_as_dict(self, run):
        _, _, artifacts = run
        paths = artifacts.as_dict()
        assert paths['watershed'] is None
        assert paths['d8_pointer'] == artifacts.d8_pointer
