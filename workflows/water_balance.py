"""
Monthly Water-Balance Workflow

Basin polygon -> monthly PPT and AET grids -> basin mask and cell areas ->
monthly volumes -> table with runoff and calendar fields -> optional CSV and chart.
"""

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, NamedTuple, Optional, Union

import pandas as pd
from matplotlib.figure import Figure

from infrastructure.configuration_manager import WaterBalanceConfig
from infrastructure.exceptions import InputError
from infrastructure.path_manager import AbsolutePathManager
from clients.data_clients.climate_client import ClimateDataClient
from clients.visualization_clients.plotting_client import PlottingClient
from processors.coordinate_system_processor import CoordinateSystemProcessor
from processors.water_balance import BALANCE_COLUMNS
from workflows.steps.base_step import configure_package_logging
from workflows.steps.climate_steps import AggregateWaterBalance, FetchClimateStacks

logger = logging.getLogger(__name__)

DATE_FORMAT = '%Y-%m-%d'


class RunoffResult(NamedTuple):
    data: pd.DataFrame
    plot: Figure


def parse_iso_date(value: Union[str, date], name: str) -> date:
    """ISO YYYY-MM-DD string (or date) to a date, InputError otherwise"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), DATE_FORMAT).date()
    except ValueError:
        raise InputError(None, f"{name} must be an ISO date YYYY-MM-DD, got {value!r}")


class WaterBalanceWorkflow:
    """
    Monthly precipitation, evapotranspiration and runoff volumes for a basin
    """

    def __init__(self, config: Optional[WaterBalanceConfig] = None,
                 climate_client: Optional[ClimateDataClient] = None):
        self.config = config or WaterBalanceConfig()
        errors = self.config.validate()
        if errors:
            raise InputError(None, "; ".join(errors))

        quiet = self.config.quiet
        configure_package_logging(quiet)

        self.crs_processor = CoordinateSystemProcessor()
        self.climate_client = climate_client or ClimateDataClient(
            url_template=self.config.terraclimate_url,
            padding_cells=self.config.grid_padding_cells,
        )
        self.fetch_step = FetchClimateStacks(self.climate_client, quiet=quiet)
        self.aggregate_step = AggregateWaterBalance(mm_to_m=self.config.mm_to_m, quiet=quiet)

    def run(self, basin: Any, start_date, end_date) -> pd.DataFrame:
        basin_gdf = self.crs_processor.read_polygons(basin, label="basin")
        start = parse_iso_date(start_date, "start_date")
        end = parse_iso_date(end_date, "end_date")
        if start > end:
            raise InputError(None, f"start_date {start} is after end_date {end}")

        stacks = self.fetch_step.execute({
            'basin': basin_gdf,
            'start_date': start.strftime(DATE_FORMAT),
            'end_date': end.strftime(DATE_FORMAT),
            'ppt_var': self.config.ppt_var,
            'aet_var': self.config.aet_var,
        })

        result = self.aggregate_step.execute({
            'basin': basin_gdf,
            'ppt_stack': stacks['ppt_stack'],
            'aet_stack': stacks['aet_stack'],
        })
        return result['data']

    @staticmethod
    def save_csv(data: pd.DataFrame, path: Union[str, Path]) -> Path:
        """Write (overwrite) the water-balance table"""
        output = AbsolutePathManager(Path.cwd()).ensure_file_writable(path)
        data[BALANCE_COLUMNS].to_csv(output, index=False, date_format=DATE_FORMAT)
        logger.info(f"Water balance saved to: {output}")
        return output


def calculate_runoff(basin, start_date, end_date, ppt_var="ppt", aet_var="aet",
                     save_csv=None, return_plot=False, quiet=True, config=None,
                     climate_client=None) -> Union[pd.DataFrame, RunoffResult]:
    """
    Monthly precipitation, evapotranspiration and runoff volumes for a basin.

    Parameters:
    -----------
    basin : path or GeoDataFrame
        Basin polygons, e.g. the output of delineate_basin
    start_date, end_date : str
        Inclusive ISO dates YYYY-MM-DD
    ppt_var, aet_var : str
        TerraClimate variable names
    save_csv : path, optional
        Write the table there, overwriting any existing file
    return_plot : bool
        Also return a chart of the three series
    quiet : bool
        Only log warnings
    config : WaterBalanceConfig, optional
        Full parameter set; when given it replaces ppt_var, aet_var and quiet
    climate_client : ClimateDataClient, optional
        Replacement climate grid provider

    Returns:
    --------
    DataFrame with columns date, ppt_vol_m3, aet_vol_m3, runoff_vol_m3, year,
    month, or RunoffResult(data, plot) when return_plot is set
    """
    if config is None:
        config = WaterBalanceConfig(ppt_var=ppt_var, aet_var=aet_var, quiet=quiet)
    workflow = WaterBalanceWorkflow(config, climate_client=climate_client)
    data = workflow.run(basin, start_date, end_date)

    if save_csv is not None:
        workflow.save_csv(data, save_csv)

    if return_plot:
        return RunoffResult(data, PlottingClient().plot_water_balance(data))
    return data
