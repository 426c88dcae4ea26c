"""
Climate Steps for the monthly water balance

- FetchClimateStacks: precipitation then evapotranspiration grids for a basin and period
- AggregateWaterBalance: basin volumes per month and the water-balance table
"""

from typing import Dict, Any, Optional

from infrastructure.exceptions import DataUnavailableError, HydroBasinError
from clients.data_clients.climate_client import ClimateDataClient
from processors.water_balance import WaterBalanceProcessor, MM_TO_M
from workflows.steps.base_step import WorkflowStep


class FetchClimateStacks(WorkflowStep):
    """
    Retrieve the PPT and AET monthly stacks; an empty stack stops the workflow
    """

    def __init__(self, climate_client: Optional[ClimateDataClient] = None, quiet: bool = True):
        super().__init__(
            step_name="fetch_climate_stacks",
            step_category="climate",
            description="Download monthly TerraClimate grids covering the basin",
            quiet=quiet
        )
        self.climate_client = climate_client or ClimateDataClient()

    def execute(self, inputs: Dict[str, Any]) -> Dict[str, Any]:
        self._log_step_start()

        try:
            self.validate_inputs(inputs, ['basin', 'start_date', 'end_date', 'ppt_var', 'aet_var'])
            stacks = {}
            for key in ('ppt_var', 'aet_var'):
                variable = inputs[key]
                stack = self.climate_client.get_terraclimate_stack(
                    inputs['basin'], inputs['start_date'], inputs['end_date'], variable
                )
                if stack.is_empty:
                    raise DataUnavailableError(variable, inputs['start_date'], inputs['end_date'])
                self.logger.info(f"'{variable}': {stack.n_layers} monthly grids")
                stacks[key] = stack

            self._log_step_complete()
            return {'success': True, 'ppt_stack': stacks['ppt_var'], 'aet_stack': stacks['aet_var']}

        except HydroBasinError as e:
            self._log_step_failed(str(e))
            raise


class AggregateWaterBalance(WorkflowStep):
    """
    Integrate both stacks over the basin into the monthly water-balance table
    """

    def __init__(self, mm_to_m: float = MM_TO_M, quiet: bool = True):
        super().__init__(
            step_name="aggregate_water_balance",
            step_category="climate",
            description="Mask grids to the basin and sum monthly volumes",
            quiet=quiet
        )
        self.processor = WaterBalanceProcessor(mm_to_m=mm_to_m)

    def execute(self, inputs: Dict[str, Any]) -> Dict[str, Any]:
        self._log_step_start()

        try:
            self.validate_inputs(inputs, ['basin', 'ppt_stack', 'aet_stack'])
            table = self.processor.compute(inputs['basin'], inputs['ppt_stack'], inputs['aet_stack'])

            self._log_step_complete()
            return {'success': True, 'data': table}

        except HydroBasinError as e:
            self._log_step_failed(str(e))
            raise
