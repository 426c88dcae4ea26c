"""
Exception hierarchy for the delineation and water-balance workflows.

Every error carries the context a caller needs to diagnose the failure
(offending path, variable, date range or label) without re-running in
verbose mode. None of them are retried or recovered internally.
"""

from pathlib import Path
from typing import Optional, Union


class HydroBasinError(Exception):
    """Base exception for all workflow failures"""
    pass


class InputError(HydroBasinError):
    """Raised when a geometry input or parameter cannot be read or is invalid"""
    def __init__(self, source: Union[str, Path, None], reason: str):
        self.source = str(source) if source is not None else None
        self.reason = reason
        if self.source:
            super().__init__(f"Invalid input '{self.source}': {reason}")
        else:
            super().__init__(f"Invalid input: {reason}")


class ExternalToolError(HydroBasinError):
    """Raised when the terrain toolchain fails or does not produce an expected output"""
    def __init__(self, tool: str, reason: str, path: Union[str, Path, None] = None):
        self.tool = tool
        self.path = str(path) if path is not None else None
        self.reason = reason
        message = f"{tool} failed: {reason}"
        if self.path:
            message += f" (expected output: {self.path})"
        super().__init__(message)


class DataUnavailableError(HydroBasinError):
    """Raised when the climate grid provider returns no months for a request"""
    def __init__(self, variable: str, start_date: str, end_date: str, reason: str = "provider returned zero layers"):
        self.variable = variable
        self.start_date = str(start_date)
        self.end_date = str(end_date)
        self.reason = reason
        super().__init__(
            f"No '{variable}' data for {self.start_date} to {self.end_date}: {reason}; "
            "check the dates, the basin location or the network connection"
        )


class DateParseError(HydroBasinError):
    """Raised when a grid layer label does not contain a year-month-day date"""
    def __init__(self, label: str):
        self.label = label
        super().__init__(f"Cannot parse a date from layer label '{label}'")


class NoPourPointError(HydroBasinError):
    """Raised when the interactive picker closes without a pour point"""
    def __init__(self, reason: str = "the picker was closed without placing a point"):
        self.reason = reason
        super().__init__(f"No pour point selected: {reason}")


class GridAlignmentError(HydroBasinError):
    """Raised when two climate stacks do not share the same grid and months"""
    def __init__(self, first: str, second: str, reason: str):
        self.first = first
        self.second = second
        self.reason = reason
        super().__init__(f"Grids '{first}' and '{second}' do not align: {reason}")


class ConfigurationError(HydroBasinError):
    """Raised when a configuration file or value is invalid"""
    def __init__(self, errors, path: Optional[Union[str, Path]] = None):
        self.errors = list(errors) if not isinstance(errors, str) else [errors]
        self.path = str(path) if path is not None else None
        where = f" in '{self.path}'" if self.path else ""
        super().__init__(f"Invalid configuration{where}: " + "; ".join(self.errors))
