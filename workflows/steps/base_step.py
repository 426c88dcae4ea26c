"""
Base class for all workflow steps

This module defines the common interface that all workflow steps implement:
named logging, start/completion/failure bookkeeping and input validation.
Steps log a failure and re-raise it; the error reaches the workflow caller.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional
from pathlib import Path
import logging
from datetime import datetime

from infrastructure.exceptions import InputError

PACKAGE_LOGGERS = ('infrastructure', 'clients', 'processors', 'workflows')
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_package_logging(quiet: bool = True):
    """Route package loggers to stderr at INFO, or WARNING when quiet"""
    level = logging.WARNING if quiet else logging.INFO
    for name in PACKAGE_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        if not logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(handler)


class WorkflowStep(ABC):
    """
    Base class for all workflow steps

    A step takes a dict of inputs, returns a dict of outputs with a
    'success' key, and logs its own start, completion and failure under
    ``WorkflowStep.<step_name>``.
    """

    def __init__(self, step_name: str, step_category: str, description: str = "", quiet: bool = True):
        """
        Parameters:
        -----------
        step_name : str
            Unique name for this step, also the logger suffix
        step_category : str
            Pipeline the step belongs to ('terrain' or 'climate')
        description : str, optional
            Human-readable description of what this step does
        quiet : bool, optional
            Only log warnings and errors
        """
        self.step_name = step_name
        self.step_category = step_category
        self.description = description
        self.logger = self._setup_logging()
        self.set_quiet(quiet)

        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None
        self.execution_time_seconds: Optional[float] = None

    @abstractmethod
    def execute(self, inputs: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run the step.

        Raises:
        -------
        HydroBasinError
            Any failure, after it has been logged
        """

    def set_quiet(self, quiet: bool):
        self.quiet = quiet
        self.logger.setLevel(logging.WARNING if quiet else logging.INFO)

    def validate_inputs(self, inputs: Dict[str, Any], required_keys: List[str]) -> None:
        """InputError naming every required key absent from inputs"""
        missing = [key for key in required_keys if key not in inputs]
        if missing:
            raise InputError(self.step_name, f"Missing required inputs: {missing}")

    def validate_file_exists(self, file_path) -> Path:
        path = Path(file_path)
        if not path.exists():
            raise InputError(path, "Required file not found")
        return path

    def _elapsed(self) -> str:
        self.end_time = datetime.now()
        if self.start_time is None:
            return ""
        self.execution_time_seconds = (self.end_time - self.start_time).total_seconds()
        return f" ({self.execution_time_seconds:.1f}s)"

    def _log_step_start(self):
        self.start_time = datetime.now()
        self.logger.info(f"Starting step: {self.step_name}")

    def _log_step_complete(self, outputs: Optional[List[str]] = None):
        """Log completion, elapsed time and any files the step created"""
        self.logger.info(f"Completed step: {self.step_name}{self._elapsed()}")
        for output in outputs or []:
            self.logger.info(f"   Created: {output}")

    def _log_step_failed(self, error_msg: str):
        self.logger.error(f"Failed step: {self.step_name}{self._elapsed()}")
        self.logger.error(f"   Error: {error_msg}")

    def _setup_logging(self) -> logging.Logger:
        logger = logging.getLogger(f"WorkflowStep.{self.step_name}")

        # Steps are rebuilt per workflow run; one handler per logger
        if not logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(handler)

        return logger

    def get_execution_metadata(self) -> Dict[str, Any]:
        return {
            'step_name': self.step_name,
            'step_category': self.step_category,
            'description': self.description,
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'execution_time_seconds': self.execution_time_seconds
        }

    def __str__(self) -> str:
        return f"{self.step_category}.{self.step_name}"

    def __repr__(self) -> str:
        return f"WorkflowStep(name='{self.step_name}', category='{self.step_category}')"
