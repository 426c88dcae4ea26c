"""
AbsolutePathManager and the on-disk layout of a delineation working directory.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union, Optional, Dict, Any
import logging

from .exceptions import InputError

logger = logging.getLogger(__name__)


class PathResolutionError(InputError):
    """Raised when path cannot be resolved to absolute path"""
    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(path, f"cannot resolve path: {reason}")


class FileAccessError(InputError):
    """Raised when file cannot be accessed with absolute path"""
    def __init__(self, path: str, operation: str, reason: str):
        self.path = path
        self.operation = operation
        super().__init__(path, f"cannot {operation}: {reason}")


class AbsolutePathManager:
    """
    Resolves every path handed to the workflows against a single workspace root
    so that intermediate files never depend on the current working directory.
    """

    def __init__(self, workspace_root: Union[str, Path], create: bool = False):
        """
        Initialize the path manager with a workspace root directory.

        Args:
            workspace_root: Root directory for the workspace
            create: Create the root when it does not exist yet

        Raises:
            PathResolutionError: If workspace_root cannot be resolved
            FileAccessError: If the root cannot be created
        """
        if not workspace_root:
            raise PathResolutionError("", "Empty path provided")
        try:
            self.workspace_root = Path(workspace_root).expanduser().resolve()
        except (OSError, ValueError) as e:
            raise PathResolutionError(str(workspace_root), str(e))

        if not self.workspace_root.exists():
            if not create:
                raise PathResolutionError(str(workspace_root), "Workspace root directory does not exist")
            self.create_path_structure(self.workspace_root)

        if not self.workspace_root.is_dir():
            raise FileAccessError(str(self.workspace_root), "use as workspace", "Path exists but is not a directory")

        logger.debug(f"Initialized AbsolutePathManager with workspace: {self.workspace_root}")

    def resolve_path(self, path: Union[str, Path]) -> Path:
        """
        Convert any path to absolute path with explicit error handling.

        Args:
            path: Path to resolve (can be relative or absolute)

        Returns:
            Absolute Path object
        """
        if not path:
            raise PathResolutionError("", "Empty path provided")

        try:
            path_obj = Path(path).expanduser()
            if path_obj.is_absolute():
                return path_obj.resolve()
            return (self.workspace_root / path_obj).resolve()
        except (OSError, ValueError) as e:
            raise PathResolutionError(str(path), str(e))

    def validate_path(self, path: Union[str, Path], must_exist: bool = False,
                      must_be_file: bool = False) -> Path:
        """Validate existence and readability, returning the absolute path"""
        abs_path = self.resolve_path(path)

        if (must_exist or must_be_file) and not abs_path.exists():
            raise FileAccessError(str(abs_path), "access", "Path does not exist")

        if abs_path.exists():
            if must_be_file and not abs_path.is_file():
                raise FileAccessError(str(abs_path), "access", "Path exists but is not a file")
            if not os.access(abs_path, os.R_OK):
                raise FileAccessError(str(abs_path), "read", "No read permission")

        return abs_path

    def create_path_structure(self, path: Union[str, Path], is_file_path: bool = False) -> Path:
        """
        Create directory structure if needed.

        Args:
            path: Path to create structure for
            is_file_path: If True, creates parent directories for a file path

        Returns:
            Absolute path that was created/validated
        """
        abs_path = Path(path) if Path(path).is_absolute() else self.resolve_path(path)
        dir_to_create = abs_path.parent if is_file_path else abs_path

        try:
            dir_to_create.mkdir(parents=True, exist_ok=True)
        except (OSError, PermissionError) as e:
            raise FileAccessError(str(dir_to_create), "create directory", str(e))

        return abs_path

    def ensure_file_writable(self, path: Union[str, Path]) -> Path:
        """Create parent directories for a file and check it can be (over)written"""
        abs_path = self.create_path_structure(self.resolve_path(path), is_file_path=True)

        if abs_path.exists() and not os.access(abs_path, os.W_OK):
            raise FileAccessError(str(abs_path), "write", "No write permission to existing file")
        if not abs_path.exists() and not os.access(abs_path.parent, os.W_OK):
            raise FileAccessError(str(abs_path.parent), "write", "No write permission to parent directory")

        return abs_path


@dataclass(frozen=True)
class DemCacheEntry:
    """
    Cache key for the elevation model of a working directory.

    The entry is addressed by ``(out_dir, zoom)``. The DEM itself lives at
    ``out_dir/dem.tif`` and a ``dem.json`` sidecar records the zoom it was
    fetched at, so asking for another zoom in the same directory is a miss.
    """
    out_dir: Path
    zoom: int
    filename: str = "dem.tif"

    @property
    def path(self) -> Path:
        return Path(self.out_dir) / self.filename

    @property
    def sidecar_path(self) -> Path:
        return self.path.with_suffix(".json")

    def cached_zoom(self) -> Optional[int]:
        """Zoom recorded in the sidecar, or None when there is no readable sidecar"""
        if not self.sidecar_path.exists():
            return None
        try:
            with open(self.sidecar_path, 'r', encoding='utf-8') as f:
                return int(json.load(f)['zoom'])
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable DEM sidecar {self.sidecar_path}: {e}")
            return None

    def is_cached(self) -> bool:
        """
        True when the DEM exists and was fetched at this zoom.

        A DEM without a sidecar was produced by an earlier run or placed by
        hand and is reused as-is.
        """
        if not self.path.exists():
            return False
        recorded = self.cached_zoom()
        if recorded is not None and recorded != self.zoom:
            logger.info(f"Cached DEM was fetched at zoom {recorded}, requested {self.zoom}")
            return False
        return True

    def record(self, **extra: Any) -> Path:
        """Write the sidecar for a freshly fetched DEM"""
        payload: Dict[str, Any] = {'zoom': self.zoom, 'dem': self.path.name}
        payload.update(extra)
        with open(self.sidecar_path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2)
        return self.sidecar_path


class BasinWorkspace:
    """Absolute locations of the files the delineation workflow writes itself"""

    POUR_POINT = "pour_point.shp"

    def __init__(self, out_dir: Union[str, Path], dem_filename: str = "dem.tif"):
        self.path_manager = AbsolutePathManager(Path(out_dir).expanduser().absolute(), create=True)
        self.root = self.path_manager.workspace_root
        self.dem_filename = dem_filename

    def dem_cache(self, zoom: int) -> DemCacheEntry:
        return DemCacheEntry(self.root, zoom, self.dem_filename)

    @property
    def pour_point(self) -> Path:
        return self.root / self.POUR_POINT
