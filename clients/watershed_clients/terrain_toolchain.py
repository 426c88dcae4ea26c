"""
Terrain toolchain interface.

The delineation workflow only talks to terrain analysis through this
interface: it hands over a DEM plus parameters and gets typed artifacts
back. Implementations own their file names inside the working directory.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from infrastructure.exceptions import ExternalToolError


@dataclass(frozen=True)
class TerrainParameters:
    """Fixed conditioning and extraction parameters"""
    breach_dist: int = 10000
    stream_threshold: int = 1000
    burn_dist: float = 10.0
    snap_dist: float = 500.0
    n_workers: int = 1
    verbose: bool = False


@dataclass(frozen=True)
class TerrainRequest:
    dem: Path
    work_dir: Path
    parameters: TerrainParameters = field(default_factory=TerrainParameters)
    streams: Optional[Path] = None  # existing stream vector to burn in


@dataclass
class TerrainArtifacts:
    """Files produced by a toolchain run; later stages fill in the optional ones"""
    tool: str
    work_dir: Path
    dem: Path
    conditioned_dem: Path
    d8_pointer: Path
    flow_accumulation: Path
    streams_raster: Path
    stream_vector: Optional[Path] = None
    snapped_pour_point: Optional[Path] = None
    watershed: Optional[Path] = None

    def as_dict(self) -> Dict[str, Optional[Path]]:
        return {
            'dem': self.dem,
            'conditioned_dem': self.conditioned_dem,
            'd8_pointer': self.d8_pointer,
            'flow_accumulation': self.flow_accumulation,
            'streams_raster': self.streams_raster,
            'stream_vector': self.stream_vector,
            'snapped_pour_point': self.snapped_pour_point,
            'watershed': self.watershed,
        }

    def verify(self, *names: str) -> List[Path]:
        """
        Check that the named artifacts exist on disk.

        Raises:
            ExternalToolError naming the first missing path
        """
        found = []
        for name in names:
            path = getattr(self, name)
            if path is None or not Path(path).exists():
                raise ExternalToolError(self.tool, f"expected {name} output is missing", path)
            found.append(Path(path))
        return found


class TerrainToolchain(ABC):
    """Flow routing, stream extraction and watershed tools"""

    name = "terrain toolchain"

    @abstractmethod
    def derive_flow_grids(self, request: TerrainRequest) -> TerrainArtifacts:
        """Condition the DEM and derive D8 pointer, flow accumulation and stream rasters"""

    @abstractmethod
    def vectorize_streams(self, artifacts: TerrainArtifacts) -> Path:
        """Convert the stream raster to a line vector file"""

    @abstractmethod
    def snap_pour_point(self, artifacts: TerrainArtifacts, pour_point: Path, snap_dist: float) -> Path:
        """Move the pour point onto the nearest stream cell within snap_dist"""

    @abstractmethod
    def delineate_watershed(self, artifacts: TerrainArtifacts, pour_point: Path) -> Path:
        """Raster of all cells draining to the pour point"""
