"""OEE Dashboard Simulator - synthetic OEE metrics with a live FG series."""

__version__ = "0.1.0"

from .config import Config, InvalidRangeError
from .dashboard import DashboardSession
from .generators import RandomSource, Snapshot, SnapshotGenerator, generate_snapshot
from .live import LiveSeriesUpdater

__all__ = [
    "Config",
    "DashboardSession",
    "InvalidRangeError",
    "LiveSeriesUpdater",
    "RandomSource",
    "Snapshot",
    "SnapshotGenerator",
    "generate_snapshot",
    "__version__",
]
