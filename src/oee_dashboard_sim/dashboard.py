"""Dashboard session: the control flow between filters, snapshots and the live series.

A filter change or a manual refresh regenerates the whole snapshot and
re-seeds the live FG updater from it. The old updater is stopped first, so
the previous live series never leaks into the new one.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from .config import Config
from .generators import FGSeries, RandomSource, Snapshot, SnapshotGenerator
from .live import LiveSeriesUpdater, TickCallback

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
UpdaterFactory = Callable[[], LiveSeriesUpdater]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DashboardSession:
    """Holds the current filters, snapshot and live updater."""

    def __init__(
        self,
        config: Optional[Config] = None,
        rng: Optional[RandomSource] = None,
        clock: Optional[Clock] = None,
        updater_factory: Optional[UpdaterFactory] = None,
        on_live_tick: Optional[TickCallback] = None,
    ):
        self.config = (config or Config.default()).validate()
        self._rng = rng or RandomSource(self.config.random_seed)
        self._clock = clock or utc_now
        self._generator = SnapshotGenerator(self.config.generator)
        self._updater_factory = updater_factory or self._default_updater
        self._on_live_tick = on_live_tick

        self._plant = self.config.dashboard.default_plant
        self._machine = self.config.dashboard.default_machine
        self._snapshot: Optional[Snapshot] = None
        self._updater: Optional[LiveSeriesUpdater] = None
        self._refresh_count = 0

    def _default_updater(self) -> LiveSeriesUpdater:
        return LiveSeriesUpdater(rng=self._rng, config=self.config.live)

    @property
    def plant(self) -> str:
        return self._plant

    @property
    def machine(self) -> str:
        return self._machine

    @property
    def snapshot(self) -> Optional[Snapshot]:
        return self._snapshot

    @property
    def updater(self) -> Optional[LiveSeriesUpdater]:
        return self._updater

    @property
    def refresh_count(self) -> int:
        return self._refresh_count

    @property
    def live_series(self) -> FGSeries:
        """Current live series, or the snapshot's series before the first tick."""
        if self._updater is not None:
            return self._updater.series
        return self._snapshot.fg_by_hour if self._snapshot else ()

    def select_plant(self, plant: str) -> Snapshot:
        if plant not in self.config.dashboard.plants:
            logger.warning(f"Plant '{plant}' is not in the configured list")
        if plant != self._plant or self._snapshot is None:
            self._plant = plant
            return self.refresh()
        return self._snapshot

    def select_machine(self, machine: str) -> Snapshot:
        if machine not in self.config.dashboard.machines:
            logger.warning(f"Machine '{machine}' is not in the configured list")
        if machine != self._machine or self._snapshot is None:
            self._machine = machine
            return self.refresh()
        return self._snapshot

    def refresh(self) -> Snapshot:
        """Regenerate the snapshot and re-seed the live series from it."""
        snapshot = self._generator.generate(
            self._clock(), self._rng, plant=self._plant, machine=self._machine
        )
        self._snapshot = snapshot
        self._refresh_count += 1

        if self._updater is not None:
            self._updater.stop()
        self._updater = self._updater_factory()
        self._updater.start(snapshot.fg_by_hour, on_tick=self._on_live_tick)

        logger.info(
            f"Refreshed {self._plant}/{self._machine}: OEE {snapshot.oee.oee}% "
            f"(refresh #{self._refresh_count})"
        )
        return snapshot

    def kpis(self) -> Dict[str, float]:
        """Values for the four KPI cards."""
        if self._snapshot is None:
            raise RuntimeError("No snapshot yet; call refresh() first")
        oee = self._snapshot.oee
        return {
            "Availability": oee.availability,
            "Performance": oee.performance,
            "Quality": oee.quality,
            "Overall OEE": oee.oee,
        }

    def close(self) -> None:
        if self._updater is not None:
            self._updater.stop()
