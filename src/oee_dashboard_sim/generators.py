"""Synthetic OEE dashboard data.

Produces one consistent, time-anchored snapshot across five series:

- **Machine metrics**: 1-minute runtime / net runtime / FG count / waiting samples
- **FG by hour**: finished goods per SKU for the last hours
- **SKU summary**: target, actual, defects and quality rate per SKU
- **Capacity vs actual**: hourly capacity and achieved output
- **OEE metrics**: availability, performance, quality and the derived OEE

Every draw goes through an injected ``RandomSource`` and every timestamp is
relative to an injected ``now``; nothing here reads the clock or the global
``random`` state.
"""

import logging
import math
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .config import GeneratorConfig, InvalidRangeError, Range

logger = logging.getLogger(__name__)


# =============================================================================
# Random source and rounding helpers
# =============================================================================


class RandomSource:
    """Injectable, seedable randomness."""

    def __init__(self, seed: Optional[int] = None, rng: Optional[random.Random] = None):
        self.seed = seed
        self._rng = rng if rng is not None else random.Random(seed)

    def uniform(self, low: float, high: float) -> float:
        if high < low:
            raise InvalidRangeError("uniform", low, high)
        return self._rng.uniform(low, high)

    def randint(self, low: int, high: int) -> int:
        """Uniform integer in [low, high], both inclusive."""
        if high < low:
            raise InvalidRangeError("randint", low, high)
        return self._rng.randint(low, high)

    def int_between(self, low: float, high: float) -> int:
        """Uniform integer in [ceil(low), floor(high)]."""
        lo, hi = math.ceil(low), math.floor(high)
        if hi < lo:
            raise InvalidRangeError("int_between", low, high, "no integer inside range")
        return self._rng.randint(lo, hi)

    def draw(self, bounds: Range) -> float:
        return self.uniform(bounds.low, bounds.high)

    def draw_int(self, bounds: Range) -> int:
        return self.int_between(bounds.low, bounds.high)


def round_half_away(value: float, ndigits: int = 1) -> float:
    """Round to ``ndigits`` decimals, ties away from zero."""
    quantum = Decimal(1).scaleb(-ndigits)
    rounded = Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return float(rounded)


def derive_oee(availability: float, performance: float, quality: float) -> float:
    """OEE percentage from its three factor percentages."""
    return round_half_away(availability * performance * quality / 10000, 1)


def quality_rate(actual: int, defects: int) -> float:
    """Share of good units in percent."""
    if actual == 0:
        return 0.0
    return round_half_away((actual - defects) / actual * 100, 1)


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _iso(ts: datetime) -> str:
    return _utc(ts).isoformat().replace("+00:00", "Z")


def _ms(ts: datetime) -> int:
    return int(_utc(ts).timestamp() * 1000)


# =============================================================================
# Snapshot data model
# =============================================================================


@dataclass(frozen=True)
class MachineMetricSample:
    """One 1-minute machine sample."""

    timestamp: datetime
    runtime_s: float
    net_runtime_s: float
    fg_count: int
    waiting_s: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": _iso(self.timestamp),
            "timestamp_ms": _ms(self.timestamp),
            "runtime_s": self.runtime_s,
            "net_runtime_s": self.net_runtime_s,
            "fg_count": self.fg_count,
            "waiting_s": self.waiting_s,
        }


@dataclass(frozen=True)
class HourlyFGBucket:
    """Finished goods per SKU for one hour. ``counts`` is a read-only view."""

    hour_ts: datetime
    counts: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "counts", MappingProxyType(dict(self.counts)))

    def total(self) -> int:
        return sum(self.counts.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hour_ts": _iso(self.hour_ts),
            "timestamp_ms": _ms(self.hour_ts),
            "counts": dict(self.counts),
        }


FGSeries = Tuple[HourlyFGBucket, ...]


@dataclass(frozen=True)
class SKUSummary:
    """Per-SKU production summary."""

    sku: str
    target: int
    actual: int
    defects: int
    quality_rate: float

    @property
    def good(self) -> int:
        return self.actual - self.defects

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sku": self.sku,
            "target": self.target,
            "actual": self.actual,
            "defects": self.defects,
            "quality_rate_pct": self.quality_rate,
        }


@dataclass(frozen=True)
class CapacityBucket:
    """Hourly capacity against actual output."""

    hour_ts: datetime
    capacity: int
    actual: int

    @property
    def utilization_pct(self) -> float:
        return round_half_away(self.actual / self.capacity * 100, 1) if self.capacity else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hour_ts": _iso(self.hour_ts),
            "timestamp_ms": _ms(self.hour_ts),
            "capacity": self.capacity,
            "actual": self.actual,
            "utilization_pct": self.utilization_pct,
        }


@dataclass(frozen=True)
class OEEMetrics:
    """OEE factors in percent; ``oee`` is always derived from the other three."""

    availability: float
    performance: float
    quality: float
    oee: float

    @classmethod
    def from_factors(cls, availability: float, performance: float, quality: float) -> "OEEMetrics":
        return cls(
            availability=availability,
            performance=performance,
            quality=quality,
            oee=derive_oee(availability, performance, quality),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "availability_pct": self.availability,
            "performance_pct": self.performance,
            "quality_pct": self.quality,
            "oee_pct": self.oee,
        }


@dataclass(frozen=True)
class Snapshot:
    """One complete dataset anchored at ``generated_at``."""

    generated_at: datetime
    machine_metrics: Tuple[MachineMetricSample, ...]
    fg_by_hour: FGSeries
    sku_summary: Tuple[SKUSummary, ...]
    capacity_vs_actual: Tuple[CapacityBucket, ...]
    oee: OEEMetrics
    plant: Optional[str] = None
    machine: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generated_at": _iso(self.generated_at),
            "plant": self.plant,
            "machine": self.machine,
            "oee": self.oee.to_dict(),
            "machine_metrics": [m.to_dict() for m in self.machine_metrics],
            "fg_by_hour": [b.to_dict() for b in self.fg_by_hour],
            "sku_summary": [s.to_dict() for s in self.sku_summary],
            "capacity_vs_actual": [c.to_dict() for c in self.capacity_vs_actual],
        }


# =============================================================================
# Snapshot generator
# =============================================================================


class SnapshotGenerator:
    """Generates snapshots from a validated ``GeneratorConfig``."""

    def __init__(self, config: Optional[GeneratorConfig] = None):
        self.config = (config or GeneratorConfig()).validate()

    def hour_buckets(self, now: datetime) -> List[datetime]:
        """Hourly timestamps, oldest first, ending at ``now``."""
        cfg = self.config
        step = timedelta(seconds=cfg.bucket_spacing_s)
        return [now - (cfg.bucket_count - 1 - i) * step for i in range(cfg.bucket_count)]

    def generate_machine_metrics(
        self, now: datetime, rng: RandomSource
    ) -> Tuple[MachineMetricSample, ...]:
        cfg = self.config
        step = timedelta(seconds=cfg.sample_spacing_s)
        return tuple(
            MachineMetricSample(
                timestamp=now - (cfg.sample_count - 1 - i) * step,
                runtime_s=rng.draw(cfg.runtime_s),
                net_runtime_s=rng.draw(cfg.net_runtime_s),
                fg_count=rng.draw_int(cfg.fg_count),
                waiting_s=rng.draw(cfg.waiting_s),
            )
            for i in range(cfg.sample_count)
        )

    def generate_fg_by_hour(self, now: datetime, rng: RandomSource) -> FGSeries:
        cfg = self.config
        return tuple(
            HourlyFGBucket(
                hour_ts=hour_ts,
                counts={sku: rng.draw_int(cfg.fg_per_hour) for sku in cfg.skus},
            )
            for hour_ts in self.hour_buckets(now)
        )

    def generate_sku_summary(self, rng: RandomSource) -> Tuple[SKUSummary, ...]:
        cfg = self.config
        summary = []
        for sku in cfg.skus:
            target = rng.draw_int(cfg.sku_target)
            actual = rng.int_between(
                target * cfg.sku_actual_ratio.low, target * cfg.sku_actual_ratio.high
            )
            defects = rng.int_between(
                actual * cfg.sku_defect_ratio.low, actual * cfg.sku_defect_ratio.high
            )
            summary.append(
                SKUSummary(
                    sku=sku,
                    target=target,
                    actual=actual,
                    defects=defects,
                    quality_rate=quality_rate(actual, defects),
                )
            )
        return tuple(summary)

    def generate_capacity(self, now: datetime, rng: RandomSource) -> Tuple[CapacityBucket, ...]:
        cfg = self.config
        buckets = []
        for hour_ts in self.hour_buckets(now):
            capacity = rng.draw_int(cfg.capacity)
            actual = rng.int_between(
                capacity * cfg.capacity_actual_ratio.low,
                capacity * cfg.capacity_actual_ratio.high,
            )
            buckets.append(CapacityBucket(hour_ts=hour_ts, capacity=capacity, actual=actual))
        return tuple(buckets)

    def generate_oee(self, rng: RandomSource) -> OEEMetrics:
        cfg = self.config
        return OEEMetrics.from_factors(
            availability=round_half_away(rng.draw(cfg.availability), 1),
            performance=round_half_away(rng.draw(cfg.performance), 1),
            quality=round_half_away(rng.draw(cfg.quality), 1),
        )

    def generate(
        self,
        now: datetime,
        rng: RandomSource,
        plant: Optional[str] = None,
        machine: Optional[str] = None,
    ) -> Snapshot:
        """Generate a complete snapshot anchored at ``now``."""
        now = _utc(now)
        snapshot = Snapshot(
            generated_at=now,
            machine_metrics=self.generate_machine_metrics(now, rng),
            fg_by_hour=self.generate_fg_by_hour(now, rng),
            sku_summary=self.generate_sku_summary(rng),
            capacity_vs_actual=self.generate_capacity(now, rng),
            oee=self.generate_oee(rng),
            plant=plant,
            machine=machine,
        )
        logger.debug(
            f"Generated snapshot at {_iso(now)} for {plant or '-'}/{machine or '-'} "
            f"(OEE {snapshot.oee.oee}%)"
        )
        return snapshot


def generate_snapshot(
    now: datetime,
    rng: RandomSource,
    config: Optional[GeneratorConfig] = None,
    plant: Optional[str] = None,
    machine: Optional[str] = None,
) -> Snapshot:
    """Generate one snapshot; see ``SnapshotGenerator.generate``."""
    return SnapshotGenerator(config).generate(now, rng, plant=plant, machine=machine)
