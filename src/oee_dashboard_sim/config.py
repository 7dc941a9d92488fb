"""Configuration management for the OEE dashboard simulator."""

import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


class InvalidRangeError(ValueError):
    """A configured bound is malformed (e.g. high < low)."""

    def __init__(self, name: str, low: Any, high: Any, reason: str = "high < low"):
        self.name = name
        self.low = low
        self.high = high
        super().__init__(f"Invalid range for '{name}': [{low}, {high}] ({reason})")


@dataclass(frozen=True)
class Range:
    """Closed numeric interval [low, high]."""

    low: float
    high: float

    def validate(self, name: str) -> "Range":
        for bound in (self.low, self.high):
            if isinstance(bound, bool) or not isinstance(bound, (int, float)):
                raise InvalidRangeError(name, self.low, self.high, "bounds must be numbers")
        if not (math.isfinite(self.low) and math.isfinite(self.high)):
            raise InvalidRangeError(name, self.low, self.high, "bounds must be finite")
        if self.high < self.low:
            raise InvalidRangeError(name, self.low, self.high)
        return self

    def to_list(self) -> List[float]:
        return [self.low, self.high]

    @classmethod
    def from_value(cls, name: str, value: Any) -> "Range":
        """Build a range from a two-element list (YAML form)."""
        if isinstance(value, Range):
            return value
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            raise InvalidRangeError(name, value, None, "expected [low, high]")
        low, high = value
        for bound in (low, high):
            if isinstance(bound, bool) or not isinstance(bound, (int, float)):
                raise InvalidRangeError(name, low, high, "bounds must be numbers")
        return cls(low, high)


@dataclass
class GeneratorConfig:
    """Snapshot generator bounds."""

    # Machine metrics (1-minute samples)
    sample_count: int = 60
    sample_spacing_s: int = 60
    runtime_s: Range = Range(5, 55)
    net_runtime_s: Range = Range(5, 50)
    waiting_s: Range = Range(0, 10)
    fg_count: Range = Range(0, 10)

    # Hourly buckets (FG by SKU, capacity vs actual)
    bucket_count: int = 8
    bucket_spacing_s: int = 3600
    skus: List[str] = field(default_factory=lambda: ["SKU-A", "SKU-B", "SKU-C", "SKU-D"])
    fg_per_hour: Range = Range(50, 300)

    # SKU summary
    sku_target: Range = Range(500, 1000)
    sku_actual_ratio: Range = Range(0.7, 1.0)  # of target
    sku_defect_ratio: Range = Range(0.05, 0.15)  # of actual

    # Capacity vs actual
    capacity: Range = Range(300, 500)
    capacity_actual_ratio: Range = Range(0.7, 1.0)  # of capacity

    # OEE factors (percent)
    availability: Range = Range(80, 100)
    performance: Range = Range(75, 95)
    quality: Range = Range(85, 100)

    RANGE_FIELDS = (
        "runtime_s",
        "net_runtime_s",
        "waiting_s",
        "fg_count",
        "fg_per_hour",
        "sku_target",
        "sku_actual_ratio",
        "sku_defect_ratio",
        "capacity",
        "capacity_actual_ratio",
        "availability",
        "performance",
        "quality",
    )
    RATIO_FIELDS = ("sku_actual_ratio", "sku_defect_ratio", "capacity_actual_ratio")
    NON_NEGATIVE_FIELDS = (
        "runtime_s",
        "net_runtime_s",
        "waiting_s",
        "fg_count",
        "fg_per_hour",
        "sku_target",
        "capacity",
    )
    PERCENT_FIELDS = ("availability", "performance", "quality")

    def validate(self) -> "GeneratorConfig":
        """Fail fast on malformed bounds."""
        for name in self.RANGE_FIELDS:
            getattr(self, name).validate(name)

        for name in self.RATIO_FIELDS:
            r = getattr(self, name)
            if r.low < 0 or r.high > 1:
                raise InvalidRangeError(name, r.low, r.high, "ratio must lie within [0, 1]")

        for name in self.NON_NEGATIVE_FIELDS:
            r = getattr(self, name)
            if r.low < 0:
                raise InvalidRangeError(name, r.low, r.high, "must be non-negative")

        for name in self.PERCENT_FIELDS:
            r = getattr(self, name)
            if r.low < 0 or r.high > 100:
                raise InvalidRangeError(name, r.low, r.high, "percentage must lie within [0, 100]")

        for name in ("sample_count", "sample_spacing_s", "bucket_count", "bucket_spacing_s"):
            value = getattr(self, name)
            if value < 1:
                raise InvalidRangeError(name, value, None, "must be positive")

        if not self.skus:
            raise ValueError("At least one SKU must be configured")
        if len(set(self.skus)) != len(self.skus):
            raise ValueError(f"Duplicate SKU identifiers: {self.skus}")

        return self


@dataclass
class LiveConfig:
    """Live FG series updater parameters."""

    interval_ms: int = 10_000
    increment: Range = Range(0, 3)

    def validate(self) -> "LiveConfig":
        if self.interval_ms <= 0:
            raise InvalidRangeError("interval_ms", self.interval_ms, None, "must be positive")
        self.increment.validate("increment")
        if self.increment.low < 0:
            raise InvalidRangeError(
                "increment", self.increment.low, self.increment.high, "must be non-negative"
            )
        return self


@dataclass
class DashboardConfig:
    """Filter options offered by the dashboard shell."""

    plants: List[str] = field(default_factory=lambda: ["Plant A", "Plant B", "Plant C"])
    machines: List[str] = field(
        default_factory=lambda: ["Machine 1", "Machine 2", "Machine 3", "Machine 4"]
    )
    default_plant: str = "Plant A"
    default_machine: str = "Machine 1"


@dataclass
class Config:
    """Main configuration container."""

    generator: GeneratorConfig = field(default_factory=GeneratorConfig)
    live: LiveConfig = field(default_factory=LiveConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    random_seed: Optional[int] = None

    def validate(self) -> "Config":
        self.generator.validate()
        self.live.validate()
        return self

    @classmethod
    def default(cls) -> "Config":
        """Create default configuration."""
        return cls()

    @classmethod
    def from_yaml(cls, config_path: Path) -> "Config":
        """Load configuration from YAML file."""
        if not config_path.exists():
            return cls.default()

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls._from_dict(data).validate()

    @classmethod
    def from_env(cls, base: Optional["Config"] = None) -> "Config":
        """Apply environment variable overrides."""
        config = base or cls.default()

        seed = os.getenv("OEE_SIM_SEED")
        if seed:
            config.random_seed = int(seed)

        interval = os.getenv("OEE_SIM_LIVE_INTERVAL_MS")
        if interval:
            config.live.interval_ms = int(interval)

        config.dashboard.default_plant = os.getenv("OEE_SIM_PLANT", config.dashboard.default_plant)
        config.dashboard.default_machine = os.getenv(
            "OEE_SIM_MACHINE", config.dashboard.default_machine
        )

        return config.validate()

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary."""
        config = cls.default()

        if "generator" in data:
            gen_data = data["generator"] or {}
            gen = config.generator
            for name in GeneratorConfig.RANGE_FIELDS:
                if name in gen_data:
                    setattr(gen, name, Range.from_value(name, gen_data[name]))
            for name in ("sample_count", "sample_spacing_s", "bucket_count", "bucket_spacing_s"):
                if name in gen_data:
                    setattr(gen, name, int(gen_data[name]))
            if "skus" in gen_data:
                gen.skus = [str(s) for s in gen_data["skus"]]

        if "live" in data:
            live_data = data["live"] or {}
            config.live = LiveConfig(
                interval_ms=int(live_data.get("interval_ms", config.live.interval_ms)),
                increment=Range.from_value(
                    "increment", live_data.get("increment", config.live.increment)
                ),
            )

        if "dashboard" in data:
            dash_data = data["dashboard"] or {}
            config.dashboard = DashboardConfig(
                plants=dash_data.get("plants", config.dashboard.plants),
                machines=dash_data.get("machines", config.dashboard.machines),
                default_plant=dash_data.get("default_plant", config.dashboard.default_plant),
                default_machine=dash_data.get("default_machine", config.dashboard.default_machine),
            )

        if "random_seed" in data:
            config.random_seed = data["random_seed"]

        return config

    def to_yaml(self, path: Path) -> None:
        """Save configuration to YAML file."""
        gen = self.generator
        generator_data: Dict[str, Any] = {
            "sample_count": gen.sample_count,
            "sample_spacing_s": gen.sample_spacing_s,
            "bucket_count": gen.bucket_count,
            "bucket_spacing_s": gen.bucket_spacing_s,
            "skus": list(gen.skus),
        }
        for name in GeneratorConfig.RANGE_FIELDS:
            generator_data[name] = getattr(gen, name).to_list()

        data = {
            "generator": generator_data,
            "live": {
                "interval_ms": self.live.interval_ms,
                "increment": self.live.increment.to_list(),
            },
            "dashboard": {
                "plants": list(self.dashboard.plants),
                "machines": list(self.dashboard.machines),
                "default_plant": self.dashboard.default_plant,
                "default_machine": self.dashboard.default_machine,
            },
            "random_seed": self.random_seed,
        }

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
