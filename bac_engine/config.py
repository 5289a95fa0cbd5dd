"""
Engine configuration.
Defaults below; every option can be overridden through environment variables
with EngineConfig.from_env().
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

# --- Thresholds (BAC percentage units) ---
CAUTION_LEVEL = 0.05
LEGAL_LEVEL = 0.08  # legal limit in most US states
HIGH_LEVEL = 0.15

# --- Decay ---
# Average BAC percentage points eliminated per hour.
METABOLISM_RATE_PER_HOUR = 0.015
# Ethanol density (g/mL) for volume x ABV -> grams.
ETHANOL_DENSITY = 0.789
# US standard drink in grams of pure ethanol.
GRAMS_PER_STANDARD_DRINK = 14.0

# --- Coordinator ---
REFRESH_INTERVAL_SECONDS = 900  # 15 min
LOOKBACK_HOURS = 24.0

# Widmark r by gender; "other" is the mean of male and female.
BODY_WATER_MALE = 0.68
BODY_WATER_FEMALE = 0.55
BODY_WATER_OTHER = 0.615

ENV_PREFIX = "BAC_"


@dataclass(frozen=True)
class EngineConfig:
    """Constants used by the decay model, engine and coordinator."""

    metabolism_rate_per_hour: float = METABOLISM_RATE_PER_HOUR
    caution_level: float = CAUTION_LEVEL
    legal_level: float = LEGAL_LEVEL
    high_level: float = HIGH_LEVEL
    ethanol_density: float = ETHANOL_DENSITY
    grams_per_standard_drink: float = GRAMS_PER_STANDARD_DRINK
    refresh_interval_seconds: int = REFRESH_INTERVAL_SECONDS
    lookback_hours: float = LOOKBACK_HOURS

    def __post_init__(self):
        if self.metabolism_rate_per_hour <= 0:
            raise ValueError("metabolism_rate_per_hour must be > 0")
        if not (0 < self.caution_level < self.legal_level < self.high_level):
            raise ValueError("thresholds must satisfy 0 < caution < legal < high")
        if self.refresh_interval_seconds <= 0:
            raise ValueError("refresh_interval_seconds must be > 0")
        if self.lookback_hours <= 0:
            raise ValueError("lookback_hours must be > 0")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """Read BAC_METABOLISM_RATE_PER_HOUR, BAC_LEGAL_LEVEL, ... falling back to the defaults."""
        env = os.environ if environ is None else environ

        def _get(name: str, default, cast=float):
            raw = env.get(ENV_PREFIX + name)
            if raw is None or raw == "":
                return default
            try:
                return cast(raw)
            except ValueError:
                raise ValueError(f"{ENV_PREFIX + name} must be a number, got {raw!r}")

        return cls(
            metabolism_rate_per_hour=_get("METABOLISM_RATE_PER_HOUR", METABOLISM_RATE_PER_HOUR),
            caution_level=_get("CAUTION_LEVEL", CAUTION_LEVEL),
            legal_level=_get("LEGAL_LEVEL", LEGAL_LEVEL),
            high_level=_get("HIGH_LEVEL", HIGH_LEVEL),
            refresh_interval_seconds=_get("REFRESH_INTERVAL_SECONDS", REFRESH_INTERVAL_SECONDS, int),
            lookback_hours=_get("LOOKBACK_HOURS", LOOKBACK_HOURS),
        )


DEFAULT_CONFIG = EngineConfig()
