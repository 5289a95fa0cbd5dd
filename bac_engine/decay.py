"""Widmark-style linear alcohol elimination, expressed in grams.

Model:
- Distribution: BAC = [grams / (body_weight_g * r)] * 100
- Elimination: metabolism_rate BAC percentage points per hour, converted to
  grams/hour with the same body_weight_g * r scaling so the two directions agree.
"""

from datetime import datetime

from bac_engine.config import DEFAULT_CONFIG, EngineConfig
from bac_engine.errors import InvalidTimeOrdering
from bac_engine.models import DrinkRecord, Profile

SECONDS_PER_HOUR = 3600.0


def body_weight_grams(profile: Profile) -> float:
    return profile.weight_kg * 1000.0


def elimination_grams_per_hour(profile: Profile, config: EngineConfig = DEFAULT_CONFIG) -> float:
    """Grams of ethanol this profile eliminates per hour."""
    return config.metabolism_rate_per_hour * body_weight_grams(profile) * profile.body_water_constant / 100.0


def elapsed_hours(drink: DrinkRecord, at_time: datetime) -> float:
    if at_time < drink.timestamp:
        raise InvalidTimeOrdering(
            f"drink {drink.id!r} logged at {drink.timestamp.isoformat()} is after query time {at_time.isoformat()}"
        )
    return (at_time - drink.timestamp).total_seconds() / SECONDS_PER_HOUR


def remaining_alcohol_grams(
    drink: DrinkRecord,
    profile: Profile,
    at_time: datetime,
    config: EngineConfig = DEFAULT_CONFIG,
) -> float:
    """Un-metabolized grams of a single drink at at_time (never negative)."""
    hours = elapsed_hours(drink, at_time)
    eliminated = elimination_grams_per_hour(profile, config) * hours
    return max(0.0, drink.alcohol_grams - eliminated)


def is_contributing(
    drink: DrinkRecord,
    profile: Profile,
    at_time: datetime,
    config: EngineConfig = DEFAULT_CONFIG,
) -> bool:
    return remaining_alcohol_grams(drink, profile, at_time, config) > 0
