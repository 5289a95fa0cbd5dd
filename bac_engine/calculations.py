"""BAC estimation: current estimate, what-if prediction, levels and effects.

All functions are pure. Grams are summed in double precision and the final
BAC is rounded half-up to 3 decimals only at the last step.
"""

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, Tuple

from bac_engine import decay
from bac_engine.config import DEFAULT_CONFIG, EngineConfig
from bac_engine.errors import DataIntegrityError, InvalidPrediction
from bac_engine.models import BACEstimate, BACLevel, DrinkRecord, Profile

BAC_DECIMALS = Decimal("0.001")


def _round_bac(raw: float) -> float:
    return float(Decimal(repr(raw)).quantize(BAC_DECIMALS, rounding=ROUND_HALF_UP))


def _validate(profile: Profile, drinks: List[DrinkRecord], now: datetime) -> None:
    if not profile.weight_kg > 0:
        raise DataIntegrityError(f"weight must be > 0, got {profile.weight_kg}")
    if not profile.body_water_constant > 0:
        raise DataIntegrityError(f"body water constant must be > 0, got {profile.body_water_constant}")
    for d in drinks:
        if d.alcohol_grams < 0:
            raise DataIntegrityError(f"drink {d.id!r} has negative alcohol grams ({d.alcohol_grams})")
        if d.timestamp > now:
            raise DataIntegrityError(f"drink {d.id!r} is dated after now ({d.timestamp.isoformat()})")


def zero_estimate(now: datetime) -> BACEstimate:
    return BACEstimate.zero(now)


def grams_to_bac(grams: float, profile: Profile) -> float:
    """Unrounded BAC (%) for grams of ethanol distributed in this profile."""
    return grams / (decay.body_weight_grams(profile) * profile.body_water_constant) * 100.0


def calculate(
    profile: Profile,
    drinks: Iterable[DrinkRecord],
    now: datetime,
    config: EngineConfig = DEFAULT_CONFIG,
) -> BACEstimate:
    """Estimate BAC as of now from every drink still being metabolized."""
    # Canonical order makes the float sum independent of how callers ordered drinks.
    ordered = sorted(drinks, key=lambda d: (d.timestamp, d.id))
    if not ordered:
        return zero_estimate(now)
    _validate(profile, ordered, now)

    total_grams = 0.0
    contributing = []
    for d in ordered:
        remaining = decay.remaining_alcohol_grams(d, profile, now, config)
        if remaining > 0:
            total_grams += remaining
            contributing.append(d.id)

    if total_grams <= 0:
        return zero_estimate(now)

    bac = _round_bac(grams_to_bac(total_grams, profile))
    if bac <= 0:
        return zero_estimate(now)

    rate = config.metabolism_rate_per_hour
    sober_at = now + timedelta(hours=bac / rate)
    if bac > config.legal_level:
        legal_at = now + timedelta(hours=(bac - config.legal_level) / rate)
    else:
        legal_at = now

    return BACEstimate(
        bac=bac,
        computed_at=now,
        sober_at=sober_at,
        legal_at=legal_at,
        contributing_drink_ids=frozenset(contributing),
    )


def predict(
    profile: Profile,
    drinks: Iterable[DrinkRecord],
    hypothetical: DrinkRecord,
    now: datetime,
    config: EngineConfig = DEFAULT_CONFIG,
) -> BACEstimate:
    """What-if estimate with one more drink; the given drinks are not modified."""
    if not hypothetical.alcohol_grams > 0:
        raise InvalidPrediction(f"hypothetical drink must contain alcohol, got {hypothetical.alcohol_grams} g")
    current = list(drinks)
    if any(d.id == hypothetical.id for d in current):
        raise InvalidPrediction(f"drink {hypothetical.id!r} is already logged")
    return calculate(profile, current + [hypothetical], now, config)


def bac_level(bac: float, config: EngineConfig = DEFAULT_CONFIG) -> BACLevel:
    if bac >= config.high_level:
        return BACLevel.DANGER
    if bac >= config.legal_level:
        return BACLevel.WARNING
    if bac >= config.caution_level:
        return BACLevel.CAUTION
    return BACLevel.SAFE


# (lower bound, effects) from highest to lowest band.
EFFECT_BANDS: List[Tuple[float, List[str]]] = [
    (0.30, [
        "Severe impairment of all mental and physical functions",
        "Possible loss of consciousness",
        "Risk of alcohol poisoning",
        "Risk of life-threatening suppression of vital functions",
    ]),
    (0.20, [
        "Disorientation, confusion, dizziness",
        "Exaggerated emotional states",
        "Impaired sensation",
        "Possible nausea and vomiting",
        "Blackouts likely",
    ]),
    (0.15, [
        "Significant impairment of physical control",
        "Blurred vision",
        "Major impairment of balance",
        "Slurred speech",
        "Judgment and perception severely impaired",
    ]),
    (0.08, [
        "Legally intoxicated in most states",
        "Impaired coordination and balance",
        "Reduced reaction time",
        "Reduced ability to detect danger",
        "Judgment and self-control impaired",
    ]),
    (0.05, [
        "Reduced inhibitions",
        "Affected judgment",
        "Lowered alertness",
        "Impaired coordination begins",
        "Difficulty steering",
    ]),
    (0.02, [
        "Some loss of judgment",
        "Relaxation",
        "Slight body warmth",
        "Altered mood",
        "Mild impairment of reasoning and memory",
    ]),
]

BASELINE_EFFECTS = [
    "Little to no impairment for most people",
    "Subtle effects possible",
]


def possible_effects(bac: float) -> List[str]:
    """Descriptive effects for a BAC, for display only."""
    for lower, effects in EFFECT_BANDS:
        if bac >= lower:
            return list(effects)
    return list(BASELINE_EFFECTS)


def bac_curve(
    profile: Profile,
    drinks: Iterable[DrinkRecord],
    start: datetime,
    end: Optional[datetime] = None,
    step: timedelta = timedelta(minutes=15),
    config: EngineConfig = DEFAULT_CONFIG,
) -> List[Tuple[datetime, float]]:
    """Return (time, bac_percent) pairs for graphing.

    Drinks logged after a sample time do not count at that sample. When end
    is omitted the curve runs until the last drink has been eliminated.
    """
    if step <= timedelta(0):
        raise ValueError("step must be > 0")
    logged = sorted(drinks, key=lambda d: (d.timestamp, d.id))
    if not logged:
        return []
    _validate(profile, [], start)

    if end is None:
        last = logged[-1].timestamp
        # Upper bound: everything drunk at the last drink's time.
        total = sum(max(0.0, d.alcohol_grams) for d in logged)
        end = last + timedelta(hours=grams_to_bac(total, profile) / config.metabolism_rate_per_hour)
    end = max(end, start)

    points: List[Tuple[datetime, float]] = []
    t = start
    while t <= end:
        so_far = [d for d in logged if d.timestamp <= t]
        points.append((t, calculate(profile, so_far, t, config).bac))
        t += step
    return points
