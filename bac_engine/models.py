"""Core immutable data models: profile, drink record, estimate, level and events."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import FrozenSet, Optional

from bac_engine import config


class Gender(str, Enum):
    """Biological sex for Widmark distribution purposes."""

    MALE = "male"
    FEMALE = "female"
    OTHER = "other"

    @property
    def body_water_constant(self) -> float:
        if self is Gender.MALE:
            return config.BODY_WATER_MALE
        if self is Gender.FEMALE:
            return config.BODY_WATER_FEMALE
        return config.BODY_WATER_OTHER


class BACLevel(str, Enum):
    """Level category used to drive safety notifications."""

    SAFE = "safe"
    CAUTION = "caution"
    WARNING = "warning"
    DANGER = "danger"


@dataclass(frozen=True)
class Profile:
    """Per-calculation view of the drinker. Edits produce a new Profile."""

    weight_kg: float
    gender: Gender = Gender.MALE
    body_water_constant: Optional[float] = None  # derived from gender when omitted

    def __post_init__(self):
        if self.body_water_constant is None:
            object.__setattr__(self, "body_water_constant", Gender(self.gender).body_water_constant)

    @classmethod
    def from_pounds(cls, weight_lb: float, gender: Gender = Gender.MALE) -> "Profile":
        return cls(weight_kg=weight_lb * 0.45359237, gender=gender)


@dataclass(frozen=True)
class DrinkRecord:
    id: str
    alcohol_grams: float
    timestamp: datetime


@dataclass(frozen=True)
class BACEstimate:
    """
    A BAC snapshot as of computed_at.

    Built wholesale by the engine on every calculation and never mutated.
    sober_at >= legal_at >= computed_at; a zero bac has no contributing
    drinks and all three instants equal.
    """

    bac: float
    computed_at: datetime
    sober_at: datetime
    legal_at: datetime
    contributing_drink_ids: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def zero(cls, now: datetime) -> "BACEstimate":
        return cls(bac=0.0, computed_at=now, sober_at=now, legal_at=now, contributing_drink_ids=frozenset())

    def minutes_until_legal(self, now: datetime) -> int:
        return _minutes_between(now, self.legal_at)

    def minutes_until_sober(self, now: datetime) -> int:
        return _minutes_between(now, self.sober_at)

    def to_dict(self) -> dict:
        return {
            "bac": self.bac,
            "computed_at": self.computed_at.isoformat(),
            "sober_at": self.sober_at.isoformat(),
            "legal_at": self.legal_at.isoformat(),
            "contributing_drink_ids": sorted(self.contributing_drink_ids),
        }


@dataclass(frozen=True)
class ThresholdCrossed:
    """Emitted when a recomputation moves the estimate into another level."""

    old_level: BACLevel
    new_level: BACLevel
    estimate: BACEstimate
    profile_id: str = ""

    @property
    def rising(self) -> bool:
        order = list(BACLevel)
        return order.index(self.new_level) > order.index(self.old_level)


def _minutes_between(now: datetime, then: datetime) -> int:
    difference = then - now
    if difference < timedelta(0):
        return 0
    return int(difference.total_seconds() // 60)
