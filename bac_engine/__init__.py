"""
BAC estimation engine: Widmark decay, current estimate, what-if prediction,
and a per-profile coordinator that keeps one authoritative estimate.
Use from project root: python -m bac_engine.main
"""

from bac_engine.calculations import (
    bac_curve,
    bac_level,
    calculate,
    possible_effects,
    predict,
)
from bac_engine.config import DEFAULT_CONFIG, EngineConfig
from bac_engine.coordinator import CoordinatorRegistry, EstimateCoordinator
from bac_engine.decay import remaining_alcohol_grams
from bac_engine.drinks import make_drink
from bac_engine.errors import (
    DataIntegrityError,
    DataUnavailable,
    DuplicateDrink,
    InvalidPrediction,
    InvalidTimeOrdering,
)
from bac_engine.ledger import DrinkLedger
from bac_engine.models import BACEstimate, BACLevel, DrinkRecord, Gender, Profile, ThresholdCrossed

__all__ = [
    "BACEstimate",
    "BACLevel",
    "CoordinatorRegistry",
    "DEFAULT_CONFIG",
    "DataIntegrityError",
    "DataUnavailable",
    "DrinkLedger",
    "DuplicateDrink",
    "DrinkRecord",
    "EngineConfig",
    "EstimateCoordinator",
    "Gender",
    "InvalidPrediction",
    "InvalidTimeOrdering",
    "Profile",
    "ThresholdCrossed",
    "bac_curve",
    "bac_level",
    "calculate",
    "make_drink",
    "possible_effects",
    "predict",
    "remaining_alcohol_grams",
]
