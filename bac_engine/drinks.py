"""Drink definitions and alcohol content helpers.

The engine only needs grams and a timestamp; these helpers derive grams
upstream from volume and ABV. US standard drink = 14 g ethanol.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from bac_engine.config import ETHANOL_DENSITY, GRAMS_PER_STANDARD_DRINK
from bac_engine.models import DrinkRecord

ML_PER_FL_OZ = 29.5735


@dataclass
class DrinkType:
    """A drink category with default ABV and serving size."""

    key: str
    name: str
    abv: float  # e.g. 0.05 for 5%
    default_oz: float  # default serving size in fl oz

    @property
    def grams_per_serving(self) -> float:
        return grams_from_volume_abv(self.default_oz, self.abv)


DRINK_TYPES = {
    "beer": DrinkType("beer", "Beer (5%)", 0.05, 12.0),
    "wine": DrinkType("wine", "Wine (12%)", 0.12, 5.0),
    "liquor": DrinkType("liquor", "Liquor (40%)", 0.40, 1.5),
    "cocktail": DrinkType("cocktail", "Cocktail (15%)", 0.15, 8.0),
    "custom": DrinkType("custom", "Custom drink (5%)", 0.05, 8.0),
}


def grams_from_volume_abv(volume_oz: float, abv: float) -> float:
    """Convert fluid ounces and ABV (0 to 1) to grams of ethanol."""
    ml = volume_oz * ML_PER_FL_OZ
    return ml * abv * ETHANOL_DENSITY


def grams_from_drink(
    drink_key: str,
    volume_oz: Optional[float] = None,
    count: float = 1.0,
) -> float:
    """Return grams of ethanol for a drink type; unknown keys count as standard drinks."""
    dt = DRINK_TYPES.get(drink_key)
    if dt is None:
        return count * GRAMS_PER_STANDARD_DRINK
    if volume_oz is not None:
        return count * grams_from_volume_abv(volume_oz, dt.abv)
    return count * dt.grams_per_serving


def make_drink(
    timestamp: datetime,
    drink_key: str = "beer",
    volume_oz: Optional[float] = None,
    count: float = 1.0,
    drink_id: Optional[str] = None,
) -> DrinkRecord:
    return DrinkRecord(
        id=drink_id or uuid.uuid4().hex,
        alcohol_grams=grams_from_drink(drink_key, volume_oz=volume_oz, count=count),
        timestamp=timestamp,
    )


def standard_drinks(drinks: Iterable[DrinkRecord]) -> float:
    """Total standard drinks, rounded to one decimal."""
    total = sum(d.alcohol_grams for d in drinks) / GRAMS_PER_STANDARD_DRINK
    return round(total, 1)


def list_drink_types():
    """Return list of (key, name) for UI dropdowns."""
    return [(d.key, d.name) for d in DRINK_TYPES.values()]
