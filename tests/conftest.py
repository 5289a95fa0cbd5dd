"""Shared fixtures. Run from project root: pytest tests/ -v"""

from datetime import datetime, timedelta, timezone

import pytest

from bac_engine.models import DrinkRecord, Gender, Profile

T0 = datetime(2025, 3, 14, 22, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, start=T0):
        self.current = start

    def now(self):
        return self.current

    def advance(self, **kwargs):
        self.current = self.current + timedelta(**kwargs)
        return self.current


def drink(drink_id, grams=14.0, at=T0, hours_ago=0.0):
    return DrinkRecord(id=drink_id, alcohol_grams=grams, timestamp=at - timedelta(hours=hours_ago))


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def male():
    # 160 lb male
    return Profile(weight_kg=72.6, gender=Gender.MALE)


@pytest.fixture
def female():
    return Profile(weight_kg=72.6, gender=Gender.FEMALE)
