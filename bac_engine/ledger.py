"""
Drink ledger: the ordered, timestamped drink log for one profile.
Storage only; all BAC math lives in calculations/decay.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from bac_engine.drinks import standard_drinks
from bac_engine.models import DrinkRecord
from bac_engine.stores import DrinkStore, InMemoryDrinkStore

# Range used when callers ask for "everything".
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class DrinkLedger:
    def __init__(self, profile_id: str, store: Optional[DrinkStore] = None):
        self.profile_id = profile_id
        self.store = store if store is not None else InMemoryDrinkStore()

    def add(self, drink: DrinkRecord) -> DrinkRecord:
        self.store.add(self.profile_id, drink)
        return drink

    def remove(self, drink_id: str) -> bool:
        return self.store.remove(self.profile_id, drink_id)

    def between(self, start: datetime, end: datetime) -> List[DrinkRecord]:
        """Drinks with start <= timestamp <= end, oldest first."""
        if end < start:
            return []
        return self.store.list(self.profile_id, start, end)

    def recent(self, now: datetime, lookback_hours: float) -> List[DrinkRecord]:
        return self.between(now - timedelta(hours=lookback_hours), now)

    def all(self, now: datetime) -> List[DrinkRecord]:
        return self.between(_EPOCH, now)

    def clear(self, now: datetime) -> int:
        removed = 0
        for d in self.all(now):
            if self.remove(d.id):
                removed += 1
        return removed

    def daily_stats(self, day_start: datetime) -> dict:
        """Drink count and standard drinks for the 24 hours starting at day_start."""
        day = self.between(day_start, day_start + timedelta(days=1) - timedelta(microseconds=1))
        return {"count": len(day), "standard_drinks": standard_drinks(day)}
