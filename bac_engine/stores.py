"""Store and clock interfaces the engine consumes, with in-memory and SQLite implementations."""

import sqlite3
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, runtime_checkable

from bac_engine.errors import DuplicateDrink, StorageError
from bac_engine.models import DrinkRecord, Gender, Profile


@runtime_checkable
class ProfileStore(Protocol):
    def get(self, profile_id: str) -> Optional[Profile]:
        """Return the profile, or None when it does not exist."""
        ...


@runtime_checkable
class DrinkStore(Protocol):
    def list(self, profile_id: str, start: datetime, end: datetime) -> List[DrinkRecord]:
        """Drinks with start <= timestamp <= end, oldest first."""
        ...

    def add(self, profile_id: str, drink: DrinkRecord) -> None:
        ...

    def remove(self, profile_id: str, drink_id: str) -> bool:
        """Remove a drink by id. Returns False when nothing was removed."""
        ...


@runtime_checkable
class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class InMemoryProfileStore:
    def __init__(self, profiles: Optional[Dict[str, Profile]] = None):
        self._profiles = dict(profiles or {})
        self._lock = threading.Lock()

    def get(self, profile_id: str) -> Optional[Profile]:
        with self._lock:
            return self._profiles.get(profile_id)

    def put(self, profile_id: str, profile: Profile) -> None:
        with self._lock:
            self._profiles[profile_id] = profile

    def delete(self, profile_id: str) -> bool:
        with self._lock:
            return self._profiles.pop(profile_id, None) is not None


class InMemoryDrinkStore:
    def __init__(self):
        self._drinks: Dict[str, List[DrinkRecord]] = {}
        self._lock = threading.Lock()

    def list(self, profile_id: str, start: datetime, end: datetime) -> List[DrinkRecord]:
        with self._lock:
            rows = [d for d in self._drinks.get(profile_id, []) if start <= d.timestamp <= end]
        return sorted(rows, key=lambda d: (d.timestamp, d.id))

    def add(self, profile_id: str, drink: DrinkRecord) -> None:
        with self._lock:
            rows = self._drinks.setdefault(profile_id, [])
            if any(d.id == drink.id for d in rows):
                raise DuplicateDrink(f"drink {drink.id!r} already exists")
            rows.append(drink)

    def remove(self, profile_id: str, drink_id: str) -> bool:
        with self._lock:
            rows = self._drinks.get(profile_id, [])
            kept = [d for d in rows if d.id != drink_id]
            self._drinks[profile_id] = kept
            return len(kept) != len(rows)


def init_db(db_path: str) -> None:
    try:
        with sqlite3.connect(db_path) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS profiles (
                    profile_id TEXT PRIMARY KEY,
                    weight_kg REAL NOT NULL,
                    gender TEXT NOT NULL,
                    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS drinks (
                    profile_id TEXT NOT NULL,
                    drink_id TEXT NOT NULL,
                    alcohol_grams REAL NOT NULL,
                    ts REAL NOT NULL,
                    PRIMARY KEY (profile_id, drink_id)
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_drinks_profile_ts ON drinks(profile_id, ts)")
            conn.commit()
    except sqlite3.Error as exc:
        raise StorageError(f"could not initialise {db_path}: {exc}") from exc


class SqliteProfileStore:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def get(self, profile_id: str) -> Optional[Profile]:
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT weight_kg, gender FROM profiles WHERE profile_id = ?",
                    (profile_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"profile read failed: {exc}") from exc
        if row is None:
            return None
        return Profile(weight_kg=float(row[0]), gender=Gender(row[1]))

    def put(self, profile_id: str, profile: Profile) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO profiles (profile_id, weight_kg, gender)
                    VALUES (?, ?, ?)
                    ON CONFLICT(profile_id) DO UPDATE SET
                        weight_kg = excluded.weight_kg,
                        gender = excluded.gender,
                        updated_at = datetime('now')
                    """,
                    (profile_id, float(profile.weight_kg), Gender(profile.gender).value),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"profile write failed: {exc}") from exc

    def delete(self, profile_id: str) -> bool:
        """Remove the profile and its drinks."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                cur = conn.execute("DELETE FROM profiles WHERE profile_id = ?", (profile_id,))
                conn.execute("DELETE FROM drinks WHERE profile_id = ?", (profile_id,))
                conn.commit()
                return cur.rowcount > 0
        except sqlite3.Error as exc:
            raise StorageError(f"profile delete failed: {exc}") from exc


class SqliteDrinkStore:
    """Timestamps are stored as UTC epoch seconds so range queries stay numeric."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def list(self, profile_id: str, start: datetime, end: datetime) -> List[DrinkRecord]:
        try:
            with sqlite3.connect(self.db_path) as conn:
                rows = conn.execute(
                    """
                    SELECT drink_id, alcohol_grams, ts
                    FROM drinks
                    WHERE profile_id = ? AND ts >= ? AND ts <= ?
                    ORDER BY ts ASC, drink_id ASC
                    """,
                    (profile_id, start.timestamp(), end.timestamp()),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"drink read failed: {exc}") from exc
        return [
            DrinkRecord(
                id=row[0],
                alcohol_grams=float(row[1]),
                timestamp=datetime.fromtimestamp(row[2], tz=timezone.utc),
            )
            for row in rows
        ]

    def add(self, profile_id: str, drink: DrinkRecord) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    "INSERT INTO drinks (profile_id, drink_id, alcohol_grams, ts) VALUES (?, ?, ?, ?)",
                    (profile_id, drink.id, float(drink.alcohol_grams), drink.timestamp.timestamp()),
                )
                conn.commit()
        except sqlite3.IntegrityError as exc:
            raise DuplicateDrink(f"drink {drink.id!r} already exists") from exc
        except sqlite3.Error as exc:
            raise StorageError(f"drink write failed: {exc}") from exc

    def remove(self, profile_id: str, drink_id: str) -> bool:
        try:
            with sqlite3.connect(self.db_path) as conn:
                cur = conn.execute(
                    "DELETE FROM drinks WHERE profile_id = ? AND drink_id = ?",
                    (profile_id, drink_id),
                )
                conn.commit()
                return cur.rowcount > 0
        except sqlite3.Error as exc:
            raise StorageError(f"drink delete failed: {exc}") from exc
