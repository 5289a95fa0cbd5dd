"""
Estimate coordinator: owns the single authoritative BACEstimate for a profile.

Recomputation is serialized per profile. A request that arrives while one is
in flight marks a single pending follow-up instead of queueing; the follow-up
reads the clock when it actually runs, so publications never go back in time.
Readers get the last published estimate without locking.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from bac_engine import calculations
from bac_engine.config import DEFAULT_CONFIG, EngineConfig
from bac_engine.errors import DataIntegrityError, DataUnavailable, StorageError
from bac_engine.ledger import DrinkLedger
from bac_engine.models import BACEstimate, BACLevel, DrinkRecord, ThresholdCrossed
from bac_engine.stores import Clock, DrinkStore, ProfileStore, SystemClock

logger = logging.getLogger(__name__)

ThresholdListener = Callable[[ThresholdCrossed], None]


class RefreshTimer:
    """Daemon thread that calls tick() every interval_seconds until stopped."""

    def __init__(self, interval_seconds: float, tick: Callable[[], object], name: str = "bac-refresh"):
        self.interval_seconds = interval_seconds
        self.name = name
        self._tick = tick
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self._tick()
            except Exception:
                logger.exception("%s: tick failed", self.name)


class EstimateCoordinator:
    def __init__(
        self,
        profile_id: str,
        profile_store: ProfileStore,
        drink_store: Optional[DrinkStore] = None,
        clock: Optional[Clock] = None,
        config: EngineConfig = DEFAULT_CONFIG,
    ):
        self.profile_id = profile_id
        self.profile_store = profile_store
        self.ledger = DrinkLedger(profile_id, drink_store)
        self.clock = clock if clock is not None else SystemClock()
        self.config = config

        self._state_lock = threading.Lock()
        self._recomputing = False
        self._pending = False

        self._published = BACEstimate.zero(self.clock.now())
        self._published_at: Optional[datetime] = None
        self._last_error: Optional[DataUnavailable] = None
        self._listeners: List[ThresholdListener] = []
        self._timer = RefreshTimer(
            config.refresh_interval_seconds,
            self.on_timer_tick,
            name=f"bac-refresh-{profile_id}",
        )

    # --- reads ---

    def current_estimate(self) -> BACEstimate:
        """Last published estimate. Never blocks and never computes."""
        return self._published

    @property
    def level(self) -> BACLevel:
        return calculations.bac_level(self._published.bac, self.config)

    @property
    def last_error(self) -> Optional[DataUnavailable]:
        return self._last_error

    @property
    def is_stale(self) -> bool:
        """True when the last recompute failed and the published estimate is the previous one."""
        return self._last_error is not None

    @property
    def is_recomputing(self) -> bool:
        return self._recomputing

    # --- events ---

    def subscribe(self, listener: ThresholdListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: ThresholdListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: ThresholdCrossed) -> None:
        logger.info(
            "profile %s crossed %s -> %s (bac=%.3f)",
            self.profile_id,
            event.old_level.value,
            event.new_level.value,
            event.estimate.bac,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("threshold listener %r failed for profile %s", listener, self.profile_id)

    # --- mutations ---

    def on_drink_added(self, drink: DrinkRecord) -> BACEstimate:
        if drink.alcohol_grams < 0:
            raise DataIntegrityError(f"drink {drink.id!r} has negative alcohol grams ({drink.alcohol_grams})")
        if drink.timestamp > self.clock.now():
            raise DataIntegrityError(f"drink {drink.id!r} is dated in the future ({drink.timestamp.isoformat()})")
        try:
            self.ledger.add(drink)
        except StorageError as exc:
            raise DataUnavailable(f"could not store drink {drink.id!r}: {exc}") from exc
        logger.info("profile %s: drink %s added (%.1f g)", self.profile_id, drink.id, drink.alcohol_grams)
        return self.recompute()

    def on_drink_removed(self, drink_id: str) -> BACEstimate:
        try:
            removed = self.ledger.remove(drink_id)
        except StorageError as exc:
            raise DataUnavailable(f"could not remove drink {drink_id!r}: {exc}") from exc
        if removed:
            logger.info("profile %s: drink %s removed", self.profile_id, drink_id)
        else:
            logger.debug("profile %s: drink %s not found", self.profile_id, drink_id)
        return self.recompute()

    def on_profile_updated(self) -> BACEstimate:
        return self.recompute()

    def on_timer_tick(self) -> Optional[BACEstimate]:
        """Periodic refresh; BAC falls with time alone. Storage failures skip this cycle."""
        try:
            return self.recompute()
        except DataUnavailable as exc:
            logger.warning("profile %s: refresh skipped, keeping last estimate: %s", self.profile_id, exc)
            return None

    # --- recomputation ---

    def recompute(self, now: Optional[datetime] = None) -> BACEstimate:
        """
        Recompute and publish the estimate.

        If a recomputation is already running, the request is folded into one
        pending follow-up and the currently published estimate is returned.
        Raises DataUnavailable when the profile or drinks cannot be loaded; the
        published estimate is left untouched in that case. A failed follow-up
        only marks the estimate stale, since the caller's own run succeeded.
        """
        with self._state_lock:
            if self._recomputing:
                self._pending = True
                return self._published
            self._recomputing = True

        try:
            self._recompute_once(now)
            while True:
                with self._state_lock:
                    if not self._pending:
                        self._recomputing = False
                        return self._published
                    self._pending = False
                try:
                    self._recompute_once(None)
                except DataUnavailable:
                    # already recorded in last_error; the next trigger retries
                    pass
        except BaseException:
            with self._state_lock:
                self._recomputing = False
                self._pending = False
            raise

    def _load(self, now: datetime):
        try:
            profile = self.profile_store.get(self.profile_id)
            drinks = self.ledger.recent(now, self.config.lookback_hours)
        except StorageError as exc:
            raise DataUnavailable(f"storage read failed: {exc}") from exc
        if profile is None:
            raise DataUnavailable(f"profile {self.profile_id!r} not found")
        return profile, drinks

    def _recompute_once(self, now: Optional[datetime]) -> None:
        if now is None:
            now = self.clock.now()
        try:
            profile, drinks = self._load(now)
        except DataUnavailable as exc:
            self._last_error = exc
            logger.warning("profile %s: %s", self.profile_id, exc)
            raise
        estimate = calculations.calculate(profile, drinks, now, self.config)

        if self._published_at is not None and now < self._published_at:
            logger.debug(
                "profile %s: dropping estimate for %s, %s already published",
                self.profile_id,
                now.isoformat(),
                self._published_at.isoformat(),
            )
            return

        old_level = calculations.bac_level(self._published.bac, self.config)
        self._published = estimate
        self._published_at = now
        self._last_error = None
        logger.debug(
            "profile %s: bac=%.3f from %d contributing drink(s)",
            self.profile_id,
            estimate.bac,
            len(estimate.contributing_drink_ids),
        )

        new_level = calculations.bac_level(estimate.bac, self.config)
        if new_level != old_level:
            self._emit(
                ThresholdCrossed(old_level=old_level, new_level=new_level, estimate=estimate, profile_id=self.profile_id)
            )

    def predict(self, hypothetical: DrinkRecord, now: Optional[datetime] = None) -> BACEstimate:
        """What-if estimate against the current ledger. Publishes nothing."""
        if now is None:
            now = self.clock.now()
        profile, drinks = self._load(now)
        return calculations.predict(profile, drinks, hypothetical, now, self.config)

    # --- lifecycle ---

    def start(self) -> None:
        self._timer.start()

    def stop(self) -> None:
        self._timer.stop()

    @property
    def timer_running(self) -> bool:
        return self._timer.running

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc_info):
        self.stop()


class CoordinatorRegistry:
    """Hands out exactly one coordinator per profile id."""

    def __init__(
        self,
        profile_store: ProfileStore,
        drink_store: DrinkStore,
        clock: Optional[Clock] = None,
        config: EngineConfig = DEFAULT_CONFIG,
        start_timers: bool = False,
        listeners: Iterable[ThresholdListener] = (),
    ):
        self.profile_store = profile_store
        self.drink_store = drink_store
        self.clock = clock
        self.config = config
        self.start_timers = start_timers
        self.listeners = list(listeners)
        self._coordinators: Dict[str, EstimateCoordinator] = {}
        self._lock = threading.Lock()

    def get(self, profile_id: str) -> EstimateCoordinator:
        with self._lock:
            coordinator = self._coordinators.get(profile_id)
            if coordinator is None:
                coordinator = EstimateCoordinator(
                    profile_id,
                    self.profile_store,
                    self.drink_store,
                    clock=self.clock,
                    config=self.config,
                )
                for listener in self.listeners:
                    coordinator.subscribe(listener)
                if self.start_timers:
                    coordinator.start()
                self._coordinators[profile_id] = coordinator
            return coordinator

    def remove(self, profile_id: str) -> bool:
        """Stop and forget the coordinator for a profile. Returns False if there was none."""
        with self._lock:
            coordinator = self._coordinators.pop(profile_id, None)
        if coordinator is None:
            return False
        coordinator.stop()
        return True

    def __contains__(self, profile_id: str) -> bool:
        return profile_id in self._coordinators

    def __len__(self) -> int:
        return len(self._coordinators)

    def stop_all(self) -> None:
        with self._lock:
            coordinators = list(self._coordinators.values())
            self._coordinators.clear()
        for coordinator in coordinators:
            coordinator.stop()
