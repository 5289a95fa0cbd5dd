"""Tests for the estimate coordinator: publication, events, failures and coalescing."""

import threading
from datetime import timedelta

import pytest

from bac_engine.config import EngineConfig
from bac_engine.coordinator import CoordinatorRegistry, EstimateCoordinator, RefreshTimer
from bac_engine.errors import DataIntegrityError, DataUnavailable, DuplicateDrink, StorageError
from bac_engine.models import BACEstimate, BACLevel
from bac_engine.stores import InMemoryDrinkStore, InMemoryProfileStore

from conftest import T0, drink


class FlakyProfileStore(InMemoryProfileStore):
    def __init__(self, profiles):
        super().__init__(profiles)
        self.broken = False

    def get(self, profile_id):
        if self.broken:
            raise StorageError("disk on fire")
        return super().get(profile_id)


class BlockingDrinkStore(InMemoryDrinkStore):
    """Blocks the first list() call until released, counting calls."""

    def __init__(self):
        super().__init__()
        self.list_calls = 0
        self.entered = threading.Event()
        self.release = threading.Event()

    def list(self, profile_id, start, end):
        self.list_calls += 1
        if self.list_calls == 1:
            self.entered.set()
            self.release.wait(5)
        return super().list(profile_id, start, end)


@pytest.fixture
def profiles(male):
    return FlakyProfileStore({"p1": male})


@pytest.fixture
def coordinator(profiles, clock):
    return EstimateCoordinator("p1", profiles, InMemoryDrinkStore(), clock=clock)


def test_initial_estimate_is_zero(coordinator):
    est = coordinator.current_estimate()
    assert est == BACEstimate.zero(T0)
    assert coordinator.level == BACLevel.SAFE
    assert not coordinator.is_stale


def test_add_and_remove_drink(coordinator):
    est = coordinator.on_drink_added(drink("beer-1"))
    assert est.bac == 0.028
    assert est.contributing_drink_ids == frozenset({"beer-1"})
    assert coordinator.current_estimate() is est

    est = coordinator.on_drink_removed("beer-1")
    assert est.bac == 0
    assert coordinator.ledger.all(T0) == []


def test_remove_unknown_drink_still_recomputes(coordinator, clock):
    coordinator.on_drink_added(drink("beer-1"))
    clock.advance(minutes=30)
    est = coordinator.on_drink_removed("missing")
    assert est.computed_at == clock.now()
    assert est.bac > 0


def test_timer_tick_decays_estimate(coordinator, clock):
    coordinator.on_drink_added(drink("beer-1"))
    clock.advance(hours=1)
    assert coordinator.on_timer_tick().bac == 0.013
    clock.advance(hours=5)
    assert coordinator.on_timer_tick().bac == 0


def test_threshold_crossings_emitted(coordinator, clock):
    events = []
    coordinator.subscribe(events.append)
    for i in range(5):
        coordinator.on_drink_added(drink(f"d{i}"))
    assert [(e.old_level, e.new_level) for e in events] == [
        (BACLevel.SAFE, BACLevel.CAUTION),
        (BACLevel.CAUTION, BACLevel.WARNING),
    ]
    assert all(e.rising for e in events)
    assert events[-1].profile_id == "p1"
    assert events[-1].estimate.bac == 0.085

    # each 14 g drink is gone after ~1.89 h; the total falls ~0.075 per hour
    clock.advance(minutes=30)
    assert coordinator.on_timer_tick().bac == 0.104
    assert len(events) == 2

    clock.advance(minutes=30)
    assert coordinator.on_timer_tick().bac == 0.067
    assert (events[-1].old_level, events[-1].new_level) == (BACLevel.WARNING, BACLevel.CAUTION)
    assert not events[-1].rising

    clock.advance(hours=1)
    assert coordinator.on_timer_tick().bac == 0
    assert (events[-1].old_level, events[-1].new_level) == (BACLevel.CAUTION, BACLevel.SAFE)
    assert len(events) == 4


def test_unsubscribe(coordinator):
    events = []
    coordinator.subscribe(events.append)
    coordinator.unsubscribe(events.append)
    for i in range(3):
        coordinator.on_drink_added(drink(f"d{i}"))
    assert events == []


def test_failing_listener_does_not_block_publication(coordinator):
    def boom(event):
        raise RuntimeError("notifier down")

    coordinator.subscribe(boom)
    coordinator.on_drink_added(drink("a", grams=70))
    assert coordinator.current_estimate().bac == 0.142


def test_storage_failure_keeps_last_estimate(coordinator, profiles, clock):
    good = coordinator.on_drink_added(drink("a", grams=42))
    profiles.broken = True
    clock.advance(minutes=15)

    with pytest.raises(DataUnavailable):
        coordinator.recompute()
    assert coordinator.current_estimate() is good
    assert coordinator.is_stale
    assert "disk on fire" in str(coordinator.last_error)

    # timer ticks absorb the failure
    assert coordinator.on_timer_tick() is None
    assert coordinator.current_estimate() is good

    profiles.broken = False
    fresh = coordinator.on_timer_tick()
    assert fresh.computed_at == clock.now()
    assert fresh.bac < good.bac
    assert not coordinator.is_stale


def test_missing_profile_is_data_unavailable(clock):
    c = EstimateCoordinator("ghost", InMemoryProfileStore(), clock=clock)
    with pytest.raises(DataUnavailable):
        c.recompute()
    assert c.current_estimate().bac == 0
    assert c.is_stale


def test_rejects_garbage_drinks(coordinator, clock):
    with pytest.raises(DataIntegrityError):
        coordinator.on_drink_added(drink("neg", grams=-3))
    with pytest.raises(DataIntegrityError):
        coordinator.on_drink_added(drink("future", at=clock.now() + timedelta(minutes=1)))
    assert coordinator.ledger.all(clock.now()) == []


def test_older_result_never_overwrites_newer(coordinator):
    coordinator.on_drink_added(drink("a", grams=42))
    later = T0 + timedelta(hours=1)
    coordinator.recompute(later)
    coordinator.recompute(T0)
    assert coordinator.current_estimate().computed_at == later


def test_predict_does_not_publish_or_mutate(coordinator):
    coordinator.on_drink_added(drink("a"))
    before = coordinator.current_estimate()
    prediction = coordinator.predict(drink("next"))
    assert prediction.bac > before.bac
    assert coordinator.current_estimate() is before
    assert [d.id for d in coordinator.ledger.all(T0)] == ["a"]


def test_concurrent_requests_coalesce_into_one_follow_up(male, clock):
    store = BlockingDrinkStore()
    store.add("p1", drink("a", grams=42))
    c = EstimateCoordinator("p1", InMemoryProfileStore({"p1": male}), store, clock=clock)

    worker = threading.Thread(target=c.recompute)
    worker.start()
    assert store.entered.wait(5)
    assert c.is_recomputing

    clock.advance(minutes=30)
    for _ in range(3):
        c.on_timer_tick()
    store.release.set()
    worker.join(5)

    assert not worker.is_alive()
    assert store.list_calls == 2
    assert not c.is_recomputing
    # the follow-up read the clock when it ran
    assert c.current_estimate().computed_at == T0 + timedelta(minutes=30)


def test_duplicate_drink_is_integrity_conflict_not_outage(coordinator):
    first = coordinator.on_drink_added(drink("x"))
    with pytest.raises(DuplicateDrink):
        coordinator.on_drink_added(drink("x", grams=28))
    assert coordinator.current_estimate() is first
    assert not coordinator.is_stale


def test_failed_follow_up_does_not_fail_the_caller(profiles, clock):
    store = BlockingDrinkStore()
    store.add("p1", drink("a"))
    c = EstimateCoordinator("p1", profiles, store, clock=clock)
    result = {}

    def add():
        try:
            result["estimate"] = c.on_drink_added(drink("b"))
        except DataUnavailable as exc:
            result["error"] = exc

    worker = threading.Thread(target=add)
    worker.start()
    assert store.entered.wait(5)

    # the in-flight run already read the profile; the follow-up cannot
    profiles.broken = True
    clock.advance(minutes=15)
    assert c.on_timer_tick().bac == 0
    store.release.set()
    worker.join(5)

    assert "error" not in result
    assert result["estimate"].bac == 0.057
    assert result["estimate"].contributing_drink_ids == frozenset({"a", "b"})
    assert c.current_estimate() is result["estimate"]
    assert c.is_stale
    assert "disk on fire" in str(c.last_error)
    assert not c.is_recomputing


def test_lookback_window_excludes_old_drinks(male, clock):
    cfg = EngineConfig(lookback_hours=1)
    store = InMemoryDrinkStore()
    store.add("p1", drink("old", grams=200, hours_ago=2))
    c = EstimateCoordinator("p1", InMemoryProfileStore({"p1": male}), store, clock=clock, config=cfg)
    assert c.recompute().bac == 0


def test_refresh_timer_ticks_until_stopped():
    ticked = threading.Event()
    calls = []

    def tick():
        calls.append(1)
        if len(calls) >= 2:
            ticked.set()

    timer = RefreshTimer(0.01, tick)
    timer.start()
    assert ticked.wait(5)
    timer.stop(timeout=5)
    assert not timer.running


def test_coordinator_lifecycle_owns_timer(coordinator):
    with coordinator:
        assert coordinator.timer_running
    assert not coordinator.timer_running


def test_registry_hands_out_one_coordinator_per_profile(profiles, clock):
    events = []
    registry = CoordinatorRegistry(profiles, InMemoryDrinkStore(), clock=clock, listeners=[events.append])
    a = registry.get("p1")
    assert registry.get("p1") is a
    assert registry.get("p2") is not a
    assert "p1" in registry

    a.on_drink_added(drink("x", grams=70))
    assert events and events[0].new_level == BACLevel.WARNING
    registry.stop_all()


def test_registry_remove_stops_and_forgets_coordinator(profiles, clock):
    registry = CoordinatorRegistry(profiles, InMemoryDrinkStore(), clock=clock, start_timers=True)
    a = registry.get("p1")
    assert a.timer_running
    assert len(registry) == 1

    assert registry.remove("p1")
    assert not a.timer_running
    assert "p1" not in registry
    assert len(registry) == 0
    assert not registry.remove("p1")
    assert registry.get("p1") is not a
    registry.stop_all()
    assert len(registry) == 0
