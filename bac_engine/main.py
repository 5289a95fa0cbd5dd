"""
BAC engine CLI demo. Run from project root: python -m bac_engine.main
Logs a sample night, prints the current estimate and milestones, and optionally saves a graph.
"""

import argparse
import logging
import sys
from datetime import timedelta

from bac_engine.advice import level_advice, time_until_legal_text, time_until_sober_text
from bac_engine.calculations import bac_level, possible_effects
from bac_engine.config import EngineConfig
from bac_engine.coordinator import EstimateCoordinator
from bac_engine.drinks import DRINK_TYPES, make_drink
from bac_engine.graph import save_bac_graph
from bac_engine.models import Gender, Profile
from bac_engine.stores import InMemoryProfileStore, SystemClock

PROFILE_ID = "demo"


def main(argv=None):
    parser = argparse.ArgumentParser(description="BAC engine: log drinks and view BAC over time")
    parser.add_argument("--weight", type=float, default=160.0, help="Body weight (lb)")
    parser.add_argument("--gender", choices=[g.value for g in Gender], default="male")
    parser.add_argument(
        "--drink",
        action="append",
        metavar="TYPE:HOURS_AGO",
        help=f"Drink to log, e.g. beer:1.5 (types: {', '.join(DRINK_TYPES)}). Repeatable.",
    )
    parser.add_argument("--graph", type=str, metavar="FILE", help="Save BAC graph to FILE (e.g. bac_graph.png)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = EngineConfig.from_env()
    clock = SystemClock()
    profile = Profile.from_pounds(args.weight, Gender(args.gender))
    profiles = InMemoryProfileStore({PROFILE_ID: profile})
    coordinator = EstimateCoordinator(PROFILE_ID, profiles, clock=clock, config=config)
    coordinator.subscribe(lambda e: print(f"  level {e.old_level.value} -> {e.new_level.value}"))

    entries = args.drink or ["beer:2", "beer:2", "beer:1"]
    now = clock.now()
    for entry in entries:
        key, _, hours_ago = entry.partition(":")
        try:
            ago = float(hours_ago or 0)
        except ValueError:
            parser.error(f"bad drink entry {entry!r}")
        coordinator.on_drink_added(make_drink(now - timedelta(hours=max(0.0, ago)), key))
        print(f"Logged {key} {ago:g}h ago")

    now = clock.now()
    estimate = coordinator.recompute(now)
    print(f"Weight: {args.weight} lb ({args.gender}), BAC now: {estimate.bac:.3f}% [{bac_level(estimate.bac, config).value}]")
    print(f"Until legal: {time_until_legal_text(estimate, now, config)}")
    print(f"Until sober: {time_until_sober_text(estimate, now)}")
    print(level_advice(estimate, config))
    for effect in possible_effects(estimate.bac):
        print(f"  - {effect}")

    if args.graph:
        drinks = coordinator.ledger.recent(now, config.lookback_hours)
        start = min(d.timestamp for d in drinks) if drinks else now
        try:
            path = save_bac_graph(profile, drinks, start, output_path=args.graph, config=config)
            print(f"Graph saved: {path}")
        except ImportError:
            print("matplotlib not installed. pip install matplotlib", file=sys.stderr)
            return 1

    return 0


if __name__ == "__main__":
    sys.exit(main() or 0)
