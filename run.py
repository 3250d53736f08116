"""
IdleCore — run.py
Headless driver: load a save, catch up, tick, buy, save.
"""

import argparse
import logging
import sys
from pathlib import Path

# Ensure we can import idlecore packages
project_root = Path(__file__).parent.resolve()
sys.path.insert(0, str(project_root))

from idlecore.clock import SystemClock
from idlecore.commands import PurchaseProducer
from idlecore.data_loader import load_catalog
from idlecore.errors import IdleCoreError
from idlecore.events import EventBus
from idlecore.journal import Journal
from idlecore.save import load_game, save_game
from idlecore.tick import TickEngine


def _parse_buy(spec: str) -> PurchaseProducer:
    """argparse type for --buy PRODUCER[:N]."""
    producer_id, _, amount = spec.partition(":")
    try:
        return PurchaseProducer(producer_id=producer_id, amount=int(amount or 1))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(
            f"invalid purchase '{spec}': expected PRODUCER[:N] with N >= 1"
        ) from exc


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run the idle simulation headless.")
    parser.add_argument("--save", type=Path, default=Path("sessions/save.json"))
    parser.add_argument("--journal", type=Path, default=Path("sessions/journal.jsonl"))
    parser.add_argument("--data", type=Path, default=None, help="definition table directory")
    parser.add_argument("--seconds", type=float, default=10.0, help="live seconds to run")
    parser.add_argument("--buy", action="append", default=[], type=_parse_buy,
                        metavar="PRODUCER[:N]")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(),
                        format="%(asctime)s %(name)s %(levelname)s %(message)s")

    catalog = load_catalog(args.data)
    clock = SystemClock()
    loaded = load_game(args.save, catalog, clock)
    print(f"Loaded game from {loaded.source}")

    bus = EventBus()
    engine = TickEngine(loaded.state, catalog, bus=bus, clock=clock)
    journal = Journal(bus, args.journal, time_source=lambda: engine.state.now)
    journal.open_session()

    applied = engine.catch_up()
    print(f"Offline progress applied: {applied:.0f}s")

    for command in args.buy:
        try:
            engine.dispatch(command)
        except IdleCoreError as exc:
            print(f"Could not buy {command.producer_id}: {exc}")

    engine.run(args.seconds)

    snap = engine.snapshot()
    for resource, amount in sorted(snap["resources"].items()):
        rate = snap["rates"].get(resource, 0.0)
        print(f"  {resource:<10} {amount:>14.2f}  (+{rate:.2f}/s)")
    for npc_id, tier in snap["tiers"].items():
        print(f"  {npc_id:<16} {tier}")

    save_game(engine.state, args.save, clock)
    journal.close_session()
    return 0


if __name__ == "__main__":
    sys.exit(main())
