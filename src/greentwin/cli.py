"""Command-line interface for GreenTwin - replay scenarios and inspect local state."""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

logger = logging.getLogger(__name__)
console = Console()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_scenario(path: Path) -> list[dict]:
    """Read a JSONL scenario. Blank lines and # comments are skipped."""
    steps = []
    with open(path) as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                steps.append(json.loads(line))
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{lineno}: {e}") from e
    return steps


def cmd_replay(args: argparse.Namespace) -> int:
    """Feed a JSONL scenario of inbound messages through the engine.

    Each line is an inbound message ({"type": ..., "payload": ...}) and may
    carry "advance" (seconds) or "at" (ISO time) to move the simulated clock
    before the message is handled. Fired alarms are printed as they occur.
    """
    from greentwin.config import get_config
    from greentwin.core.engine import GreenTwinEngine
    from greentwin.core.events import Event, EventBus
    from greentwin.scheduling import ManualScheduler

    scenario_path = Path(args.scenario)
    if not scenario_path.exists():
        print(f"Error: Scenario file not found: {scenario_path}")
        return 1

    try:
        steps = _load_scenario(scenario_path)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    start = datetime.fromisoformat(args.start) if args.start else datetime.now()

    async def run() -> None:
        bus = EventBus()
        scheduler = ManualScheduler(start=start)
        engine = GreenTwinEngine(config=get_config(), bus=bus, scheduler=scheduler)

        def show(event: Event) -> None:
            console.print(f"  [cyan]<- {event.type.name.lower()}[/cyan] {escape(json.dumps(event.data, default=str)[:160])}")

        bus.subscribe(None, show)

        if args.connect:
            await engine.start()
        try:
            for step in steps:
                if "at" in step:
                    fired = await scheduler.advance_to(datetime.fromisoformat(step["at"]))
                else:
                    fired = await scheduler.advance(float(step.get("advance", 0)))
                for token in fired:
                    console.print(f"  [yellow]alarm[/yellow] {token}")
                if "type" not in step:
                    continue

                result = await engine.handle_message({"type": step["type"], "payload": step.get("payload", {})})
                status = "[green]ok[/green]" if result.get("ok") else f"[red]{result.get('error')}[/red]"
                console.print(f"[{scheduler.now():%H:%M:%S}] {step['type']} -> {status}")
                if args.verbose:
                    console.print_json(data=result, default=str)
            await bus.drain()
        except KeyboardInterrupt:
            print("\nInterrupted")
        finally:
            await engine.stop()

        console.print(f"\nProcessed {len(steps)} steps, queue length {len(engine.sync.queue)}")

    asyncio.run(run())
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Show persisted totals and profile summary."""
    from greentwin.config import get_config
    from greentwin.core.messages import EngineStats
    from greentwin.profile import BehaviorProfileStore
    from greentwin.storage import StateStore

    config = get_config()
    state = StateStore(config.data_path / f"{config.USER_ID}.db")
    raw = state.load("stats", "stats")
    stats = EngineStats.model_validate(raw) if raw else EngineStats()
    summary = BehaviorProfileStore(state=state, user_id=config.USER_ID).summary()

    if args.json:
        console.print_json(data={**stats.model_dump(mode="json"), "profile": summary}, default=str)
        return 0

    table = Table(title="GreenTwin stats")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Views", str(stats.totals.views))
    table.add_row("Items", str(stats.totals.items))
    table.add_row("Est. kg this month", f"{stats.totals.est_kg_month:.1f}")
    table.add_row("Misinfo flags", str(stats.totals.misinfo_flags))
    table.add_row("Interactions", str(summary["total_interactions"]))
    table.add_row("Success rate", f"{summary['success_rate']:.0%}")
    table.add_row("Most effective nudge", summary["most_effective_nudge"])
    table.add_row("Data quality", summary["data_quality"])
    console.print(table)

    if args.events:
        events = Table(title=f"Recent events (latest {args.events})")
        events.add_column("Time")
        events.add_column("Type")
        events.add_column("kg", justify="right")
        events.add_column("Meta")
        for event in stats.events[: args.events]:
            events.add_row(f"{event.ts:%Y-%m-%d %H:%M}", event.type, f"{event.kg:.1f}", json.dumps(event.meta)[:60])
        console.print(events)
    return 0


def cmd_delays(args: argparse.Namespace) -> int:
    """List cooling-off delays."""
    from greentwin.config import get_config
    from greentwin.contracts.delays import DelayStatus
    from greentwin.storage import StateStore

    config = get_config()
    state = StateStore(config.data_path / f"{config.USER_ID}.db")
    status = None if args.all else DelayStatus.ACTIVE
    records = state.list_delays(status)

    table = Table(title="Delays")
    for col in ("ID", "Item", "Status", "Ends", "CO2 kg", "Saved $"):
        table.add_column(col)
    for record in records:
        table.add_row(
            record.delay_id,
            record.item.title or "-",
            record.status.value,
            f"{record.delay_end:%Y-%m-%d %H:%M}",
            f"{record.potential_savings.co2:.1f}",
            f"{record.potential_savings.money:.2f}",
        )
    console.print(table)
    return 0


def cmd_queue(args: argparse.Namespace) -> int:
    """Inspect or clear the offline sync queue."""
    from greentwin.config import get_config
    from greentwin.storage import StateStore
    from greentwin.sync import OfflineQueue

    config = get_config()
    state = StateStore(config.data_path / f"{config.USER_ID}.db")
    queue = OfflineQueue(config.OFFLINE_QUEUE_CAPACITY, state)

    if args.clear:
        confirm = input(f"Drop {len(queue)} queued events? [y/N] ")
        if confirm.lower() == "y":
            queue.clear()
            print("Queue cleared")
        else:
            print("Cancelled")
        return 0

    info = queue.stats()
    console.print(
        f"Evicted: {info['evicted']}  Oldest: {info['oldest_event'] or '-'}  Newest: {info['newest_event'] or '-'}"
    )

    table = Table(title=f"Offline queue ({len(queue)}/{queue.capacity})")
    for col in ("ID", "Type", "Timestamp"):
        table.add_column(col)
    for event in queue.peek(args.limit):
        table.add_row(event.id, event.type, event.timestamp.isoformat(timespec="seconds"))
    console.print(table)
    return 0


def cmd_sync(args: argparse.Namespace) -> int:
    """Connect to the collector once and flush the offline queue."""
    from greentwin.config import get_config
    from greentwin.core.engine import GreenTwinEngine

    async def run() -> int:
        engine = GreenTwinEngine(config=get_config())
        pending = len(engine.sync.queue)
        try:
            if not await engine.sync.connect():
                console.print(f"[red]Collector unreachable[/red], {pending} events stay queued")
                return 1
            # Connecting flushes; a second pass picks up anything left by a failed batch
            await engine.sync.flush()
        finally:
            await engine.stop()
        left = len(engine.sync.queue)
        console.print(f"Delivered {pending - left}/{pending} events, {left} left")
        return 0

    return asyncio.run(run())


def cmd_config(args: argparse.Namespace) -> int:
    """Show effective configuration and validation errors."""
    from greentwin.config import get_config
    from greentwin.config.defaults import CONFIG_KEYS

    config = get_config()
    table = Table(title=f"Config ({config.source or 'defaults'})")
    table.add_column("Key")
    table.add_column("Value")
    for key in sorted(CONFIG_KEYS):
        table.add_row(key, repr(getattr(config, key)))
    console.print(table)

    errors = config.validate()
    for error in errors:
        console.print(f"[red]{error}[/red]")
    return 1 if errors else 0


def main() -> int:
    """Main entry point."""
    from greentwin import __version__
    from greentwin.config import get_config

    parser = argparse.ArgumentParser(
        prog="greentwin",
        description="GreenTwin - client-side carbon nudge engine",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        dest="log_level",
        help="Override LOG_LEVEL from config",
    )

    subparsers = parser.add_subparsers(dest="command")

    # greentwin replay <scenario.jsonl>
    replay_parser = subparsers.add_parser(
        "replay",
        help="Replay a JSONL scenario of inbound messages",
    )
    replay_parser.add_argument(
        "scenario",
        help="Path to JSONL scenario file",
    )
    replay_parser.add_argument(
        "--start",
        default=None,
        help="ISO start time for the simulated clock (default: now)",
    )
    replay_parser.add_argument(
        "--connect",
        action="store_true",
        help="Connect to the collector while replaying",
    )
    replay_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Print each response",
    )
    replay_parser.set_defaults(func=cmd_replay)

    # greentwin stats
    stats_parser = subparsers.add_parser("stats", help="Show totals and profile summary")
    stats_parser.add_argument(
        "--events",
        type=int,
        default=10,
        help="Recent events to list (default: 10, 0 to hide)",
    )
    stats_parser.add_argument(
        "--json",
        action="store_true",
        help="Print raw stats and profile summary as JSON",
    )
    stats_parser.set_defaults(func=cmd_stats)

    # greentwin delays
    delays_parser = subparsers.add_parser("delays", help="List cooling-off delays")
    delays_parser.add_argument(
        "--all",
        action="store_true",
        help="Include completed delays",
    )
    delays_parser.set_defaults(func=cmd_delays)

    # greentwin queue
    queue_parser = subparsers.add_parser("queue", help="Inspect the offline sync queue")
    queue_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Events to list (default: 20)",
    )
    queue_parser.add_argument(
        "--clear",
        action="store_true",
        help="Drop all queued events",
    )
    queue_parser.set_defaults(func=cmd_queue)

    # greentwin sync
    sync_parser = subparsers.add_parser("sync", help="Connect to the collector and flush queued events")
    sync_parser.set_defaults(func=cmd_sync)

    # greentwin config
    config_parser = subparsers.add_parser("config", help="Show effective configuration")
    config_parser.set_defaults(func=cmd_config)

    args = parser.parse_args()
    _configure_logging(args.log_level or get_config().LOG_LEVEL)

    # Show help if no command
    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
