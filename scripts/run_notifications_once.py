"""Run a single notification scheduler pass (for system cron)

Usage:
    python -m scripts.run_notifications_once
    python -m scripts.run_notifications_once --dry-run   # list due reminders only
"""
import argparse
import asyncio
import json
import sys

from ticket_reminders.engine.coordinator import build_coordinator
from ticket_reminders.repositories.async_mongo import close_async_connection
from ticket_reminders.utils.logger import setup_logging
from ticket_reminders.utils.time import format_iso, utc_now


async def dry_run() -> int:
    coordinator = build_coordinator()
    now = utc_now()
    rules = await coordinator.rules.get_active_rules()
    tickets = await coordinator.tickets.get_notification_candidates()
    due = coordinator.selector.select(now, rules, tickets)

    print(f"{len(due)} due at {format_iso(now)} ({len(rules)} rules, {len(tickets)} tickets)")
    for item in due:
        print(
            f"  {format_iso(item.fire_at)}  {item.rule.kind.value:<22} "
            f"#{item.sequence}  ticket={item.ticket.label}  to={item.recipient_ref}"
        )
    return 0


async def run_once() -> int:
    summary = await build_coordinator().run()
    if summary.ok:
        print(json.dumps(summary.to_result(), indent=2))
        return 0
    print(f"Scheduler run failed: {summary.error}", file=sys.stderr)
    return 1


async def main(args: argparse.Namespace) -> int:
    try:
        return await (dry_run() if args.dry_run else run_once())
    finally:
        await close_async_connection()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run one notification scheduler pass")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print due reminders without recording or sending them"
    )
    setup_logging()
    sys.exit(asyncio.run(main(parser.parse_args())))
