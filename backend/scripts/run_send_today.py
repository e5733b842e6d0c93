#!/usr/bin/env python3
"""Run the daily send once against the configured database and print the summary.
Usage: python scripts/run_send_today.py [--dry-run] [--date 2026-03-02] [--batch-size 10] [--no-delay]"""
import argparse
import asyncio
import json
import logging
import sys

from potd.config import settings
from potd.services.cron_engine import CronRunError, run_send_today
from potd.services.http_client import email_client_session


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Send today's problem to every due subscription.")
    parser.add_argument("--dry-run", action="store_true", help="Simulate sends; no store changes")
    parser.add_argument("--date", help="Pretend today is YYYY-MM-DD (ignored in production)")
    parser.add_argument("--batch-size", type=int, default=None)
    parser.add_argument("--no-delay", action="store_true", help="Skip the pause between batches")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout,
    )
    settings.validate_production_config()
    clock_override = settings.clock_override
    if args.date and settings.app_env != "production":
        clock_override = args.date
    async with email_client_session():
        try:
            result = await run_send_today(
                dry_run=args.dry_run,
                clock_override=clock_override,
                batch_size=args.batch_size,
                batch_delay_seconds=0.0 if args.no_delay else None,
            )
        except CronRunError as e:
            print(json.dumps({"ok": False, "error": str(e)}))
            return 1
    print(json.dumps(result.model_dump(mode="json"), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
