"""Command-line interface for breach checks and monitoring.

Examples::

    leakguard email alice@example.com
    leakguard password            # prompts without echo
    leakguard analytics alice@example.com -o alice.json
    leakguard monitor alice@example.com 123456789
    leakguard watch --once
"""

import sys
import json
import getpass
import asyncio
import logging
import argparse
from typing import Any, List, Optional

from leakguard.config import load_config
from leakguard.errors import InvalidInput
from leakguard.log import configure_logging
from leakguard.monitor import BreachMonitor
from leakguard.runtime import build_notifier, open_aggregator

logger = logging.getLogger("leakguard")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="leakguard",
        description="Check emails and passwords against breach intelligence sources")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable debug logging")
    parser.add_argument("-c", "--config", default="config.json", metavar="PATH",
                        help="Config file (default: %(default)s)")
    parser.add_argument("-o", "--output", default=None,
                        help="Optional output file path for the JSON result")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("email", help="List breaches for an email address")
    p.add_argument("email")

    p = sub.add_parser("password", help="Check a password by digest prefix")
    p.add_argument("password", nargs="?", default=None,
                   help="Password to check (prompted without echo when omitted)")
    p.add_argument("--stdin", action="store_true",
                   help="Read the password from stdin instead of prompting")

    p = sub.add_parser("analytics", help="Breach analytics for an email address")
    p.add_argument("email")

    p = sub.add_parser("monitor", help="Subscribe a chat to new-breach alerts")
    p.add_argument("email")
    p.add_argument("chat_id", type=int)

    p = sub.add_parser("unmonitor", help="Stop monitoring an email address")
    p.add_argument("email")

    p = sub.add_parser("watch", help="Run the breach monitor")
    p.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    p.add_argument("--interval", type=int, default=None, metavar="SECONDS",
                   help="Override the monitoring period")

    sub.add_parser("stats", help="Show usage counters")

    p = sub.add_parser("clear-cache", help="Delete cached entries")
    p.add_argument("pattern", nargs="?", default="*",
                   help="Key glob, e.g. 'email:*' (default: everything)")

    return parser.parse_args(argv)


def _read_password(args: argparse.Namespace) -> str:
    if args.password is not None:
        return args.password
    if args.stdin:
        return sys.stdin.readline().rstrip("\n")
    return getpass.getpass("Password: ")


async def execute(args: argparse.Namespace, cfg: dict) -> Any:
    """Run one subcommand and return its JSON-serialisable result."""
    async with open_aggregator(cfg) as aggregator:
        if args.command == "email":
            return (await aggregator.check_email_report(args.email)).to_dict()
        if args.command == "password":
            return (await aggregator.check_password(_read_password(args))).to_dict()
        if args.command == "analytics":
            return (await aggregator.get_analytics(args.email)).to_dict()
        if args.command == "monitor":
            await aggregator.monitor_email(args.email, args.chat_id)
            return {"email": args.email, "chat_id": args.chat_id, "monitoring": True}
        if args.command == "unmonitor":
            removed = await aggregator.stop_monitoring(args.email)
            return {"email": args.email, "removed": removed}
        if args.command == "stats":
            return await aggregator.get_stats()
        if args.command == "clear-cache":
            return {"pattern": args.pattern, "deleted": await aggregator.clear_cache(args.pattern)}
        if args.command == "watch":
            notifier = build_notifier(cfg)
            monitor = BreachMonitor(aggregator, notifier,
                                    interval=args.interval or cfg["monitor_interval"])
            try:
                if args.once:
                    alerts = await monitor.run_cycle()
                    return {email: [b.to_dict() for b in found] for email, found in alerts.items()}
                await monitor.run_forever()
            finally:
                await notifier.close()
    raise ValueError(f"Unknown command {args.command}")


async def main(argv: Optional[List[str]] = None) -> Any:
    """Entry point for CLI execution.

    Loads configuration, runs the selected subcommand and prints (or saves)
    the result as JSON.
    """
    args = parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)
    cfg = load_config(args.config)

    try:
        result = await execute(args, cfg)
    except InvalidInput as exc:
        logger.error(str(exc))
        sys.exit(1)

    text = json.dumps(result, indent=2, ensure_ascii=False)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as fh:
            fh.write(text + "\n")
        logger.info("Saved result to %s", args.output)
    else:
        print(text)
    return result


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    run()
