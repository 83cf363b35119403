from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime
from pathlib import Path

from trading_journal.config.app_config import CONFIG_ENV_VAR, AppConfig, load_app_config
from trading_journal.logs import configure_logging
from trading_journal.metrics.aggregate import BucketTotals, aggregate
from trading_journal.metrics.calendar import Granularity
from trading_journal.metrics.summary import filter_period, summarize
from trading_journal.storage import sqlite_reader, sqlite_store


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Personal trading journal.")
    parser.add_argument("--config", type=Path, default=None, help="Path to app.toml.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("serve", help="Run the journal API server.")

    init_parser = subparsers.add_parser("init-db", help="Create the sqlite schema.")
    init_parser.add_argument("--db", type=Path, default=None, help="Override the database path.")

    summary_parser = subparsers.add_parser("summary", help="Print statistics for a user.")
    summary_parser.add_argument("--username", required=True, help="Journal owner.")
    summary_parser.add_argument(
        "--timeframe",
        default="daily",
        help="daily, weekly, monthly or yearly.",
    )
    summary_parser.add_argument("--db", type=Path, default=None, help="Override the database path.")
    summary_parser.add_argument("--json", action="store_true", help="Print JSON output.")

    args = parser.parse_args(argv)
    try:
        app_config = load_app_config(args.config)
    except ValueError as exc:
        print(f"Invalid config: {exc}", file=sys.stderr)
        return 1
    configure_logging(app_config.app.log_level)

    if args.command == "serve":
        if args.config is not None:
            # The web module loads its config on import.
            os.environ[CONFIG_ENV_VAR] = str(args.config)
        from trading_journal.web import app as web_app

        web_app.main()
        return 0
    if args.command == "init-db":
        return _init_db(args.db or app_config.app.db_path)
    return _summary(args, app_config)


def _init_db(db_path: Path) -> int:
    conn = sqlite_store.connect(db_path)
    try:
        sqlite_store.init_db(conn)
    finally:
        conn.close()
    print(f"Initialized {db_path}")
    return 0


def _summary(args: argparse.Namespace, app_config: AppConfig) -> int:
    try:
        granularity = Granularity.parse(args.timeframe)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    db_path = args.db or app_config.app.db_path
    if not db_path.exists():
        print(f"Database not found: {db_path}", file=sys.stderr)
        return 1

    tz = app_config.reporting.resolve_tz()
    now = datetime.now(tz) if tz is not None else datetime.now().astimezone()

    conn = sqlite_reader.connect(db_path)
    try:
        user = sqlite_reader.find_user_by_username(conn, args.username)
        if user is None:
            print(f"Unknown user: {args.username}", file=sys.stderr)
            return 1
        records = sqlite_reader.load_trades(conn, owner_id=user.id)
    finally:
        conn.close()

    stats = summarize(filter_period(records, granularity, now, tz=tz))
    buckets = aggregate(records, granularity, now, tz=tz)

    if args.json:
        payload = {
            "timeframe": granularity.value,
            "stats": stats.to_dict(),
            "buckets": [bucket.to_dict() for bucket in buckets],
        }
        print(json.dumps(payload, indent=2))
        return 0

    print(f"{args.username} ({granularity.value}, {stats.trade_count} trades this period)")
    print(f"win_rate {stats.win_rate:.1f}%  profit {stats.total_profit:.2f}  loss {stats.total_loss:.2f}")
    print("bucket profit loss net trades")
    for bucket in buckets:
        print(_format_bucket(bucket))
    return 0


def _format_bucket(bucket: BucketTotals) -> str:
    return f"{bucket.key} {bucket.profit:.6g} {bucket.loss:.6g} {bucket.net:.6g} {bucket.total_count}"


if __name__ == "__main__":
    raise SystemExit(main())
