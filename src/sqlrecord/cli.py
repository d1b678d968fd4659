from __future__ import annotations

import argparse
import json
import logging
import sys

import pandas as pd

from .core.config import DatabaseConfig
from .core.logging_config import setup_logging
from .storage.database import Database
from .storage.errors import SQLRecordError
from .storage.sqlite.schema import live_columns


def _open(args: argparse.Namespace, *, mode: str = "ro") -> Database:
    # Switching journal mode needs write access.
    options = {"journal_mode": None} if mode == "ro" else {}
    return Database(args.path, config=DatabaseConfig.from_env(**options), mode=mode)


def cmd_tables(args: argparse.Namespace) -> None:
    with _open(args) as db:
        for name in db.list_tables():
            print(name)


def cmd_schema(args: argparse.Namespace) -> None:
    with _open(args) as db:
        columns = live_columns(db.conn, args.table)
        if not columns:
            raise SQLRecordError(f"No such table: {args.table}")
        for column in columns:
            print(f"{column.name}\t{column.affinity.declaration}")


def cmd_dump(args: argparse.Namespace) -> None:
    with _open(args) as db:
        table = db.table(args.table)
        if args.json:
            for row in table.read(dict, args.where, args.limit):
                print(json.dumps(row, default=str))
            return
        frame = table.frame(args.where, args.limit)
        with pd.option_context("display.max_rows", None, "display.width", None):
            print(frame.to_string(index=False))


def cmd_history(args: argparse.Namespace) -> None:
    with _open(args, mode="rw") as db:
        db.table(args.table).enable_history()
        print(f"History enabled for {args.table}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser("sqlrecord")
    parser.add_argument("-v", "--verbose", action="store_true", help="log to stderr")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("tables")
    sp.add_argument("path")
    sp.set_defaults(func=cmd_tables)

    sp = sub.add_parser("schema")
    sp.add_argument("path")
    sp.add_argument("table")
    sp.set_defaults(func=cmd_schema)

    sp = sub.add_parser("dump")
    sp.add_argument("path")
    sp.add_argument("table")
    sp.add_argument("--where", default=None, help="raw SQL condition")
    sp.add_argument("--limit", type=int, default=None)
    sp.add_argument("--json", action="store_true", help="one JSON object per row")
    sp.set_defaults(func=cmd_dump)

    sp = sub.add_parser("history")
    sp.add_argument("path")
    sp.add_argument("table")
    sp.set_defaults(func=cmd_history)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        setup_logging(console_level=logging.DEBUG, to_files=False)
    try:
        args.func(args)
    except (SQLRecordError, ValueError) as exc:
        parser.exit(1, f"sqlrecord: error: {exc}\n")


if __name__ == "__main__":
    main(sys.argv[1:])
