from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .core.config import load_store_config
from .core.errors import IntegrityCheckError, PdfBookError
from .core.logging_config import setup_logging
from .core.paths import DirectoryManager
from .storage.database import DatabaseManager

log = logging.getLogger(__name__)

# Commands that inspect or change the schema open the store without migrating it.
_SCHEMA_COMMANDS = {"status", "migrate", "rollback"}


def _print(payload: object) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _manager(args: argparse.Namespace) -> DatabaseManager:
    paths = DirectoryManager(base_dir=args.home) if args.home else DirectoryManager()
    overrides = {"path": args.db} if args.db else {}
    if args.verbose:
        overrides["verbose"] = True
    return DatabaseManager(load_store_config(**overrides), paths)


def cmd_init(db: DatabaseManager, args: argparse.Namespace) -> int:
    print(f"Initialized {db.db_path} at schema {db.get_version()}")
    return 0


def cmd_migrate(db: DatabaseManager, args: argparse.Namespace) -> int:
    applied = db.migrate(args.target)
    print(f"Applied: {', '.join(applied)}" if applied else "Already up to date")
    return 0


def cmd_rollback(db: DatabaseManager, args: argparse.Namespace) -> int:
    reverted = db.rollback(args.version)
    print(f"Rolled back: {', '.join(reverted)}" if reverted else "Nothing to roll back")
    return 0


def cmd_status(db: DatabaseManager, args: argparse.Namespace) -> int:
    _print(db.status())
    return 0


def cmd_backup(db: DatabaseManager, args: argparse.Namespace) -> int:
    target = db.create_backup(args.output)
    print(f"Backup written to {target}")
    return 0


def cmd_restore(db: DatabaseManager, args: argparse.Namespace) -> int:
    db.restore_from_backup(args.path)
    print(f"Restored {db.db_path} from {args.path}")
    return 0


def cmd_stats(db: DatabaseManager, args: argparse.Namespace) -> int:
    _print(db.get_stats())
    return 0


def cmd_check(db: DatabaseManager, args: argparse.Namespace) -> int:
    try:
        db.verify_integrity()
    except IntegrityCheckError as exc:
        _print({"ok": False, "problems": exc.problems})
        return 1
    _print({"ok": True, "problems": []})
    return 0


def cmd_vacuum(db: DatabaseManager, args: argparse.Namespace) -> int:
    db.vacuum()
    print("Vacuum complete")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser("pdfbook", description="Manage the PDFBook store")
    parser.add_argument("--db", type=Path, default=None, help="database file (or :memory:)")
    parser.add_argument("--home", type=Path, default=None, help="root for all app directories")
    parser.add_argument("--verbose", action="store_true", help="debug output and SQL trace")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("init", help="create and migrate the store")
    sp.set_defaults(func=cmd_init)

    sp = sub.add_parser("migrate", help="apply pending migrations")
    sp.add_argument("--target", default=None, help="stop at this version")
    sp.set_defaults(func=cmd_migrate)

    sp = sub.add_parser("rollback", help="revert migrations newer than VERSION")
    sp.add_argument("version")
    sp.set_defaults(func=cmd_rollback)

    sp = sub.add_parser("status", help="schema version and pending migrations")
    sp.set_defaults(func=cmd_status)

    sp = sub.add_parser("backup", help="copy the store to a backup file")
    sp.add_argument("--output", type=Path, default=None)
    sp.set_defaults(func=cmd_backup)

    sp = sub.add_parser("restore", help="replace the store with a backup")
    sp.add_argument("path", type=Path)
    sp.set_defaults(func=cmd_restore)

    sp = sub.add_parser("stats", help="row counts per table")
    sp.set_defaults(func=cmd_stats)

    sp = sub.add_parser("check", help="integrity and foreign key check")
    sp.set_defaults(func=cmd_check)

    sp = sub.add_parser("vacuum", help="compact the store")
    sp.set_defaults(func=cmd_vacuum)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.db is not None and str(args.db) != ":memory:":
        args.db = args.db.expanduser()
    db = _manager(args)
    setup_logging(db.paths, logging.DEBUG if args.verbose else logging.WARNING)
    try:
        db.initialize(apply_migrations=args.cmd not in _SCHEMA_COMMANDS)
        return args.func(db, args)
    except PdfBookError as exc:
        log.debug("Command %s failed", args.cmd, exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
