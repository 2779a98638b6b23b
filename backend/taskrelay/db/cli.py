from __future__ import annotations

import argparse
from collections.abc import Callable, Sequence

from taskrelay.db.bootstrap import initialize_database
from taskrelay.db.engine import create_engine_from_url
from taskrelay.db.migrations import current_revision, head_revision, upgrade_to_head


def _init(args: argparse.Namespace) -> int:
    initialize_database(database_url=args.database_url)
    print("Database initialized.")
    return 0


def _migrate(args: argparse.Namespace) -> int:
    upgrade_to_head(args.database_url)
    print("Database migrations applied.")
    return 0


def _status(args: argparse.Namespace) -> int:
    """Exit 0 when the database is at the latest revision, 1 when migrations are pending."""
    engine = create_engine_from_url(args.database_url)
    try:
        applied = current_revision(engine)
    finally:
        engine.dispose()
    head = head_revision()
    print(f"applied={applied or '-'} head={head or '-'}")
    return 0 if applied == head else 1


_COMMANDS: dict[str, tuple[str, Callable[[argparse.Namespace], int], bool]] = {
    "init": ("Create the database file's directory and migrate to head.", _init, False),
    "migrate": ("Upgrade the schema to the newest migration.", _migrate, False),
    "status": ("Compare the applied revision with the newest one.", _status, True),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taskrelay-db",
        description="Manage the TaskRelay database schema.",
    )
    commands = parser.add_subparsers(dest="command", required=True)
    for name, (help_text, handler, url_required) in _COMMANDS.items():
        command = commands.add_parser(name, help=help_text)
        command.add_argument(
            "--database-url",
            required=url_required,
            default=None,
            help="SQLAlchemy URL; defaults to DATABASE_URL from the environment.",
        )
        command.set_defaults(handler=handler)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
