#!/usr/bin/env python3
"""
laneorder - Kanban project board CLI

Usage:
    laneorder init                              # Initialize .laneorder/ folder
    laneorder status                            # Show board stats
    laneorder list [--status new]               # Show the board column by column
    laneorder add "Website redesign" --status new
    laneorder edit PROJECT_ID --priority high
    laneorder move PROJECT_ID --onto OTHER_ID   # Drop onto another project
    laneorder move PROJECT_ID --to in_review    # Drop onto a column (append)
    laneorder delete PROJECT_ID
    laneorder check                             # Verify dense ordering
    laneorder repair                            # Renumber columns to 0..n-1

Writes go through the optimistic client, so the CLI exercises the same
path as any interactive front end: predict, send, reconcile.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Callable, Optional

from . import __version__
from .client import Mutation, ReconciliationClient
from .config import BOARD_DIR, DB_NAME, configure_logging, find_db_path, no_color
from .coordinator import MutationCoordinator
from .db import ProjectDatabase
from .errors import BoardError, ConcurrencyError, StorageError, TransportError, ValidationError
from .notify import Notifier
from .ordering import PRIORITIES, STATUS_TITLES, STATUSES, DropIntent, group_members
from .transport import LocalTransport

# ============================================================================
# Exit Codes (following sysexits.h conventions)
# ============================================================================

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_USAGE = 2
EXIT_CONFIG = 3
EXIT_DATABASE = 4
EXIT_CONFLICT = 5

# ============================================================================
# Output Helpers
# ============================================================================


class Output:
    """Handle output formatting with color and quiet mode support."""

    def __init__(self, quiet: bool = False, json_mode: bool = False, no_color_flag: bool = False):
        self.quiet = quiet
        self.json_mode = json_mode
        self.no_color = no_color_flag or no_color() or not sys.stdout.isatty()

    def _color(self, text: str, code: str) -> str:
        """Apply ANSI color code."""
        if self.no_color:
            return text
        return f"\033[{code}m{text}\033[0m"

    def green(self, text: str) -> str:
        return self._color(text, "32")

    def yellow(self, text: str) -> str:
        return self._color(text, "33")

    def red(self, text: str) -> str:
        return self._color(text, "31")

    def blue(self, text: str) -> str:
        return self._color(text, "34")

    def dim(self, text: str) -> str:
        return self._color(text, "2")

    def info(self, message: str):
        if not self.quiet and not self.json_mode:
            print(message)

    def success(self, message: str):
        if not self.quiet and not self.json_mode:
            print(self.green(f"✓ {message}"))

    def warning(self, message: str):
        if not self.json_mode:
            print(self.yellow(f"⚠ {message}"), file=sys.stderr)

    def error(self, message: str, context: str = "", suggestions: Optional[list] = None):
        """Print error message with context and suggestions."""
        if self.json_mode:
            error_obj = {"error": {"message": message}}
            if context:
                error_obj["error"]["context"] = context
            if suggestions:
                error_obj["error"]["suggestions"] = suggestions
            print(json.dumps(error_obj, indent=2), file=sys.stderr)
        else:
            print(self.red(f"\nError: {message}"), file=sys.stderr)
            if context:
                print(f"\n{self.dim('Context:')}", file=sys.stderr)
                for line in context.split("\n"):
                    print(f"  {line}", file=sys.stderr)
            if suggestions:
                print(f"\n{self.dim('Suggestions:')}", file=sys.stderr)
                for i, suggestion in enumerate(suggestions, 1):
                    print(f"  {i}. {suggestion}", file=sys.stderr)
            print(file=sys.stderr)

    def json_output(self, data):
        print(json.dumps(data, indent=2, default=str))


class OutputNotifier(Notifier):
    """Notifier that prints through Output."""

    def __init__(self, output: Output):
        self.output = output

    def success(self, kind: str, message: str) -> None:
        self.output.success(message)

    def error(self, kind: str, message: str) -> None:
        self.output.error(message, f"{kind} was rolled back")


# Global output instance (will be configured per command)
out = Output()

# ============================================================================
# Helpers
# ============================================================================


def exit_code_for(error: BoardError) -> int:
    if isinstance(error, ValidationError):
        return EXIT_USAGE
    if isinstance(error, (ConcurrencyError, TransportError)):
        return EXIT_CONFLICT
    if isinstance(error, StorageError):
        return EXIT_DATABASE
    return EXIT_ERROR


def open_database(args) -> ProjectDatabase:
    db_path = find_db_path(args.dir)
    if not db_path.exists():
        out.error(
            f"Board not found: {db_path}",
            "No board.db file exists in the project",
            [
                "Initialize with: laneorder init",
                "Or specify directory: laneorder --dir /path/to/project ...",
            ],
        )
        sys.exit(EXIT_CONFIG)
    try:
        return ProjectDatabase(db_path)
    except BoardError as e:
        out.error(e.message, f"Failed to open {db_path}")
        sys.exit(exit_code_for(e))


def run_mutation(db: ProjectDatabase, submit: Callable[[ReconciliationClient], Mutation]) -> Mutation:
    """Load the board, submit one optimistic mutation and wait for it to settle."""

    async def _run() -> Mutation:
        transport = LocalTransport(MutationCoordinator(db))
        async with ReconciliationClient(transport, notifier=OutputNotifier(out)) as client:
            await client.projects()
            mutation = submit(client)
            await mutation.wait()
            return mutation

    try:
        return asyncio.run(_run())
    except BoardError as e:
        out.error(e.message, "Could not load the board")
        sys.exit(exit_code_for(e))


def finish_mutation(mutation: Mutation):
    if mutation.error is not None:
        sys.exit(exit_code_for(mutation.error))
    if out.json_mode:
        out.json_output(mutation.result.to_dict())
    elif mutation.result.noop:
        out.info(out.dim("Nothing to do"))
    elif mutation.result.project is not None:
        p = mutation.result.project
        out.info(f"  {p.id}  {p.status}#{p.order}  {p.name}")
    sys.exit(EXIT_SUCCESS)


def print_board(projects: list, statuses) -> None:
    for status in statuses:
        members = group_members(projects, status)
        print()
        print(out.blue(f"{STATUS_TITLES[status].upper()} ({len(members)})"))
        print("=" * 40)
        if not members:
            print(out.dim("  (empty)"))
        for p in members:
            print(f"  {p.order:>3}  {out.dim(p.id)}  {p.name}  [{p.priority}]")
    print()


# ============================================================================
# Commands
# ============================================================================


def cmd_init(args):
    """Initialize .laneorder/ folder with an empty board."""
    board_dir = Path(args.dir) if args.dir else Path.cwd()
    if board_dir.name != BOARD_DIR:
        board_dir = board_dir / BOARD_DIR
    db_path = board_dir / DB_NAME

    if db_path.exists() and not args.force:
        out.warning(f"{db_path} already exists (use --force to reinitialize)")
        if args.json:
            out.json_output({"status": "exists", "path": str(db_path)})
        sys.exit(EXIT_SUCCESS)

    if db_path.exists():
        db_path.unlink()
    try:
        ProjectDatabase(db_path)
    except BoardError as e:
        out.error(e.message, f"Failed to create {db_path}")
        sys.exit(exit_code_for(e))

    if args.json:
        out.json_output({"status": "created", "path": str(db_path)})
    else:
        out.success(f"Created {BOARD_DIR}/ folder")
        out.info(f"  {db_path}")


def cmd_status(args):
    """Show board status."""
    db = open_database(args)
    try:
        status = db.get_board_status()
    except BoardError as e:
        out.error(e.message)
        sys.exit(exit_code_for(e))

    if args.json:
        out.json_output(status.to_dict())
        sys.exit(EXIT_SUCCESS)

    print()
    print(out.blue("BOARD STATUS"))
    print("=" * 40)
    print(f"  Total:       {status.total_projects}")
    print(f"  New:         {status.new_projects}")
    print(f"  {out.blue('In Progress:')} {status.in_progress_projects}")
    print(f"  In Review:   {status.in_review_projects}")
    print(f"  {out.green('Completed:')}   {status.completed_projects} ({status.completion_percent}%)")
    print()
    if status.dense:
        print(f"  Ordering:    {out.green('ok')}")
    else:
        print(f"  Ordering:    {out.red('gaps or duplicates')} (run: laneorder repair)")
    print()


def cmd_list(args):
    """Show the board."""
    db = open_database(args)
    try:
        projects = db.list_projects(status=args.status)
    except BoardError as e:
        out.error(e.message)
        sys.exit(exit_code_for(e))

    if args.json:
        out.json_output([p.to_dict() for p in projects])
        sys.exit(EXIT_SUCCESS)
    print_board(projects, [args.status] if args.status else STATUSES)


def cmd_add(args):
    db = open_database(args)
    mutation = run_mutation(
        db, lambda client: client.create(args.name, args.description, args.status, args.priority)
    )
    finish_mutation(mutation)


def cmd_edit(args):
    db = open_database(args)
    mutation = run_mutation(
        db,
        lambda client: client.update(
            args.project_id,
            name=args.name,
            description=args.description,
            priority=args.priority,
            status=args.status,
        ),
    )
    finish_mutation(mutation)


def cmd_move(args):
    if bool(args.onto) == bool(args.to):
        out.error("Give exactly one of --onto PROJECT_ID or --to STATUS")
        sys.exit(EXIT_USAGE)
    intent = DropIntent(args.project_id, over_project_id=args.onto, over_status=args.to)
    db = open_database(args)
    mutation = run_mutation(db, lambda client: client.move(intent))
    finish_mutation(mutation)


def cmd_delete(args):
    db = open_database(args)
    mutation = run_mutation(db, lambda client: client.delete(args.project_id))
    finish_mutation(mutation)


def cmd_check(args):
    db = open_database(args)
    try:
        violations = db.check_density()
    except BoardError as e:
        out.error(e.message)
        sys.exit(exit_code_for(e))
    if args.json:
        out.json_output({"dense": not violations, "violations": violations})
    elif violations:
        out.error(
            "Board ordering is broken",
            "\n".join(f"{status}: {orders}" for status, orders in violations.items()),
            ["Repair with: laneorder repair"],
        )
    else:
        out.success("Every column is ordered 0..n-1")
    sys.exit(EXIT_DATABASE if violations else EXIT_SUCCESS)


def cmd_repair(args):
    db = open_database(args)
    try:
        changed = db.compact(args.status)
    except BoardError as e:
        out.error(e.message)
        sys.exit(exit_code_for(e))
    if args.json:
        out.json_output({"status": "repaired", "changed": changed})
    else:
        out.success(f"Renumbered {changed} project(s)")


def cmd_version(args):
    """Show version information."""
    if args.json:
        print(json.dumps({"version": __version__, "python": sys.version.split()[0]}))
    else:
        print(f"laneorder {__version__}")
        print(f"Python {sys.version.split()[0]}")


# ============================================================================
# Main
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="laneorder",
        description="laneorder - Kanban project board",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  laneorder init
  laneorder add "Website redesign" --priority high
  laneorder move proj-1a2b3c4d --to in_progress
  laneorder move proj-1a2b3c4d --onto proj-9f8e7d6c
  laneorder list --json

Environment Variables:
  LANEORDER_DIR            Override project directory
  LANEORDER_DB_PATH        Explicit path to board.db
  LANEORDER_BUSY_TIMEOUT   Seconds to wait on a locked board (default: 5)
  LANEORDER_LOG_LEVEL      Logging level (default: WARNING)
  LANEORDER_NO_COLOR       Disable colored output
        """,
    )

    parser.add_argument("--version", "-V", action="store_true", help="Show version")

    # Global flags
    parser.add_argument("--quiet", "-q", action="store_true", help="Suppress non-error output")
    parser.add_argument("--json", "-j", action="store_true", help="Output in JSON format")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("--dir", "-d", type=str, help="Project directory (overrides auto-detection)")
    parser.add_argument("--log-level", type=str, help="Logging level")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    init_parser = subparsers.add_parser("init", help="Initialize .laneorder/ folder")
    init_parser.add_argument("--force", "-f", action="store_true", help="Recreate an existing board")

    subparsers.add_parser("status", help="Show board status")

    list_parser = subparsers.add_parser("list", help="Show projects column by column")
    list_parser.add_argument("--status", "-s", choices=STATUSES, help="Only this column")

    add_parser = subparsers.add_parser("add", help="Append a project to a column")
    add_parser.add_argument("name", help="Project name")
    add_parser.add_argument("--description", "-m", type=str, help="Description")
    add_parser.add_argument("--status", "-s", choices=STATUSES, default="new", help="Column (default: new)")
    add_parser.add_argument("--priority", "-p", choices=PRIORITIES, default="medium", help="Priority (default: medium)")

    edit_parser = subparsers.add_parser("edit", help="Edit project details")
    edit_parser.add_argument("project_id")
    edit_parser.add_argument("--name", "-n", type=str)
    edit_parser.add_argument("--description", "-m", type=str)
    edit_parser.add_argument("--priority", "-p", choices=PRIORITIES)
    edit_parser.add_argument("--status", "-s", choices=STATUSES, help="Move to the end of this column")

    move_parser = subparsers.add_parser("move", help="Drop a project onto another project or a column")
    move_parser.add_argument("project_id")
    move_parser.add_argument("--onto", "-o", type=str, help="Take this project's position")
    move_parser.add_argument("--to", "-t", choices=STATUSES, help="Append to this column")

    delete_parser = subparsers.add_parser("delete", help="Delete a project")
    delete_parser.add_argument("project_id")

    subparsers.add_parser("check", help="Verify every column is ordered 0..n-1")

    repair_parser = subparsers.add_parser("repair", help="Renumber columns to 0..n-1")
    repair_parser.add_argument("--status", "-s", choices=STATUSES, help="Only this column")

    subparsers.add_parser("version", help="Show version information")

    return parser


COMMANDS = {
    "init": cmd_init,
    "status": cmd_status,
    "list": cmd_list,
    "add": cmd_add,
    "edit": cmd_edit,
    "move": cmd_move,
    "delete": cmd_delete,
    "check": cmd_check,
    "repair": cmd_repair,
    "version": cmd_version,
}


def main(argv: Optional[list] = None):
    global out
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    out = Output(quiet=args.quiet, json_mode=args.json, no_color_flag=args.no_color)

    if args.version:
        cmd_version(args)
        sys.exit(EXIT_SUCCESS)

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        sys.exit(EXIT_USAGE)
    command(args)


if __name__ == "__main__":
    main()
