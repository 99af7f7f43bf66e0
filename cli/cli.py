# cli/cli.py
"""
Command line tools for schema setup and bulk CSV exchange of buyer leads.
"""
from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import Callable, Dict, Optional

from sqlalchemy import select

from buyer_leads.core.exceptions import BaseAPIException
from buyer_leads.core.logging import configure_structlog
from buyer_leads.db import session as db
from buyer_leads.models.user import User
from buyer_leads.services.auth import Identity
from buyer_leads.services.lead_import import import_leads
from buyer_leads.services.lead_query import LeadFilterParams, export_leads
from buyer_leads.utils.csv_export import leads_to_csv
from buyer_leads.utils.csv_parser import parse_csv_rows


# Output formatting utilities
def _supports_color() -> bool:
    """Check if terminal supports ANSI color codes."""
    if sys.platform == "win32":
        return os.getenv("TERM") == "xterm" or os.getenv("ANSICON") is not None
    return sys.stdout.isatty()


SUPPORTS_COLOR = _supports_color()

# ANSI color codes
GREEN = '\033[92m' if SUPPORTS_COLOR else ''
RED = '\033[91m' if SUPPORTS_COLOR else ''
YELLOW = '\033[93m' if SUPPORTS_COLOR else ''
BLUE = '\033[94m' if SUPPORTS_COLOR else ''
RESET = '\033[0m' if SUPPORTS_COLOR else ''


def print_success(message: str):
    print(f"{GREEN}[✓]{RESET} {message}", file=sys.stderr)


def print_error(message: str):
    print(f"{RED}[✗]{RESET} {message}", file=sys.stderr)


def print_warning(message: str):
    print(f"{YELLOW}[!]{RESET} {message}", file=sys.stderr)


def print_info(message: str):
    print(f"{BLUE}[i]{RESET} {message}", file=sys.stderr)


async def _identity_for(external_id: str) -> Optional[Identity]:
    """Resolve a synced user to the identity commands act as."""
    db.create_database_engine()
    async with db.AsyncSessionLocal() as session:
        result = await session.execute(select(User).where(User.external_id == external_id))
        user = result.scalar_one_or_none()
    if user is None:
        return None
    return Identity(id=user.id, role=user.role, email=user.email)


# Command functions
async def cmd_init_db(args: argparse.Namespace) -> int:
    """Command: Create tables from the ORM metadata."""
    print_info("Creating database schema...")
    await db.create_schema()
    print_success("Schema created")
    return 0


async def cmd_import_csv(args: argparse.Namespace) -> int:
    """Command: Import a CSV file of buyers, all rows or none."""
    identity = await _identity_for(args.owner_external_id)
    if identity is None:
        print_error(f"No user with external id {args.owner_external_id!r}; run /auth/sync first")
        return 1

    try:
        rows = parse_csv_rows(Path(args.file).read_bytes())
    except (OSError, ValueError) as e:
        print_error(str(e))
        return 1

    print_info(f"Importing {len(rows)} rows from {args.file}...")
    async with db.AsyncSessionLocal() as session:
        try:
            result = await import_leads(session, rows, identity)
        except BaseAPIException as e:
            print_error(e.message)
            for entry in e.details.get("errors", []):
                for error in entry.get("errors", []):
                    print_error(f"  row {entry['row']}: {error['path']}: {error['message']}")
            return 1

    print_success(f"Imported {result.imported_count} buyers")
    return 0


async def cmd_export_csv(args: argparse.Namespace) -> int:
    """Command: Write the buyers visible to a user as CSV."""
    identity = await _identity_for(args.as_external_id)
    if identity is None:
        print_error(f"No user with external id {args.as_external_id!r}")
        return 1

    async with db.AsyncSessionLocal() as session:
        try:
            leads = await export_leads(
                session,
                LeadFilterParams(search=args.search),
                identity,
                sort=args.sort,
                direction=args.direction,
            )
        except BaseAPIException as e:
            print_error(e.message)
            return 1

    content = leads_to_csv(leads)
    if args.output:
        Path(args.output).write_text(content, encoding="utf-8")
        print_success(f"Exported {len(leads)} buyers to {args.output}")
    else:
        sys.stdout.write(content)
    return 0


async def cmd_system_status(args: argparse.Namespace) -> int:
    """Command: Quick database connectivity check."""
    print_info("Checking database...")
    result = await db.health_check()
    if result.get("status") == "healthy":
        print_success("Database: connected")
        return 0
    print_error(f"Database: {result.get('error', 'unhealthy')}")
    return 1


# Command registry
COMMANDS: Dict[str, Callable] = {
    'init-db': cmd_init_db,
    'import-csv': cmd_import_csv,
    'export-csv': cmd_export_csv,
    'system-status': cmd_system_status,
}


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with all commands."""
    parser = argparse.ArgumentParser(
        description='Buyer leads CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    subparsers.add_parser('init-db', help='Create database tables')

    import_parser = subparsers.add_parser('import-csv', help='Import buyers from a CSV file')
    import_parser.add_argument('file', help='CSV file with a header row')
    import_parser.add_argument('--owner-external-id', required=True, help='Identity provider id of the owner')

    export_parser = subparsers.add_parser('export-csv', help='Export buyers as CSV')
    export_parser.add_argument('--as-external-id', required=True, help='Identity provider id to export as')
    export_parser.add_argument('--output', '-o', help='Output file (default: stdout)')
    export_parser.add_argument('--search', help='Match name, phone or email')
    export_parser.add_argument('--sort', default='updatedAt', help='Sort field')
    export_parser.add_argument('--direction', default='desc', choices=['asc', 'desc'])

    subparsers.add_parser('system-status', help='Quick database health check')

    return parser


async def _run(command_func: Callable, parsed_args: argparse.Namespace) -> int:
    try:
        return await command_func(parsed_args)
    finally:
        await db.dispose_engine()


def main(args: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    command_func = COMMANDS.get(parsed_args.command)
    if not command_func:
        print_error(f"Unknown command: {parsed_args.command}")
        parser.print_help()
        return 1

    configure_structlog()
    try:
        return asyncio.run(_run(command_func, parsed_args))
    except KeyboardInterrupt:
        print_error("Interrupted by user")
        return 130
    except BaseAPIException as e:
        print_error(f"Error executing command: {e.message}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
