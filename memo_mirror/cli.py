#!/usr/bin/env python3
"""
Command line interface for memo_mirror

Mirrors flomo memos into the local SQLite cache and reads them back without
touching the network.

Usage Examples:
    # Store the authorization token copied from the web app
    memo-mirror login "Bearer eyJ0eXAi..."

    # Run an incremental sync (Ctrl-C cancels, memos fetched so far are kept)
    memo-mirror sync

    # Show the last sync outcome
    memo-mirror status

    # Newest 20 memos, or a case-sensitive search
    memo-mirror list --limit 20
    memo-mirror search "#reading" --order-by updated_at

    # Export everything
    memo-mirror export --format markdown --url-mode id --output memos.md
    memo-mirror export --format json --compact --date-format none

    # Drop the local cache
    memo-mirror clear --yes
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import get_cli_setting, get_memos_db_path, load_token, save_token
from .DB.Memos_DB import MemosDB, MemosDBError
from .Export.formatters import DEFAULT_DATE_FORMAT, EXPORT_FORMATS, URL_MODES
from .logging_config import configure_logging, mask_token
from .memo_api.client import FlomoClient
from .Models.memo import Memo, SyncState
from .Sync.sync_service import MemoSyncService, SourceFactory, SyncAlreadyRunningError

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130

PREVIEW_WIDTH = 60

console = Console()


def make_source_factory() -> SourceFactory:
    """FlomoClient factory configured from the [flomo] section."""
    base_url = get_cli_setting("flomo", "base_url")
    timeout = get_cli_setting("flomo", "request_timeout_seconds")

    def factory(token: str) -> FlomoClient:
        return FlomoClient(token, base_url=base_url, timeout=timeout)

    return factory


def build_service(db_path: Optional[Path] = None) -> MemoSyncService:
    db = MemosDB(db_path or get_memos_db_path(), client_id="cli")
    return MemoSyncService(
        db,
        source_factory=make_source_factory(),
        max_iterations=get_cli_setting("sync", "max_iterations"),
        unproductive_page_limit=get_cli_setting("sync", "unproductive_page_limit"),
    )


def _preview(content: str) -> str:
    flat = " ".join(content.split())
    if len(flat) > PREVIEW_WIDTH:
        return flat[:PREVIEW_WIDTH] + "..."
    return flat


def print_memo_table(memos: List[Memo], title: str) -> None:
    if not memos:
        console.print("[yellow]No memos found.[/yellow]")
        return
    table = Table(title=title)
    table.add_column("Slug", style="cyan", no_wrap=True)
    table.add_column("Created", no_wrap=True)
    table.add_column("Content")
    table.add_column("Tags", style="magenta")
    for memo in memos:
        table.add_row(escape(memo.slug), escape(memo.created_at),
                      escape(_preview(memo.content)), escape(", ".join(memo.tags)))
    console.print(table)


# --- Commands ---

async def _sync_with_progress(service: MemoSyncService, token: str) -> int:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, service.cancel_sync)
    except (NotImplementedError, RuntimeError):
        # No loop signal handlers on this platform; KeyboardInterrupt ends the run instead
        pass

    final_status = SyncState.FAILED.value
    try:
        with console.status("Starting sync...") as status_line:
            async for event in service.start_sync(token):
                final_status = event.status
                if SyncState(event.status).is_terminal:
                    console.print(escape(event.message))
                else:
                    status_line.update(f"{event.message} ({event.current}/{event.total})")
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass

    if final_status == SyncState.COMPLETED.value:
        return EXIT_OK
    if final_status == SyncState.CANCELLED.value:
        return EXIT_CANCELLED
    return EXIT_FAILURE


def cmd_sync(args: argparse.Namespace, service: MemoSyncService) -> int:
    token = args.token or load_token()
    if not token:
        console.print("[red]No authorization token. Run 'memo-mirror login TOKEN' or set FLOMO_TOKEN.[/red]")
        return EXIT_FAILURE
    logger.info(f"Syncing with token {mask_token(token)}")
    try:
        return asyncio.run(_sync_with_progress(service, token))
    except SyncAlreadyRunningError as e:
        console.print(f"[red]{e}[/red]")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        console.print("[yellow]Sync interrupted.[/yellow]")
        return EXIT_CANCELLED


def cmd_status(args: argparse.Namespace, service: MemoSyncService) -> int:
    status = service.get_sync_status()
    table = Table(title="Sync status", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Status", status.status.value)
    table.add_row("Last sync", status.last_sync_at or "never")
    table.add_row("Memos", str(status.total_memos))
    if status.error_message:
        table.add_row("Error", f"[red]{escape(status.error_message)}[/red]")
    console.print(table)
    return EXIT_OK


def cmd_list(args: argparse.Namespace, service: MemoSyncService) -> int:
    memos = service.get_page(args.order_by, args.order_dir, args.offset, args.limit)
    print_memo_table(memos, f"Memos {args.offset + 1}-{args.offset + len(memos)}")
    return EXIT_OK


def cmd_search(args: argparse.Namespace, service: MemoSyncService) -> int:
    memos = service.search(args.query, args.order_by, args.order_dir, args.offset, args.limit)
    print_memo_table(memos, f"Memos containing '{escape(args.query)}'")
    return EXIT_OK


def cmd_export(args: argparse.Namespace, service: MemoSyncService) -> int:
    date_format = "" if args.date_format.lower() == "none" else args.date_format
    output = service.export(
        args.format,
        compact=args.compact,
        date_format=date_format,
        url_mode=args.url_mode,
        minimal=args.minimal,
    )
    if args.output:
        output_path = Path(args.output).expanduser()
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(output, encoding="utf-8")
        console.print(f"[green]Exported to {output_path}[/green]")
    else:
        sys.stdout.write(output)
        if not output.endswith("\n"):
            sys.stdout.write("\n")
    return EXIT_OK


def cmd_clear(args: argparse.Namespace, service: MemoSyncService) -> int:
    if not args.yes:
        response = input("Delete every locally cached memo? [y/N] ")
        if response.strip().lower() != "y":
            console.print("Aborted.")
            return EXIT_FAILURE
    service.clear_local_data()
    console.print("[green]Local memo cache cleared.[/green]")
    return EXIT_OK


def cmd_login(args: argparse.Namespace) -> int:
    if not args.token.strip():
        console.print("[red]Token must not be empty.[/red]")
        return EXIT_FAILURE
    if not save_token(args.token):
        console.print("[red]Could not write the config file, see the log for details.[/red]")
        return EXIT_FAILURE
    console.print(f"[green]Token {mask_token(args.token)} saved.[/green]")
    return EXIT_OK


# --- Parser ---

def _add_paging_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--order-by", default="created_at", help="created_at or updated_at")
    parser.add_argument("--order-dir", default="desc", help="asc or desc")
    parser.add_argument("--offset", type=int, default=0)
    parser.add_argument("--limit", type=int, default=50)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="memo-mirror",
        description="Mirror flomo memos into a local SQLite cache",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--db-path", help="Database file (overrides the config and MEMO_MIRROR_DB)")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR")

    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Fetch new and updated memos")
    sync_parser.add_argument("--token", help="Authorization token for this run only")

    subparsers.add_parser("status", help="Show the last sync outcome")

    list_parser = subparsers.add_parser("list", help="List cached memos")
    _add_paging_arguments(list_parser)

    search_parser = subparsers.add_parser("search", help="Case-sensitive search in content and tags")
    search_parser.add_argument("query")
    _add_paging_arguments(search_parser)

    export_parser = subparsers.add_parser("export", help="Export cached memos")
    export_parser.add_argument("--format", choices=EXPORT_FORMATS, default="markdown")
    export_parser.add_argument("--compact", action="store_true", help="Single-line JSON")
    export_parser.add_argument("--date-format", default=DEFAULT_DATE_FORMAT,
                               help='e.g. "yyyy-MM-dd HH:mm", "MMM dd, yyyy" or "none"')
    export_parser.add_argument("--url-mode", choices=URL_MODES, default="full")
    export_parser.add_argument("--minimal", action="store_true", help="One line per memo (markdown)")
    export_parser.add_argument("--output", help="Write to a file instead of stdout")

    clear_parser = subparsers.add_parser("clear", help="Delete the local cache")
    clear_parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    login_parser = subparsers.add_parser("login", help="Store the authorization token")
    login_parser.add_argument("token")

    return parser


COMMANDS = {
    "sync": cmd_sync,
    "status": cmd_status,
    "list": cmd_list,
    "search": cmd_search,
    "export": cmd_export,
    "clear": cmd_clear,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        # argparse exits with 2 on usage errors
        return EXIT_OK if e.code in (0, None) else EXIT_FAILURE

    configure_logging(level=args.log_level, console=False)

    if args.command == "login":
        return cmd_login(args)

    try:
        service = build_service(Path(args.db_path) if args.db_path else None)
    except MemosDBError as e:
        console.print(f"[red]Could not open the memo database: {e}[/red]")
        return EXIT_FAILURE

    try:
        return COMMANDS[args.command](args, service)
    except (MemosDBError, SyncAlreadyRunningError, ValueError) as e:
        logger.error(f"Command '{args.command}' failed: {e}")
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return EXIT_FAILURE
    finally:
        service.db.close()


if __name__ == "__main__":
    sys.exit(main())
