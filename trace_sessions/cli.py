"""Command line access to stored session traces."""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from trace_sessions.catalog import CatalogClient
from trace_sessions.exceptions import SessionsError
from trace_sessions.logging import setup_logging
from trace_sessions.sessions import FilterRequest, ImportFile, Session, SessionSearchRequest, SessionService
from trace_sessions.settings import settings
from trace_sessions.store import create_session_store
from trace_sessions.store.memory import MemorySessionStore

_SESSION_LIST = TypeAdapter(list[Session])

MEMORY_STORE_WARNING = "Warning: OPENSEARCH_HOST is not set; using an empty in-memory store that is discarded on exit"


def _parse_filter(raw: str) -> FilterRequest:
    """Parse ``FEATURE:CONDITION:VALUE``; the value may itself contain colons."""
    parts = raw.split(":", 2)
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(f"filter must be FEATURE:CONDITION:VALUE, got '{raw}'")
    feature, condition, value = parts
    try:
        return FilterRequest(feature=feature.upper(), condition=condition.upper(), value=value)
    except ValidationError as e:
        raise argparse.ArgumentTypeError(f"invalid filter '{raw}'") from e


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trace-sessions",
        description="Query, export and import chain session traces",
        epilog="Set OPENSEARCH_HOST to use a persistent store. Without it each run gets an empty in-memory store.",
    )
    parser.add_argument("--log-level", help="Override the log level (DEBUG, INFO, ...)")
    subparsers = parser.add_subparsers(dest="command")

    get = subparsers.add_parser("get", help="Show a session with its element tree")
    get.add_argument("session_id")
    get.add_argument("--full", action="store_true", help="Include element payloads")

    external = subparsers.add_parser("external", help="Find a session by its external id")
    external.add_argument("external_id")
    external.add_argument("--details", action="store_true", help="Include elements and their payloads")

    element = subparsers.add_parser("element", help="Show a single element with its payload")
    element.add_argument("element_id")

    search = subparsers.add_parser("search", help="List session previews")
    search.add_argument("--chain-id")
    search.add_argument("--offset", type=int, default=0)
    search.add_argument("--limit", type=int, default=20)
    search.add_argument("--sort", default="sessionStarted", help="Column to sort on, descending")
    search.add_argument("--query", default="", help="Free-text search string")
    search.add_argument("--filter", dest="filters", type=_parse_filter, action="append", default=[], metavar="FEATURE:CONDITION:VALUE")

    export = subparsers.add_parser("export", help="Export sessions to a JSON file")
    export.add_argument("session_ids", nargs="+")
    export.add_argument("-o", "--output-dir", type=Path, default=Path.cwd())

    import_ = subparsers.add_parser("import", help="Import sessions from exported JSON files")
    import_.add_argument("files", nargs="+", type=Path)

    delete = subparsers.add_parser("delete", help="Delete sessions")
    target = delete.add_mutually_exclusive_group(required=True)
    target.add_argument("--session", dest="session_id")
    target.add_argument("--chain", dest="chain_ids", nargs="+")
    target.add_argument("--all", action="store_true")

    return parser


async def _run_command(service: SessionService, args: argparse.Namespace) -> str:
    """Execute the selected subcommand and return its JSON output."""
    match args.command:
        case "get":
            session = await service.find_by_id(args.session_id, light=not args.full)
            return session.model_dump_json(by_alias=True, indent=2)
        case "external":
            session = await service.find_by_external_id(args.external_id, include_elements=args.details)
            return session.model_dump_json(by_alias=True, indent=2)
        case "element":
            element = await service.get_element(args.element_id)
            return element.model_dump_json(by_alias=True, indent=2)
        case "search":
            response = await service.search_with_chain_names(
                chain_id=args.chain_id,
                offset=args.offset,
                limit=args.limit,
                sort_column=args.sort,
                request=SessionSearchRequest(search_string=args.query, filter_request_list=args.filters),
            )
            return response.model_dump_json(by_alias=True, indent=2)
        case "export":
            exported = await service.export_sessions(args.session_ids)
            args.output_dir.mkdir(parents=True, exist_ok=True)
            path = args.output_dir / exported.filename
            path.write_text(exported.content, encoding="utf-8")
            return json.dumps({"file": str(path)})
        case "import":
            files = [ImportFile(name=path.name, content=path.read_bytes()) for path in args.files]
            imported = await service.import_sessions(files)
            return _SESSION_LIST.dump_json(imported, by_alias=True, indent=2).decode("utf-8")
        case "delete":
            if args.all:
                await service.delete_all()
            elif args.chain_ids:
                await service.delete_by_chain_ids(args.chain_ids)
            else:
                await service.delete_by_id(args.session_id)
            return json.dumps({"deleted": True})
        case _:
            raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    """Entry point for the trace-sessions CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    setup_logging(level=args.log_level)

    store = create_session_store(settings)
    if isinstance(store, MemorySessionStore):
        print(MEMORY_STORE_WARNING, file=sys.stderr)
    catalog = CatalogClient(settings.catalog_url, timeout=settings.catalog_timeout) if settings.catalog_url else None
    service = SessionService(store, catalog=catalog)
    try:
        output = asyncio.run(_run_command(service, args))
    except (SessionsError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        store.close()

    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
