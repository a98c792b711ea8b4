"""Command-line interface for ImportMap."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import uvicorn

from .config import settings


def main():
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="ImportMap - map CSV import columns onto target captions"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Server command
    server_parser = subparsers.add_parser("serve", help="Start the web server")
    server_parser.add_argument(
        "--host", default=settings.host, help=f"Host to bind to (default: {settings.host})"
    )
    server_parser.add_argument(
        "--port", type=int, default=settings.port, help=f"Port to bind to (default: {settings.port})"
    )
    server_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    # One-shot mapping command
    map_parser = subparsers.add_parser(
        "map", help="Suggest mappings for a file and optionally export it"
    )
    map_parser.add_argument("file", help="Path to a .csv, .tsv or .txt file")
    map_parser.add_argument(
        "--delimiter",
        choices=["comma", "tab"],
        default=settings.default_delimiter,
        help="Field delimiter (default: %(default)s)",
    )
    map_parser.add_argument(
        "--no-header", action="store_true", help="The first row holds data, not column names"
    )
    map_parser.add_argument(
        "--date-format",
        choices=["DD/MM/YYYY", "MM/DD/YYYY", "YYYY-MM-DD"],
        default=settings.default_date_format,
        help="Expected Start Date format (default: %(default)s)",
    )
    map_parser.add_argument(
        "--accept-all",
        action="store_true",
        help="Confirm every suggestion and drop captions that got no column",
    )
    map_parser.add_argument("--output", "-o", help="Where to write the mapped CSV")

    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "serve":
        run_server(args.host, args.port, args.reload)
    elif args.command == "map":
        sys.exit(
            asyncio.run(
                run_map(
                    args.file,
                    delimiter=args.delimiter,
                    has_header=not args.no_header,
                    date_format=args.date_format,
                    accept_all=args.accept_all,
                    output=args.output,
                )
            )
        )
    else:
        parser.print_help()
        sys.exit(1)


def run_server(host: str, port: int, reload: bool):
    """Run the web server."""
    uvicorn.run(
        "importmap.api:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


async def run_map(
    file: str,
    delimiter: str = "comma",
    has_header: bool = True,
    date_format: str = "DD/MM/YYYY",
    accept_all: bool = False,
    output: str = None,
) -> int:
    """Run one mapping pass over a file. Returns a process exit code."""
    from .api.app import build_session
    from .codec import InputFormatError
    from .mapping import ExportBlockedError

    path = Path(file)
    try:
        text = path.read_text(encoding="utf-8-sig")
    except OSError as e:
        print(f"Error: cannot read {file}: {e}")
        return 1

    session = build_session()
    await session.set_date_format(date_format)

    try:
        outcome = await session.upload(
            text, delimiter=delimiter, has_header=has_header, file_name=path.name
        )
    except InputFormatError as e:
        print(f"Error: {e}")
        return 1

    print(outcome.summary)
    print()

    if accept_all:
        await session.confirm_all()
        for slot in session.slots:
            if slot.has_caption and slot.column is None:
                await session.remove_slot(slot.id)

    for slot in session.slots:
        if not slot.has_caption:
            continue
        status = "confirmed" if slot.confirmed else ("suggested" if slot.column else "unassigned")
        column = slot.column or "-"
        print(f"  {slot.caption:<16} {column:<24} {status}")
    print()

    report = await session.validate()
    if report is not None:
        print(report.summary)
        for issue in report.issues:
            samples = ", ".join(f"row {row}: {value!r}" for row, value in issue.samples)
            print(f"  {issue.caption}: {issue.rule} ({issue.count}) {samples}")
        print()

    try:
        result = await session.export()
    except ExportBlockedError as e:
        print(e.message)
        return 2

    target = Path(output) if output else path.with_name(result.file_name)
    target.write_text(result.content + "\n", encoding="utf-8")
    print(f"Wrote {result.row_count} rows to {target}")
    return 0


if __name__ == "__main__":
    main()
