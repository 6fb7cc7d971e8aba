"""`local-rag` command line entry point.

Interface layer only: parse arguments, build the engine through the
composition root, format results. Domain errors become exit code 1.
"""

import argparse
import sys
from dataclasses import replace

from local_rag.config.composition import build_engine
from local_rag.config.logging import configure_logging
from local_rag.config.settings import AppSettings
from local_rag.domain.errors import DomainError
from local_rag.interface.cli import admin, ingest, query


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="local-rag",
        description="Local document retrieval: hybrid search with cited answers",
    )
    parser.add_argument("--db", help="Database URL (default: RAG_DATABASE_URL)")
    parser.add_argument("--log-level", help="Logging level (default: LOG_LEVEL)")

    subparsers = parser.add_subparsers(dest="command", help="Commands")
    ingest.add_parser(subparsers)
    query.add_parsers(subparsers)
    admin.add_parsers(subparsers)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    settings = AppSettings()
    if args.db:
        settings = replace(settings, database_url=args.db)
    configure_logging(args.log_level or settings.log_level)

    try:
        engine = build_engine(settings)
    except DomainError as ex:
        print(f"✗ Error: {ex}", file=sys.stderr)
        return 1
    try:
        return args.handler(args, engine)
    except (DomainError, OSError) as ex:
        print(f"✗ {type(ex).__name__}: {ex}", file=sys.stderr)
        return 1
    finally:
        engine.close()


if __name__ == "__main__":
    sys.exit(main())
