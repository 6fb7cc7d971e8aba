"""`local-rag ingest`: decode a file into pages and ingest it synchronously."""

import argparse
import sys

from local_rag.application.dto.ingest_dto import IngestProgress
from local_rag.application.engine import RetrievalEngine
from local_rag.infrastructure.parsing.page_loaders import loader_for


def _print_progress(p: IngestProgress) -> None:
    suffix = f" - {p.message}" if p.message else ""
    print(f"  [{p.stage.value}] {p.current}/{p.total} ({p.fraction:.0%}){suffix}", file=sys.stderr)


def cmd_ingest(args: argparse.Namespace, engine: RetrievalEngine) -> int:
    loaded = loader_for(args.path).load(args.path)
    doc_id = engine.ingest(
        title=args.title or loaded.title,
        subject=args.subject,
        pages=loaded.pages,
        document_id=args.id,
        byte_size=loaded.byte_size,
        progress=None if args.quiet else _print_progress,
    )
    summary = engine.get_document(doc_id)
    print(
        f"✓ Ingested '{summary.document.title}' as {doc_id} "
        f"({summary.document.page_count} pages, {summary.chunk_count} chunks)"
    )
    return 0


def add_parser(subparsers: argparse._SubParsersAction) -> None:
    p = subparsers.add_parser("ingest", help="Ingest a PDF or text file")
    p.add_argument("path", help="PDF, or text file with form-feed page breaks")
    p.add_argument("--subject", required=True, help="Subject/category tag")
    p.add_argument("--title", help="Document title (default: PDF metadata or file name)")
    p.add_argument("--id", help="Document id; re-ingesting an id replaces that document")
    p.add_argument("--quiet", action="store_true", help="Do not print progress")
    p.set_defaults(handler=cmd_ingest)
