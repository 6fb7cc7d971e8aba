"""CLI for collection management: list, delete, export, import, stats."""

import argparse
from pathlib import Path

from local_rag.application.engine import RetrievalEngine


def cmd_list(args: argparse.Namespace, engine: RetrievalEngine) -> int:
    summaries = engine.list_documents(args.subject)
    if not summaries:
        print("No documents.")
        return 0
    for s in summaries:
        d = s.document
        line = f"{d.id}  {d.status.value:<9}  {s.chunk_count:>5} chunks  [{d.subject}] {d.title}"
        if d.error:
            line += f"  ({d.error})"
        print(line)
    return 0


def cmd_delete(args: argparse.Namespace, engine: RetrievalEngine) -> int:
    engine.delete(args.document_id)
    print(f"✓ Deleted {args.document_id}")
    return 0


def cmd_export(args: argparse.Namespace, engine: RetrievalEngine) -> int:
    data = engine.export_archive()
    Path(args.output).write_bytes(data)
    print(f"✓ Exported collection to {args.output} ({len(data)} bytes)")
    return 0


def cmd_import(args: argparse.Namespace, engine: RetrievalEngine) -> int:
    count = engine.import_archive(Path(args.input).read_bytes())
    print(f"✓ Imported {count} documents from {args.input}")
    return 0


def cmd_stats(args: argparse.Namespace, engine: RetrievalEngine) -> int:
    s = engine.stats()
    print(f"Documents: {s.documents} ({s.ready_documents} ready, {s.failed_documents} failed)")
    print(f"Chunks:    {s.chunks}")
    print(f"Vectors:   {s.vectors}")
    print(f"Bytes:     {s.total_bytes}")
    print(f"Subjects:  {', '.join(s.subjects) or '-'}")
    print(f"Models:    {', '.join(s.model_ids) or '-'}")
    return 0


def add_parsers(subparsers: argparse._SubParsersAction) -> None:
    p_list = subparsers.add_parser("list", help="List documents")
    p_list.add_argument("--subject", help="Only documents tagged with this subject")
    p_list.set_defaults(handler=cmd_list)

    p_delete = subparsers.add_parser("delete", help="Delete a document with its chunks")
    p_delete.add_argument("document_id")
    p_delete.set_defaults(handler=cmd_delete)

    p_export = subparsers.add_parser("export", help="Export the collection to an archive")
    p_export.add_argument("output", help="Archive path (gzip JSON)")
    p_export.set_defaults(handler=cmd_export)

    p_import = subparsers.add_parser("import", help="Replace the collection from an archive")
    p_import.add_argument("input", help="Archive path")
    p_import.set_defaults(handler=cmd_import)

    p_stats = subparsers.add_parser("stats", help="Collection statistics")
    p_stats.set_defaults(handler=cmd_stats)
