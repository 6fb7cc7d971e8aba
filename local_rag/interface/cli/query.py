"""`local-rag search` / `local-rag ask`: thin formatting over the engine."""

import argparse

from local_rag.application.engine import RetrievalEngine
from local_rag.domain.models import RetrievalResult


def _snippet(text: str, limit: int = 160) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[: limit - 3] + "..."


def _print_retrieval(result: RetrievalResult) -> None:
    if result.is_empty:
        print("No results.")
    for i, item in enumerate(result.items, 1):
        section = f" § {item.chunk.section}" if item.chunk.section else ""
        print(
            f"[{i}] {item.document_title}, {item.chunk.page_label}{section} "
            f"(score={item.composite:.3f})"
        )
        print(f"    {_snippet(item.chunk.text)}")
    print(f"\nmode={result.mode.value} confidence={result.confidence:.3f}")
    for w in result.warnings:
        print(f"⚠ {w}")


def cmd_search(args: argparse.Namespace, engine: RetrievalEngine) -> int:
    result = engine.search(args.query, subject=args.subject, top_k=args.k, lambda_mult=args.lam)
    _print_retrieval(result)
    return 0


def cmd_ask(args: argparse.Namespace, engine: RetrievalEngine) -> int:
    response = engine.ask(args.query, subject=args.subject, top_k=args.k, lambda_mult=args.lam)
    answer = response.answer
    print("\n" + "=" * 80)
    print("ANSWER:")
    print("=" * 80)
    print(answer.text)
    print("\n" + "=" * 80)
    print("CITATIONS:")
    print("=" * 80)
    for i, c in enumerate(answer.citations, 1):
        print(f"[{i}] {c.label} (score={c.score:.3f})")
    flags = [
        name
        for name, on in (
            ("delegated", answer.delegated),
            ("degraded", answer.degraded),
            ("low-confidence", answer.low_confidence),
        )
        if on
    ]
    print(f"\nconfidence={answer.confidence:.3f} {' '.join(flags)}".rstrip())
    for w in response.retrieval.warnings:
        print(f"⚠ {w}")
    return 0


def _add_query_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("query", help="Natural-language question")
    p.add_argument("--subject", help="Only search documents tagged with this subject")
    p.add_argument("--k", type=int, default=None, help="Number of chunks (default: QUERY_TOP_K)")
    p.add_argument(
        "--lambda",
        dest="lam",
        type=float,
        default=None,
        help="MMR trade-off in [0,1]; 1 = relevance only (default: QUERY_MMR_LAMBDA)",
    )


def add_parsers(subparsers: argparse._SubParsersAction) -> None:
    p_search = subparsers.add_parser("search", help="Hybrid search with MMR re-ranking")
    _add_query_args(p_search)
    p_search.set_defaults(handler=cmd_search)

    p_ask = subparsers.add_parser("ask", help="Answer a question with citations")
    _add_query_args(p_ask)
    p_ask.set_defaults(handler=cmd_ask)
