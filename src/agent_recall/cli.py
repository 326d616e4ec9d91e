"""
Command-line interface for agent-recall.

Sub-commands
------------
add     – Store a piece of text in memory (optionally only if the gate accepts it).
search  – Lexical, vector or hybrid search.
judge   – Show the gate's decision for a piece of text.
eval    – Score the gate against a built-in labelled example set.
stats   – Print store statistics.
delete  – Delete a memory by its ID.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from .config import Settings, configure_logging, load_settings
from .errors import AgentRecallError
from .evaluation import EXAMPLE_SETS, evaluate_gate
from .memory import MemoryStore

logger = logging.getLogger(__name__)


def _build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agent-recall",
        description="Persistent, self-gating memory for conversational agents.",
    )
    parser.add_argument(
        "--db",
        default=settings.db_path,
        metavar="PATH",
        help=f"Path to the SQLite memory database (default: {settings.db_path}).",
    )
    parser.add_argument(
        "--model",
        default=settings.model,
        metavar="NAME",
        help=f"sentence-transformers embedding model (default: {settings.model}).",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    # add
    p_add = sub.add_parser("add", help="Store text in memory.")
    p_add.add_argument("text", nargs="?", help="Text to store (reads stdin if omitted).")
    p_add.add_argument("--meta", default=None, metavar="JSON", help="Metadata as a JSON object.")
    p_add.add_argument(
        "--gate",
        action="store_true",
        help="Only store the text if the memory gate accepts it.",
    )
    _add_threshold_args(p_add, settings)

    # search
    p_search = sub.add_parser("search", help="Search stored memories.")
    p_search.add_argument("query", help="Search query.")
    p_search.add_argument(
        "--mode",
        choices=("hybrid", "lexical", "vector"),
        default="hybrid",
        help="Ranking strategy (default: hybrid).",
    )
    p_search.add_argument(
        "-n",
        type=int,
        default=5,
        metavar="N",
        help="Number of results to return (default: 5).",
    )
    p_search.add_argument("--json", action="store_true", dest="as_json", help="Output as JSON.")

    # judge
    p_judge = sub.add_parser("judge", help="Show the memory gate's decision for TEXT.")
    p_judge.add_argument("text", help="Candidate memory text.")
    _add_threshold_args(p_judge, settings)

    # eval
    p_eval = sub.add_parser("eval", help="Evaluate the gate on labelled examples.")
    _add_threshold_args(p_eval, settings)
    p_eval.add_argument(
        "--set",
        dest="example_set",
        choices=sorted(EXAMPLE_SETS),
        default="tuning",
        help="Labelled example set to score (default: tuning).",
    )

    # stats
    sub.add_parser("stats", help="Print store statistics as JSON.")

    # delete
    p_delete = sub.add_parser("delete", help="Delete a memory by ID.")
    p_delete.add_argument("id", help="Memory ID to delete.")

    return parser


def _add_threshold_args(parser: argparse.ArgumentParser, settings: Settings) -> None:
    parser.add_argument(
        "--gap",
        type=float,
        default=settings.gap_threshold,
        metavar="G",
        help=f"Importance-gap threshold (default: {settings.gap_threshold}).",
    )
    parser.add_argument(
        "--novelty",
        type=float,
        default=settings.novelty_threshold,
        metavar="S",
        help=f"Near-duplicate similarity threshold (default: {settings.novelty_threshold}).",
    )


def _open_store(settings: Settings, db_path: str, model: str) -> MemoryStore:
    return MemoryStore(
        db_path=db_path,
        embedding_model=model,
        device=settings.device,
        cache_folder=settings.cache_dir,
        dtype=settings.dtype,
    )


def main(argv: list[str] | None = None) -> int:
    try:
        settings = load_settings()
    except AgentRecallError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    configure_logging(settings.log_level)

    args = _build_parser(settings).parse_args(argv)

    try:
        return _run(args, settings)
    except AgentRecallError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


def _run(args: argparse.Namespace, settings: Settings) -> int:
    if args.command == "add":
        text = args.text
        if text is None:
            text = sys.stdin.read()
        if not text.strip():
            print("Error: no text provided.", file=sys.stderr)
            return 1
        metadata = None
        if args.meta:
            try:
                metadata = json.loads(args.meta)
            except json.JSONDecodeError as exc:
                print(f"Error: --meta is not valid JSON: {exc}", file=sys.stderr)
                return 1

    # The gate is scored against a scratch corpus so stored memories don't
    # turn labelled positives into duplicates.
    db_path = ":memory:" if args.command == "eval" else args.db

    with _open_store(settings, db_path, args.model) as store:
        gate_kwargs = {
            "gap_threshold": getattr(args, "gap", settings.gap_threshold),
            "novelty_threshold": getattr(args, "novelty", settings.novelty_threshold),
            "min_chars": settings.min_chars,
            "max_chars": settings.max_chars,
        }

        if args.command == "add":
            if args.gate:
                decision = store.should_create_memory(**gate_kwargs).decide(text)
                if not decision.accepted:
                    print(f"Skipped ({decision.reason}).")
                    return 0
            mem_id = store.add(text, metadata)
            print(f"Stored memory {mem_id}")

        elif args.command == "search":
            search = {
                "hybrid": store.search_hybrid,
                "lexical": store.search_lexical,
                "vector": store.search_vector,
            }[args.mode]
            results = search(args.query, args.n)
            if not results:
                print("No memories found.")
                return 0
            if args.as_json:
                print(json.dumps([r.to_dict() for r in results], indent=2))
            else:
                for i, r in enumerate(results, 1):
                    print(f"[{i}] (score={r.score:.4f})")
                    print(f"    {r.content[:200]}")
                    print(f"    id={r.id}")
                    print()

        elif args.command == "judge":
            decision = store.should_create_memory(**gate_kwargs).decide(args.text)
            verdict = "REMEMBER" if decision.accepted else "SKIP"
            details = []
            if decision.gap is not None:
                details.append(f"gap={decision.gap:.4f}")
            if decision.nearest_similarity is not None:
                details.append(f"nearest={decision.nearest_similarity:.4f}")
            print(f"{verdict} ({decision.reason}) {' '.join(details)}".rstrip())

        elif args.command == "eval":
            report = evaluate_gate(
                store.should_create_memory(**gate_kwargs),
                EXAMPLE_SETS[args.example_set],
            )
            print(report.summary())

        elif args.command == "stats":
            print(json.dumps(store.stats(), indent=2))

        elif args.command == "delete":
            if not store.delete(args.id):
                print(f"Error: no memory with id {args.id}.", file=sys.stderr)
                return 1
            print(f"Deleted memory {args.id}.")

    return 0


if __name__ == "__main__":
    sys.exit(main())
