"""Command-line access to ingestion, retrieval and routing.

Usage::

    python -m src.cli ingest notes.pdf --unit 2
    python -m src.cli query <material_id> "what is a B-tree?"
    python -m src.cli reembed <material_id>
    python -m src.cli decide "hello there"

``ingest`` and ``reembed`` run the ingestion queue in-process and wait
until the material's jobs finish, then print the final statuses.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any


def _print_material(material: Any, chunk_count: int) -> None:
    print(f"  Material ID:      {material.id}")
    print(f"  Title:            {material.title}")
    print(f"  Unit:             {material.unit}")
    print(f"  Parsing status:   {material.parsing_status.value}")
    if material.parsing_error:
        print(f"  Parsing error:    {material.parsing_error}")
    embedding = material.embedding_status.value if material.embedding_status else "-"
    print(f"  Embedding status: {embedding}")
    if material.embedding_error:
        print(f"  Embedding error:  {material.embedding_error}")
    print(f"  Pages:            {material.page_count or 0}")
    print(f"  Stored chunks:    {chunk_count}")


async def _with_components(handler: Any, args: argparse.Namespace, recover: bool = False) -> int:
    # Deferred: importing src.main builds settings and configures logging.
    from src.main import build_components, config, settings, start_components, stop_components

    components = build_components(settings, config)
    await start_components(components, recover=recover)
    try:
        return await handler(args, components)
    finally:
        await stop_components(components)


async def _handle_ingest(args: argparse.Namespace, components: dict[str, Any]) -> int:
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1

    pipeline = components["ingestion_pipeline"]
    print(f"Ingesting {path.name} (unit {args.unit})")
    material = await pipeline.register_upload(
        path.read_bytes(),
        path.name,
        unit=args.unit,
        title=args.title,
    )
    await pipeline.start(material.id, material.filename)
    await components["task_queue"].join()

    material = await components["material_store"].get(material.id)
    chunk_count = await components["vector_store"].get_chunk_count(material.id)
    print("\nIngestion finished:")
    _print_material(material, chunk_count)
    return 0 if material.embedding_status and material.embedding_status.value == "COMPLETED" else 1


async def _handle_reembed(args: argparse.Namespace, components: dict[str, Any]) -> int:
    scheduled = await components["ingestion_pipeline"].reembed(args.material_id)
    if not scheduled:
        print("Embedding already completed or in progress; nothing to do.")
    await components["task_queue"].join()
    material = await components["material_store"].get(args.material_id)
    chunk_count = await components["vector_store"].get_chunk_count(args.material_id)
    _print_material(material, chunk_count)
    return 0


async def _handle_query(args: argparse.Namespace, components: dict[str, Any]) -> int:
    results = await components["retrieval_service"].retrieve(
        args.material_id, args.unit, args.text, args.limit
    )
    if not results:
        print("No content stored for this material yet.")
        return 1
    for result in results:
        distance = f"{result.distance:.4f}" if result.distance is not None else "-"
        print(f"[{result.chunk_index}] {result.title}  (distance {distance}, {result.source})")
        preview = result.content[:300].replace("\n", " ")
        print(f"    {preview}")
    return 0


async def _handle_decide(args: argparse.Namespace, components: dict[str, Any]) -> int:
    decision = await components["query_router"].decide(args.message)
    print(f"Needs retrieval: {decision.needs_retrieval}")
    if decision.query:
        print(f"Query:           {decision.query}")
    print(f"Reason:          {decision.reason or '-'}")
    print(f"Decided by:      {decision.source}")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m src.cli",
        description="Ingest course materials and query them.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    ingest_parser = subparsers.add_parser("ingest", help="Parse, chunk and embed a file")
    ingest_parser.add_argument("file", help="Path to a PDF, markdown or text file")
    ingest_parser.add_argument("--unit", type=int, default=1, help="Course unit (default: 1)")
    ingest_parser.add_argument("--title", default=None, help="Title (default: file stem)")

    query_parser = subparsers.add_parser("query", help="Retrieve chunks for a question")
    query_parser.add_argument("material_id")
    query_parser.add_argument("text")
    query_parser.add_argument("--unit", type=int, default=None, help="Restrict to a unit")
    query_parser.add_argument("--limit", type=int, default=None, help="Maximum results")

    reembed_parser = subparsers.add_parser("reembed", help="Retrigger embedding")
    reembed_parser.add_argument("material_id")

    decide_parser = subparsers.add_parser("decide", help="Route a chat message")
    decide_parser.add_argument("message")

    return parser


_HANDLERS = {
    "ingest": _handle_ingest,
    "query": _handle_query,
    "reembed": _handle_reembed,
    "decide": _handle_decide,
}


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    from src.utils.errors import CourseRAGError

    try:
        exit_code = asyncio.run(_with_components(_HANDLERS[args.command], args))
    except CourseRAGError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
