"""Command-line front end for the RAG pipeline.

Usage:
    ragcore ingest notes.txt --document-id notes     # Ingest one file
    ragcore ingest-dir docs/ --recursive --pattern "*.md,*.txt"
    ragcore search "rocket fuel" --limit 5
    ragcore ask "How do rockets reach orbit?"
    ragcore delete notes
    ragcore health
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from ragcore.config import Settings, load_settings
from ragcore.errors import RAGError
from ragcore.rag.pipeline import RAGPipeline, build_pipeline

logger = structlog.get_logger()


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging on stderr."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        stream=sys.stderr,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ragcore",
        description="Ingest documents and ask grounded questions about them",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Ingest a single text file")
    ingest.add_argument("file", type=Path)
    ingest.add_argument(
        "--document-id",
        default=None,
        help="Document id (default: file name without extension)",
    )

    ingest_dir = subparsers.add_parser("ingest-dir", help="Ingest every file of a directory")
    ingest_dir.add_argument("directory", type=Path)
    ingest_dir.add_argument("--recursive", "-r", action="store_true", help="Descend into subdirectories")
    ingest_dir.add_argument(
        "--pattern",
        default="",
        help='Comma-separated file name globs, e.g. "*.md,*.txt"',
    )

    for name, help_text in (("search", "Search stored chunks"), ("ask", "Answer a question")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("query")
        sub.add_argument("--limit", type=int, default=None, help="Number of chunks to retrieve")
        sub.add_argument(
            "--threshold",
            type=float,
            default=0.0,
            help="Minimum keyword score (0-1) for a chunk to be kept",
        )

    delete = subparsers.add_parser("delete", help="Delete a document")
    delete.add_argument("document_id")

    subparsers.add_parser("health", help="Check storage and generation backends")

    return parser


async def run(args: argparse.Namespace, settings: Settings) -> int:
    """Execute one subcommand and return the exit code."""
    pipeline: RAGPipeline = await build_pipeline(settings)

    if args.command == "ingest":
        content = args.file.read_text(encoding="utf-8")
        document_id = args.document_id or args.file.stem
        result = await pipeline.ingest(document_id, content)
        print(f"✅ Ingested '{result.document_id}': {result.chunks_count} chunks in {result.processing_time:.2f}s")
        return 0

    if args.command == "ingest-dir":
        result = await pipeline.ingest_directory(args.directory, args.recursive, args.pattern)
        print(f"\n📁 Files processed:  {result.processed_files}")
        print(f"✅ Ingested:         {len(result.successful_ingestions)}")
        print(f"⏭️  Skipped (empty):  {len(result.skipped_files)}")
        print(f"❌ Failed:           {len(result.errors)}")
        print(f"⏱️  Time elapsed:     {result.processing_time:.1f}s\n")
        for error in result.errors:
            print(f"   {error}")
        return 1 if result.errors else 0

    if args.command == "search":
        result = await pipeline.search(args.query, args.limit, args.threshold)
        print(f"\n🔍 {result.total} result(s) for '{result.query}'\n")
        for i, chunk in enumerate(result.results, 1):
            print(f"  [{i}] {chunk.document_id}#{chunk.chunk_index} (score {chunk.score:.2f})")
            print(f"      {chunk.content[:200]}\n")
        return 0

    if args.command == "ask":
        result = await pipeline.rag_query(args.query, args.limit, args.threshold)
        print(f"\n{result.generated_response.response}\n")
        if result.generated_response.sources:
            print(f"📚 Sources: {', '.join(result.generated_response.sources)}")
        return 0

    if args.command == "delete":
        result = await pipeline.delete_document(args.document_id)
        print(f"🗑️  {result.document_id}: {result.status}")
        return 0

    if args.command == "health":
        status = await pipeline.health_check()
        print(f"Status: {status.status}")
        for service, state in status.services.items():
            print(f"  {service}: {state}")
        return 0 if status.status == "healthy" else 1

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    """Console script entry point."""
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings()
        configure_logging(settings.log_level)
        return asyncio.run(run(args, settings))

    except KeyboardInterrupt:
        print("\n\n⚠️  Cancelled by user.\n")
        return 1

    except RAGError as e:
        print(f"\n❌ {e.kind}: {e.message}\n")
        return 1

    except OSError as e:
        print(f"\n❌ Error: {e}\n")
        logger.error("cli_command_failed", error=str(e), error_type=type(e).__name__)
        return 1


if __name__ == "__main__":
    sys.exit(main())
