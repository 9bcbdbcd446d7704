#!/usr/bin/env python
"""Rebuild the vector index from the embeddings stored in the database.

Usage:
    python scripts/reindex.py           # Rebuild and report
    python scripts/reindex.py --check   # Only report index state
"""
import argparse
import asyncio
import sys

from ragdesk.config import Settings
from ragdesk.logging_config import configure_logging
from ragdesk.rag.document_store import DocumentStore
import structlog

logger = structlog.get_logger()


async def main():
    """Main entry point for reindex script."""
    parser = argparse.ArgumentParser(
        description="Rebuild the FAISS index from stored embeddings",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only print index statistics, do not rebuild",
    )
    args = parser.parse_args()

    configure_logging(json_logs=False)
    settings = Settings.from_env()
    store = DocumentStore.from_settings(settings)
    store.initialize()

    stats = store.stats()
    print("\n📋 Index state:")
    print(f"   Documents:         {stats['documents']}")
    print(f"   Stored embeddings: {stats['embeddings']}")
    print(f"   Indexed vectors:   {stats['index']['vector_count']}")
    print(f"   Dimension:         {settings.embedding_dimension}")
    if stats["index_error"]:
        print(f"   ⚠️  Index error:    {stats['index_error']}")

    if args.check:
        return

    try:
        indexed = await store.rebuild_index()
    except Exception as e:
        print(f"\n❌ Error: {e}\n")
        logger.error("reindex_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)

    print(f"\n✅ Rebuilt index with {indexed} vectors at {settings.index_dir}\n")

    if indexed < stats["embeddings"]:
        print(
            f"⚠️  {stats['embeddings'] - indexed} stored embedding(s) have a different "
            "dimension and were skipped.\n"
        )


if __name__ == "__main__":
    asyncio.run(main())
