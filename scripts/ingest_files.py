#!/usr/bin/env python
"""Upload local files to the blob store and ingest them.

Usage:
    python scripts/ingest_files.py data.csv report.pdf
    python scripts/ingest_files.py --type text/csv export.txt
"""
import argparse
import asyncio
import mimetypes
import sys
from datetime import datetime
from pathlib import Path

from ragdesk.config import Settings
from ragdesk.llm_client import GeminiClient
from ragdesk.logging_config import configure_logging
from ragdesk.rag.document_store import DocumentStore
from ragdesk.rag.ingest import IngestPipeline, IngestState
from ragdesk.storage import BlobStore, make_storage_key
import structlog

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self):
        self.start_time = None
        self.file_name = ""

    def start(self, total_files: int):
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  Ingesting {total_files} file(s)")
        print(f"{'=' * 60}\n")

    def update(self, state: IngestState, done: int, total: int):
        """Progress callback for the ingest pipeline."""
        if state is not IngestState.EMBEDDING or total == 0:
            return
        bar_length = 40
        filled = int(bar_length * done / total)
        bar = "█" * filled + "░" * (bar_length - filled)
        print(
            f"\r  [{bar}] {done}/{total} chunks  {self.file_name[:30]:<30}",
            end="",
            flush=True,
        )

    def finish(self, results):
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()
        failed = [r for r in results if not r.success]

        print(f"{'=' * 60}")
        print(f"  Ingestion Complete!")
        print(f"{'=' * 60}\n")
        for r in results:
            if r.success:
                print(
                    f"  ✅ {r.file_name}: {r.chunks_processed}/{r.chunks_total} chunks "
                    f"(document {r.document_id})"
                )
            else:
                print(f"  ❌ {r.file_name}: {r.error.message if r.error else 'failed'}")
        print(f"\n  ⏱️  Time elapsed: {elapsed_seconds:.1f}s\n")

        if failed:
            print(f"⚠️  Warning: {len(failed)} file(s) failed to ingest.\n")


async def main():
    parser = argparse.ArgumentParser(description="Upload and ingest local files")
    parser.add_argument("files", nargs="+", type=Path, help="Files to ingest")
    parser.add_argument(
        "--type",
        dest="file_type",
        default=None,
        help="Content type for all files (default: guessed from file name)",
    )
    args = parser.parse_args()

    configure_logging(log_level="WARNING", json_logs=False)
    settings = Settings.from_env()

    store = DocumentStore.from_settings(settings)
    store.initialize()
    blob_store = BlobStore(settings.uploads_dir)
    pipeline = IngestPipeline(settings, GeminiClient(settings), store, blob_store)

    progress = ProgressReporter()
    progress.start(len(args.files))
    results = []

    try:
        for path in args.files:
            if not path.is_file():
                print(f"\n❌ Not a file: {path}")
                continue

            file_type = args.file_type or mimetypes.guess_type(path.name)[0] or ""
            key = make_storage_key(path.name)
            await blob_store.upload(key, path.read_bytes())

            progress.file_name = path.name
            result = await pipeline.ingest_file(
                path.name, key, file_type, progress_callback=progress.update
            )
            results.append(result)

    except KeyboardInterrupt:
        print("\n\n⚠️  Ingestion cancelled by user.\n")
        sys.exit(1)

    progress.finish(results)

    if any(not r.success for r in results):
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
