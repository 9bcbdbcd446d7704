"""Ingest pipeline for uploaded documents.

Orchestrates, per uploaded file:
- Download from the blob store
- Text extraction by content type
- Document persistence
- Word chunking
- Per-chunk embedding (bounded concurrency, failures skipped)
- Atomic embedding batch insert
"""
import asyncio
import enum
from dataclasses import dataclass
from typing import Callable, List, Optional
import structlog

from ragdesk.config import Settings
from ragdesk.errors import (
    DownloadFailure,
    EmbeddingFailure,
    InvalidRequest,
    PersistenceFailure,
    RagError,
)
from ragdesk.llm_client import GeminiClient
from ragdesk.rag.chunker import TextChunk, WordChunker
from ragdesk.rag.document_store import Document, DocumentStore, EmbeddingRecord
from ragdesk.rag.extractors import ExtractorRegistry, default_registry
from ragdesk.storage import BlobStore

logger = structlog.get_logger()


class IngestState(str, enum.Enum):
    RECEIVED = "received"
    TEXT_EXTRACTED = "text_extracted"
    CHUNKED = "chunked"
    EMBEDDING = "embedding"
    STORED = "stored"
    COMPLETE = "complete"
    FAILED = "failed"


ProgressCallback = Callable[[IngestState, int, int], None]


@dataclass
class IngestResult:
    """Outcome of one ingestion run."""

    file_name: str
    state: IngestState
    document_id: Optional[str] = None
    chunks_processed: int = 0
    chunks_total: int = 0
    error: Optional[RagError] = None

    @property
    def success(self) -> bool:
        return self.state is IngestState.COMPLETE

    def to_response(self) -> dict:
        if not self.success:
            return self.error.to_dict() if self.error else {"error": "Ingestion failed"}
        return {
            "success": True,
            "documentId": self.document_id,
            "chunksProcessed": self.chunks_processed,
            "chunksTotal": self.chunks_total,
        }


class _Run:
    """Mutable state of a single ingestion run."""

    def __init__(self, file_name: str, progress_callback: Optional[ProgressCallback]):
        self.file_name = file_name
        self.state = IngestState.RECEIVED
        self.document: Optional[Document] = None
        self.chunks_total = 0
        self.embedded = 0
        self.progress_callback = progress_callback

    def transition(self, state: IngestState, done: int = 0, total: int = 0) -> None:
        self.state = state
        logger.info(
            "ingest_state_changed",
            file_name=self.file_name,
            state=state.value,
            done=done,
            total=total,
        )
        if self.progress_callback:
            self.progress_callback(state, done, total)


class IngestPipeline:
    """Turns an uploaded file into a stored document with chunk embeddings."""

    def __init__(
        self,
        settings: Settings,
        client: GeminiClient,
        store: DocumentStore,
        blob_store: BlobStore,
        extractors: Optional[ExtractorRegistry] = None,
        chunker: Optional[WordChunker] = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            settings: Pipeline settings (chunk size, concurrency, timeout)
            client: Embedding client
            store: Document store (write path)
            blob_store: Storage holding the uploaded files
            extractors: Content-type extractor registry (default: text + PDF)
            chunker: Word chunker (default: settings.chunk_size)
        """
        self.settings = settings
        self.client = client
        self.store = store
        self.blob_store = blob_store
        self.extractors = extractors or default_registry()
        self.chunker = chunker or WordChunker(chunk_size=settings.chunk_size)
        self.embed_concurrency = settings.embed_concurrency

    async def _download(self, file_url: str) -> bytes:
        try:
            return await asyncio.wait_for(
                self.blob_store.download(file_url),
                timeout=self.settings.request_timeout,
            )
        except asyncio.TimeoutError as e:
            raise DownloadFailure(f"Download timed out: {file_url}") from e

    async def _embed_chunk(
        self,
        chunk: TextChunk,
        document_id: str,
        semaphore: asyncio.Semaphore,
        run: _Run,
    ) -> Optional[EmbeddingRecord]:
        """Embed one chunk; a failure skips the chunk instead of the file."""
        async with semaphore:
            try:
                vector = await self.client.embed(chunk.content)
            except EmbeddingFailure as e:
                logger.warning(
                    "chunk_embedding_failed",
                    document_id=document_id,
                    chunk_index=chunk.chunk_index,
                    error=e.message,
                )
                return None

        run.embedded += 1
        run.transition(IngestState.EMBEDDING, run.embedded, run.chunks_total)
        return EmbeddingRecord(
            document_id=document_id,
            chunk_index=chunk.chunk_index,
            content=chunk.content,
            vector=vector,
            metadata={"word_count": chunk.word_count},
        )

    async def generate_embeddings(
        self, chunks: List[TextChunk], document_id: str, run: _Run
    ) -> List[EmbeddingRecord]:
        """Embed all chunks concurrently, keeping only the successful ones."""
        semaphore = asyncio.Semaphore(self.embed_concurrency)
        results = await asyncio.gather(
            *(self._embed_chunk(chunk, document_id, semaphore, run) for chunk in chunks)
        )
        return [r for r in results if r is not None]

    async def _run(self, run: _Run, file_url: str, file_type: str) -> IngestResult:
        self.client.ensure_configured()

        if not run.file_name or not file_url:
            raise InvalidRequest("fileName and fileUrl are required")

        data = await self._download(file_url)
        extracted = self.extractors.extract(data, file_type, run.file_name)
        run.transition(IngestState.TEXT_EXTRACTED)

        run.document = await self.store.insert_document(
            name=run.file_name,
            doc_type=extracted.content_type,
            content=extracted.text,
            metadata={
                "original_url": file_url,
                "size_bytes": len(data),
                "extractor": extracted.extractor,
            },
        )

        chunks = self.chunker.chunk_text(extracted.text)
        run.chunks_total = len(chunks)
        run.transition(IngestState.CHUNKED, 0, len(chunks))

        records = await self.generate_embeddings(chunks, run.document.id, run)

        stored = await self.store.insert_embeddings(records)
        run.transition(IngestState.STORED, stored, len(chunks))

        if stored < len(chunks):
            logger.warning(
                "chunks_skipped",
                document_id=run.document.id,
                skipped=len(chunks) - stored,
            )

        run.transition(IngestState.COMPLETE, stored, len(chunks))
        return IngestResult(
            file_name=run.file_name,
            state=IngestState.COMPLETE,
            document_id=run.document.id,
            chunks_processed=stored,
            chunks_total=len(chunks),
        )

    async def _discard_document(self, run: _Run) -> None:
        if run.document is None:
            return
        try:
            await self.store.delete_document(run.document.id)
            logger.info("partial_document_removed", document_id=run.document.id)
        except PersistenceFailure as e:
            logger.error(
                "partial_document_cleanup_failed",
                document_id=run.document.id,
                error=e.message,
            )

    async def ingest_file(
        self,
        file_name: str,
        file_url: str,
        file_type: str,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> IngestResult:
        """Ingest a single uploaded file.

        Args:
            file_name: Display name of the file
            file_url: Storage key of the raw file in the blob store
            file_type: Declared MIME type
            progress_callback: Optional callback(state, done, total)

        Returns:
            IngestResult; failures are reported in the result, never raised
        """
        run = _Run(file_name, progress_callback)
        logger.info("ingesting_file", file_name=file_name, file_url=file_url, file_type=file_type)

        try:
            return await self._run(run, file_url, file_type)
        except Exception as e:
            if isinstance(e, RagError):
                error = e
                logger.error(
                    "file_ingestion_failed",
                    file_name=file_name,
                    state=run.state.value,
                    error_type=type(e).__name__,
                    error=e.message,
                )
            else:
                error = RagError(f"Unexpected ingestion error: {e}")
                logger.exception("file_ingestion_crashed", file_name=file_name)

            await self._discard_document(run)
            run.transition(IngestState.FAILED)

            return IngestResult(
                file_name=file_name,
                state=IngestState.FAILED,
                chunks_total=run.chunks_total,
                error=error,
            )
