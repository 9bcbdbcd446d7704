"""Document store: SQLite rows plus a FAISS similarity index.

Embedding batches are written atomically: rows are inserted inside a
transaction, vectors are added to the index, and only then is the transaction
committed. Any failure rolls back the rows and removes the added vectors.
"""
import asyncio
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
import structlog

from ragdesk import db
from ragdesk.config import Settings
from ragdesk.errors import PersistenceFailure, SearchUnavailable
from ragdesk.rag.store_faiss import FAISSVectorStore

logger = structlog.get_logger()


@dataclass
class Document:
    id: str
    name: str
    type: str
    content: str
    metadata: Dict[str, Any]
    created_at: str

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Document":
        return cls(
            id=row["id"],
            name=row["name"],
            type=row["type"],
            content=row["content"],
            metadata=row.get("metadata") or {},
            created_at=row["created_at"],
        )

    def to_dict(self, include_content: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "metadata": self.metadata,
            "created_at": self.created_at,
        }
        if include_content:
            data["content"] = self.content
        return data


@dataclass
class EmbeddingRecord:
    """A chunk and its vector, ready to be stored."""

    document_id: str
    chunk_index: int
    content: str
    vector: Sequence[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SearchMatch:
    embedding_id: int
    document_id: str
    chunk_index: int
    content: str
    score: float


class DocumentStore:
    """Persistence for documents and chunk embeddings with similarity search."""

    def __init__(
        self,
        db_path: Path,
        index_dir: Path,
        dimension: int,
        embedding_model: str = "",
    ):
        self.db_path = Path(db_path)
        self.dimension = dimension
        self.vector_store = FAISSVectorStore(
            index_dir=index_dir,
            dimension=dimension,
            embedding_model=embedding_model,
        )
        self._write_lock = asyncio.Lock()
        self.index_error: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "DocumentStore":
        return cls(
            db_path=settings.db_path,
            index_dir=settings.index_dir,
            dimension=settings.embedding_dimension,
            embedding_model=settings.embedding_model,
        )

    def initialize(self) -> None:
        """Create the schema and load the vector index.

        An index that cannot be loaded leaves search unavailable rather than
        failing startup; retrieval falls back to recent documents.
        """
        db.init_database(self.db_path)

        try:
            self.vector_store.init_or_load()
            self.index_error = None
        except (ValueError, RuntimeError) as e:
            self.index_error = str(e)
            logger.error("vector_index_unavailable", error=self.index_error)

    @property
    def search_available(self) -> bool:
        return self.vector_store.is_ready

    async def insert_document(
        self,
        name: str,
        doc_type: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Document:
        """Persist a document.

        Raises:
            PersistenceFailure: On write error
        """
        try:
            row = db.insert_document(self.db_path, name, doc_type, content, metadata)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Failed to store document: {e}") from e

        logger.info("document_stored", document_id=row["id"], name=name, type=doc_type)
        return Document.from_row(row)

    async def insert_embeddings(self, records: Sequence[EmbeddingRecord]) -> int:
        """Store a batch of embeddings all-or-nothing.

        Returns:
            Number of records stored

        Raises:
            PersistenceFailure: On dimension mismatch, unavailable index or
                write error; nothing from the batch is left behind
        """
        if not records:
            return 0

        for record in records:
            if len(record.vector) != self.dimension:
                logger.error(
                    "embedding_dimension_rejected",
                    document_id=record.document_id,
                    chunk_index=record.chunk_index,
                    expected=self.dimension,
                    got=len(record.vector),
                )
                raise PersistenceFailure(
                    f"Embedding dimension mismatch: expected {self.dimension}, "
                    f"got {len(record.vector)}"
                )

        if not self.vector_store.is_ready:
            raise PersistenceFailure(
                f"Vector index unavailable: {self.index_error or 'not initialized'}"
            )

        rows = [
            {
                "document_id": r.document_id,
                "chunk_index": r.chunk_index,
                "content": r.content,
                "vector": r.vector,
                "metadata": {"chunk_index": r.chunk_index, **r.metadata},
            }
            for r in records
        ]

        async with self._write_lock:
            conn = db.get_connection(self.db_path)
            added_ids: List[int] = []
            try:
                ids = db.insert_embeddings(conn, rows)
                self.vector_store.add_vectors([r.vector for r in records], ids)
                added_ids = ids
                conn.commit()
            except (sqlite3.Error, ValueError, RuntimeError) as e:
                conn.rollback()
                if added_ids:
                    self.vector_store.remove_vectors(added_ids)
                logger.error(
                    "embedding_batch_insert_failed",
                    error=str(e),
                    batch_size=len(records),
                )
                raise PersistenceFailure(f"Failed to store embeddings: {e}") from e
            finally:
                conn.close()

            # Only committed rows reach the on-disk index
            try:
                self.vector_store.save_index()
            except RuntimeError as e:
                logger.error("vector_index_save_failed", error=str(e))
                raise PersistenceFailure(f"Failed to save vector index: {e}") from e

        logger.info("embeddings_stored", count=len(ids))
        return len(ids)

    async def similarity_search(
        self,
        query_vector: Sequence[float],
        score_threshold: float,
        max_results: int,
    ) -> List[SearchMatch]:
        """Chunks ranked by descending cosine similarity.

        Raises:
            SearchUnavailable: If the index is not loaded or cannot be queried
        """
        if not self.vector_store.is_ready:
            raise SearchUnavailable(
                f"Similarity search unavailable: {self.index_error or 'index not loaded'}"
            )

        try:
            vector_ids, scores = self.vector_store.search(query_vector, top_k=max_results)
            rows = db.get_embeddings_by_ids(self.db_path, vector_ids)
        except (ValueError, RuntimeError, sqlite3.Error) as e:
            raise SearchUnavailable(f"Similarity search failed: {e}") from e

        by_id = {row["id"]: row for row in rows}
        matches = []
        for vector_id, score in zip(vector_ids, scores):
            row = by_id.get(vector_id)
            if row is None:
                logger.warning("vector_id_without_row", vector_id=vector_id)
                continue
            if score < score_threshold:
                continue
            matches.append(
                SearchMatch(
                    embedding_id=vector_id,
                    document_id=row["document_id"],
                    chunk_index=row["chunk_index"],
                    content=row["content"],
                    score=float(score),
                )
            )

        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:max_results]

    async def recent_documents(self, limit: int) -> List[Document]:
        try:
            rows = db.recent_documents(self.db_path, limit)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Failed to read documents: {e}") from e
        return [Document.from_row(r) for r in rows]

    async def get_document(self, document_id: str) -> Optional[Document]:
        row = db.get_document(self.db_path, document_id)
        return Document.from_row(row) if row else None

    async def list_documents(self) -> List[Dict[str, Any]]:
        return db.list_documents(self.db_path)

    async def count_documents(self) -> int:
        return db.count_documents(self.db_path)

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document, its embedding rows and their vectors.

        Returns:
            False if the document did not exist

        Raises:
            PersistenceFailure: On write error
        """
        async with self._write_lock:
            try:
                embedding_ids = db.delete_document(self.db_path, document_id)
            except sqlite3.Error as e:
                raise PersistenceFailure(f"Failed to delete document: {e}") from e

            if embedding_ids is None:
                return False

            if embedding_ids and self.vector_store.is_ready:
                self.vector_store.remove_vectors(embedding_ids)
                self.vector_store.save_index()

        return True

    async def rebuild_index(self) -> int:
        """Rebuild the vector index from the vectors stored in the database.

        Rows whose dimension differs from the configured one are skipped.

        Returns:
            Number of vectors indexed
        """
        async with self._write_lock:
            ids, vectors, dimensions = db.load_all_vectors(self.db_path)
            keep = [i for i, dim in enumerate(dimensions) if dim == self.dimension]
            skipped = len(ids) - len(keep)
            if skipped:
                logger.warning("rebuild_skipped_mismatched_vectors", count=skipped)

            self.vector_store.rebuild_index(
                [ids[i] for i in keep],
                [vectors[i] for i in keep],
            )
            self.index_error = None

        return len(keep)

    def stats(self) -> Dict[str, Any]:
        return {
            "documents": db.count_documents(self.db_path),
            "embeddings": db.count_embeddings(self.db_path),
            "index": self.vector_store.get_stats(),
            "index_error": self.index_error,
        }
