"""SQLite schema and helpers.

Tables:
- documents: extracted text of every ingested file
- embeddings: chunk text, vector and position, cascading from documents
- queries: append-only analytics records for answered questions

Vectors are stored as float32 blobs so the FAISS index can be rebuilt from the
database at any time.
"""
import sqlite3
import json
import uuid
from pathlib import Path
from typing import Optional, List, Dict, Any, Sequence, Tuple
from datetime import datetime, timezone
import numpy as np
import structlog

logger = structlog.get_logger()


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Get a connection to the SQLite database.

    Returns:
        sqlite3.Connection with row_factory set to sqlite3.Row and
        foreign keys enforced
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_database(db_path: Path) -> None:
    """Create tables and indexes if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                type TEXT NOT NULL,
                content TEXT NOT NULL,
                metadata_json TEXT,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS embeddings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                document_id TEXT NOT NULL
                    REFERENCES documents(id) ON DELETE CASCADE,
                chunk_index INTEGER NOT NULL,
                content TEXT NOT NULL,
                embedding BLOB NOT NULL,
                dimension INTEGER NOT NULL,
                metadata_json TEXT,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS queries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                question TEXT NOT NULL,
                response_time_ms REAL NOT NULL,
                relevance_score REAL NOT NULL,
                context_source TEXT,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_embeddings_document_id
            ON embeddings(document_id)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_documents_created_at
            ON documents(created_at)
        """)

        conn.commit()
        logger.info("database_initialized", db_path=str(db_path))

    except Exception as e:
        conn.rollback()
        logger.error("database_init_failed", error=str(e))
        raise
    finally:
        conn.close()


def _document_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    doc = dict(row)
    metadata_json = doc.pop("metadata_json", None)
    doc["metadata"] = json.loads(metadata_json) if metadata_json else {}
    return doc


def insert_document(
    db_path: Path,
    name: str,
    doc_type: str,
    content: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Insert a document row and return it as a dict."""
    doc = {
        "id": str(uuid.uuid4()),
        "name": name,
        "type": doc_type,
        "content": content,
        "metadata": metadata or {},
        "created_at": utcnow(),
    }

    conn = get_connection(db_path)
    try:
        conn.execute(
            """
            INSERT INTO documents (id, name, type, content, metadata_json, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                doc["id"],
                name,
                doc_type,
                content,
                json.dumps(doc["metadata"]),
                doc["created_at"],
            ),
        )
        conn.commit()
        return doc

    except Exception as e:
        conn.rollback()
        logger.error("document_insert_failed", error=str(e), name=name)
        raise
    finally:
        conn.close()


def get_document(db_path: Path, document_id: str) -> Optional[Dict[str, Any]]:
    conn = get_connection(db_path)
    try:
        row = conn.execute(
            "SELECT * FROM documents WHERE id = ?", (document_id,)
        ).fetchone()
        return _document_from_row(row) if row else None
    finally:
        conn.close()


def list_documents(db_path: Path) -> List[Dict[str, Any]]:
    """All documents (without content) with their chunk counts, newest first."""
    conn = get_connection(db_path)
    try:
        rows = conn.execute("""
            SELECT d.id, d.name, d.type, d.metadata_json, d.created_at,
                   LENGTH(d.content) AS content_length,
                   COUNT(e.id) AS num_chunks
            FROM documents d
            LEFT JOIN embeddings e ON e.document_id = d.id
            GROUP BY d.id
            ORDER BY d.created_at DESC, d.rowid DESC
        """).fetchall()
        return [_document_from_row(r) for r in rows]
    finally:
        conn.close()


def recent_documents(db_path: Path, limit: int) -> List[Dict[str, Any]]:
    """Most recently created documents, newest first."""
    conn = get_connection(db_path)
    try:
        rows = conn.execute(
            """
            SELECT * FROM documents
            ORDER BY created_at DESC, rowid DESC
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [_document_from_row(r) for r in rows]
    finally:
        conn.close()


def delete_document(db_path: Path, document_id: str) -> Optional[List[int]]:
    """Delete a document; its embedding rows cascade.

    Returns:
        Ids of the embedding rows that were removed, or None if the document
        did not exist
    """
    conn = get_connection(db_path)
    try:
        exists = conn.execute(
            "SELECT 1 FROM documents WHERE id = ?", (document_id,)
        ).fetchone()
        if not exists:
            return None

        embedding_ids = [
            r["id"]
            for r in conn.execute(
                "SELECT id FROM embeddings WHERE document_id = ?", (document_id,)
            ).fetchall()
        ]
        conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        conn.commit()

        logger.info(
            "document_deleted",
            document_id=document_id,
            embeddings_deleted=len(embedding_ids),
        )
        return embedding_ids

    except Exception as e:
        conn.rollback()
        logger.error("document_delete_failed", error=str(e), document_id=document_id)
        raise
    finally:
        conn.close()


def count_documents(db_path: Path) -> int:
    conn = get_connection(db_path)
    try:
        return conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
    finally:
        conn.close()


def count_embeddings(db_path: Path) -> int:
    conn = get_connection(db_path)
    try:
        return conn.execute("SELECT COUNT(*) FROM embeddings").fetchone()[0]
    finally:
        conn.close()


def insert_embeddings(conn: sqlite3.Connection, rows: Sequence[Dict[str, Any]]) -> List[int]:
    """Insert embedding rows on an open connection without committing.

    The caller owns the transaction so vector index updates can be made
    atomic with the row inserts.

    Returns:
        Row ids in the order of ``rows``
    """
    created_at = utcnow()
    ids = []
    for row in rows:
        vector = np.asarray(row["vector"], dtype=np.float32)
        cursor = conn.execute(
            """
            INSERT INTO embeddings (
                document_id, chunk_index, content, embedding,
                dimension, metadata_json, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                row["document_id"],
                row["chunk_index"],
                row["content"],
                vector.tobytes(),
                int(vector.shape[0]),
                json.dumps(row.get("metadata") or {}),
                created_at,
            ),
        )
        ids.append(cursor.lastrowid)
    return ids


def get_embeddings_by_ids(db_path: Path, embedding_ids: List[int]) -> List[Dict[str, Any]]:
    """Retrieve embedding rows (without vectors) by id."""
    if not embedding_ids:
        return []

    conn = get_connection(db_path)
    try:
        placeholders = ",".join("?" * len(embedding_ids))
        rows = conn.execute(
            f"""
            SELECT id, document_id, chunk_index, content, metadata_json, created_at
            FROM embeddings
            WHERE id IN ({placeholders})
            """,
            embedding_ids,
        ).fetchall()
        return [_document_from_row(r) for r in rows]
    finally:
        conn.close()


def load_all_vectors(db_path: Path) -> Tuple[List[int], List[np.ndarray], List[int]]:
    """Load every stored vector for an index rebuild.

    Returns:
        Tuple of (ids, vectors, dimensions)
    """
    conn = get_connection(db_path)
    try:
        rows = conn.execute(
            "SELECT id, embedding, dimension FROM embeddings ORDER BY id"
        ).fetchall()
        ids = [r["id"] for r in rows]
        vectors = [np.frombuffer(r["embedding"], dtype=np.float32) for r in rows]
        dimensions = [r["dimension"] for r in rows]
        return ids, vectors, dimensions
    finally:
        conn.close()


def insert_query(
    db_path: Path,
    question: str,
    response_time_ms: float,
    relevance_score: float,
    context_source: Optional[str] = None,
) -> int:
    """Append an analytics record for an answered question."""
    conn = get_connection(db_path)
    try:
        cursor = conn.execute(
            """
            INSERT INTO queries (
                question, response_time_ms, relevance_score,
                context_source, created_at
            ) VALUES (?, ?, ?, ?, ?)
            """,
            (question, response_time_ms, relevance_score, context_source, utcnow()),
        )
        conn.commit()
        return cursor.lastrowid

    except Exception as e:
        conn.rollback()
        logger.error("query_insert_failed", error=str(e))
        raise
    finally:
        conn.close()


def query_stats(db_path: Path, recent_limit: int = 10) -> Dict[str, Any]:
    """Aggregate analytics over the queries table."""
    conn = get_connection(db_path)
    try:
        total, avg_time, avg_score = conn.execute(
            """
            SELECT COUNT(*), AVG(response_time_ms), AVG(relevance_score)
            FROM queries
            """
        ).fetchone()
        recent = conn.execute(
            """
            SELECT id, question, response_time_ms, relevance_score,
                   context_source, created_at
            FROM queries
            ORDER BY id DESC
            LIMIT ?
            """,
            (recent_limit,),
        ).fetchall()
        return {
            "total_queries": total,
            "avg_response_time_ms": avg_time or 0.0,
            "avg_relevance": avg_score or 0.0,
            "recent_queries": [dict(r) for r in recent],
        }
    finally:
        conn.close()
