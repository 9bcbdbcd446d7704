"""FAISS vector index for cosine-similarity search.

Handles:
- Index initialization, loading and dimension validation
- Vector addition and removal by embedding id
- Cosine-similarity search (inner product over L2-normalised vectors)
- Index metadata persistence
"""
import json
from pathlib import Path
from typing import List, Tuple, Optional, Dict, Any, Sequence
import numpy as np
import faiss
import structlog

logger = structlog.get_logger()

INDEX_TYPE = "IndexIDMap2(IndexFlatIP)"


def normalize(vectors: np.ndarray) -> np.ndarray:
    """L2-normalise rows so inner product equals cosine similarity."""
    vectors = np.ascontiguousarray(vectors, dtype=np.float32)
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return vectors / norms


class FAISSVectorStore:
    """FAISS-backed index keyed by embedding row id."""

    def __init__(self, index_dir: Path, dimension: int, embedding_model: str = ""):
        """Initialize the vector store.

        Args:
            index_dir: Directory to store index and metadata
            dimension: Configured embedding dimension
            embedding_model: Model name recorded in the index metadata
        """
        self.index_dir = Path(index_dir)
        self.dimension = dimension
        self.embedding_model = embedding_model

        self.index_path = self.index_dir / "vectors.index"
        self.metadata_path = self.index_dir / "metadata.json"

        self.index: Optional[faiss.Index] = None
        self.metadata: Dict[str, Any] = {}

    @property
    def is_ready(self) -> bool:
        return self.index is not None

    @property
    def vector_count(self) -> int:
        return self.index.ntotal if self.index is not None else 0

    def init_new_index(self) -> None:
        """Create an empty index for the configured dimension."""
        self.index = faiss.IndexIDMap2(faiss.IndexFlatIP(self.dimension))
        self.metadata = {
            "embedding_model": self.embedding_model,
            "embedding_dimension": self.dimension,
            "index_type": INDEX_TYPE,
            "metric": "cosine",
            "vector_count": 0,
        }

        logger.info(
            "faiss_index_initialized",
            dimension=self.dimension,
            index_type=INDEX_TYPE,
        )

    def load_index(self) -> None:
        """Load the index from disk.

        Raises:
            FileNotFoundError: If index files don't exist
            ValueError: If the index was built for another dimension
            RuntimeError: If loading fails
        """
        if not self.index_path.exists():
            raise FileNotFoundError(f"Index not found: {self.index_path}")

        if not self.metadata_path.exists():
            raise FileNotFoundError(f"Metadata not found: {self.metadata_path}")

        try:
            with open(self.metadata_path, "r") as f:
                metadata = json.load(f)
        except (OSError, ValueError) as e:
            raise RuntimeError(f"Failed to load metadata: {e}") from e

        stored_dim = metadata.get("embedding_dimension")
        if stored_dim != self.dimension:
            raise ValueError(
                f"Dimension mismatch: index was built with "
                f"{metadata.get('embedding_model')} (dim={stored_dim}), but the "
                f"configured dimension is {self.dimension}. Please rebuild the index."
            )

        try:
            index = faiss.read_index(str(self.index_path))
        except RuntimeError as e:
            raise RuntimeError(f"Failed to load FAISS index: {e}") from e

        if index.d != self.dimension:
            raise ValueError(
                f"Dimension mismatch: index file has dim={index.d}, "
                f"expected {self.dimension}"
            )

        self.index = index
        self.metadata = metadata

        logger.info(
            "faiss_index_loaded",
            dimension=self.dimension,
            vector_count=self.index.ntotal,
            model=metadata.get("embedding_model"),
        )

    def init_or_load(self) -> None:
        """Load the existing index, or create a new one when none is on disk."""
        if self.index_path.exists() and self.metadata_path.exists():
            logger.info("existing_index_detected", path=str(self.index_path))
            self.load_index()
        else:
            logger.info("no_index_found_initializing_new")
            self.init_new_index()
            self.save_index()

    def save_index(self) -> None:
        """Write index and metadata to disk.

        Raises:
            RuntimeError: If there is no index or writing fails
        """
        if self.index is None:
            raise RuntimeError("No index to save. Initialize or load an index first.")

        self.index_dir.mkdir(parents=True, exist_ok=True)
        self.metadata["vector_count"] = self.index.ntotal

        try:
            faiss.write_index(self.index, str(self.index_path))
            with open(self.metadata_path, "w") as f:
                json.dump(self.metadata, f, indent=2)
        except (RuntimeError, OSError) as e:
            raise RuntimeError(f"Failed to save FAISS index: {e}") from e

        logger.debug("faiss_index_saved", vector_count=self.index.ntotal)

    def _as_matrix(self, vectors: Sequence[Sequence[float]]) -> np.ndarray:
        matrix = np.asarray(vectors, dtype=np.float32)
        if matrix.ndim != 2 or matrix.shape[1] != self.dimension:
            got = matrix.shape[1] if matrix.ndim == 2 else matrix.shape
            raise ValueError(
                f"Embedding dimension mismatch: expected {self.dimension}, got {got}"
            )
        return matrix

    def add_vectors(self, vectors: Sequence[Sequence[float]], vector_ids: Sequence[int]) -> None:
        """Add vectors under the given ids.

        Raises:
            RuntimeError: If no index is loaded
            ValueError: On dimension or id count mismatch
        """
        if self.index is None:
            raise RuntimeError("No index initialized. Call init_or_load() first.")

        if len(vectors) == 0:
            return

        if len(vectors) != len(vector_ids):
            raise ValueError(
                f"Got {len(vectors)} vectors for {len(vector_ids)} ids"
            )

        matrix = normalize(self._as_matrix(vectors))
        ids = np.asarray(vector_ids, dtype=np.int64)
        self.index.add_with_ids(matrix, ids)

        logger.info(
            "vectors_added",
            count=len(vector_ids),
            total_vectors=self.index.ntotal,
        )

    def remove_vectors(self, vector_ids: Sequence[int]) -> int:
        """Remove vectors by id and return how many were removed."""
        if self.index is None or len(vector_ids) == 0:
            return 0

        removed = self.index.remove_ids(np.asarray(vector_ids, dtype=np.int64))
        logger.info("vectors_removed", count=int(removed), total_vectors=self.index.ntotal)
        return int(removed)

    def search(self, query_vector: Sequence[float], top_k: int) -> Tuple[List[int], List[float]]:
        """Search for the most similar vectors.

        Args:
            query_vector: Query embedding
            top_k: Maximum number of results

        Returns:
            Tuple of (vector_ids, cosine scores), best first

        Raises:
            RuntimeError: If no index is loaded
            ValueError: On dimension mismatch
        """
        if self.index is None:
            raise RuntimeError("No index initialized. Call init_or_load() first.")

        query = normalize(self._as_matrix([query_vector]))
        top_k = min(top_k, self.index.ntotal)

        if top_k <= 0:
            return [], []

        scores, indices = self.index.search(query, top_k)

        vector_ids = []
        similarity = []
        for vector_id, score in zip(indices[0].tolist(), scores[0].tolist()):
            # FAISS pads missing results with -1
            if vector_id < 0:
                continue
            vector_ids.append(vector_id)
            similarity.append(score)

        return vector_ids, similarity

    def rebuild_index(self, vector_ids: Sequence[int], vectors: Sequence[Sequence[float]]) -> None:
        """Replace the index with one built from the given vectors."""
        logger.warning("rebuilding_index", index_dir=str(self.index_dir), vectors=len(vector_ids))

        self.init_new_index()
        self.add_vectors(vectors, vector_ids)
        self.save_index()

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the vector store."""
        if self.index is None:
            return {
                "initialized": False,
                "vector_count": 0,
                "dimension": self.dimension,
            }

        return {
            "initialized": True,
            "vector_count": self.index.ntotal,
            "dimension": self.dimension,
            "embedding_model": self.embedding_model,
            "index_exists_on_disk": self.index_path.exists(),
        }
