"""Fixed-size word chunking for the RAG pipeline.

Text is split on whitespace and regrouped into chunks of at most ``chunk_size``
words joined by single spaces. There is no overlap and no sentence awareness.
"""
from typing import List, Optional
from dataclasses import dataclass
import structlog

logger = structlog.get_logger()

DEFAULT_CHUNK_SIZE = 500


@dataclass
class TextChunk:
    """Represents a chunk of text with position information."""

    content: str
    chunk_index: int
    word_start: int
    word_count: int


class WordChunker:
    """Word-count text chunker."""

    def __init__(self, chunk_size: Optional[int] = None):
        """Initialize the chunker.

        Args:
            chunk_size: Maximum words per chunk (default 500)

        Raises:
            ValueError: If chunk_size is not positive
        """
        self.chunk_size = DEFAULT_CHUNK_SIZE if chunk_size is None else chunk_size

        if self.chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {self.chunk_size}")

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into consecutive word-count chunks.

        Args:
            text: Text to chunk

        Returns:
            List of TextChunk objects, empty for empty or whitespace-only text
        """
        if not text:
            return []

        words = text.split()
        chunks = []

        for chunk_index, start in enumerate(range(0, len(words), self.chunk_size)):
            piece = words[start : start + self.chunk_size]
            chunks.append(
                TextChunk(
                    content=" ".join(piece),
                    chunk_index=chunk_index,
                    word_start=start,
                    word_count=len(piece),
                )
            )

        logger.debug(
            "text_chunked",
            word_count=len(words),
            chunk_count=len(chunks),
            chunk_size=self.chunk_size,
        )

        return chunks

    def get_chunk_stats(self, chunks: List[TextChunk]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of TextChunk objects

        Returns:
            Dictionary with chunk statistics (sizes in words)
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_words": 0,
                "avg_chunk_words": 0,
                "min_chunk_words": 0,
                "max_chunk_words": 0,
            }

        sizes = [c.word_count for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_words": sum(sizes),
            "avg_chunk_words": sum(sizes) // len(chunks),
            "min_chunk_words": min(sizes),
            "max_chunk_words": max(sizes),
        }


def chunk_text(text: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> List[str]:
    """Chunk text and return only the chunk strings (convenience function)."""
    return [c.content for c in WordChunker(chunk_size).chunk_text(text)]
