"""Append-only analytics sink for answered questions."""
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
import structlog

from ragdesk import db

logger = structlog.get_logger()


@dataclass
class QueryRecord:
    question: str
    response_time_ms: float
    relevance_score: float
    context_source: Optional[str] = None


class MetricsSink:
    """Stores query records and summarises them for the analytics view."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def record_query(self, record: QueryRecord) -> None:
        """Append a record. Failures are logged and never propagated."""
        try:
            db.insert_query(
                self.db_path,
                question=record.question,
                response_time_ms=record.response_time_ms,
                relevance_score=record.relevance_score,
                context_source=record.context_source,
            )
        except sqlite3.Error as e:
            logger.warning("query_metrics_write_failed", error=str(e))

    def summary(self, recent_limit: int = 10) -> Dict[str, Any]:
        stats = db.query_stats(self.db_path, recent_limit=recent_limit)
        return {
            "totalQueries": stats["total_queries"],
            "documentsProcessed": db.count_documents(self.db_path),
            "avgResponseTime": round(stats["avg_response_time_ms"]),
            "avgRelevance": round(stats["avg_relevance"], 3),
            "recentQueries": [
                {
                    "id": q["id"],
                    "question": q["question"],
                    "timestamp": q["created_at"],
                    "responseTime": round(q["response_time_ms"]),
                    "relevanceScore": round(q["relevance_score"], 3),
                    "contextSource": q["context_source"],
                }
                for q in stats["recent_queries"]
            ],
        }
