"""Retrieval pipeline: question in, grounded answer out.

Handles:
- Question validation and embedding
- Context assembly through ordered context stages
  (similarity search first, recent documents as fallback)
- Prompt construction and answer generation
- Query analytics
"""
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
import structlog

from ragdesk.config import Settings
from ragdesk.errors import InvalidRequest, PersistenceFailure, RagError, SearchUnavailable
from ragdesk.llm_client import GeminiClient, extract_answer
from ragdesk.metrics import MetricsSink, QueryRecord
from ragdesk.rag.document_store import DocumentStore, SearchMatch

logger = structlog.get_logger()

MAX_QUESTION_LENGTH = 2000
CONTEXT_SEPARATOR = "\n\n"

PROMPT_TEMPLATE = """Based on the following context, please answer the user's question. If the information is not available in the context, please say so clearly.

Context:
{context}

Question: {question}

Please provide a detailed and accurate answer based only on the information provided in the context."""


def build_prompt(context: str, question: str) -> str:
    return PROMPT_TEMPLATE.format(context=context, question=question)


@dataclass
class RetrievedContext:
    """Context text and where it came from."""

    text: str
    source: str
    matches: List[SearchMatch] = field(default_factory=list)

    @property
    def relevance_score(self) -> float:
        return max((m.score for m in self.matches), default=0.0)


class SimilaritySearchStage:
    """Context from the chunks most similar to the question."""

    name = "similarity"

    def __init__(self, store: DocumentStore, score_threshold: float, max_results: int):
        self.store = store
        self.score_threshold = score_threshold
        self.max_results = max_results

    async def gather(self, query_vector: Sequence[float]) -> Optional[RetrievedContext]:
        """Return matched chunks, or None when search is unavailable.

        Zero matches is a valid (empty) context, not unavailability.
        """
        try:
            matches = await self.store.similarity_search(
                query_vector,
                score_threshold=self.score_threshold,
                max_results=self.max_results,
            )
        except SearchUnavailable as e:
            logger.warning("similarity_search_unavailable", error=e.message)
            return None

        logger.info(
            "similarity_search_completed",
            matches=len(matches),
            top_score=matches[0].score if matches else None,
        )
        return RetrievedContext(
            text=CONTEXT_SEPARATOR.join(m.content for m in matches),
            source=self.name,
            matches=matches,
        )


class RecentDocumentsStage:
    """Context from the full text of the most recent documents."""

    name = "recent_documents"

    def __init__(self, store: DocumentStore, limit: int):
        self.store = store
        self.limit = limit

    async def gather(self, query_vector: Sequence[float]) -> Optional[RetrievedContext]:
        try:
            documents = await self.store.recent_documents(self.limit)
        except PersistenceFailure as e:
            logger.warning("recent_documents_unavailable", error=e.message)
            return None

        logger.info("recent_documents_context", documents=len(documents))
        return RetrievedContext(
            text=CONTEXT_SEPARATOR.join(d.content for d in documents),
            source=self.name,
        )


class ContextStrategy:
    """Ordered context stages; the first available stage wins."""

    def __init__(self, stages: Sequence[Any]):
        self.stages = list(stages)

    @classmethod
    def default(cls, store: DocumentStore, settings: Settings) -> "ContextStrategy":
        return cls([
            SimilaritySearchStage(
                store,
                score_threshold=settings.match_threshold,
                max_results=settings.match_count,
            ),
            RecentDocumentsStage(store, limit=settings.fallback_document_limit),
        ])

    async def build(self, query_vector: Sequence[float]) -> RetrievedContext:
        for stage in self.stages:
            context = await stage.gather(query_vector)
            if context is not None:
                return context
        logger.warning("no_context_stage_available")
        return RetrievedContext(text="", source="none")


@dataclass
class AnswerResult:
    answer: Optional[str] = None
    context_source: Optional[str] = None
    sources: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[RagError] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_response(self) -> dict:
        if self.error is not None:
            return self.error.to_dict()
        return {
            "answer": self.answer,
            "contextSource": self.context_source,
            "sources": self.sources,
        }


class RetrievalPipeline:
    """Answers questions from stored documents."""

    def __init__(
        self,
        settings: Settings,
        client: GeminiClient,
        store: DocumentStore,
        strategy: Optional[ContextStrategy] = None,
        metrics: Optional[MetricsSink] = None,
    ):
        self.settings = settings
        self.client = client
        self.store = store
        self.strategy = strategy or ContextStrategy.default(store, settings)
        self.metrics = metrics

    async def _answer(self, question: str) -> AnswerResult:
        question = (question or "").strip()
        if not question:
            raise InvalidRequest("Question cannot be empty")
        if len(question) > MAX_QUESTION_LENGTH:
            raise InvalidRequest(
                f"Question too long (max {MAX_QUESTION_LENGTH} characters)"
            )

        started = time.perf_counter()
        query_vector = await self.client.embed(question)

        context = await self.strategy.build(query_vector)

        prompt = build_prompt(context.text, question)
        response = await self.client.generate(
            prompt, temperature=self.settings.generation_temperature
        )
        answer = extract_answer(response)

        elapsed_ms = (time.perf_counter() - started) * 1000

        logger.info(
            "question_answered",
            context_source=context.source,
            context_length=len(context.text),
            answer_length=len(answer),
            response_time_ms=round(elapsed_ms, 1),
        )

        if self.metrics is not None:
            self.metrics.record_query(
                QueryRecord(
                    question=question,
                    response_time_ms=elapsed_ms,
                    relevance_score=context.relevance_score,
                    context_source=context.source,
                )
            )

        return AnswerResult(
            answer=answer,
            context_source=context.source,
            sources=[
                {
                    "documentId": m.document_id,
                    "chunkIndex": m.chunk_index,
                    "score": round(m.score, 3),
                }
                for m in context.matches
            ],
        )

    async def answer(self, question: str) -> AnswerResult:
        """Answer a question.

        Returns:
            AnswerResult; failures are reported in the result, never raised
        """
        logger.info("question_received", question_length=len(question or ""))
        try:
            return await self._answer(question)
        except RagError as e:
            logger.error(
                "question_failed",
                error_type=type(e).__name__,
                error=e.message,
            )
            return AnswerResult(error=e)
        except Exception as e:
            logger.exception("question_crashed")
            return AnswerResult(error=RagError(f"Unexpected retrieval error: {e}"))
