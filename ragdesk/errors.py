"""Error taxonomy for the ingestion and retrieval pipelines.

Every error carries a human-readable message and the HTTP status the API layer
reports it with. Pipelines raise these internally and convert them into result
objects at their entrypoints.
"""
from typing import Any, Dict


class RagError(Exception):
    """Base class for all pipeline errors."""

    status_code = 500
    code = "rag_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class ConfigurationError(RagError):
    """A required setting (usually the API credential) is missing."""

    status_code = 500
    code = "configuration_error"


class InvalidRequest(RagError):
    status_code = 400
    code = "invalid_request"


class DownloadFailure(RagError):
    """The raw file could not be read from the blob store."""

    status_code = 404
    code = "download_failure"


class ExtractionFailure(RagError):
    """Text could not be extracted from the downloaded bytes."""

    status_code = 400
    code = "extraction_failure"


class UnsupportedContentType(ExtractionFailure):
    """No extractor is registered for the declared content type."""

    code = "unsupported_content_type"


class PersistenceFailure(RagError):
    status_code = 500
    code = "persistence_failure"


class EmbeddingFailure(RagError):
    status_code = 502
    code = "embedding_failure"


class SearchUnavailable(RagError):
    """The vector index cannot answer similarity queries right now."""

    status_code = 503
    code = "search_unavailable"


class GenerationFailure(RagError):
    status_code = 502
    code = "generation_failure"
