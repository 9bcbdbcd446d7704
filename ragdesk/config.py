"""Application configuration with sensible defaults."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("RAGDESK_DATA_DIR", str(BASE_DIR / "data")))
UPLOADS_DIR = DATA_DIR / "uploads"
INDEX_DIR = DATA_DIR / "index"

# Ensure data directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
UPLOADS_DIR.mkdir(exist_ok=True)
INDEX_DIR.mkdir(exist_ok=True)

# Database
DB_PATH = DATA_DIR / "ragdesk.sqlite"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "true").lower() in ("1", "true", "yes")

# Hosted model API (Gemini REST)
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_EMBEDDING_MODEL = "text-embedding-004"
DEFAULT_EMBEDDING_DIMENSION = 768
DEFAULT_GENERATION_MODEL = "gemini-1.5-flash"

# Upload limits
ALLOWED_UPLOAD_TYPES = (
    "text/csv",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/pdf",
    "text/plain",
    "text/markdown",
)
DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e


def _env_float(
    env: Mapping[str, str], name: str, default: Optional[float]
) -> Optional[float]:
    value = env.get(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e


@dataclass(frozen=True)
class Settings:
    """Pipeline configuration passed explicitly into every component.

    The API key is the only secret; it is excluded from ``repr`` so the
    settings object can be logged safely.
    """

    api_key: Optional[str] = field(default=None, repr=False)
    base_url: str = DEFAULT_BASE_URL
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    embedding_dimension: int = DEFAULT_EMBEDDING_DIMENSION
    generation_model: str = DEFAULT_GENERATION_MODEL
    generation_temperature: Optional[float] = None

    # Chunking and retrieval (chunk size is a word count)
    chunk_size: int = 500
    match_threshold: float = 0.7
    match_count: int = 5
    fallback_document_limit: int = 3

    # Resources
    embed_concurrency: int = 4
    request_timeout: float = 30.0
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES

    # Storage
    db_path: Path = DB_PATH
    index_dir: Path = INDEX_DIR
    uploads_dir: Path = UPLOADS_DIR

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.embedding_dimension <= 0:
            raise ValueError(
                f"embedding_dimension must be positive, got {self.embedding_dimension}"
            )
        if self.embed_concurrency <= 0:
            raise ValueError(
                f"embed_concurrency must be positive, got {self.embed_concurrency}"
            )
        if self.match_count <= 0:
            raise ValueError(f"match_count must be positive, got {self.match_count}")
        if self.fallback_document_limit < 0:
            raise ValueError(
                "fallback_document_limit must not be negative, "
                f"got {self.fallback_document_limit}"
            )
        if self.generation_temperature is not None and self.generation_temperature < 0:
            raise ValueError(
                f"generation_temperature must not be negative, got {self.generation_temperature}"
            )

    @property
    def api_key_configured(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``)

        Returns:
            Settings instance
        """
        env = os.environ if environ is None else environ
        data_dir = Path(env.get("RAGDESK_DATA_DIR") or str(DATA_DIR))

        return cls(
            api_key=env.get("GEMINI_API_KEY") or None,
            base_url=env.get("GEMINI_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
            embedding_model=env.get("EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
            embedding_dimension=_env_int(
                env, "EMBEDDING_DIMENSION", DEFAULT_EMBEDDING_DIMENSION
            ),
            generation_model=env.get("GENERATION_MODEL", DEFAULT_GENERATION_MODEL),
            generation_temperature=_env_float(env, "GENERATION_TEMPERATURE", None),
            chunk_size=_env_int(env, "CHUNK_SIZE", 500),
            match_threshold=_env_float(env, "MATCH_THRESHOLD", 0.7),
            match_count=_env_int(env, "MATCH_COUNT", 5),
            fallback_document_limit=_env_int(env, "FALLBACK_DOCUMENT_LIMIT", 3),
            embed_concurrency=_env_int(env, "EMBED_CONCURRENCY", 4),
            request_timeout=_env_float(env, "REQUEST_TIMEOUT", 30.0),
            max_upload_bytes=_env_int(
                env, "MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES
            ),
            db_path=data_dir / "ragdesk.sqlite",
            index_dir=data_dir / "index",
            uploads_dir=data_dir / "uploads",
        )

    def public_view(self) -> dict:
        """Non-secret configuration for display."""
        return {
            "provider": "gemini",
            "vectorStore": "sqlite+faiss",
            "embedding": {
                "model": self.embedding_model,
                "dimensions": self.embedding_dimension,
            },
            "generationModel": self.generation_model,
            "generationTemperature": self.generation_temperature,
            "chunkSize": self.chunk_size,
            "matchThreshold": self.match_threshold,
            "matchCount": self.match_count,
            "fallbackDocumentLimit": self.fallback_document_limit,
            "apiKeyConfigured": self.api_key_configured,
        }
