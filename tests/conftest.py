"""Shared fixtures: isolated storage, settings and a fake model API."""
import os
import tempfile
import zlib

# Keep ragdesk.config from creating data directories inside the checkout
os.environ.setdefault("RAGDESK_DATA_DIR", tempfile.mkdtemp(prefix="ragdesk-test-"))

import numpy as np
import pytest

from ragdesk.config import Settings
from ragdesk.errors import ConfigurationError, EmbeddingFailure
from ragdesk.rag.document_store import DocumentStore
from ragdesk.storage import BlobStore

DIMENSION = 8


def fake_vector(text: str, dimension: int = DIMENSION) -> list:
    """Deterministic pseudo-embedding for a text."""
    rng = np.random.default_rng(zlib.crc32(text.encode("utf-8")))
    return rng.random(dimension).tolist()


class FakeModelClient:
    """Stand-in for GeminiClient with scripted embeddings and answers."""

    def __init__(self, api_key="test-key", dimension=DIMENSION):
        self.api_key = api_key
        self.dimension = dimension
        self.vectors = {}
        self.fail_texts = set()
        self.embed_calls = []
        self.prompts = []
        self.temperatures = []
        self.generate_error = None
        self.response = {
            "candidates": [{"content": {"parts": [{"text": "The answer."}]}}]
        }

    def ensure_configured(self):
        if not self.api_key:
            raise ConfigurationError("Gemini API key not configured")

    async def embed(self, text):
        self.ensure_configured()
        self.embed_calls.append(text)
        if text in self.fail_texts:
            raise EmbeddingFailure("Embedding API returned status 500")
        if text in self.vectors:
            return self.vectors[text]
        return fake_vector(text, self.dimension)

    async def generate(self, prompt, temperature=None):
        self.ensure_configured()
        self.prompts.append(prompt)
        self.temperatures.append(temperature)
        if self.generate_error is not None:
            raise self.generate_error
        return self.response


@pytest.fixture
def settings(tmp_path):
    return Settings(
        api_key="test-key",
        embedding_dimension=DIMENSION,
        chunk_size=500,
        embed_concurrency=2,
        request_timeout=5.0,
        db_path=tmp_path / "ragdesk.sqlite",
        index_dir=tmp_path / "index",
        uploads_dir=tmp_path / "uploads",
    )


@pytest.fixture
def store(settings):
    document_store = DocumentStore.from_settings(settings)
    document_store.initialize()
    return document_store


@pytest.fixture
def blob_store(settings):
    return BlobStore(settings.uploads_dir)


@pytest.fixture
def model_client():
    return FakeModelClient()


def words(count: int, prefix: str = "w") -> str:
    return " ".join(f"{prefix}{i}" for i in range(count))
