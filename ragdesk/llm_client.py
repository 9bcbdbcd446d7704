"""Gemini REST client for embeddings and answer generation."""
import httpx
from typing import Any, Dict, List, Optional
import structlog

from ragdesk.config import Settings
from ragdesk.errors import ConfigurationError, EmbeddingFailure, GenerationFailure

logger = structlog.get_logger()

NO_ANSWER_MESSAGE = "Sorry, I could not generate a response."


class GeminiClient:
    """Async client for the hosted embedding and generation API."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            settings: Settings providing credential, models and timeout
            transport: Optional httpx transport (used to stub the API in tests)
        """
        self.settings = settings
        self.base_url = settings.base_url.rstrip("/")
        self.timeout = settings.request_timeout
        self.transport = transport

    def ensure_configured(self) -> None:
        """Fail before any call is made when the credential is missing.

        Raises:
            ConfigurationError: If no API key is configured
        """
        if not self.settings.api_key:
            logger.error("api_key_missing")
            raise ConfigurationError("Gemini API key not configured")

    def _headers(self) -> Dict[str, str]:
        self.ensure_configured()
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self.settings.api_key,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def embed(self, text: str) -> List[float]:
        """Embed a text string.

        Args:
            text: Text to embed

        Returns:
            Embedding vector

        Raises:
            ConfigurationError: If the API key is missing
            EmbeddingFailure: On transport errors, timeouts, non-success
                status or a response without ``embedding.values``
        """
        headers = self._headers()
        model = self.settings.embedding_model
        payload = {
            "model": f"models/{model}",
            "content": {"parts": [{"text": text}]},
        }

        try:
            async with self._client() as client:
                logger.debug("embedding_request", model=model, text_length=len(text))

                response = await client.post(
                    f"{self.base_url}/models/{model}:embedContent",
                    json=payload,
                    headers=headers,
                )
                response.raise_for_status()
                data = response.json()

        except httpx.TimeoutException as e:
            logger.error("embedding_timeout", model=model, timeout=self.timeout)
            raise EmbeddingFailure(f"Embedding request timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            logger.error(
                "embedding_http_error",
                model=model,
                status_code=e.response.status_code,
                body=e.response.text[:200],
            )
            raise EmbeddingFailure(
                f"Embedding API returned status {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("embedding_error", model=model, error=str(e))
            raise EmbeddingFailure(f"Embedding request failed: {e}") from e

        embedding = data.get("embedding") if isinstance(data, dict) else None
        values = embedding.get("values") if isinstance(embedding, dict) else None

        if not values:
            logger.error("embedding_missing_values", model=model)
            raise EmbeddingFailure("No embedding returned by the embedding API")

        logger.debug("embedding_response", model=model, dimension=len(values))
        return values

    async def generate(self, prompt: str, temperature: Optional[float] = None) -> Dict[str, Any]:
        """Send a single-turn generation request.

        Args:
            prompt: Full prompt text
            temperature: Optional sampling temperature

        Returns:
            Raw response dict

        Raises:
            ConfigurationError: If the API key is missing
            GenerationFailure: On transport errors, timeouts or non-success status
        """
        headers = self._headers()
        model = self.settings.generation_model
        payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}

        if temperature is not None:
            payload["generationConfig"] = {"temperature": temperature}

        try:
            async with self._client() as client:
                logger.info("generation_request", model=model, prompt_length=len(prompt))

                response = await client.post(
                    f"{self.base_url}/models/{model}:generateContent",
                    json=payload,
                    headers=headers,
                )
                response.raise_for_status()
                data = response.json()

        except httpx.TimeoutException as e:
            logger.error("generation_timeout", model=model, timeout=self.timeout)
            raise GenerationFailure(f"Generation request timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            logger.error(
                "generation_http_error",
                model=model,
                status_code=e.response.status_code,
                body=e.response.text[:200],
            )
            raise GenerationFailure("Failed to generate response from Gemini") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("generation_error", model=model, error=str(e))
            raise GenerationFailure(f"Generation request failed: {e}") from e

        return data if isinstance(data, dict) else {}


def extract_answer(response: Dict[str, Any]) -> str:
    """Pull the answer text out of a generation response.

    Returns the fixed fallback message when the text is structurally absent.
    """
    try:
        text = response["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        logger.warning("generation_answer_missing")
        return NO_ANSWER_MESSAGE
    return text or NO_ANSWER_MESSAGE
