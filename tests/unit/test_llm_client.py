"""Tests for the Gemini REST client against a mocked transport."""
import json

import httpx
import pytest

from ragdesk.config import Settings
from ragdesk.errors import ConfigurationError, EmbeddingFailure, GenerationFailure
from ragdesk.llm_client import NO_ANSWER_MESSAGE, GeminiClient, extract_answer


def make_client(handler, api_key="secret-key"):
    settings = Settings(api_key=api_key, base_url="https://api.test/v1beta", request_timeout=2.0)
    return GeminiClient(settings, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_embed_returns_values_and_forwards_credential():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("x-goog-api-key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"embedding": {"values": [0.1, 0.2, 0.3]}})

    vector = await make_client(handler).embed("hello world")

    assert vector == [0.1, 0.2, 0.3]
    assert seen["url"] == "https://api.test/v1beta/models/text-embedding-004:embedContent"
    assert seen["key"] == "secret-key"
    assert seen["body"] == {
        "model": "models/text-embedding-004",
        "content": {"parts": [{"text": "hello world"}]},
    }


@pytest.mark.asyncio
async def test_missing_credential_fails_before_any_call():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={})

    client = make_client(handler, api_key=None)

    with pytest.raises(ConfigurationError):
        await client.embed("text")
    with pytest.raises(ConfigurationError):
        await client.generate("prompt")
    assert calls == []


@pytest.mark.asyncio
async def test_embed_error_status_is_embedding_failure():
    client = make_client(lambda request: httpx.Response(500, text="boom"))

    with pytest.raises(EmbeddingFailure):
        await client.embed("text")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [{}, {"embedding": {}}, {"embedding": {"values": []}}, {"embedding": None}, []],
)
async def test_embed_missing_vector_field_is_embedding_failure(body):
    client = make_client(lambda request: httpx.Response(200, json=body))

    with pytest.raises(EmbeddingFailure):
        await client.embed("text")


@pytest.mark.asyncio
async def test_embed_timeout_is_embedding_failure():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(EmbeddingFailure, match="timed out"):
        await make_client(handler).embed("text")


@pytest.mark.asyncio
async def test_embed_invalid_json_is_embedding_failure():
    client = make_client(lambda request: httpx.Response(200, text="not json"))

    with pytest.raises(EmbeddingFailure):
        await client.embed("text")


@pytest.mark.asyncio
async def test_generate_posts_prompt():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200, json={"candidates": [{"content": {"parts": [{"text": "42"}]}}]}
        )

    response = await make_client(handler).generate("What is the answer?", temperature=0.2)

    assert extract_answer(response) == "42"
    assert seen["url"] == "https://api.test/v1beta/models/gemini-1.5-flash:generateContent"
    assert seen["body"]["contents"] == [{"parts": [{"text": "What is the answer?"}]}]
    assert seen["body"]["generationConfig"] == {"temperature": 0.2}


@pytest.mark.asyncio
async def test_generate_error_status_is_generation_failure():
    client = make_client(lambda request: httpx.Response(429, json={"error": "quota"}))

    with pytest.raises(GenerationFailure):
        await client.generate("prompt")


@pytest.mark.asyncio
async def test_generate_connection_error_is_generation_failure():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(GenerationFailure):
        await make_client(handler).generate("prompt")


@pytest.mark.parametrize(
    "response",
    [
        {},
        {"candidates": []},
        {"candidates": [{"content": {}}]},
        {"candidates": [{"content": {"parts": []}}]},
        {"candidates": [{"content": {"parts": [{"text": ""}]}}]},
    ],
)
def test_extract_answer_falls_back_when_absent(response):
    assert extract_answer(response) == NO_ANSWER_MESSAGE
