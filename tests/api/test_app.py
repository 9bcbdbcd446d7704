"""Tests for the Quart HTTP API."""
import io

import pytest
from werkzeug.datastructures import FileStorage

from conftest import FakeModelClient, words
from ragdesk.main import Services, create_app
from ragdesk.metrics import MetricsSink
from ragdesk.rag.ingest import IngestPipeline
from ragdesk.rag.retriever import RetrievalPipeline


def make_services(settings, store, blob_store, client):
    metrics = MetricsSink(settings.db_path)
    return Services(
        settings=settings,
        store=store,
        blob_store=blob_store,
        ingest=IngestPipeline(settings, client, store, blob_store),
        retrieval=RetrievalPipeline(settings, client, store, metrics=metrics),
        metrics=metrics,
    )


@pytest.fixture
def app(settings, store, blob_store, model_client):
    return create_app(make_services(settings, store, blob_store, model_client))


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.mark.asyncio
async def test_process_file_success(client, blob_store):
    await blob_store.upload("1-notes.txt", words(1200).encode())

    response = await client.post(
        "/api/process-file",
        json={"fileName": "notes.txt", "fileUrl": "1-notes.txt", "fileType": "text/plain"},
    )

    assert response.status_code == 200
    body = await response.get_json()
    assert body["success"] is True
    assert body["chunksProcessed"] == 3
    assert body["documentId"]
    assert response.headers["Access-Control-Allow-Origin"] == "*"


@pytest.mark.asyncio
async def test_process_file_missing_fields(client):
    response = await client.post("/api/process-file", json={"fileName": "a.csv"})

    assert response.status_code == 400
    body = await response.get_json()
    assert "fileUrl" in body["error"]


@pytest.mark.asyncio
async def test_process_file_download_failure(client):
    response = await client.post(
        "/api/process-file",
        json={"fileName": "a.csv", "fileUrl": "missing.csv", "fileType": "text/csv"},
    )

    assert response.status_code == 404
    body = await response.get_json()
    assert body["code"] == "download_failure"
    assert "success" not in body


@pytest.mark.asyncio
async def test_process_file_unsupported_type(client, blob_store):
    await blob_store.upload("2-img.png", b"\x89PNG")

    response = await client.post(
        "/api/process-file",
        json={"fileName": "img.png", "fileUrl": "2-img.png", "fileType": "image/png"},
    )

    assert response.status_code == 400
    assert (await response.get_json())["code"] == "unsupported_content_type"


@pytest.mark.asyncio
async def test_upload_stores_and_ingests(client, blob_store):
    upload = FileStorage(
        stream=io.BytesIO(b"region,units\nnorth,10\n"),
        filename="sales.csv",
        content_type="text/csv",
    )

    response = await client.post("/api/documents/upload", files={"file": upload})

    assert response.status_code == 200
    body = await response.get_json()
    assert body["success"] is True
    assert body["fileUrl"].endswith("-sales.csv")
    assert await blob_store.download(body["fileUrl"]) == b"region,units\nnorth,10\n"


@pytest.mark.asyncio
async def test_upload_rejects_unsupported_type(client):
    upload = FileStorage(
        stream=io.BytesIO(b"GIF89a"), filename="cat.gif", content_type="image/gif"
    )

    response = await client.post("/api/documents/upload", files={"file": upload})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_query_rag_success(client):
    response = await client.post("/api/query-rag", json={"question": "Anything?"})

    assert response.status_code == 200
    body = await response.get_json()
    assert body["answer"] == "The answer."
    assert body["contextSource"] == "similarity"


@pytest.mark.asyncio
async def test_query_rag_missing_question(client):
    response = await client.post("/api/query-rag", json={})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_query_rag_generation_failure_is_reported(settings, store, blob_store):
    from ragdesk.errors import GenerationFailure

    fake = FakeModelClient()
    fake.generate_error = GenerationFailure("Failed to generate response from Gemini")
    client = create_app(make_services(settings, store, blob_store, fake)).test_client()

    response = await client.post("/api/query-rag", json={"question": "Q?"})

    assert response.status_code == 502
    assert (await response.get_json())["error"] == "Failed to generate response from Gemini"


@pytest.mark.asyncio
async def test_query_rag_without_credential(settings, store, blob_store):
    client = create_app(
        make_services(settings, store, blob_store, FakeModelClient(api_key=None))
    ).test_client()

    response = await client.post("/api/query-rag", json={"question": "Q?"})

    assert response.status_code == 500
    assert (await response.get_json())["code"] == "configuration_error"


@pytest.mark.asyncio
async def test_document_listing_detail_and_delete(client, blob_store):
    await blob_store.upload("3-notes.txt", words(20).encode())
    created = await client.post(
        "/api/process-file",
        json={"fileName": "notes.txt", "fileUrl": "3-notes.txt", "fileType": "text/plain"},
    )
    document_id = (await created.get_json())["documentId"]

    listing = await (await client.get("/api/documents")).get_json()
    assert [d["id"] for d in listing["documents"]] == [document_id]
    assert listing["documents"][0]["num_chunks"] == 1

    detail = await client.get(f"/api/documents/{document_id}")
    assert (await detail.get_json())["content"] == words(20)

    deleted = await client.delete(f"/api/documents/{document_id}")
    assert deleted.status_code == 204
    assert (await client.get(f"/api/documents/{document_id}")).status_code == 404
    assert (await client.delete(f"/api/documents/{document_id}")).status_code == 404
    assert await blob_store.delete("3-notes.txt") is False


@pytest.mark.asyncio
async def test_analytics_and_config(client):
    await client.post("/api/query-rag", json={"question": "First?"})

    analytics = await (await client.get("/api/analytics")).get_json()
    assert analytics["totalQueries"] == 1
    assert analytics["recentQueries"][0]["question"] == "First?"

    config_view = await (await client.get("/api/config")).get_json()
    assert config_view["apiKeyConfigured"] is True
    assert "test-key" not in str(config_view)


@pytest.mark.asyncio
async def test_health_endpoints(client):
    assert (await client.get("/health/live")).status_code == 200

    ready = await client.get("/health/ready")
    assert ready.status_code == 200
    assert (await ready.get_json())["vector_index"] is True


@pytest.mark.asyncio
async def test_unknown_route_is_json_404(client):
    response = await client.get("/nothing-here")

    assert response.status_code == 404
    assert (await response.get_json())["error"] == "Not found"


@pytest.mark.asyncio
async def test_upload_accepts_xlsx_workbook(client):
    import openpyxl

    workbook = openpyxl.Workbook()
    workbook.active.append(["region", "units"])
    workbook.active.append(["north", 10])
    buffer = io.BytesIO()
    workbook.save(buffer)
    buffer.seek(0)
    upload = FileStorage(
        stream=buffer,
        filename="sales.xlsx",
        content_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )

    response = await client.post("/api/documents/upload", files={"file": upload})

    assert response.status_code == 200
    body = await response.get_json()
    document = await (await client.get(f"/api/documents/{body['documentId']}")).get_json()
    assert "north,10" in document["content"]
    assert document["metadata"]["extractor"] == "read_text_from_xlsx"
