"""Main Quart application for ragdesk."""
from dataclasses import dataclass
from typing import Optional

from quart import Quart, request, jsonify
import structlog

from ragdesk import config
from ragdesk.config import Settings
from ragdesk.errors import RagError
from ragdesk.llm_client import GeminiClient
from ragdesk.logging_config import configure_logging
from ragdesk.metrics import MetricsSink
from ragdesk.rag.document_store import DocumentStore
from ragdesk.rag.ingest import IngestPipeline
from ragdesk.rag.retriever import RetrievalPipeline
from ragdesk.storage import BlobStore, make_storage_key

logger = structlog.get_logger()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "GET, POST, DELETE, OPTIONS",
}


@dataclass
class Services:
    """Everything the request handlers need, built once per app."""

    settings: Settings
    store: DocumentStore
    blob_store: BlobStore
    ingest: IngestPipeline
    retrieval: RetrievalPipeline
    metrics: MetricsSink


def build_services(settings: Settings) -> Services:
    store = DocumentStore.from_settings(settings)
    store.initialize()

    client = GeminiClient(settings)
    blob_store = BlobStore(settings.uploads_dir)
    metrics = MetricsSink(settings.db_path)

    return Services(
        settings=settings,
        store=store,
        blob_store=blob_store,
        ingest=IngestPipeline(settings, client, store, blob_store),
        retrieval=RetrievalPipeline(settings, client, store, metrics=metrics),
        metrics=metrics,
    )


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def create_app(services: Optional[Services] = None) -> Quart:
    """Create the Quart application.

    Args:
        services: Prebuilt services (default: built from environment settings)
    """
    if services is None:
        configure_logging()
        services = build_services(Settings.from_env())

    app = Quart(__name__)
    # Multipart overhead on top of the file itself
    app.config["MAX_CONTENT_LENGTH"] = services.settings.max_upload_bytes + 1024 * 1024
    app.extensions["ragdesk"] = services

    @app.after_request
    async def add_cors_headers(response):
        response.headers.update(CORS_HEADERS)
        return response

    @app.route("/api/<path:path>", methods=["OPTIONS"])
    async def preflight(path: str):
        return "", 204

    async def ingest_and_respond(file_name: str, file_url: str, file_type: str, extra=None):
        result = await services.ingest.ingest_file(file_name, file_url, file_type)
        body = result.to_response()
        if extra:
            body.update(extra)
        if result.success:
            return jsonify(body), 200
        status = result.error.status_code if result.error else 500
        return jsonify(body), status

    @app.route("/api/process-file", methods=["POST"])
    async def process_file():
        """Ingest a file that is already in the blob store.

        Expects JSON body:
        {
            "fileName": "report.csv",
            "fileUrl": "1700000000000-report.csv",  // storage key
            "fileType": "text/csv"
        }

        Returns JSON:
        {
            "success": true,
            "documentId": "uuid",
            "chunksProcessed": 3
        }
        """
        data = await request.get_json(silent=True)

        if not isinstance(data, dict):
            return _error("Request body must be a JSON object", 400)

        missing = [k for k in ("fileName", "fileUrl", "fileType") if not data.get(k)]
        if missing:
            logger.error("process_file_missing_fields", missing=missing)
            return _error(f"Missing field(s): {', '.join(missing)}", 400)

        logger.info("process_file_request", file_name=data["fileName"], file_type=data["fileType"])
        return await ingest_and_respond(data["fileName"], data["fileUrl"], data["fileType"])

    @app.route("/api/documents/upload", methods=["POST"])
    async def upload_document():
        """Upload a file (multipart field ``file``) and ingest it."""
        files = await request.files
        upload = files.get("file")

        if upload is None or not upload.filename:
            return _error("No file uploaded", 400)

        content_type = (upload.content_type or "").split(";", 1)[0].strip().lower()
        if content_type not in config.ALLOWED_UPLOAD_TYPES:
            return _error("Only CSV, Excel, PDF and plain text files are supported", 400)

        data = upload.read()
        if len(data) > services.settings.max_upload_bytes:
            limit_mb = services.settings.max_upload_bytes // (1024 * 1024)
            return _error(f"File size must be less than {limit_mb}MB", 400)

        key = make_storage_key(upload.filename)
        await services.blob_store.upload(key, data)

        return await ingest_and_respond(
            upload.filename, key, content_type, extra={"fileUrl": key}
        )

    @app.route("/api/query-rag", methods=["POST"])
    async def query_rag():
        """Answer a question from the stored documents.

        Expects JSON body:
        {
            "question": "What were the Q3 sales?"
        }

        Returns JSON:
        {
            "answer": "...",
            "contextSource": "similarity",
            "sources": [...]
        }
        """
        data = await request.get_json(silent=True)

        if not isinstance(data, dict) or "question" not in data:
            return _error("Missing 'question' in request body", 400)

        if not isinstance(data["question"], str):
            return _error("'question' must be a string", 400)

        result = await services.retrieval.answer(data["question"])

        if result.success:
            return jsonify(result.to_response()), 200
        return jsonify(result.to_response()), result.error.status_code

    @app.route("/api/documents", methods=["GET"])
    async def list_documents():
        documents = await services.store.list_documents()
        return jsonify({"documents": documents})

    @app.route("/api/documents/<document_id>", methods=["GET"])
    async def get_document(document_id: str):
        document = await services.store.get_document(document_id)
        if document is None:
            return _error("Document not found", 404)
        return jsonify(document.to_dict(include_content=True))

    @app.route("/api/documents/<document_id>", methods=["DELETE"])
    async def delete_document(document_id: str):
        """Delete a document with its chunks and stored file.

        Returns:
            204 No Content if successful
            404 Not Found if the document doesn't exist
        """
        document = await services.store.get_document(document_id)
        if document is None:
            return _error("Document not found", 404)

        await services.store.delete_document(document_id)

        original_url = document.metadata.get("original_url")
        if original_url:
            await services.blob_store.delete(original_url)

        return "", 204

    @app.route("/api/analytics", methods=["GET"])
    async def analytics():
        return jsonify(services.metrics.summary())

    @app.route("/api/config", methods=["GET"])
    async def show_config():
        return jsonify(services.settings.public_view())

    @app.route("/health/ready")
    async def health_ready():
        """Readiness probe - credential configured and vector index loaded."""
        checks = {
            "status": "healthy",
            "api_key": services.settings.api_key_configured,
            "vector_index": services.store.search_available,
        }

        if not checks["api_key"]:
            checks["status"] = "unhealthy"
            checks["error"] = "GEMINI_API_KEY is not set"
        elif not checks["vector_index"]:
            checks["status"] = "unhealthy"
            checks["error"] = services.store.index_error or "Vector index not loaded"

        status_code = 200 if checks["status"] == "healthy" else 503
        return jsonify(checks), status_code

    @app.route("/health/live")
    async def health_live():
        """Liveness probe - check if app is running."""
        return jsonify({"status": "alive"}), 200

    @app.errorhandler(RagError)
    async def rag_error(error: RagError):
        logger.error("request_failed", error_type=type(error).__name__, error=error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    async def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(413)
    async def too_large(error):
        return jsonify({"error": "Upload too large"}), 413

    @app.errorhandler(500)
    async def internal_error(error):
        logger.error("internal_server_error", error=str(error))
        return jsonify({"error": "Internal server error"}), 500

    return app


if __name__ == "__main__":
    # For development - use hypercorn "ragdesk.main:create_app()" in production
    create_app().run(host="0.0.0.0", port=5000, debug=True)
