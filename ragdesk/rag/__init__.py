"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Content-type based text extraction
- Fixed-size word chunking
- FAISS vector index and the SQLite-backed document store
- Document ingestion
- Question answering over stored documents
"""
