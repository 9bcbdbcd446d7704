#!/usr/bin/env python
"""Validate setup - check dependencies, configuration and the hosted API."""
import sys
import asyncio

# Color codes for terminal output
GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
RESET = "\033[0m"

def print_success(msg):
    print(f"{GREEN}✓{RESET} {msg}")

def print_error(msg):
    print(f"{RED}✗{RESET} {msg}")

def print_info(msg):
    print(f"{BLUE}ℹ{RESET} {msg}")

def print_warning(msg):
    print(f"{YELLOW}⚠{RESET} {msg}")

def print_section(title):
    print(f"\n{BLUE}{'='*60}{RESET}")
    print(f"{BLUE}{title:^60}{RESET}")
    print(f"{BLUE}{'='*60}{RESET}\n")

async def main():
    print_section("ragdesk - Setup Validation")

    errors = []
    warnings = []

    # 1. Python version check
    print_section("1. Python Environment")
    python_version = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    print_info(f"Python version: {python_version}")
    if sys.version_info >= (3, 10):
        print_success("Python version >= 3.10")
    else:
        print_error("Python version < 3.10 (required)")
        errors.append("Python version too old")

    # 2. Import core dependencies
    print_section("2. Core Dependencies")

    dependencies = [
        ("quart", "Quart web framework"),
        ("hypercorn", "Hypercorn ASGI server"),
        ("httpx", "HTTP client"),
        ("faiss", "FAISS vector index"),
        ("numpy", "Numerical arrays"),
        ("pypdf", "PDF text extraction"),
        ("openpyxl", "Excel workbook extraction"),
        ("structlog", "Structured logging"),
    ]

    for module_name, description in dependencies:
        try:
            __import__(module_name)
            print_success(f"{description:30} ({module_name})")
        except ImportError as e:
            print_error(f"{description:30} ({module_name}) - {e}")
            errors.append(f"Missing: {module_name}")

    # 3. Configuration
    print_section("3. Configuration")

    try:
        from ragdesk.config import Settings
        from ragdesk.rag.document_store import DocumentStore

        settings = Settings.from_env()
        print_success("Settings loaded successfully")
        print_info(f"  Embedding model: {settings.embedding_model} (dim {settings.embedding_dimension})")
        print_info(f"  Generation model: {settings.generation_model}")
        print_info(f"  Chunk size: {settings.chunk_size} words")
        print_info(f"  Database: {settings.db_path}")

        if settings.api_key_configured:
            print_success("GEMINI_API_KEY is set")
        else:
            print_error("GEMINI_API_KEY is not set")
            errors.append("Missing GEMINI_API_KEY")

        store = DocumentStore.from_settings(settings)
        store.initialize()
        if store.search_available:
            print_success(f"Vector index ready ({store.vector_store.vector_count} vectors)")
        else:
            print_warning(f"Vector index unavailable: {store.index_error}")
            print_info("  Run: python scripts/reindex.py")
            warnings.append("Vector index unavailable")

    except Exception as e:
        print_error(f"Failed to load configuration: {e}")
        errors.append("Config loading failed")
        return errors, warnings

    # 4. Hosted API test
    print_section("4. Embedding API Test")

    if settings.api_key_configured:
        from ragdesk.errors import RagError
        from ragdesk.llm_client import GeminiClient

        try:
            vector = await GeminiClient(settings).embed("test")
            dimension = len(vector)
            if dimension == settings.embedding_dimension:
                print_success(f"Embedding API working (dimension: {dimension})")
            else:
                print_error(
                    f"Embedding dimension {dimension} does not match "
                    f"EMBEDDING_DIMENSION={settings.embedding_dimension}"
                )
                errors.append("Embedding dimension mismatch")
        except RagError as e:
            print_error(f"Embedding API test failed: {e.message}")
            errors.append(f"API test failed: {e.message}")
    else:
        print_warning("Skipped (no API key)")

    # 5. Summary
    print_section("Summary")

    if not errors:
        print_success(f"All checks passed! ✨")
    else:
        print_error(f"Found {len(errors)} error(s):")
        for i, error in enumerate(errors, 1):
            print(f"  {i}. {error}")

    if warnings:
        print_warning(f"\nFound {len(warnings)} warning(s):")
        for i, warning in enumerate(warnings, 1):
            print(f"  {i}. {warning}")

    print()
    return errors, warnings

if __name__ == "__main__":
    errors, warnings = asyncio.run(main())
    sys.exit(1 if errors else 0)
