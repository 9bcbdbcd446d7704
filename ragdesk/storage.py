"""Local blob store keyed by storage-relative paths."""
import time
from pathlib import Path, PurePosixPath
import structlog

from ragdesk.errors import DownloadFailure

logger = structlog.get_logger()


def make_storage_key(file_name: str) -> str:
    """Build a unique storage key of the form ``<epoch-ms>-<name>``."""
    safe_name = Path(file_name).name.replace(" ", "_") or "upload"
    return f"{int(time.time() * 1000)}-{safe_name}"


class BlobStore:
    """Directory-backed bucket supporting upload-by-key and download-by-key."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        """Resolve a key to a path inside the bucket.

        Raises:
            ValueError: If the key is empty, absolute or escapes the bucket
        """
        relative = PurePosixPath(key or "")
        if not key or relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.root.joinpath(*relative.parts)

    async def upload(self, key: str, data: bytes) -> str:
        """Store bytes under a key and return the key."""
        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

        logger.info("blob_uploaded", key=key, size_bytes=len(data))
        return key

    async def download(self, key: str) -> bytes:
        """Read the bytes stored under a key.

        Raises:
            DownloadFailure: If the key is invalid or nothing is stored there
        """
        try:
            path = self._path_for(key)
            data = path.read_bytes()
        except (ValueError, OSError) as e:
            logger.error("blob_download_failed", key=key, error=str(e))
            raise DownloadFailure(f"Failed to download file: {key}") from e

        logger.debug("blob_downloaded", key=key, size_bytes=len(data))
        return data

    async def delete(self, key: str) -> bool:
        try:
            path = self._path_for(key)
        except ValueError:
            return False
        if not path.exists():
            return False
        path.unlink()
        logger.info("blob_deleted", key=key)
        return True
