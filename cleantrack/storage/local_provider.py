"""
Local filesystem storage provider.
Photos and generated report PDFs are kept under a directory and served from
``/files/<key>``.
"""
from typing import Optional, BinaryIO
from pathlib import Path
from urllib.parse import quote

import structlog

from ..config import settings
from .provider import StorageProvider


logger = structlog.get_logger(__name__)


class LocalStorageProvider(StorageProvider):
    """Local filesystem storage provider."""

    def __init__(self, base_dir: Optional[str] = None, public_base_url: Optional[str] = None):
        self.base_dir = Path(base_dir or settings.storage_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")

    def _get_path(self, key: str) -> Path:
        """Get the local filesystem path for a given key."""
        clean_key = key.replace("\\", "/").replace("..", "").lstrip("/")
        return self.base_dir / clean_key

    def upload(self, key: str, data: bytes | BinaryIO, content_type: str) -> None:
        path = self._get_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            if hasattr(data, "read"):
                f.write(data.read())
            else:
                f.write(data)
        logger.info("file_stored", key=key, content_type=content_type)

    def get_public_url(self, key: str) -> Optional[str]:
        if not key:
            return None
        if key.startswith(("http://", "https://")):
            return key
        return f"{self.public_base_url}/files/{quote(key.lstrip('/'))}"

    def exists(self, key: str) -> bool:
        return self._get_path(key).exists()

    def delete(self, key: str) -> None:
        path = self._get_path(key)
        try:
            if path.exists():
                path.unlink()
        except OSError as exc:
            logger.warning("file_delete_failed", key=key, error=str(exc))
