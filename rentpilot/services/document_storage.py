"""Storage backends for uploaded documents."""

import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class DocumentStorage(Protocol):
    """Where uploaded files go. Returns the URL the app serves the file from."""

    def save(self, filename: str, content: bytes) -> str: ...

    def delete(self, file_url: str) -> None: ...


class LocalDocumentStorage:
    """Writes files under a local directory, served from /uploads."""

    def __init__(self, root: str, url_prefix: str = "/uploads"):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    def save(self, filename: str, content: bytes) -> str:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / Path(filename).name
        path.write_bytes(content)
        logger.debug("storage.saved: path=%s bytes=%d", path, len(content))
        return f"{self.url_prefix}/{path.name}"

    def delete(self, file_url: str) -> None:
        """Remove a file previously returned by save(); missing files are ignored."""
        path = self.root / Path(file_url).name
        path.unlink(missing_ok=True)
        logger.debug("storage.deleted: path=%s", path)


__all__ = ["DocumentStorage", "LocalDocumentStorage"]
