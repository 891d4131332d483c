"""
On-disk storage for uploaded household documents.

The database keeps the metadata; this module only owns the bytes. Stored
files get generated names, so nothing a client sends ends up in a path.
"""

from __future__ import annotations

import asyncio
import secrets
import time
from pathlib import Path

from fastapi import Depends
from loguru import logger

from homeledger.core.config import Settings, get_settings
from homeledger.core.errors import InvalidArgumentError

DEFAULT_DOCUMENT_CATEGORIES = (
    "ID Documents",
    "Licenses",
    "Insurance",
    "Medical",
    "Financial",
    "General",
)

ALLOWED_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    }
)


class DocumentStore:
    def __init__(self, root: str | Path, max_bytes: int = 10 * 1024 * 1024) -> None:
        self.root = Path(root)
        self.max_bytes = max_bytes

    def validate(self, content: bytes, mime_type: str | None) -> None:
        if mime_type not in ALLOWED_MIME_TYPES:
            raise InvalidArgumentError("Invalid file type")
        if len(content) > self.max_bytes:
            raise InvalidArgumentError("File too large", status_code=413)

    async def save(self, content: bytes, original_name: str) -> str:
        """Write ``content`` under a generated name and return that name."""
        suffix = Path(original_name).suffix.lower()[:10]
        stored_name = f"doc-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{suffix}"
        await asyncio.to_thread(self._write, self.root / stored_name, content)
        logger.info("Stored document", file=stored_name, size=len(content))
        return stored_name

    def path_for(self, stored_name: str) -> Path | None:
        path = self.root / Path(stored_name).name
        return path if path.is_file() else None

    async def delete(self, stored_name: str) -> None:
        path = self.path_for(stored_name)
        if path is None:
            logger.warning("Document file already missing", file=stored_name)
            return
        await asyncio.to_thread(path.unlink)

    @staticmethod
    def _write(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)


def get_document_store(settings: Settings = Depends(get_settings)) -> DocumentStore:
    return DocumentStore(settings.docs_dir, max_bytes=settings.max_document_bytes)
