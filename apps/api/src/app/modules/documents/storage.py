"""
Asset Storage

Stores uploaded files on the local filesystem under
``<storage_root>/users/<userId>/<fileId><ext>`` with a ``.meta.json``
sidecar. Paths recorded on Document rows are relative to the working
directory of the API and worker processes.
"""

import asyncio
import json
import logging
import mimetypes
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class StoredAsset:
    file_id: str
    file_name: str
    file_size: int
    mime_type: str
    file_path: str
    url: str


class AssetStorage:
    def __init__(self, root: str | None = None, base_url: str | None = None):
        self.root = Path(root or settings.storage_root)
        self.base_url = (base_url or settings.assets_base_url).rstrip("/")

    @staticmethod
    def resolve(file_path: str) -> Path:
        """Absolute location of a stored file path."""
        path = Path(file_path)
        return path if path.is_absolute() else Path.cwd() / path

    async def save(
        self,
        content: bytes,
        file_name: str,
        mime_type: str,
        user_id: int,
        metadata: dict[str, Any] | None = None,
    ) -> StoredAsset:
        extension = Path(file_name).suffix or mimetypes.guess_extension(mime_type) or ""
        file_id = uuid.uuid4().hex
        relative = self.root / "users" / str(user_id) / f"{file_id}{extension}"

        sidecar = {
            "fileId": file_id,
            "originalName": file_name,
            "mimeType": mime_type,
            "size": len(content),
            "userId": user_id,
            "uploadedAt": datetime.now(UTC).isoformat(),
            "metadata": metadata or {},
        }

        def _write() -> None:
            target = self.resolve(relative.as_posix())
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
            target.with_name(target.name + ".meta.json").write_text(
                json.dumps(sidecar, ensure_ascii=False), encoding="utf-8"
            )

        await asyncio.to_thread(_write)
        logger.info(f"Stored asset {relative.as_posix()} ({len(content)} bytes) for user {user_id}")

        return StoredAsset(
            file_id=file_id,
            file_name=file_name,
            file_size=len(content),
            mime_type=mime_type,
            file_path=relative.as_posix(),
            url=f"{self.base_url}/users/{user_id}/{file_id}{extension}",
        )

    async def read(self, file_path: str) -> bytes:
        return await asyncio.to_thread(self.resolve(file_path).read_bytes)

    async def delete(self, file_path: str) -> None:
        """Remove a stored file and its sidecar, ignoring files already gone."""

        def _unlink() -> None:
            target = self.resolve(file_path)
            target.unlink(missing_ok=True)
            target.with_name(target.name + ".meta.json").unlink(missing_ok=True)

        await asyncio.to_thread(_unlink)
