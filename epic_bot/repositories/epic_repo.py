"""
Epic store: one JSON document per epic, named by epic id.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Optional

from epic_bot.core.exceptions import EpicNotFoundError
from epic_bot.core.logging import get_logger
from epic_bot.domain.epic import Epic
from epic_bot.repositories.base import BaseRepository

logger = get_logger(__name__)


class FileEpicRepository(BaseRepository[Epic]):
    """
    File-backed epic repository.

    Documents are written to a temporary file and renamed into place so a
    crash mid-write never leaves a truncated document behind.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self._claimed: set[str] = set()
        self._claim_lock = threading.Lock()

    def _path(self, id: str) -> Path:
        if not id or "/" in id or "\\" in id or id.startswith("."):
            raise EpicNotFoundError(id)
        return self.directory / f"{id}.json"

    def _read(self, path: Path) -> Optional[Epic]:
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return Epic.from_document(data)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("Failed to load epic document", path=str(path), error=str(e))
            return None

    def _write(self, epic: Epic) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(epic.id)
        payload = json.dumps(epic.to_document(), indent=2, ensure_ascii=False)

        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{epic.id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _claim(self, base: str) -> str:
        with self._claim_lock:
            candidate, n = base, 1
            while candidate in self._claimed or self._path(candidate).exists():
                n += 1
                candidate = f"{base}-{n}"
            self._claimed.add(candidate)
            return candidate

    async def allocate_id(self, base: str) -> str:
        """
        Reserve an unused epic id derived from base.

        Ids already on disk or handed out earlier get a numeric suffix
        (base-2, base-3, ...), so two epics saved in the same second never
        share a document.
        """
        return await asyncio.to_thread(self._claim, base)

    async def get(self, id: str) -> Optional[Epic]:
        """Get an epic by ID."""
        try:
            path = self._path(id)
        except EpicNotFoundError:
            return None
        return await asyncio.to_thread(self._read, path)

    async def save(self, entity: Epic) -> Epic:
        """Persist an epic document."""
        await asyncio.to_thread(self._write, entity)
        logger.debug("Epic saved", epic_id=entity.id, stories=len(entity.stories))
        return entity

    async def delete(self, id: str) -> bool:
        """Delete an epic document by ID."""
        path = self._path(id)
        if path.exists():
            await asyncio.to_thread(path.unlink)
            logger.info("Epic document deleted", epic_id=id)
            return True
        return False

    async def list(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Epic]:
        """List epic documents, newest first."""
        if not self.directory.exists():
            return []

        paths = sorted(self.directory.glob("*.json"), reverse=True)
        epics = [epic for epic in [self._read(p) for p in paths] if epic is not None]

        if filters and "created_by" in filters:
            epics = [e for e in epics if e.created_by == filters["created_by"]]

        return epics[offset : offset + limit]

    async def exists(self, id: str) -> bool:
        """Check if an epic document exists."""
        try:
            return self._path(id).exists()
        except EpicNotFoundError:
            return False
