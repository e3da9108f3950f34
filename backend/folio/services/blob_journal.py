"""Compensating actions for multi-step object-store edits.

Template edits move and upload several blobs before the metadata write.
``BlobJournal`` records each completed step and, if the block fails,
undoes them newest-first so the blobs match the rolled-back rows again::

    async with BlobJournal(store, bucket) as journal:
        await journal.move(old_path, new_path)
        await journal.upload(staging_path, data)
        await db.flush()
"""

import logging

from folio.errors import FolioError

logger = logging.getLogger(__name__)


class BlobJournal:
    def __init__(self, store, bucket: str) -> None:
        self._store = store
        self._bucket = bucket
        self._steps: list[tuple[str, str, str | None]] = []

    async def __aenter__(self) -> "BlobJournal":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            await self.rollback()
        return False

    async def move(self, from_path: str, to_path: str) -> None:
        if from_path == to_path:
            return
        await self._store.move(self._bucket, from_path, to_path)
        self._steps.append(("move", from_path, to_path))

    async def upload(self, path: str, data: bytes) -> None:
        await self._store.upload(self._bucket, path, data, upsert=False)
        self._steps.append(("upload", path, None))

    async def rollback(self) -> None:
        """Best-effort undo; failures are logged and the next step still runs."""
        while self._steps:
            action, path, target = self._steps.pop()
            try:
                if action == "move":
                    await self._store.move(self._bucket, target, path)
                else:
                    await self._store.remove(self._bucket, [path])
            except FolioError as e:
                logger.error(
                    "Compensation failed (%s %s -> %s): %s", action, path, target, e
                )
        logger.warning("Rolled back object store changes in %s", self._bucket)
