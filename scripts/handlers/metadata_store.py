import asyncio
import os
from typing import Dict, List, Optional

from pydantic import ValidationError

from app_constants.constants import SnapshotFiles
from app_constants.log_module import logger
from scripts.models.file_management import FileEntry
from scripts.utils.common_utils import read_json_snapshot, write_json_snapshot
from scripts.utils.exceptions import CloudDriveError, InvalidPathError, NotFoundError, StorageIOError
from scripts.utils.path_utils import sanitize_parent_path, sanitize_segment, split_segments


def validate_entry(entry: FileEntry) -> None:
    """Raise InvalidPathError when a loaded entry breaks the namespace rules."""
    sanitize_segment(entry.name)
    sanitize_parent_path(entry.parent_path)
    if not split_segments(entry.path):
        raise InvalidPathError(f"Entry {entry.id} has an empty path")
    if entry.is_folder and entry.size != 0:
        raise InvalidPathError(f"Folder {entry.id} has a non-zero size")


class MetadataStore:
    """
    In-memory index of file and folder entries backed by a JSON snapshot.

    Every mutation rewrites the whole snapshot before returning. A failed write
    surfaces as StorageIOError and leaves the in-memory change in place.
    """

    def __init__(self, data_dir: str, file_name: str = SnapshotFiles.files):
        self.snapshot_path = os.path.join(data_dir, file_name)
        self._entries: Dict[str, FileEntry] = {}
        self._loaded = False
        self._lock = asyncio.Lock()

    async def load(self) -> None:
        if self._loaded:
            return
        async with self._lock:
            if self._loaded:
                return
            raw_entries = await read_json_snapshot(self.snapshot_path)
            if raw_entries is None:
                self._entries = {}
                await self._save()
            else:
                valid = {}
                for raw in raw_entries:
                    try:
                        entry = FileEntry.model_validate(raw)
                        validate_entry(entry)
                    except (ValidationError, CloudDriveError) as e:
                        label = raw.get("id") if isinstance(raw, dict) else raw
                        logger.warning(f"Removing invalid entry from metadata: {label} ({e})")
                        continue
                    if entry.id in valid:
                        logger.warning(f"Removing duplicate entry id from metadata: {entry.id}")
                        continue
                    valid[entry.id] = entry
                self._entries = valid
                if len(valid) != len(raw_entries):
                    logger.info(f"Cleaned {len(raw_entries) - len(valid)} invalid entries from metadata")
                    await self._save()
            self._loaded = True
            logger.info(f"Metadata loaded: {len(self._entries)} entries from {self.snapshot_path}")

    async def _save(self) -> None:
        payload = [entry.model_dump(mode="json", by_alias=True) for entry in self._entries.values()]
        try:
            await write_json_snapshot(self.snapshot_path, payload)
        except OSError as e:
            raise StorageIOError(f"Failed to save metadata: {e}") from e

    async def list(self) -> List[FileEntry]:
        """Folders first, then most recently modified first."""
        await self.load()
        by_recency = sorted(self._entries.values(), key=lambda e: e.modified_at, reverse=True)
        return sorted(by_recency, key=lambda e: 0 if e.is_folder else 1)

    async def get(self, entry_id: str) -> Optional[FileEntry]:
        await self.load()
        return self._entries.get(entry_id)

    async def require(self, entry_id: str) -> FileEntry:
        entry = await self.get(entry_id)
        if entry is None:
            raise NotFoundError("File not found")
        return entry

    async def insert(self, entry: FileEntry) -> FileEntry:
        await self.load()
        async with self._lock:
            self._entries[entry.id] = entry
            await self._save()
        return entry

    async def update(self, entry_id: str, **patch) -> FileEntry:
        await self.load()
        async with self._lock:
            current = self._entries.get(entry_id)
            if current is None:
                raise NotFoundError("File not found")
            updated = current.model_copy(update=patch)
            self._entries[entry_id] = updated
            await self._save()
        return updated

    async def update_many(self, entries: List[FileEntry]) -> None:
        """Replace several existing entries in one save."""
        await self.load()
        async with self._lock:
            for entry in entries:
                self._entries[entry.id] = entry
            await self._save()

    async def remove(self, entry_id: str) -> FileEntry:
        removed = await self.remove_many([entry_id])
        return removed[0]

    async def remove_many(self, entry_ids: List[str]) -> List[FileEntry]:
        await self.load()
        async with self._lock:
            missing = [entry_id for entry_id in entry_ids if entry_id not in self._entries]
            if missing:
                raise NotFoundError("File not found")
            removed = [self._entries.pop(entry_id) for entry_id in entry_ids]
            await self._save()
        return removed
