import asyncio
import os
import shutil
from typing import List

import aiofiles.os

from app_constants.app_configurations import GIB
from app_constants.constants import ItemType, SnapshotFiles
from app_constants.log_module import logger
from scripts.handlers.metadata_store import MetadataStore
from scripts.handlers.share_handler import ShareRegistry
from scripts.models.file_management import FileCreate, FileEntry, FolderCreate, StorageInfo
from scripts.utils.common_utils import Clock, new_id, utc_now, write_json_snapshot
from scripts.utils.exceptions import (InvalidTargetError, NameConflictError, QuotaExceededError,
                                      StorageIOError)
from scripts.utils.path_utils import (join_virtual, parent_segments, resolve_within_root, sanitize_parent_path,
                                      sanitize_segment, split_segments)

DEFAULT_QUOTA_BYTES = 10 * GIB


class StorageService:
    """
    Facade over the metadata index and the storage root on disk.

    Callers hand in virtual names and paths; every physical path is derived
    through resolve_within_root before the disk is touched.
    """

    def __init__(self, root: str, metadata: MetadataStore, shares: ShareRegistry = None, tunnels=None,
                 quota_bytes: int = DEFAULT_QUOTA_BYTES, data_dir: str = None, clock: Clock = utc_now):
        self.root = os.path.abspath(root)
        self.metadata = metadata
        self.shares = shares
        self.tunnels = tunnels
        self.quota_bytes = quota_bytes
        self.data_dir = os.path.abspath(data_dir) if data_dir else os.path.dirname(self.root)
        self.clock = clock
        self._initialized = False
        self._quota_lock = asyncio.Lock()

    async def initialize(self) -> None:
        if self._initialized:
            return
        try:
            await aiofiles.os.makedirs(self.root, exist_ok=True)
            descriptor = os.path.join(self.data_dir, SnapshotFiles.descriptor)
            if not os.path.exists(descriptor):
                await write_json_snapshot(descriptor, {
                    "version": SnapshotFiles.descriptor_version,
                    "createdAt": self.clock().isoformat(),
                    "storagePath": self.root,
                })
        except OSError as e:
            logger.error(f"Failed to initialize storage at {self.root}: {e}")
            raise StorageIOError(f"Failed to initialize storage: {e}") from e
        await self.metadata.load()
        self._initialized = True
        logger.info(f"Storage initialized at: {self.root}")

    def _physical(self, relative_path: str) -> str:
        return resolve_within_root(self.root, *split_segments(relative_path))

    def _used_bytes(self, entries: List[FileEntry]) -> int:
        return sum(entry.size for entry in entries if entry.type == ItemType.file)

    async def list_files(self) -> List[FileEntry]:
        await self.initialize()
        return await self.metadata.list()

    async def list_children(self, parent_path: str) -> List[FileEntry]:
        normalized = sanitize_parent_path(parent_path)
        return [entry for entry in await self.list_files() if entry.parent_path == normalized]

    async def get_file(self, file_id: str) -> FileEntry:
        await self.initialize()
        return await self.metadata.require(file_id)

    async def get_physical_path(self, file_id: str) -> str:
        """On-disk location of a file entry, for streaming it to a client."""
        entry = await self.get_file(file_id)
        if entry.is_folder:
            raise InvalidTargetError("Folders cannot be downloaded")
        return self._physical(entry.path)

    async def create_file(self, request: FileCreate) -> FileEntry:
        """Register bytes the upload handler already placed under the root."""
        await self.initialize()
        async with self._quota_lock:
            used = self._used_bytes(await self.metadata.list())
            if used + request.size > self.quota_bytes:
                raise QuotaExceededError(
                    f"Storage quota exceeded: {used + request.size} of {self.quota_bytes} bytes")

            name = sanitize_segment(request.name)
            parent_path = sanitize_parent_path(request.parent_path)
            segments = split_segments(request.path)
            resolve_within_root(self.root, *segments)

            now = self.clock()
            entry = FileEntry(
                id=new_id(),
                name=name,
                type=ItemType.file,
                mime_type=request.mime_type,
                size=request.size,
                path="/".join(segments),
                parent_path=parent_path,
                created_at=now,
                modified_at=now,
            )
            await self.metadata.insert(entry)
        logger.info(f"Registered file {entry.id}: {join_virtual(parent_path, name)} ({entry.size} bytes)")
        return entry

    async def create_folder(self, request: FolderCreate) -> FileEntry:
        """Create the directory (mkdir -p) and register it; existing folders are returned as is."""
        await self.initialize()
        name = sanitize_segment(request.name)
        parent_path = sanitize_parent_path(request.parent_path)
        segments = parent_segments(parent_path) + [name]
        folder_path = resolve_within_root(self.root, *segments)
        relative_path = "/".join(segments)

        for entry in await self.metadata.list():
            if entry.path == relative_path:
                if entry.is_folder:
                    await self._makedirs(folder_path)
                    return entry
                raise NameConflictError(f"A file named {name} already exists in {parent_path}")

        await self._makedirs(folder_path)
        now = self.clock()
        folder = FileEntry(
            id=new_id(),
            name=name,
            type=ItemType.folder,
            size=0,
            path=relative_path,
            parent_path=parent_path,
            created_at=now,
            modified_at=now,
        )
        await self.metadata.insert(folder)
        logger.info(f"Created folder {folder.id}: {join_virtual(parent_path, name)}")
        return folder

    async def _makedirs(self, folder_path: str) -> None:
        try:
            await aiofiles.os.makedirs(folder_path, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f"Failed to create folder: {e}") from e

    async def rename_file(self, file_id: str, new_name: str) -> FileEntry:
        """
        Rename on disk, then in metadata. A crash between the two leaves them
        diverged; there is no rollback.
        """
        await self.initialize()
        entry = await self.metadata.require(file_id)
        name = sanitize_segment(new_name)

        old_segments = split_segments(entry.path)
        new_segments = old_segments[:-1] + [name]
        old_path = resolve_within_root(self.root, *old_segments)
        new_path = resolve_within_root(self.root, *new_segments)
        new_relative = "/".join(new_segments)

        if new_path != old_path:
            entries = await self.metadata.list()
            if any(other.path == new_relative for other in entries if other.id != entry.id) \
                    or os.path.exists(new_path):
                raise NameConflictError(f"An item named {name} already exists")
            try:
                await aiofiles.os.rename(old_path, new_path)
            except OSError as e:
                raise StorageIOError(f"Failed to rename {entry.name}: {e}") from e

        renamed = entry.model_copy(update={"name": name, "path": new_relative, "modified_at": self.clock()})
        changed = [renamed]
        if entry.is_folder and new_relative != entry.path:
            changed.extend(self._moved_descendants(
                await self.metadata.list(), entry, new_relative, join_virtual(entry.parent_path, name)))
        await self.metadata.update_many(changed)
        logger.info(f"Renamed {entry.type} {file_id}: {entry.name} -> {name}")
        return renamed

    @staticmethod
    def _is_descendant(candidate: FileEntry, folder: FileEntry) -> bool:
        folder_virtual = join_virtual(folder.parent_path, folder.name)
        return candidate.id != folder.id and (
            candidate.path.startswith(folder.path + "/")
            or candidate.parent_path == folder_virtual
            or candidate.parent_path.startswith(folder_virtual + "/"))

    def _moved_descendants(self, entries: List[FileEntry], folder: FileEntry, new_relative: str,
                           new_virtual: str) -> List[FileEntry]:
        old_virtual = join_virtual(folder.parent_path, folder.name)
        moved = []
        for candidate in entries:
            if not self._is_descendant(candidate, folder):
                continue
            patch = {}
            if candidate.path.startswith(folder.path + "/"):
                patch["path"] = new_relative + candidate.path[len(folder.path):]
            if candidate.parent_path == old_virtual or candidate.parent_path.startswith(old_virtual + "/"):
                patch["parent_path"] = new_virtual + candidate.parent_path[len(old_virtual):]
            moved.append(candidate.model_copy(update=patch))
        return moved

    async def delete_file(self, file_id: str) -> None:
        """Remove an entry (a folder with its subtree) and deactivate its shares."""
        await self.initialize()
        entry = await self.metadata.require(file_id)
        physical = self._physical(entry.path)

        try:
            if await aiofiles.os.path.isdir(physical):
                await asyncio.to_thread(shutil.rmtree, physical)
            else:
                await aiofiles.os.remove(physical)
        except FileNotFoundError:
            logger.warning(f"{entry.type} {file_id} was already missing on disk: {entry.path}")
        except OSError as e:
            raise StorageIOError(f"Failed to delete {entry.name}: {e}") from e

        doomed = [file_id]
        if entry.is_folder:
            doomed.extend(other.id for other in await self.metadata.list() if self._is_descendant(other, entry))
        removed = await self.metadata.remove_many(doomed)
        logger.info(f"Deleted {entry.type} {file_id} ({len(removed)} metadata entries)")

        await self._revoke_shares([item.id for item in removed if item.type == ItemType.file])

    async def _revoke_shares(self, file_ids: List[str]) -> None:
        if self.shares is None:
            return
        for removed_id in file_ids:
            for share in await self.shares.deactivate_for_file(removed_id):
                logger.info(f"Deactivated share {share.id} of deleted file {removed_id}")
                if self.tunnels is not None:
                    await self.tunnels.stop_tunnel(share.id)

    async def get_storage_info(self) -> StorageInfo:
        entries = await self.list_files()
        return StorageInfo(
            used_bytes=self._used_bytes(entries),
            total_bytes=self.quota_bytes,
            file_count=sum(1 for entry in entries if entry.type == ItemType.file),
            folder_count=sum(1 for entry in entries if entry.is_folder),
            storage_path=self.root,
        )

    async def remaining_bytes(self) -> int:
        info = await self.get_storage_info()
        return max(self.quota_bytes - info.used_bytes, 0)

    def storage_path(self, *segments: str) -> str:
        """Physical directory for a virtual parent path's segments (root when empty)."""
        if not segments:
            return self.root
        return resolve_within_root(self.root, *segments)
