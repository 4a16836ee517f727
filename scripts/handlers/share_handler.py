import asyncio
import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from pydantic import ValidationError

from app_constants.app_configurations import Constants
from app_constants.constants import ShareDurations, ShareLimits, SnapshotFiles
from app_constants.log_module import logger
from scripts.handlers.metadata_store import MetadataStore
from scripts.models.share_management import ShareLink, ShareOptions
from scripts.utils.common_utils import Clock, new_id, read_json_snapshot, utc_now, write_json_snapshot
from scripts.utils.exceptions import (AlreadySharedError, InvalidShareOptionsError, InvalidTargetError,
                                      NotFoundError, StorageIOError)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ShareRegistry:
    """
    Share links for single files, persisted as a JSON snapshot.

    A share is servable while it is active, not expired and under its download
    cap. Deactivation is terminal; records are kept for audit.
    """

    def __init__(self, data_dir: str, metadata: MetadataStore, clock: Clock = utc_now,
                 file_name: str = SnapshotFiles.shares):
        self.snapshot_path = os.path.join(data_dir, file_name)
        self.metadata = metadata
        self.clock = clock
        self._shares: Dict[str, ShareLink] = {}
        self._loaded = False
        self._lock = asyncio.Lock()

    async def load(self) -> None:
        if self._loaded:
            return
        async with self._lock:
            if self._loaded:
                return
            raw_shares = await read_json_snapshot(self.snapshot_path)
            if raw_shares is None:
                self._shares = {}
                await self._save()
            else:
                valid = {}
                tokens = set()
                for raw in raw_shares:
                    try:
                        share = ShareLink.model_validate(raw)
                    except ValidationError as e:
                        label = raw.get("id") if isinstance(raw, dict) else raw
                        logger.warning(f"Removing invalid share from snapshot: {label} ({e.error_count()} errors)")
                        continue
                    if share.id in valid or share.share_token in tokens or not share.share_token:
                        logger.warning(f"Removing share with duplicate id or token: {share.id}")
                        continue
                    valid[share.id] = share
                    tokens.add(share.share_token)
                self._shares = valid
                if len(valid) != len(raw_shares):
                    logger.info(f"Cleaned {len(raw_shares) - len(valid)} invalid entries from shares")
                    await self._save()
            self._loaded = True
            logger.info(f"Share registry loaded: {len(self._shares)} shares")

    async def _save(self) -> None:
        payload = [share.model_dump(mode="json", by_alias=True) for share in self._shares.values()]
        try:
            await write_json_snapshot(self.snapshot_path, payload)
        except OSError as e:
            raise StorageIOError(f"Failed to save shares: {e}") from e

    def is_servable(self, share: ShareLink) -> bool:
        if not share.is_active:
            return False
        if self.is_expired(share):
            return False
        if share.max_downloads is not None and share.download_count >= share.max_downloads:
            return False
        return True

    def is_expired(self, share: ShareLink) -> bool:
        return share.expires_at is not None and self.clock() >= _as_utc(share.expires_at)

    def _compute_expiry(self, options: ShareOptions) -> Optional[datetime]:
        if options.expires_at is not None:
            expires_at = _as_utc(options.expires_at)
            if expires_at <= self.clock():
                raise InvalidShareOptionsError("Expiry must be in the future")
            return expires_at
        if options.duration is None or options.duration == ShareDurations.never:
            return None
        return self.clock() + timedelta(seconds=ShareDurations.seconds[options.duration])

    def _new_token(self) -> str:
        taken = {share.share_token for share in self._shares.values()}
        while True:
            token = secrets.token_urlsafe(ShareLimits.token_bytes)
            if token not in taken:
                return token

    async def create_share(self, file_id: str, options: ShareOptions = None) -> ShareLink:
        """
        Share a file. Raises NotFoundError for unknown ids, InvalidTargetError
        for folders and AlreadySharedError while the file has a servable share.
        """
        options = options or ShareOptions()
        await self.load()
        entry = await self.metadata.require(file_id)
        if entry.is_folder:
            raise InvalidTargetError("Folders cannot be shared")

        expires_at = self._compute_expiry(options)
        password_hash = None
        if options.password:
            password_hash = await asyncio.to_thread(Constants.pwd_context.hash, options.password)

        async with self._lock:
            existing = self._active_for_file(file_id)
            if existing is not None:
                if self.is_servable(existing):
                    raise AlreadySharedError()
                logger.info(f"Deactivating lapsed share {existing.id} before resharing file {file_id}")
                self._shares[existing.id] = existing.model_copy(update={"is_active": False, "tunnel_url": None})

            share = ShareLink(
                id=new_id(),
                file_id=file_id,
                share_token=self._new_token(),
                password_hash=password_hash,
                expires_at=expires_at,
                max_downloads=options.max_downloads,
                download_count=0,
                tunnel_url=None,
                is_active=True,
                created_at=self.clock(),
            )
            self._shares[share.id] = share
            await self._save()

        logger.info(f"Created share {share.id} for file {file_id} (expires: {expires_at or 'never'})")
        return share

    def _active_for_file(self, file_id: str) -> Optional[ShareLink]:
        for share in self._shares.values():
            if share.file_id == file_id and share.is_active:
                return share
        return None

    async def list_shares(self) -> List[ShareLink]:
        await self.load()
        return sorted(self._shares.values(), key=lambda s: s.created_at, reverse=True)

    async def get(self, share_id: str) -> Optional[ShareLink]:
        await self.load()
        return self._shares.get(share_id)

    async def require(self, share_id: str) -> ShareLink:
        share = await self.get(share_id)
        if share is None:
            raise NotFoundError("Share not found")
        return share

    async def get_active_for_file(self, file_id: str) -> Optional[ShareLink]:
        await self.load()
        share = self._active_for_file(file_id)
        if share is not None and self.is_servable(share):
            return share
        return None

    async def find_by_token(self, token: str) -> Optional[ShareLink]:
        """Raw lookup, whatever the share's state."""
        await self.load()
        if not token:
            return None
        for share in self._shares.values():
            if secrets.compare_digest(share.share_token.encode(), token.encode()):
                return share
        return None

    async def get_by_token(self, token: str) -> Optional[ShareLink]:
        """The share behind token if it can be served, otherwise None."""
        share = await self.find_by_token(token)
        if share is None or not self.is_servable(share):
            return None
        return share

    @staticmethod
    async def check_password(share: ShareLink, candidate: Optional[str]) -> bool:
        if not share.password_hash:
            return True
        if not candidate:
            return False
        return await asyncio.to_thread(Constants.pwd_context.verify, candidate, share.password_hash)

    async def increment_download_count(self, share_id: str) -> ShareLink:
        await self.load()
        async with self._lock:
            share = self._shares.get(share_id)
            if share is None or not self.is_servable(share):
                raise NotFoundError("Share not found")
            count = share.download_count + 1
            patch = {"download_count": count}
            if share.max_downloads is not None and count >= share.max_downloads:
                patch["is_active"] = False
                logger.info(f"Share {share_id} reached its download limit ({share.max_downloads})")
            share = share.model_copy(update=patch)
            self._shares[share_id] = share
            await self._save()
        return share

    async def deactivate(self, share_id: str) -> ShareLink:
        await self.load()
        async with self._lock:
            share = self._shares.get(share_id)
            if share is None:
                raise NotFoundError("Share not found")
            if share.is_active or share.tunnel_url:
                share = share.model_copy(update={"is_active": False, "tunnel_url": None})
                self._shares[share_id] = share
                await self._save()
                logger.info(f"Deactivated share {share_id}")
        return share

    async def deactivate_for_file(self, file_id: str) -> List[ShareLink]:
        return await self._deactivate_where(lambda share: share.file_id == file_id)

    async def sweep_expired(self) -> List[ShareLink]:
        """Deactivate every active share whose expiry has passed."""
        swept = await self._deactivate_where(self.is_expired)
        if swept:
            logger.info(f"Expiry sweep deactivated {len(swept)} shares")
        return swept

    async def _deactivate_where(self, predicate) -> List[ShareLink]:
        await self.load()
        async with self._lock:
            matched = [share for share in self._shares.values() if share.is_active and predicate(share)]
            deactivated = []
            for share in matched:
                updated = share.model_copy(update={"is_active": False, "tunnel_url": None})
                self._shares[share.id] = updated
                deactivated.append(updated)
            if deactivated:
                await self._save()
        return deactivated

    async def set_tunnel_url(self, share_id: str, tunnel_url: Optional[str]) -> ShareLink:
        await self.load()
        async with self._lock:
            share = self._shares.get(share_id)
            if share is None:
                raise NotFoundError("Share not found")
            if tunnel_url is not None and not share.is_active:
                raise NotFoundError("Share is no longer active")
            if share.tunnel_url != tunnel_url:
                share = share.model_copy(update={"tunnel_url": tunnel_url})
                self._shares[share_id] = share
                await self._save()
        return share

    async def clear_tunnel_urls(self) -> int:
        """Drop tunnel URLs left over from a previous process."""
        await self.load()
        async with self._lock:
            stale = [share for share in self._shares.values() if share.tunnel_url]
            for share in stale:
                self._shares[share.id] = share.model_copy(update={"tunnel_url": None})
            if stale:
                await self._save()
        return len(stale)
