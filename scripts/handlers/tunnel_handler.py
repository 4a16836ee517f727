import asyncio
import inspect
from dataclasses import dataclass
from typing import Dict, List, Optional

from app_constants.log_module import logger
from scripts.handlers.share_handler import ShareRegistry
from scripts.utils.exceptions import NotFoundError, TunnelUnavailableError


async def _resolve(value):
    # the ngrok SDK hands back either plain values or awaitables depending on the loop
    if inspect.isawaitable(value):
        return await value
    return value


class NgrokTunnelHandle:
    def __init__(self, listener):
        self.listener = listener

    @property
    def url(self) -> Optional[str]:
        return self.listener.url()

    async def close(self) -> None:
        await _resolve(self.listener.close())


class NgrokTunnelProvider:
    """Opens one ngrok listener forwarding to the local service."""

    async def forward(self, local_port: int, authtoken: str) -> NgrokTunnelHandle:
        import ngrok

        listener = await _resolve(ngrok.forward(f"http://localhost:{local_port}", authtoken=authtoken))
        return NgrokTunnelHandle(listener)


@dataclass
class ActiveTunnel:
    share_id: str
    handle: object
    url: str
    expiry_task: Optional[asyncio.Task] = None


class TunnelCoordinator:
    """
    Exposes single shares through an external tunnel provider.

    Provider failures never touch share state beyond the tunnel URL: a share
    whose tunnel fails to start stays valid for local access.
    """

    def __init__(self, shares: ShareRegistry, provider=None, authtoken: str = None, local_port: int = 5000):
        self.shares = shares
        self.provider = provider
        self.authtoken = authtoken
        self.local_port = local_port
        self._tunnels: Dict[str, ActiveTunnel] = {}

    @property
    def available(self) -> bool:
        return bool(self.authtoken) and self.provider is not None

    async def recover(self) -> None:
        """Tunnels die with their process; forget URLs recorded by a previous run."""
        cleared = await self.shares.clear_tunnel_urls()
        if cleared:
            logger.info(f"Cleared {cleared} stale tunnel URLs")
        if not self.available:
            logger.warning("Tunnel authtoken not set - public sharing through tunnels will not work")

    async def start_tunnel(self, share_id: str) -> str:
        if not self.available:
            raise TunnelUnavailableError("Tunnel authtoken is required for public sharing")

        share = await self.shares.require(share_id)
        if not self.shares.is_servable(share):
            raise NotFoundError("Share is no longer active")

        existing = self._tunnels.get(share_id)
        if existing is not None:
            return existing.url

        try:
            handle = await self.provider.forward(self.local_port, self.authtoken)
        except Exception as e:
            logger.error(f"Failed to start tunnel for share {share_id}: {e}")
            raise TunnelUnavailableError(f"Failed to start sharing: {e}") from e

        if not handle.url:
            await self._close(share_id, handle)
            raise TunnelUnavailableError("Tunnel provider returned no URL")

        share_url = f"{handle.url.rstrip('/')}/share/{share.share_token}"
        tunnel = ActiveTunnel(share_id=share_id, handle=handle, url=share_url)
        if share.expires_at is not None:
            delay = (share.expires_at - self.shares.clock()).total_seconds()
            tunnel.expiry_task = asyncio.create_task(self._expire_after(share_id, max(delay, 0)))
        self._tunnels[share_id] = tunnel

        try:
            await self.shares.set_tunnel_url(share_id, share_url)
        except Exception:
            await self.stop_tunnel(share_id)
            raise

        logger.info(f"Started tunnel for share {share_id}: {share_url}")
        return share_url

    async def _expire_after(self, share_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        logger.info(f"Share {share_id} expired, stopping its tunnel")
        tunnel = self._tunnels.get(share_id)
        if tunnel is not None:
            tunnel.expiry_task = None
        await self.stop_tunnel(share_id)
        await self.shares.sweep_expired()

    async def stop_tunnel(self, share_id: str) -> None:
        """Idempotent: unknown or already stopped ids are fine."""
        tunnel = self._tunnels.pop(share_id, None)
        if tunnel is not None:
            if tunnel.expiry_task is not None:
                tunnel.expiry_task.cancel()
            await self._close(share_id, tunnel.handle)
            logger.info(f"Stopped tunnel for share {share_id}")

        share = await self.shares.get(share_id)
        if share is not None and share.tunnel_url:
            await self.shares.set_tunnel_url(share_id, None)

    async def _close(self, share_id: str, handle) -> None:
        try:
            await handle.close()
        except Exception as e:
            logger.error(f"Error closing tunnel for share {share_id}: {e}")

    async def stop_tunnels(self, share_ids: List[str]) -> None:
        for share_id in share_ids:
            await self.stop_tunnel(share_id)

    async def stop_all(self) -> None:
        await self.stop_tunnels(list(self._tunnels.keys()))

    def get_tunnel_url(self, share_id: str) -> Optional[str]:
        tunnel = self._tunnels.get(share_id)
        return tunnel.url if tunnel else None

    def is_share_active(self, share_id: str) -> bool:
        return share_id in self._tunnels
