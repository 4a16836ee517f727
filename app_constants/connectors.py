from fastapi import Request

from app_constants.app_configurations import Service, Storage, Tunnel
from scripts.handlers.metadata_store import MetadataStore
from scripts.handlers.share_handler import ShareRegistry
from scripts.handlers.storage_handler import StorageService
from scripts.handlers.tunnel_handler import NgrokTunnelProvider, TunnelCoordinator
from scripts.utils.common_utils import Clock, utc_now


class Connectors:
    """The service's state: one instance per process, held on ``app.state``."""

    def __init__(self, storage_path: str = None, data_dir: str = None, quota_bytes: int = None,
                 tunnel_provider=None, tunnel_authtoken: str = None, local_port: int = None,
                 clock: Clock = utc_now):
        storage_path = storage_path or Storage.PATH
        data_dir = data_dir or Storage.DATA_DIR
        self.metadata = MetadataStore(data_dir)
        self.shares = ShareRegistry(data_dir, self.metadata, clock=clock)
        self.tunnels = TunnelCoordinator(
            self.shares,
            provider=tunnel_provider if tunnel_provider is not None else NgrokTunnelProvider(),
            authtoken=tunnel_authtoken if tunnel_authtoken is not None else Tunnel.AUTHTOKEN,
            local_port=local_port or int(Service.PORT),
        )
        self.storage = StorageService(
            storage_path,
            self.metadata,
            shares=self.shares,
            tunnels=self.tunnels,
            quota_bytes=quota_bytes if quota_bytes is not None else Storage.QUOTA_BYTES,
            data_dir=data_dir,
            clock=clock,
        )

    async def startup(self) -> None:
        await self.storage.initialize()
        await self.shares.load()
        await self.tunnels.recover()
        await self.sweep()

    async def sweep(self) -> int:
        swept = await self.shares.sweep_expired()
        await self.tunnels.stop_tunnels([share.id for share in swept])
        return len(swept)

    async def shutdown(self) -> None:
        await self.tunnels.stop_all()


def get_connectors(request: Request) -> Connectors:
    return request.app.state.connectors


def get_storage(request: Request) -> StorageService:
    return request.app.state.connectors.storage


def get_shares(request: Request) -> ShareRegistry:
    return request.app.state.connectors.shares


def get_tunnels(request: Request) -> TunnelCoordinator:
    return request.app.state.connectors.tunnels
