import os
from datetime import datetime, timedelta, timezone

import pytest

from scripts.handlers.metadata_store import MetadataStore
from scripts.handlers.share_handler import ShareRegistry
from scripts.handlers.storage_handler import StorageService
from scripts.handlers.tunnel_handler import TunnelCoordinator
from scripts.models.file_management import FileCreate

QUOTA = 1000


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeTunnelHandle:
    def __init__(self, url):
        self.url = url
        self.closed = False

    async def close(self):
        self.closed = True


class FakeTunnelProvider:
    def __init__(self, fail=False):
        self.fail = fail
        self.handles = []

    async def forward(self, local_port, authtoken):
        if self.fail:
            raise RuntimeError("tunnel session refused")
        handle = FakeTunnelHandle(f"https://tunnel-{len(self.handles)}.example.test")
        self.handles.append(handle)
        return handle


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def root(tmp_path):
    return str(tmp_path / "uploads")


@pytest.fixture
def data_dir(tmp_path):
    return str(tmp_path / "data")


@pytest.fixture
def metadata(data_dir):
    return MetadataStore(data_dir)


@pytest.fixture
def shares(data_dir, metadata, clock):
    return ShareRegistry(data_dir, metadata, clock=clock)


@pytest.fixture
def provider():
    return FakeTunnelProvider()


@pytest.fixture
def failing_provider():
    return FakeTunnelProvider(fail=True)


@pytest.fixture
async def tunnels(shares, provider):
    coordinator = TunnelCoordinator(shares, provider=provider, authtoken="test-token", local_port=5000)
    yield coordinator
    await coordinator.stop_all()


@pytest.fixture
def storage(root, metadata, shares, tunnels, data_dir, clock):
    return StorageService(root, metadata, shares=shares, tunnels=tunnels, quota_bytes=QUOTA,
                          data_dir=data_dir, clock=clock)


@pytest.fixture
def put_file(storage, root):
    """Write bytes under the root the way the upload handler does, then register them."""

    async def _put(name, size=10, parent_path="/", content=None):
        await storage.initialize()
        segments = [part for part in parent_path.split("/") if part]
        directory = os.path.join(root, *segments)
        os.makedirs(directory, exist_ok=True)
        with open(os.path.join(directory, name), "wb") as f:
            f.write(content if content is not None else b"x" * size)
        return await storage.create_file(FileCreate(
            name=name,
            mime_type="text/plain",
            size=size,
            path="/".join(segments + [name]),
            parent_path=parent_path,
        ))

    return _put
