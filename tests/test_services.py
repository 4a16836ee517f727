import asyncio
import contextlib
import os

import pytest
from fastapi.testclient import TestClient

from app_constants.connectors import Connectors
from main import _sweep_periodically, create_app


@pytest.fixture
def connectors(root, data_dir, provider, clock):
    return Connectors(storage_path=root, data_dir=data_dir, quota_bytes=100, tunnel_provider=provider,
                      tunnel_authtoken="test-token", local_port=5000, clock=clock)


@pytest.fixture
def client(connectors):
    app = create_app(connectors, sweep_interval=0)
    with TestClient(app) as test_client:
        yield test_client


def upload(client, name, content=b"hello", parent_path="/"):
    response = client.post(
        "/api/v1/files/upload",
        files=[("files", (name, content, "text/plain"))],
        data={"parent_path": parent_path},
    )
    return response


def uploaded(client, name, content=b"hello", parent_path="/"):
    response = upload(client, name, content, parent_path)
    assert response.status_code == 200, response.text
    return response.json()["files"][0]


def test_upload_list_and_download(client, root):
    entry = uploaded(client, "notes.txt", b"some notes")
    assert entry["name"] == "notes.txt"
    assert entry["size"] == 10
    assert entry["parentPath"] == "/"
    assert os.path.isfile(os.path.join(root, "notes.txt"))

    listing = client.get("/api/v1/files").json()
    assert [item["id"] for item in listing] == [entry["id"]]

    response = client.get(f"/api/v1/files/{entry['id']}/download")
    assert response.status_code == 200
    assert response.content == b"some notes"


def test_upload_same_name_gets_suffix(client):
    first = uploaded(client, "a.txt")
    second = uploaded(client, "a.txt")
    assert first["name"] == "a.txt"
    assert second["name"] == "a_1.txt"


def test_upload_into_folder_and_list_children(client, root):
    folder = client.post("/api/v1/folders", json={"name": "Docs", "parentPath": "/"})
    assert folder.status_code == 200
    assert folder.json()["type"] == "folder"

    entry = uploaded(client, "inside.txt", parent_path="/Docs")
    assert entry["path"] == "Docs/inside.txt"
    assert os.path.isfile(os.path.join(root, "Docs", "inside.txt"))

    children = client.get("/api/v1/files", params={"parent_path": "/Docs"}).json()
    assert [item["name"] for item in children] == ["inside.txt"]


def test_upload_over_quota_is_rejected(client, root):
    response = upload(client, "big.bin", b"x" * 101)
    assert response.status_code == 400
    assert response.json()["status"] == "failed"
    assert not os.path.exists(os.path.join(root, "big.bin"))
    assert client.get("/api/v1/storage").json()["usedBytes"] == 0


def test_rename_and_delete(client, root):
    entry = uploaded(client, "draft.txt")
    renamed = client.put(f"/api/v1/files/{entry['id']}/rename", json={"newName": "final.txt"})
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "final.txt"
    assert os.path.isfile(os.path.join(root, "final.txt"))

    deleted = client.delete(f"/api/v1/files/{entry['id']}")
    assert deleted.status_code == 200
    assert deleted.json()["status"] == "success"
    assert client.get(f"/api/v1/files/{entry['id']}").status_code == 404


def test_error_mapping(client):
    entry = uploaded(client, "file.txt")
    assert client.get("/api/v1/files/missing").status_code == 404
    assert client.put(f"/api/v1/files/{entry['id']}/rename", json={"newName": "../escape"}).status_code == 403
    assert client.post("/api/v1/folders", json={"name": "..", "parentPath": "/"}).status_code == 403
    uploaded(client, "other.txt")
    conflict = client.put(f"/api/v1/files/{entry['id']}/rename", json={"newName": "other.txt"})
    assert conflict.status_code == 409
    assert set(conflict.json()) == {"status", "message"}


def test_storage_and_disk_info(client, root):
    uploaded(client, "a.txt", b"12345")
    client.post("/api/v1/folders", json={"name": "Docs"})

    info = client.get("/api/v1/storage").json()
    assert info["usedBytes"] == 5
    assert info["totalBytes"] == 100
    assert info["fileCount"] == 1
    assert info["folderCount"] == 1
    assert info["storagePath"] == os.path.abspath(root)

    disk = client.get("/api/v1/system/disk")
    assert disk.status_code == 200
    assert disk.json()["total_space"]["bytes"] > 0


def test_share_lifecycle(client, provider):
    entry = uploaded(client, "photo.jpg")
    created = client.post("/api/v1/shares", json={"fileId": entry["id"], "maxDownloads": 3})
    assert created.status_code == 200
    share = created.json()
    assert share["fileName"] == "photo.jpg"
    assert share["tunnelUrl"] == f"https://tunnel-0.example.test/share/{share['shareToken']}"
    assert share["hasPassword"] is False
    assert "passwordHash" not in share

    check = client.get(f"/api/v1/shares/check/{entry['id']}").json()
    assert check["isShared"] is True
    assert check["share"]["id"] == share["id"]

    again = client.post("/api/v1/shares", json={"fileId": entry["id"]})
    assert again.status_code == 409

    stopped = client.delete(f"/api/v1/shares/{share['id']}")
    assert stopped.status_code == 200
    assert provider.handles[0].closed
    assert client.get(f"/api/v1/shares/check/{entry['id']}").json() == {"isShared": False, "share": None}
    assert client.get("/api/v1/shares", params={"active_only": True}).json() == []
    assert len(client.get("/api/v1/shares").json()) == 1


def test_share_rejects_folders_and_unknown_files(client):
    folder = client.post("/api/v1/folders", json={"name": "Docs"}).json()
    assert client.post("/api/v1/shares", json={"fileId": folder["id"]}).status_code == 400
    assert client.post("/api/v1/shares", json={"fileId": "missing"}).status_code == 404
    assert client.post("/api/v1/shares", json={"fileId": "missing", "maxDownloads": 0}).status_code == 422


def test_share_without_tunnel_keeps_local_link(root, data_dir, clock):
    connectors = Connectors(storage_path=root, data_dir=data_dir, quota_bytes=100,
                            tunnel_provider=None, tunnel_authtoken="", clock=clock)
    with TestClient(create_app(connectors, sweep_interval=0)) as client:
        entry = uploaded(client, "a.txt")
        share = client.post("/api/v1/shares", json={"fileId": entry["id"]}).json()
        assert share["isActive"] is True
        assert share["tunnelUrl"] is None
        assert share["tunnelError"]
        assert client.get(f"/share/{share['shareToken']}").status_code == 200


def test_public_share_download_counts(client):
    entry = uploaded(client, "song.txt", b"la la la")
    share = client.post("/api/v1/shares", json={"fileId": entry["id"], "public": False, "maxDownloads": 1}).json()

    response = client.get(f"/share/{share['shareToken']}")
    assert response.status_code == 200
    assert response.content == b"la la la"
    assert response.headers["content-disposition"].startswith("inline")

    assert client.get(f"/share/{share['shareToken']}").status_code == 404
    assert client.get("/api/v1/shares").json()[0]["downloadCount"] == 1


def test_public_share_password(client):
    entry = uploaded(client, "secret.txt", b"classified")
    share = client.post("/api/v1/shares",
                        json={"fileId": entry["id"], "public": False, "password": "hunter2"}).json()
    assert share["hasPassword"] is True

    form = client.get(f"/share/{share['shareToken']}")
    assert form.status_code == 401
    assert "<form" in form.text
    assert "Incorrect password" not in form.text

    wrong = client.get(f"/share/{share['shareToken']}", params={"password": "nope"})
    assert wrong.status_code == 401
    assert "Incorrect password" in wrong.text

    right = client.get(f"/share/{share['shareToken']}", params={"password": "hunter2"})
    assert right.status_code == 200
    assert right.content == b"classified"


def test_public_share_expiry(client, clock):
    entry = uploaded(client, "brief.txt")
    share = client.post("/api/v1/shares", json={"fileId": entry["id"], "public": False, "duration": "1h"}).json()
    assert client.get(f"/share/{share['shareToken']}").status_code == 200

    clock.advance(hours=1)
    assert client.get(f"/share/{share['shareToken']}").status_code == 410
    assert client.get(f"/share/{share['shareToken']}").status_code == 404
    assert client.get("/api/v1/shares").json()[0]["isActive"] is False


def test_unknown_share_token(client):
    response = client.get("/share/not-a-token")
    assert response.status_code == 404
    assert "text/html" in response.headers["content-type"]


def test_deleting_shared_file_revokes_link(client, provider):
    entry = uploaded(client, "gone.txt")
    share = client.post("/api/v1/shares", json={"fileId": entry["id"]}).json()
    client.delete(f"/api/v1/files/{entry['id']}")
    assert client.get(f"/share/{share['shareToken']}").status_code == 404
    assert provider.handles[0].closed


def test_malformed_share_tokens_are_not_found(client):
    entry = uploaded(client, "a.txt")
    client.post("/api/v1/shares", json={"fileId": entry["id"], "public": False})
    for token in ("%C3%A9t%C3%A9", "%E2%9C%93" * 20, "a%20b"):
        response = client.get(f"/share/{token}")
        assert response.status_code == 404
        assert "text/html" in response.headers["content-type"]


async def test_sweeper_survives_unexpected_errors(connectors, monkeypatch):
    calls = []

    async def flaky_sweep():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("disk went away")
        return 0

    monkeypatch.setattr(connectors, "sweep", flaky_sweep)
    sweeper = asyncio.create_task(_sweep_periodically(connectors, 0.01))
    for _ in range(100):
        if len(calls) >= 3:
            break
        await asyncio.sleep(0.01)
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper
    assert len(calls) >= 3


def test_shutdown_closes_tunnels(connectors, provider):
    app = create_app(connectors, sweep_interval=0)
    with TestClient(app) as client:
        entry = uploaded(client, "a.txt")
        client.post("/api/v1/shares", json={"fileId": entry["id"]})
        assert connectors.tunnels.is_share_active(client.get("/api/v1/shares").json()[0]["id"])
    assert provider.handles[0].closed
