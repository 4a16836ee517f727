class CommonConstants:
    status = "status"
    message = "message"
    failed = "failed"
    data = "data"
    success = "success"
    content_disposition = "Content-Disposition"
    octet_stream = "application/octet-stream"
    root_path = "/"


class ItemType:
    file = "file"
    folder = "folder"


class ShareDurations:
    """Relative expiry choices offered when creating a share, in seconds."""
    never = "never"
    seconds = {
        "1h": 60 * 60,
        "6h": 6 * 60 * 60,
        "24h": 24 * 60 * 60,
        "7d": 7 * 24 * 60 * 60,
        "30d": 30 * 24 * 60 * 60,
    }


class ShareLimits:
    token_bytes = 32
    min_downloads = 1
    max_downloads = 1000


class SnapshotFiles:
    files = "files.json"
    shares = "shares.json"
    descriptor = "config.json"
    descriptor_version = "1.0"
