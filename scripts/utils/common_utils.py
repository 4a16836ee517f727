import asyncio
import json
import mimetypes
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

import aiofiles

from app_constants.constants import CommonConstants
from app_constants.log_module import logger

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def guess_mime_type(file_name: str) -> str:
    return mimetypes.guess_type(file_name)[0] or CommonConstants.octet_stream


def unique_filename(directory: str, file_name: str) -> str:
    """First free name in directory: ``report.pdf``, ``report_1.pdf``, ``report_2.pdf``..."""
    if not os.path.exists(os.path.join(directory, file_name)):
        return file_name

    base_name, extension = os.path.splitext(file_name)
    counter = 1
    while True:
        candidate = f"{base_name}_{counter}{extension}"
        if not os.path.exists(os.path.join(directory, candidate)):
            return candidate
        counter += 1


async def read_json_snapshot(path: str) -> Optional[List[Any]]:
    """Parsed JSON array at path, or None when the file is missing or unreadable."""
    if not os.path.exists(path):
        return None
    try:
        async with aiofiles.open(path, "r", encoding="utf-8") as snapshot:
            data = json.loads(await snapshot.read())
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable snapshot {path}: {e}")
        _quarantine(path)
        return None
    if not isinstance(data, list):
        logger.warning(f"Ignoring snapshot {path}: expected a JSON array")
        _quarantine(path)
        return None
    return data


def _quarantine(path: str) -> None:
    # keep the unreadable file around for manual recovery
    try:
        os.replace(path, f"{path}.corrupt")
    except OSError as e:
        logger.error(f"Could not move aside snapshot {path}: {e}")


async def write_json_snapshot(path: str, data: Any) -> None:
    """Write to a temporary sibling and move it into place."""
    os.makedirs(os.path.dirname(path), exist_ok=True)
    tmp_path = f"{path}.tmp"
    async with aiofiles.open(tmp_path, "w", encoding="utf-8") as snapshot:
        await snapshot.write(json.dumps(data, indent=2))
        await snapshot.flush()
        await asyncio.to_thread(os.fsync, snapshot.fileno())
    os.replace(tmp_path, path)


def format_size(size_in_bytes: int) -> str:
    """
    Format byte size into human readable format with error handling
    """
    try:
        if size_in_bytes < 0:
            return "0.00 B"

        for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
            if abs(size_in_bytes) < 1024.0:
                return f"{size_in_bytes:.2f} {unit}"
            size_in_bytes /= 1024.0
        return f"{size_in_bytes:.2f} PB"
    except (TypeError, ValueError) as e:
        logger.error(f"Error formatting size: {str(e)}")
        return "0.00 B"


def get_storage_status(free_percentage: float) -> str:
    """
    Get storage status based on free space percentage
    """
    if free_percentage < 10:
        return "CRITICAL"
    elif free_percentage < 20:
        return "WARNING"
    else:
        return "HEALTHY"


def safe_percentage(part: float, whole: float) -> float:
    try:
        if whole <= 0 or part < 0:
            return 0.0
        return (part / whole) * 100
    except (ZeroDivisionError, TypeError, ValueError):
        return 0.0
