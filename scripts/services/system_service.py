from typing import Dict

import psutil
from fastapi import APIRouter, Depends, HTTPException

from app_constants.connectors import get_storage
from app_constants.log_module import logger
from app_constants.url import Routes, StorageAPI, SystemAPI
from scripts.handlers.storage_handler import StorageService
from scripts.models.file_management import StorageInfo
from scripts.utils.common_utils import format_size, get_storage_status, safe_percentage

router = APIRouter(prefix=Routes.system)
storage_router = APIRouter(prefix=Routes.storage)


@storage_router.get(StorageAPI.info, response_model=StorageInfo)
async def get_storage_info(storage: StorageService = Depends(get_storage)):
    """Quota usage of the managed files."""
    return await storage.get_storage_info()


@router.get(SystemAPI.get_disk)
async def get_disk(storage: StorageService = Depends(get_storage)) -> Dict:
    """
    Get system storage information for the disk where files are stored.
    Returns total, used, and free space with safely calculated percentages.
    """
    try:
        logger.info("Fetching storage information...")
        await storage.initialize()
        disk_usage = psutil.disk_usage(storage.root)
    except OSError as e:
        logger.error(f"Error getting storage information: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to retrieve storage information: {str(e)}"
        )

    used_percentage = safe_percentage(disk_usage.used, disk_usage.total)
    free_percentage = safe_percentage(disk_usage.free, disk_usage.total)

    return {
        "total_space": {
            "bytes": disk_usage.total,
            "formatted": format_size(disk_usage.total)
        },
        "used_space": {
            "bytes": disk_usage.used,
            "formatted": format_size(disk_usage.used),
            "percentage": round(used_percentage, 2)
        },
        "free_space": {
            "bytes": disk_usage.free,
            "formatted": format_size(disk_usage.free),
            "percentage": round(free_percentage, 2)
        },
        "health_status": {
            "is_critical": free_percentage < 10,
            "is_warning": free_percentage < 20,
            "status": get_storage_status(free_percentage)
        }
    }
