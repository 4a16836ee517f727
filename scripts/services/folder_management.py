from fastapi import APIRouter, Depends

from app_constants.connectors import get_storage
from app_constants.log_module import logger
from app_constants.url import FolderAPI, Routes
from scripts.handlers.storage_handler import StorageService
from scripts.models.file_management import FileEntry, FolderCreate

router = APIRouter(prefix=Routes.folders)


@router.post(FolderAPI.create, response_model=FileEntry)
async def create_folder(folder: FolderCreate, storage: StorageService = Depends(get_storage)):
    logger.info(f"Running create folder {folder.name} in {folder.parent_path}..!")
    return await storage.create_folder(folder)
