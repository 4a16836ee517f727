import os
from typing import List, Optional

import aiofiles
import aiofiles.os
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse

from app_constants.app_configurations import Storage
from app_constants.connectors import get_storage
from app_constants.constants import CommonConstants
from app_constants.log_module import logger
from app_constants.url import FilesAPI, Routes
from scripts.handlers.storage_handler import StorageService
from scripts.models.file_management import FileCreate, FileEntry, RenameRequest, UploadResult
from scripts.utils.common_utils import guess_mime_type, unique_filename
from scripts.utils.exceptions import CloudDriveError, NotFoundError, QuotaExceededError
from scripts.utils.path_utils import parent_segments, resolve_within_root, sanitize_parent_path, sanitize_segment

router = APIRouter(prefix=Routes.files)

CHUNK_SIZE = 1024 * 1024


@router.get(FilesAPI.list_files, response_model=List[FileEntry])
async def list_files(parent_path: Optional[str] = None, storage: StorageService = Depends(get_storage)):
    logger.info("Listing files...!")
    if parent_path is None:
        return await storage.list_files()
    return await storage.list_children(parent_path)


@router.get(FilesAPI.file, response_model=FileEntry)
async def get_file(file_id: str, storage: StorageService = Depends(get_storage)):
    return await storage.get_file(file_id)


@router.get(FilesAPI.download)
async def download_file(file_id: str, storage: StorageService = Depends(get_storage)):
    logger.info(f"Downloading file {file_id}")
    entry = await storage.get_file(file_id)
    file_path = await storage.get_physical_path(file_id)
    if not os.path.isfile(file_path):
        raise NotFoundError("File does not exist on the server")
    return FileResponse(file_path, media_type=entry.mime_type or CommonConstants.octet_stream, filename=entry.name)


async def _write_upload(upload: UploadFile, target: str, limit: int) -> int:
    """Stream the upload to target; returns the byte count or raises once it exceeds limit."""
    written = 0
    async with aiofiles.open(target, "wb") as buffer:
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > limit:
                raise QuotaExceededError(f"{upload.filename} exceeds the allowed upload size")
            await buffer.write(chunk)
    return written


async def _discard(target: str) -> None:
    if os.path.exists(target):
        await aiofiles.os.remove(target)


@router.post(FilesAPI.upload, response_model=UploadResult)
async def upload_files(files: List[UploadFile] = File(...),
                       parent_path: str = Form("/"),
                       storage: StorageService = Depends(get_storage)):
    logger.info(f"Uploading {len(files)} files...!")
    await storage.initialize()
    parent = sanitize_parent_path(parent_path)
    segments = parent_segments(parent)
    directory = storage.storage_path(*segments)
    await aiofiles.os.makedirs(directory, exist_ok=True)

    created = []
    for upload in files:
        target = None
        try:
            name = unique_filename(directory, sanitize_segment(upload.filename or ""))
            target = resolve_within_root(storage.root, *segments, name)
            limit = min(Storage.MAX_UPLOAD_BYTES, await storage.remaining_bytes())
            size = await _write_upload(upload, target, limit)
            entry = await storage.create_file(FileCreate(
                name=name,
                mime_type=upload.content_type or guess_mime_type(name),
                size=size,
                path="/".join(segments + [name]),
                parent_path=parent,
            ))
            created.append(entry)
        except CloudDriveError:
            if target:
                await _discard(target)
            raise
        except OSError as e:
            if target:
                await _discard(target)
            logger.exception(f"Failed to save upload {upload.filename}: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to save file: {str(e)}")
        finally:
            await upload.close()

    return UploadResult(message="Files uploaded successfully", files=created)


@router.put(FilesAPI.rename, response_model=FileEntry)
async def rename_file(file_id: str, rename_request: RenameRequest, storage: StorageService = Depends(get_storage)):
    logger.info(f"Renaming item {file_id}...!")
    return await storage.rename_file(file_id, rename_request.new_name)


@router.delete(FilesAPI.file)
async def delete_file(file_id: str, storage: StorageService = Depends(get_storage)):
    logger.info(f"Deleting item {file_id}....")
    await storage.delete_file(file_id)
    return {CommonConstants.status: CommonConstants.success, CommonConstants.message: "File deleted successfully"}
