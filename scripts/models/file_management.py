from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snapshot files and API bodies use camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FileEntry(CamelModel):
    id: str
    name: str
    type: Literal["file", "folder"]
    mime_type: Optional[str] = None
    size: int = Field(default=0, ge=0)
    path: str  # relative to the storage root, no leading slash
    parent_path: str  # "/"-rooted virtual path of the containing folder
    created_at: datetime
    modified_at: datetime

    @property
    def is_folder(self) -> bool:
        return self.type == "folder"


class FileCreate(CamelModel):
    """Metadata for bytes the upload handler already wrote under the storage root."""
    name: str
    type: Literal["file"] = "file"
    mime_type: Optional[str] = None
    size: int = Field(default=0, ge=0)
    path: str
    parent_path: str = "/"


class FolderCreate(CamelModel):
    name: str = Field(min_length=1)
    parent_path: str = "/"


class RenameRequest(CamelModel):
    new_name: str = Field(min_length=1)


class StorageInfo(CamelModel):
    used_bytes: int
    total_bytes: int
    file_count: int
    folder_count: int
    storage_path: Optional[str] = None


class UploadResult(CamelModel):
    message: str
    files: List[FileEntry]
