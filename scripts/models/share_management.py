from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from app_constants.constants import ShareLimits
from scripts.models.file_management import CamelModel

ShareDuration = Literal["1h", "6h", "24h", "7d", "30d", "never"]


class ShareLink(CamelModel):
    id: str
    file_id: str
    share_token: str
    password_hash: Optional[str] = None
    expires_at: Optional[datetime] = None
    max_downloads: Optional[int] = None
    download_count: int = Field(default=0, ge=0)
    tunnel_url: Optional[str] = None
    is_active: bool = True
    created_at: datetime

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)


class ShareOptions(CamelModel):
    password: Optional[str] = None
    duration: Optional[ShareDuration] = None
    expires_at: Optional[datetime] = None
    max_downloads: Optional[int] = Field(default=None, ge=ShareLimits.min_downloads, le=ShareLimits.max_downloads)


class ShareCreate(ShareOptions):
    file_id: str
    public: bool = True


class ShareView(CamelModel):
    """What the owner's API returns: the record without its password hash."""
    id: str
    file_id: str
    file_name: Optional[str] = None
    file_mime_type: Optional[str] = None
    share_token: str
    tunnel_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    max_downloads: Optional[int] = None
    download_count: int = 0
    is_active: bool
    has_password: bool
    created_at: datetime
    tunnel_error: Optional[str] = None

    @classmethod
    def from_share(cls, share: ShareLink, file_name: str = None, file_mime_type: str = None,
                   tunnel_error: str = None) -> "ShareView":
        return cls(
            id=share.id,
            file_id=share.file_id,
            file_name=file_name,
            file_mime_type=file_mime_type,
            share_token=share.share_token,
            tunnel_url=share.tunnel_url,
            expires_at=share.expires_at,
            max_downloads=share.max_downloads,
            download_count=share.download_count,
            is_active=share.is_active,
            has_password=share.has_password,
            created_at=share.created_at,
            tunnel_error=tunnel_error,
        )


class ShareCheck(CamelModel):
    is_shared: bool
    share: Optional[ShareView] = None
