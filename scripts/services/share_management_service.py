import html
import os
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse, HTMLResponse

from app_constants.connectors import Connectors, get_connectors
from app_constants.constants import CommonConstants
from app_constants.log_module import logger
from app_constants.url import PublicShareAPI, Routes, SharesAPI
from scripts.models.share_management import ShareCheck, ShareCreate, ShareLink, ShareOptions, ShareView
from scripts.utils.exceptions import CloudDriveError, NotFoundError, TunnelUnavailableError

router = APIRouter(prefix=Routes.shares)
public_router = APIRouter(prefix=Routes.public_share)


async def _view(connectors: Connectors, share: ShareLink, tunnel_error: str = None) -> ShareView:
    entry = await connectors.metadata.get(share.file_id)
    return ShareView.from_share(
        share,
        file_name=entry.name if entry else None,
        file_mime_type=entry.mime_type if entry else None,
        tunnel_error=tunnel_error,
    )


@router.get(SharesAPI.list_shares, response_model=List[ShareView])
async def list_shares(active_only: bool = False, connectors: Connectors = Depends(get_connectors)):
    shares = await connectors.shares.list_shares()
    if active_only:
        shares = [share for share in shares if connectors.shares.is_servable(share)]
    return [await _view(connectors, share) for share in shares]


@router.get(SharesAPI.check, response_model=ShareCheck)
async def check_share(file_id: str, connectors: Connectors = Depends(get_connectors)):
    share = await connectors.shares.get_active_for_file(file_id)
    if share is None:
        return ShareCheck(is_shared=False)
    return ShareCheck(is_shared=True, share=await _view(connectors, share))


@router.post(SharesAPI.create, response_model=ShareView)
async def create_share(share_request: ShareCreate, connectors: Connectors = Depends(get_connectors)):
    logger.info(f"Sharing file {share_request.file_id}...!")
    options = ShareOptions(
        password=share_request.password,
        duration=share_request.duration,
        expires_at=share_request.expires_at,
        max_downloads=share_request.max_downloads,
    )
    share = await connectors.shares.create_share(share_request.file_id, options)

    tunnel_error = None
    if share_request.public:
        try:
            await connectors.tunnels.start_tunnel(share.id)
        except TunnelUnavailableError as e:
            # the share stays usable locally
            logger.warning(f"Share {share.id} created without a public tunnel: {e.message}")
            tunnel_error = e.message
        share = await connectors.shares.require(share.id)

    return await _view(connectors, share, tunnel_error=tunnel_error)


@router.delete(SharesAPI.stop)
async def stop_share(share_id: str, connectors: Connectors = Depends(get_connectors)):
    logger.info(f"Stopping share {share_id}...!")
    await connectors.shares.deactivate(share_id)
    await connectors.tunnels.stop_tunnel(share_id)
    return {CommonConstants.status: CommonConstants.success, CommonConstants.message: "Share stopped successfully"}


def _page(title: str, body: str, status_code: int) -> HTMLResponse:
    content = (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{html.escape(title)}</title></head>"
        "<body style=\"font-family: sans-serif; text-align: center; padding: 3rem;\">"
        f"{body}</body></html>"
    )
    return HTMLResponse(content=content, status_code=status_code)


def _message_page(title: str, message: str, status_code: int) -> HTMLResponse:
    return _page(title, f"<h1>{html.escape(title)}</h1><p>{html.escape(message)}</p>", status_code)


def _password_page(token: str, file_name: str, failed: bool) -> HTMLResponse:
    error = "<p style=\"color: #c00;\">Incorrect password</p>" if failed else ""
    form = (
        f"<h1>Password required</h1><p>{html.escape(file_name)}</p>{error}"
        f"<form method=\"GET\" action=\"{Routes.public_share}/{html.escape(token)}\">"
        "<input type=\"password\" name=\"password\" placeholder=\"Password\" autofocus>"
        "<button type=\"submit\">Open</button></form>"
    )
    return _page("Password required", form, 401)


@public_router.get(PublicShareAPI.open)
async def open_share(token: str, password: Optional[str] = Query(None),
                     connectors: Connectors = Depends(get_connectors)):
    shares = connectors.shares
    share = await shares.find_by_token(token)
    if share is None or not share.is_active:
        return _message_page("Share Not Found", "This file share link is invalid or has expired.", 404)

    if shares.is_expired(share):
        await shares.deactivate(share.id)
        await connectors.tunnels.stop_tunnel(share.id)
        return _message_page("Share Expired", "This file share link has expired.", 410)

    if share.max_downloads is not None and share.download_count >= share.max_downloads:
        return _message_page("Download Limit Reached", "This file has reached its download limit.", 410)

    entry = await connectors.metadata.get(share.file_id)
    if entry is None:
        return _message_page("Share Not Found", "The shared file no longer exists.", 404)

    if not await shares.check_password(share, password):
        return _password_page(token, entry.name, failed=password is not None)

    try:
        file_path = await connectors.storage.get_physical_path(entry.id)
    except CloudDriveError as e:
        logger.error(f"Cannot serve share {share.id}: {e.message}")
        return _message_page("Share Not Found", "The shared file is not available.", 404)
    if not os.path.isfile(file_path):
        return _message_page("Share Not Found", "The shared file is not available.", 404)

    try:
        await shares.increment_download_count(share.id)
    except NotFoundError:
        return _message_page("Share Not Found", "This file share link is invalid or has expired.", 404)

    logger.info(f"Serving share {share.id} ({entry.name})")
    return FileResponse(
        file_path,
        media_type=entry.mime_type or CommonConstants.octet_stream,
        filename=entry.name,
        content_disposition_type="inline",
    )
