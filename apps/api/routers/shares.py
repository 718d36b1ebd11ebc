"""
Router for creating, viewing and deleting ephemeral shares.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel

from config import settings
from routers.auth_scope import get_auth_context, get_optional_auth_context
from routers.rate_limit import rate_limit
from services.session_token import SessionIdentity
from services.share_errors import PayloadTooLarge, ShareError, ShareNotFound
from services.share_ids import is_valid_share_id
from services.share_lifecycle import ShareLifecycle, derive_state, get_share_lifecycle
from services.share_requests import FilePayload, parse_share_form

router = APIRouter()
logger = logging.getLogger(__name__)

UPLOAD_CHUNK_BYTES = 1024 * 1024


class CreateShareResponse(BaseModel):
    share_id: str
    share_url: str
    expires_at: datetime


class ViewShareRequest(BaseModel):
    password: Optional[str] = None


class ShareViewResponse(BaseModel):
    share_id: str
    content_type: str
    view_count: int
    content: Optional[str] = None
    file_name: Optional[str] = None
    file_url: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None


class ShareInfoResponse(BaseModel):
    share_id: str
    content_type: str
    state: str
    owner_id: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    password_protected: bool
    one_time_view: bool
    view_count: int
    max_views: Optional[int] = None
    created_at: datetime
    expires_at: datetime


class ShareSummaryResponse(BaseModel):
    share_id: str
    content_type: str
    state: str
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    password_protected: bool
    one_time_view: bool
    view_count: int
    max_views: Optional[int] = None
    created_at: datetime
    expires_at: datetime


class ShareListResponse(BaseModel):
    shares: List[ShareSummaryResponse]
    count: int


class DeleteShareResponse(BaseModel):
    share_id: str
    deleted: bool
    message: str


def _http_error(exc: ShareError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())


def _require_share_id(share_id: str) -> str:
    if not is_valid_share_id(share_id):
        raise _http_error(ShareNotFound())
    return share_id


def _share_url(share_id: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/share/{share_id}"


async def _read_upload(file: UploadFile) -> FilePayload:
    max_bytes = int(settings.SHARE_MAX_UPLOAD_BYTES)
    chunks: List[bytes] = []
    total_size = 0
    try:
        while True:
            chunk = await file.read(UPLOAD_CHUNK_BYTES)
            if not chunk:
                break
            total_size += len(chunk)
            if total_size > max_bytes:
                raise PayloadTooLarge(
                    f"File too large. Max upload size is {max_bytes // (1024 * 1024)}MB."
                )
            chunks.append(chunk)
    finally:
        await file.close()

    return FilePayload(
        filename=file.filename or "upload.bin",
        content=b"".join(chunks),
        mime_type=(file.content_type or "").lower() or "application/octet-stream",
    )


@router.post("/upload", response_model=CreateShareResponse, status_code=201)
async def upload_share(
    text: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    password: Optional[str] = Form(None),
    one_time_view: Optional[str] = Form(None),
    expiry_minutes: Optional[str] = Form(None),
    expiry_at: Optional[str] = Form(None),
    max_views: Optional[str] = Form(None),
    _rate_limit: None = Depends(rate_limit("share_upload", limit=60, window_seconds=3600)),
    auth: Optional[SessionIdentity] = Depends(get_optional_auth_context),
    lifecycle: ShareLifecycle = Depends(get_share_lifecycle),
):
    """Create a text or file share. Signed-in callers become the share owner."""
    try:
        payload = await _read_upload(file) if file is not None and file.filename else None
        request = parse_share_form(
            text=text,
            file=payload,
            password=password,
            one_time_view=one_time_view,
            expiry_minutes=expiry_minutes,
            expiry_at=expiry_at,
            max_views=max_views,
        )
        created = await lifecycle.create(request, owner_id=auth.user_id if auth else None)
    except ShareError as exc:
        raise _http_error(exc) from exc
    except Exception:
        logger.exception("Failed to create share")
        raise HTTPException(status_code=500, detail="Failed to upload content.")

    return CreateShareResponse(
        share_id=created.share_id,
        share_url=_share_url(created.share_id),
        expires_at=created.expires_at,
    )


@router.get("/mine", response_model=ShareListResponse)
async def list_my_shares(
    auth: SessionIdentity = Depends(get_auth_context),
    lifecycle: ShareLifecycle = Depends(get_share_lifecycle),
):
    """List the caller's shares, newest first. Payloads and credentials are never returned."""
    try:
        summaries = await lifecycle.list_for_owner(auth.user_id)
    except ShareError as exc:
        raise _http_error(exc) from exc
    except Exception:
        logger.exception("Failed to list shares for %s", auth.user_id)
        raise HTTPException(status_code=500, detail="Failed to list shares.")

    now = lifecycle.now()
    shares = [
        ShareSummaryResponse(
            share_id=summary.share_id,
            content_type=summary.payload_kind,
            state=derive_state(summary, now).value,
            file_name=summary.file_name,
            file_size=summary.file_size,
            mime_type=summary.mime_type,
            password_protected=summary.password_protected,
            one_time_view=summary.one_time_view,
            view_count=summary.view_count,
            max_views=summary.view_limit,
            created_at=summary.created_at,
            expires_at=summary.expires_at,
        )
        for summary in summaries
    ]
    return ShareListResponse(shares=shares, count=len(shares))


@router.post("/{share_id}/view", response_model=ShareViewResponse, response_model_exclude_none=True)
async def view_share(
    share_id: str,
    request: Optional[ViewShareRequest] = None,
    _rate_limit: None = Depends(rate_limit("share_view", limit=120, window_seconds=60)),
    lifecycle: ShareLifecycle = Depends(get_share_lifecycle),
):
    """Retrieve share content after the password, one-time and view-limit gates."""
    _require_share_id(share_id)
    try:
        view = await lifecycle.view(share_id, password=request.password if request else None)
    except ShareError as exc:
        raise _http_error(exc) from exc
    except Exception:
        logger.exception("Failed to view share %s", share_id)
        raise HTTPException(status_code=500, detail="Failed to retrieve content.")

    return ShareViewResponse(
        share_id=view.share_id,
        content_type=view.content_type,
        view_count=view.view_count,
        content=view.content,
        file_name=view.file_name,
        file_url=view.file_url,
        file_size=view.file_size,
        mime_type=view.mime_type,
    )


@router.get("/{share_id}/info", response_model=ShareInfoResponse)
async def share_info(
    share_id: str,
    lifecycle: ShareLifecycle = Depends(get_share_lifecycle),
):
    """Metadata for pre-flight display (password prompt, one-time warning)."""
    _require_share_id(share_id)
    try:
        info = await lifecycle.info(share_id)
    except ShareError as exc:
        raise _http_error(exc) from exc
    except Exception:
        logger.exception("Failed to load share info %s", share_id)
        raise HTTPException(status_code=500, detail="Failed to load content info.")

    return ShareInfoResponse(
        share_id=info.share_id,
        content_type=info.content_type,
        state=info.state.value,
        owner_id=info.owner_id,
        file_name=info.file_name,
        file_size=info.file_size,
        mime_type=info.mime_type,
        password_protected=info.password_protected,
        one_time_view=info.one_time_view,
        view_count=info.view_count,
        max_views=info.view_limit,
        created_at=info.created_at,
        expires_at=info.expires_at,
    )


@router.delete("/{share_id}", response_model=DeleteShareResponse)
async def delete_share(
    share_id: str,
    auth: Optional[SessionIdentity] = Depends(get_optional_auth_context),
    lifecycle: ShareLifecycle = Depends(get_share_lifecycle),
):
    """Delete a share. Owned shares need the owner's session; anonymous ones only the id."""
    _require_share_id(share_id)
    try:
        await lifecycle.delete(share_id, requester_id=auth.user_id if auth else None)
    except ShareError as exc:
        raise _http_error(exc) from exc
    except Exception:
        logger.exception("Failed to delete share %s", share_id)
        raise HTTPException(status_code=500, detail="Failed to delete content.")

    return DeleteShareResponse(share_id=share_id, deleted=True, message="Content deleted successfully")
