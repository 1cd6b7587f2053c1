"""
Download token issuance and token-gated file delivery.
"""

import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, ensure_user, get_auth_context
from routers.rate_limit import client_ip, rate_limit
from services.content_store import ContentFileStore, get_content_store
from services.download_tokens import (
    CONCURRENT_LIMIT_REASON,
    TokenDenied,
    TokenRejected,
    TokenRejection,
    consume_download_token,
    issue_download_token,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class DownloadTokenRequest(BaseModel):
    content_id: str = Field(min_length=1, max_length=200)
    content_type: Literal["track", "zip"]


class DownloadTokenResponse(BaseModel):
    token: str
    expires_at: str


_REJECTION_STATUS = {
    TokenRejection.NOT_FOUND: (404, "Download token not found."),
    TokenRejection.EXPIRED_OR_USED: (404, "Download token already used or expired."),
    TokenRejection.IP_MISMATCH: (403, "Download link is locked to a different IP address."),
    TokenRejection.CONTENT_NOT_FOUND: (404, "Content not found."),
}


@router.post("/download-token", response_model=DownloadTokenResponse)
async def create_download_token(
    payload: DownloadTokenRequest,
    request: Request,
    _rate_limit: None = Depends(rate_limit("download_token", limit=60, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Issue a short-lived, single-use token after a fresh entitlement check."""
    try:
        await ensure_user(db, auth)
        outcome = await issue_download_token(
            auth.user_id,
            payload.content_id,
            payload.content_type,
            db,
            client_ip=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except SQLAlchemyError:
        logger.exception(
            "Download token issuance failed user=%s content=%s:%s",
            auth.user_id,
            payload.content_type,
            payload.content_id,
        )
        raise HTTPException(status_code=500, detail="Failed to issue download token.")

    if isinstance(outcome, TokenDenied):
        if outcome.reason == CONCURRENT_LIMIT_REASON:
            raise HTTPException(
                status_code=429,
                detail="Download limit exceeded. Use your active download links or wait for them to expire.",
            )
        raise HTTPException(
            status_code=403,
            detail="Access denied. Purchase this content or subscribe to the DJ.",
        )
    return DownloadTokenResponse(**outcome.as_dict())


@router.get("/download")
async def download_file(
    request: Request,
    token: str = Query(default=""),
    db: AsyncSession = Depends(get_db),
    store: ContentFileStore = Depends(get_content_store),
):
    """Exchange a download token for the file. The token is the credential."""
    if not token.strip():
        raise HTTPException(status_code=400, detail="Token required.")

    try:
        outcome = await consume_download_token(token, db, client_ip=client_ip(request))
    except SQLAlchemyError:
        logger.exception("Download token consumption failed")
        raise HTTPException(status_code=500, detail="Failed to process download.")

    if isinstance(outcome, TokenRejected):
        status_code, detail = _REJECTION_STATUS[outcome.reason]
        raise HTTPException(status_code=status_code, detail=detail)

    path = store.resolve(outcome.file_key or "")
    if path is None:
        logger.error(
            "File missing for %s:%s file_key=%s",
            outcome.content_type,
            outcome.content_id,
            outcome.file_key,
        )
        raise HTTPException(status_code=404, detail="Content file not found.")

    return FileResponse(path, media_type=outcome.media_type, filename=outcome.filename)
