"""Gmail scan API: run a scan, scan status, connect/disconnect Gmail."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session
import urllib.parse

from ..auth import get_current_user_required
from ..config import settings
from ..database import get_db, get_sync_db
from ..errors import ScanError
from ..gmail_oauth import finish_gmail_oauth, start_gmail_oauth
from ..models import GmailCredential, User
from ..scan_state_db import get_state_async
from ..schemas import ConnectResponse, ScanErrorResponse, ScanResponse, ScanStatusResponse
from ..services.ingestion import run_scan_for_owner
from ..token_store import TokenStore

router = APIRouter(prefix="/api/gmail", tags=["gmail"])


@router.post(
    "/scan",
    response_model=ScanResponse,
    responses={
        401: {"model": ScanErrorResponse},
        409: {"model": ScanErrorResponse},
        500: {"model": ScanErrorResponse},
        502: {"model": ScanErrorResponse},
    },
)
def scan_emails(
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_sync_db),
):
    """Run one scan cycle for the current owner and return its counts. Runs in the threadpool."""
    result = run_scan_for_owner(db, current_user.id)
    return result.to_dict()


@router.get("/scan-status", response_model=ScanStatusResponse)
async def scan_status(
    current_user: User = Depends(get_current_user_required),
    db: AsyncSession = Depends(get_db),
):
    """Latest scan state for this owner plus whether Gmail is connected."""
    state = await get_state_async(db, current_user.id)
    cred = await db.execute(select(GmailCredential.id).where(GmailCredential.owner_id == current_user.id))
    state["connected"] = cred.first() is not None
    return state


@router.get("/connect", response_model=ConnectResponse)
def gmail_connect(
    redirect_url: Optional[str] = None,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_sync_db),
):
    """Google consent URL for connecting Gmail. Optional ?redirect_url= for after the callback."""
    try:
        auth_url = start_gmail_oauth(db, current_user.id, redirect_url)
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"authUrl": auth_url}


@router.get("/callback")
def gmail_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    db: Session = Depends(get_sync_db),
):
    """OAuth redirect target. Always redirects back to the frontend with a result flag."""
    if error or not code or not state:
        reason = error or "Missing code or state parameter"
        query = urllib.parse.urlencode({"gmail_error": reason})
        return RedirectResponse(url=f"{settings.frontend_url}?{query}", status_code=302)
    try:
        redirect_url = finish_gmail_oauth(db, code=code, state=state)
    except (ValueError, ScanError) as e:
        query = urllib.parse.urlencode({"gmail_error": str(e)})
        return RedirectResponse(url=f"{settings.frontend_url}?{query}", status_code=302)
    return RedirectResponse(url=redirect_url, status_code=302)


@router.delete("/connection")
def gmail_disconnect(
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_sync_db),
):
    """Forget the stored Gmail tokens for this owner."""
    removed = TokenStore(db).disconnect(current_user.id)
    return {"disconnected": removed}
