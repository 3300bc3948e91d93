from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import List, Optional
import logging
from async_recorder.api.routes import get_current_user
from async_recorder.context import AppContext, get_context
from async_recorder.db.models import User
from async_recorder.services.recorder import ActionResult

router = APIRouter()
logger = logging.getLogger(__name__)


class CaptureSessionRequest(BaseModel):
    callback_url: Optional[str] = None
    metadata: Optional[dict] = None

class StartRecordingRequest(BaseModel):
    client_session_id: Optional[str] = None

class TracksRequest(BaseModel):
    tracks: List[str]


def _unwrap(result: ActionResult, status_code: int = 409) -> dict:
    if not result.success:
        raise HTTPException(status_code=status_code, detail=result.error)
    return result.to_dict()


@router.post("/capture-session")
async def create_capture_session(
    request: Optional[CaptureSessionRequest] = None,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    """
    Create a new capture session on VideoDB.

    Returns the session_id (cap-xxx) to pass to the capture client. The tunnel
    webhook URL is used as callback unless the body names another one.
    """
    request = request or CaptureSessionRequest()
    try:
        session_data = await ctx.recorder.create_capture_session(
            user,
            callback_url=request.callback_url,
            metadata=request.metadata,
        )
    except Exception as e:
        logger.exception(f"Error creating capture session: {e}")
        raise HTTPException(status_code=500, detail="Failed to create capture session")

    logger.info(f"Created capture session: {session_data.get('session_id')}")
    return session_data

@router.post("/recording/start")
async def start_recording(
    request: Optional[StartRecordingRequest] = None,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    request = request or StartRecordingRequest()
    return _unwrap(await ctx.recorder.start_recording(user, request.client_session_id))

@router.post("/recording/stop")
async def stop_recording(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    return _unwrap(await ctx.recorder.stop_recording())

@router.post("/recording/pause")
async def pause_tracks(
    request: TracksRequest,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    return _unwrap(await ctx.recorder.pause_tracks(request.tracks))

@router.post("/recording/resume")
async def resume_tracks(
    request: TracksRequest,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    return _unwrap(await ctx.recorder.resume_tracks(request.tracks))
