from fastapi import APIRouter, HTTPException, Request, Depends, Header
from pydantic import BaseModel, ConfigDict, field_validator
from typing import Optional
from async_recorder.context import AppContext, get_context
from async_recorder.db.models import User
import json
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

EXPORTED_EVENT = "capture_session.exported"


def _id_to_str(value):
    # Providers sometimes send numeric ids
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class ExportData(BaseModel):
    model_config = ConfigDict(extra="allow")

    exported_video_id: Optional[str] = None
    stream_url: Optional[str] = None
    player_url: Optional[str] = None

    @field_validator("exported_video_id", "stream_url", "player_url", mode="before")
    @classmethod
    def coerce_ids(cls, value):
        return _id_to_str(value)


class WebhookEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: Optional[str] = None
    capture_session_id: Optional[str] = None
    data: Optional[ExportData] = None

    @field_validator("capture_session_id", mode="before")
    @classmethod
    def coerce_session_id(cls, value):
        return _id_to_str(value)

    @field_validator("event", mode="before")
    @classmethod
    def default_event(cls, value):
        return value or "unknown"


def get_current_user(
    x_access_token: str = Header(None),
    ctx: AppContext = Depends(get_context),
) -> User:
    """Resolve the X-Access-Token header to a registered User."""
    if not x_access_token:
        raise HTTPException(status_code=401, detail="Missing Access Token")

    user = ctx.recorder.authenticate(x_access_token)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid Access Token")

    return user

@router.get("/")
def read_root():
    return {"status": "ok", "message": "Async Recorder Server Running"}

@router.get("/tunnel/status")
def get_tunnel_status(ctx: AppContext = Depends(get_context)):
    """Returns current tunnel status."""
    return ctx.tunnel.status()

@router.get("/config")
def get_server_config(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    """Settings the desktop shell needs, including the public callback URL."""
    config = ctx.recorder.get_settings()
    config["api_port"] = ctx.settings.API_PORT
    if ctx.settings.VIDEODB_API_URL:
        config["videodb_api_url"] = ctx.settings.VIDEODB_API_URL
    return config


@router.post("/webhook")
async def handle_webhook(request: Request, ctx: AppContext = Depends(get_context)):
    """
    Handle incoming webhook events from VideoDB.
    Key event: capture_session.exported - video is ready for playback.

    Everything except a malformed body is acknowledged so VideoDB does not
    retry events that were already handled.
    """
    try:
        raw = await request.body()
        if not raw.strip():
            # Health checks from the tunnel or provider
            return {"status": "ok", "received": True}

        body = WebhookEvent.model_validate(json.loads(raw))
        logger.info(f"[Webhook] Event: {body.event}")

        if body.event == EXPORTED_EVENT:
            data = body.data or ExportData()
            result = ctx.correlator.handle_export_event(
                session_id=body.capture_session_id,
                video_id=data.exported_video_id,
                stream_url=data.stream_url,
                player_url=data.player_url,
            )
            logger.info(
                f"[Webhook] Session {body.capture_session_id}: {result.outcome.value} "
                f"(recording: {result.recording_id})"
            )
        elif body.event.startswith("capture_session."):
            logger.debug(f"[Webhook] Capture session event: {body.event}")
        else:
            logger.info(f"[Webhook] Ignoring event: {body.event}")

        return {"status": "ok", "received": True}
    except Exception as e:
        logger.exception(f"[Webhook] Error processing: {e}")
        raise HTTPException(status_code=500, detail="Error processing webhook")

@router.get("/recordings")
def get_recordings(limit: Optional[int] = None, ctx: AppContext = Depends(get_context)):
    """
    Most recent recordings from the local DB, newest first.
    `insights` is returned as the raw JSON string for the UI to parse.
    """
    if limit is not None and limit < 1:
        raise HTTPException(status_code=400, detail="limit must be positive")
    return ctx.recorder.list_recordings(limit)

@router.get("/recordings/{recording_id}")
def get_recording(
    recording_id: int,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    """Fetch a single recording with its insights decoded."""
    recording = ctx.recordings.get(recording_id)
    if not recording:
        raise HTTPException(status_code=404, detail="Recording not found")

    return {
        "id": recording.id,
        "video_id": recording.video_id,
        "stream_url": recording.stream_url,
        "player_url": recording.player_url,
        "session_id": recording.session_id,
        "duration": recording.duration,
        "created_at": recording.created_at.isoformat() if recording.created_at else None,
        "insights": json.loads(recording.insights) if recording.insights else None,
        "insights_status": recording.insights_status or "pending",
        "enrichment_running": ctx.enrichment.in_flight(recording.id),
    }
