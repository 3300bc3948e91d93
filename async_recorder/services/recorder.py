"""
Desktop-facing operations: registration, client tokens and the capture session
lifecycle. Each call returns a result object rather than raising for conditions
the UI is expected to show the user.
"""
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from fastapi.concurrency import run_in_threadpool

from async_recorder.core.config import Settings
from async_recorder.core.tunnel import TunnelManager
from async_recorder.db.models import User
from async_recorder.db.store import RecordingStore, UserStore
from async_recorder.services.videodb import VideoDBService

logger = logging.getLogger(__name__)


def default_capture_client_factory(session_token: str):
    from videodb.capture import CaptureClient

    return CaptureClient(client_token=session_token)


@dataclass
class RegistrationResult:
    success: bool
    user_name: Optional[str] = None
    access_token: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ActionResult:
    success: bool
    error: Optional[str] = None
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        response = {"success": self.success, **self.data}
        if self.error:
            response["error"] = self.error
        return response


class SessionTokenCache:
    """Last issued client token per user, reused until shortly before it expires."""

    def __init__(self, refresh_buffer: int, clock: Callable[[], float] = time.time):
        self.refresh_buffer = refresh_buffer
        self._clock = clock
        self._tokens: Dict[int, Tuple[str, float]] = {}

    def get(self, user_id: int) -> Optional[str]:
        entry = self._tokens.get(user_id)
        if entry and self._clock() < entry[1] - self.refresh_buffer:
            return entry[0]
        return None

    def put(self, user_id: int, token: str, expires_in: int):
        self._tokens[user_id] = (token, self._clock() + expires_in)

    def clear(self):
        self._tokens.clear()


class RecorderController:
    def __init__(
        self,
        settings: Settings,
        users: UserStore,
        recordings: RecordingStore,
        videodb_service: VideoDBService,
        tunnel: TunnelManager,
        capture_client_factory: Callable = default_capture_client_factory,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.users = users
        self.recordings = recordings
        self.videodb_service = videodb_service
        self.tunnel = tunnel
        self.capture_client_factory = capture_client_factory
        self.token_cache = SessionTokenCache(settings.TOKEN_REFRESH_BUFFER, clock)
        self.current_user: Optional[User] = None
        self.capture_client = None
        self.capture_session_id: Optional[str] = None

    # --- Auth ---

    async def register(self, name: Optional[str], api_key: str) -> RegistrationResult:
        logger.info(f"Registering user: {name}")
        if not await run_in_threadpool(self.videodb_service.verify_api_key, api_key):
            return RegistrationResult(
                success=False,
                error="Invalid API key. Please check your key and try again.",
            )

        user = self.users.get_by_api_key(api_key)
        if user:
            logger.info(f"Reusing existing user {user.id} for this API key")
        else:
            user = self.users.create(name or "Guest", api_key, str(uuid.uuid4()))

        self.current_user = user
        self.token_cache.clear()
        return RegistrationResult(success=True, user_name=user.name, access_token=user.access_token)

    async def logout(self) -> ActionResult:
        logger.info("Logging out...")
        self.current_user = None
        self.token_cache.clear()
        self.videodb_service.clear_all()

        if self.capture_client is not None:
            try:
                await self.capture_client.shutdown()
            except Exception as e:
                logger.warning(f"Capture client shutdown on logout failed: {e}")
            self._reset_capture()
        return ActionResult(success=True)

    def authenticate(self, access_token: str) -> Optional[User]:
        user = self.users.get_by_access_token(access_token)
        if user and self.current_user is None:
            self.current_user = user
        return user

    def get_settings(self) -> dict:
        user = self.current_user
        return {
            "access_token": user.access_token if user else None,
            "user_name": user.name if user else None,
            "backend_base_url": f"http://localhost:{self.settings.API_PORT}",
            "callback_url": self.tunnel.webhook_url,
            "is_connected": user is not None,
        }

    async def get_session_token(self, user: User) -> dict:
        token = self.token_cache.get(user.id)
        if token:
            logger.info("Using cached session token")
            return {"session_token": token}

        token_data = await run_in_threadpool(
            self.videodb_service.create_session_token,
            user.api_key,
            self.settings.SESSION_TOKEN_TTL,
        )
        self.token_cache.put(user.id, token_data["session_token"], token_data["expires_in"])
        return token_data

    # --- Capture sessions ---

    async def create_capture_session(
        self,
        user: User,
        callback_url: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> dict:
        callback_url = callback_url or self.tunnel.webhook_url
        end_user_id = f"user-{user.id}"
        logger.info(f"Creating capture session for user {end_user_id} with callback: {callback_url}")
        return await run_in_threadpool(
            self.videodb_service.create_capture_session,
            user.api_key,
            end_user_id,
            callback_url,
            metadata,
        )

    async def start_recording(self, user: User, client_session_id: Optional[str] = None) -> ActionResult:
        if self.capture_client is not None:
            return ActionResult(success=False, error="A recording is already in progress.")

        try:
            session_data = await self.create_capture_session(
                user,
                metadata={"client_session_id": client_session_id, "started_at": int(time.time() * 1000)},
            )
        except Exception as e:
            logger.exception(f"Error creating capture session: {e}")
            return ActionResult(success=False, error=f"Failed to create capture session: {e}")

        capture_session_id = session_data["session_id"]
        client = None
        try:
            token_data = await self.get_session_token(user)
            client = self.capture_client_factory(token_data["session_token"])
            channels = await client.list_channels()
            display = channels.displays.default
            selected = [
                c for c in [channels.mics.default, display, channels.system_audio.default] if c
            ]
            if not selected:
                raise RuntimeError("No capture channels available.")

            await client.start_capture_session(
                capture_session_id=capture_session_id,
                channels=selected,
                primary_video_channel_id=display.id if display else None,
            )
        except Exception as e:
            logger.exception(f"Error starting recording: {e}")
            if client is not None:
                try:
                    await client.shutdown()
                except Exception as shutdown_error:
                    logger.warning(f"CaptureClient shutdown warning: {shutdown_error}")
            return ActionResult(success=False, error=str(e))

        self.capture_client = client
        self.capture_session_id = capture_session_id
        logger.info(f"Recording started for capture session {capture_session_id}")
        return ActionResult(
            success=True,
            data={"session_id": capture_session_id, "session_token": token_data["session_token"]},
        )

    async def stop_recording(self) -> ActionResult:
        if self.capture_client is None:
            logger.warning("No active capture client to stop")
            return ActionResult(success=False, error="No active recording.")

        session_id = self.capture_session_id
        try:
            await self.capture_client.stop_capture()
            logger.info(f"Capture session stopped: {session_id}")
        except Exception as e:
            logger.exception(f"Error stopping recording: {e}")
            return ActionResult(success=False, error=str(e))

        try:
            await self.capture_client.shutdown()
        except Exception as e:
            logger.warning(f"CaptureClient shutdown warning: {e}")
        self._reset_capture()
        return ActionResult(success=True, data={"session_id": session_id})

    async def pause_tracks(self, tracks: List[str]) -> ActionResult:
        return await self._toggle_tracks("pause_tracks", tracks)

    async def resume_tracks(self, tracks: List[str]) -> ActionResult:
        return await self._toggle_tracks("resume_tracks", tracks)

    async def _toggle_tracks(self, action: str, tracks: List[str]) -> ActionResult:
        if self.capture_client is None:
            return ActionResult(success=False, error="No active recording.")
        logger.info(f"{action} for session {self.capture_session_id}: {tracks}")
        try:
            await getattr(self.capture_client, action)(tracks)
        except Exception as e:
            logger.exception(f"Error in {action}: {e}")
            return ActionResult(success=False, error=str(e))
        return ActionResult(success=True)

    def _reset_capture(self):
        self.capture_client = None
        self.capture_session_id = None

    # --- History ---

    def list_recordings(self, limit: Optional[int] = None) -> List[dict]:
        limit = limit or self.settings.RECORDINGS_PAGE_SIZE
        return [r.to_summary() for r in self.recordings.list_recent(limit)]
