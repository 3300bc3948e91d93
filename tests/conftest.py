"""Pytest configuration and fixtures."""

from types import SimpleNamespace
from typing import AsyncGenerator, Dict, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from async_recorder.context import AppContext
from async_recorder.core.config import Settings
from async_recorder.core.tunnel import TunnelManager
from async_recorder.main import create_app

VALID_API_KEY = "sk-valid"
UNREACHABLE_API_KEY = "sk-unreachable"


class FakeVideo:
    """Stands in for a videodb Video; records the calls made on it."""

    def __init__(self, video_id, transcript="hello", subtitle_url="s2", fail_on=()):
        self.id = video_id
        self.transcript = transcript
        self.subtitle_url = subtitle_url
        self.fail_on = set(fail_on)
        self.calls = []
        self.on_index = None

    def _call(self, name):
        self.calls.append(name)
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")

    def index_spoken_words(self):
        self._call("index_spoken_words")
        if self.on_index:
            self.on_index()

    def get_transcript_text(self):
        self._call("get_transcript_text")
        return self.transcript

    def add_subtitle(self, style=None):
        self._call("add_subtitle")
        return self.subtitle_url


class FakeVideoDBService:
    def __init__(self):
        self.videos: Dict[str, FakeVideo] = {}
        self.connections = {VALID_API_KEY: object()}
        self.tokens_issued = 0
        self.capture_sessions = []
        self.get_video_error: Optional[Exception] = None

    def add_video(self, video_id, **kwargs) -> FakeVideo:
        video = FakeVideo(video_id, **kwargs)
        self.videos[video_id] = video
        return video

    def verify_api_key(self, api_key):
        if api_key == UNREACHABLE_API_KEY:
            raise ConnectionError("VideoDB unreachable")
        return api_key == VALID_API_KEY

    def create_session_token(self, api_key, expires_in=86400):
        self.tokens_issued += 1
        return {
            "session_token": f"st-{self.tokens_issued}",
            "expires_in": expires_in,
            "expires_at": 0,
        }

    def create_capture_session(self, api_key, end_user_id, callback_url=None, metadata=None):
        session = {
            "session_id": f"cap-{len(self.capture_sessions) + 1}",
            "collection_id": "default",
            "end_user_id": end_user_id,
            "status": "created",
            "callback_url": callback_url,
        }
        self.capture_sessions.append({**session, "metadata": metadata})
        return session

    def get_video(self, api_key, video_id):
        if self.get_video_error:
            raise self.get_video_error
        return self.videos.get(video_id)

    def clear_all(self):
        self.connections.clear()


class FakeLauncher:
    """Replaces pycloudflared.try_cloudflare."""

    def __init__(self, url="https://quick-test.trycloudflare.com", error=None):
        self.url = url
        self.error = error
        self.started = []
        self.terminated = []

    def __call__(self, port):
        if self.error:
            raise self.error
        self.started.append(port)
        return SimpleNamespace(tunnel=self.url, metrics="http://127.0.0.1:1234/metrics", process=None)

    def terminate(self, port):
        self.terminated.append(port)


class FakeCaptureClient:
    def __init__(self, token):
        self.token = token
        self.calls = []
        self.started_with = None

    async def list_channels(self):
        def channel(kind, channel_id):
            return SimpleNamespace(type=kind, id=channel_id)

        return SimpleNamespace(
            mics=SimpleNamespace(default=channel("mic", "mic-1")),
            displays=SimpleNamespace(default=channel("display", "display-1")),
            system_audio=SimpleNamespace(default=None),
        )

    async def start_capture_session(self, capture_session_id, channels, primary_video_channel_id=None):
        self.started_with = {
            "capture_session_id": capture_session_id,
            "channels": [c.id for c in channels],
            "primary_video_channel_id": primary_video_channel_id,
        }

    async def stop_capture(self):
        self.calls.append("stop_capture")

    async def pause_tracks(self, tracks):
        self.calls.append(("pause_tracks", tracks))

    async def resume_tracks(self, tracks):
        self.calls.append(("resume_tracks", tracks))

    async def shutdown(self):
        self.calls.append("shutdown")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite:///{tmp_path / 'test.db'}",
        RUNTIME_CONFIG_PATH=str(tmp_path / "runtime.json"),
        TUNNEL_ENABLED=False,
        WEBHOOK_URL=None,
        API_KEY=None,
        VIDEODB_API_URL=None,
    )


@pytest.fixture
def videodb_service() -> FakeVideoDBService:
    return FakeVideoDBService()


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def capture_clients() -> list:
    return []


@pytest.fixture
def context(settings, videodb_service, launcher, capture_clients) -> AppContext:
    def factory(token):
        client = FakeCaptureClient(token)
        capture_clients.append(client)
        return client

    ctx = AppContext(
        settings,
        videodb_service=videodb_service,
        tunnel=TunnelManager(settings, launcher=launcher),
        capture_client_factory=factory,
    )
    yield ctx
    ctx.engine.dispose()


@pytest_asyncio.fixture
async def client(settings, context) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""
    app = create_app(settings, context)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    await context.enrichment.drain()


@pytest.fixture
def user(context):
    """A registered user owning the valid API key."""
    return context.users.create("Test User", VALID_API_KEY, "token-123")


@pytest.fixture
def auth_headers(user) -> dict:
    return {"X-Access-Token": user.access_token}


def exported_event(session_id="sess1", video_id="v1", stream_url="s1", player_url="p1") -> dict:
    data = {"stream_url": stream_url, "player_url": player_url}
    if video_id is not None:
        data["exported_video_id"] = video_id
    return {
        "event": "capture_session.exported",
        "capture_session_id": session_id,
        "data": data,
    }
