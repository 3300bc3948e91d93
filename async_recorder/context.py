import logging
from typing import Callable, Optional

from fastapi import Request

from async_recorder.core.config import Settings
from async_recorder.core.tunnel import TunnelManager
from async_recorder.db.database import create_session_factory
from async_recorder.db.store import RecordingStore, UserStore
from async_recorder.services.correlator import SessionCorrelator
from async_recorder.services.insights import EnrichmentPipeline
from async_recorder.services.recorder import RecorderController, default_capture_client_factory
from async_recorder.services.tasks import EnrichmentQueue
from async_recorder.services.videodb import VideoDBService

logger = logging.getLogger(__name__)


class AppContext:
    """Everything a request handler needs, created at startup and torn down at shutdown."""

    def __init__(
        self,
        settings: Settings,
        videodb_service: Optional[VideoDBService] = None,
        tunnel: Optional[TunnelManager] = None,
        capture_client_factory: Callable = default_capture_client_factory,
    ):
        self.settings = settings
        self.engine, self.session_factory = create_session_factory(settings.DATABASE_URL)
        self.recordings = RecordingStore(self.session_factory)
        self.users = UserStore(self.session_factory)

        self.videodb_service = videodb_service or VideoDBService(
            base_url=settings.VIDEODB_API_URL,
            default_api_key=settings.API_KEY,
        )
        self.tunnel = tunnel or TunnelManager(settings)

        self.pipeline = EnrichmentPipeline(self.recordings, self.videodb_service)
        self.enrichment = EnrichmentQueue(self.pipeline)
        self.correlator = SessionCorrelator(self.recordings, self.users, self.enrichment)
        self.recorder = RecorderController(
            settings,
            self.users,
            self.recordings,
            self.videodb_service,
            self.tunnel,
            capture_client_factory=capture_client_factory,
        )

    def startup(self):
        if not self.settings.TUNNEL_ENABLED and not self.settings.WEBHOOK_URL:
            logger.info("Tunnel disabled. Webhooks will only reach this machine locally.")
            return
        result = self.tunnel.start(self.settings.API_PORT)
        if result:
            logger.info(f"Tunnel ready: {result}")
        else:
            logger.warning("Tunnel failed to start. Webhooks may not work.")

    async def shutdown(self):
        if self.settings.DRAIN_ENRICHMENT_ON_SHUTDOWN:
            await self.enrichment.drain()
        self.tunnel.stop()
        self.engine.dispose()


def get_context(request: Request) -> AppContext:
    return request.app.state.context
