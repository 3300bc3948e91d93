import asyncio
import logging
from typing import Dict, Tuple

from async_recorder.services.insights import EnrichmentPipeline

logger = logging.getLogger(__name__)


class EnrichmentQueue:
    """
    Schedules enrichment runs as detached asyncio tasks.

    Keyed by recording id: while a run is in flight for a recording, further
    submits for it collapse into one follow-up run with the latest arguments,
    started when the current run finishes.
    """

    def __init__(self, pipeline: EnrichmentPipeline):
        self.pipeline = pipeline
        self._running: Dict[int, asyncio.Task] = {}
        self._follow_ups: Dict[int, Tuple[str, str]] = {}

    def submit(self, recording_id: int, video_id: str, api_key: str) -> bool:
        """Schedule enrichment without waiting for it. Returns True if a run started now."""
        if recording_id in self._running:
            self._follow_ups[recording_id] = (video_id, api_key)
            logger.info(f"[Index BG] Recording {recording_id} busy, queued a follow-up run")
            return False

        self._start(recording_id, video_id, api_key)
        return True

    def in_flight(self, recording_id: int) -> bool:
        return recording_id in self._running

    async def drain(self):
        """Wait until no run is in flight or queued."""
        while self._running:
            await asyncio.gather(*list(self._running.values()), return_exceptions=True)

    def _start(self, recording_id: int, video_id: str, api_key: str):
        task = asyncio.create_task(
            self.pipeline.run(recording_id, video_id, api_key),
            name=f"enrich-recording-{recording_id}",
        )
        self._running[recording_id] = task
        task.add_done_callback(lambda _: self._finished(recording_id))

    def _finished(self, recording_id: int):
        self._running.pop(recording_id, None)
        follow_up = self._follow_ups.pop(recording_id, None)
        if follow_up:
            self._start(recording_id, *follow_up)
