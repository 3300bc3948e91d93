"""
Recording Enrichment

Runs once per exported recording, in the background:
1. Index spoken words in VideoDB (enables search)
2. Store the transcript as the recording's insights
3. Swap the stream/player URLs for a subtitled stream

Status moves pending -> processing -> ready | failed. Nothing is retried.
"""
import json
import logging
import re
from typing import Optional

from fastapi.concurrency import run_in_threadpool
from videodb import SubtitleStyle, SubtitleAlignment, SubtitleBorderStyle

from async_recorder.db.models import InsightsStatus
from async_recorder.db.store import RecordingStore
from async_recorder.services.videodb import VideoDBService

logger = logging.getLogger(__name__)

# Loom-style: white Roboto on a half-transparent box, bottom center
LOOM_SUBTITLE_STYLE = SubtitleStyle(
    font_name="Roboto",
    font_size=14,
    bold=False,
    primary_colour="&HFFFFFF",
    back_colour="&H80000000",
    outline_colour="&H80000000",
    border_style=SubtitleBorderStyle.opaque_box,
    alignment=SubtitleAlignment.bottom_center,
    margin_v=30,
    outline=2,
    shadow=0
)

_PLAYER_URL_PARAM = re.compile(r"(?<=[?&])url=[^&#]*")


def swap_player_stream(player_url: Optional[str], stream_url: str) -> str:
    """
    Point a player URL at a new stream.

    Only the ``url=`` query parameter is rewritten so the player's other options
    survive. Without such a parameter the stream URL itself is returned.
    """
    if player_url and _PLAYER_URL_PARAM.search(player_url):
        return _PLAYER_URL_PARAM.sub(lambda _: f"url={stream_url}", player_url, count=1)
    return stream_url


class EnrichmentPipeline:
    def __init__(self, recordings: RecordingStore, videodb_service: VideoDBService, subtitle_style=None):
        self.recordings = recordings
        self.videodb_service = videodb_service
        self.subtitle_style = subtitle_style or LOOM_SUBTITLE_STYLE

    async def run(self, recording_id: int, video_id: str, api_key: str) -> None:
        """Enrich one recording. Outcomes are persisted; this never raises."""
        try:
            if not self._still_current(recording_id, video_id):
                return
            self.recordings.update(recording_id, insights_status=InsightsStatus.PROCESSING)
            logger.info(f"[Index BG] Starting indexing for recording {recording_id}")

            video = await run_in_threadpool(self.videodb_service.get_video, api_key, video_id)
            if not video:
                logger.error(f"[Index BG] Video not found: {video_id}")
                if self._still_current(recording_id, video_id):
                    self.recordings.update(recording_id, insights_status=InsightsStatus.FAILED)
                return

            logger.info(f"[Index] Indexing spoken words for video: {video_id}")
            await run_in_threadpool(video.index_spoken_words)

            transcript = await self._fetch_transcript(video, video_id)
            subtitle_url = await self._generate_subtitles(video, video_id)

            # A webhook may have re-finalized the row while we were away
            current = self.recordings.get(recording_id)
            if not current or current.video_id != video_id:
                logger.info(f"[Index BG] Dropping stale result for {video_id} on recording {recording_id}")
                return

            updates = {"insights_status": InsightsStatus.READY}
            if transcript:
                updates["insights"] = json.dumps({"transcript": transcript})
            if subtitle_url:
                updates["stream_url"] = subtitle_url
                updates["player_url"] = swap_player_stream(current.player_url, subtitle_url)

            self.recordings.update(recording_id, **updates)
            logger.info(f"[Index BG] Indexed video {video_id} successfully")

        except Exception as e:
            logger.exception(f"[Index BG] Error processing recording {recording_id}: {e}")
            try:
                if self._still_current(recording_id, video_id):
                    self.recordings.update(recording_id, insights_status=InsightsStatus.FAILED)
            except Exception:
                logger.exception(f"[Index BG] Could not mark recording {recording_id} as failed")

    def _still_current(self, recording_id: int, video_id: str) -> bool:
        """False once the row points at another video (or is gone)."""
        current = self.recordings.get(recording_id)
        if current and current.video_id == video_id:
            return True
        logger.info(f"[Index BG] Recording {recording_id} no longer tracks {video_id}, skipping")
        return False

    async def _fetch_transcript(self, video, video_id: str) -> Optional[str]:
        logger.info(f"[Index] Fetching transcript for video: {video_id}")
        try:
            return await run_in_threadpool(video.get_transcript_text)
        except Exception as e:
            logger.warning(f"[Index] Failed to get transcript: {e}")
            return None

    async def _generate_subtitles(self, video, video_id: str) -> Optional[str]:
        logger.info(f"[Index] Generating subtitles for video: {video_id}")
        try:
            # add_subtitle returns the stream URL with subtitles burned in
            subtitle_url = await run_in_threadpool(video.add_subtitle, style=self.subtitle_style)
        except Exception as e:
            logger.warning(f"[Index] Failed to generate subtitles: {e}")
            return None
        logger.info(f"[Index] Generated subtitles: {subtitle_url}")
        return subtitle_url
