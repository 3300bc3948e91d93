"""
Maps `capture_session.exported` webhooks onto local Recording rows.

A capture session is created before recording starts, but VideoDB only assigns
the exported video id when the export finishes, so a row is matched first by
session id and then by video id.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from async_recorder.db.models import InsightsStatus
from async_recorder.db.store import RecordingStore, UserStore
from async_recorder.services.tasks import EnrichmentQueue

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    IGNORED = "ignored"      # no video id in the event
    UPDATED = "updated"      # session already tracked
    DUPLICATE = "duplicate"  # video already tracked under another session
    CREATED = "created"


@dataclass
class CorrelationResult:
    outcome: Outcome
    recording_id: Optional[int] = None
    enrichment_scheduled: bool = False


class SessionCorrelator:
    def __init__(self, recordings: RecordingStore, users: UserStore, enrichment: EnrichmentQueue):
        self.recordings = recordings
        self.users = users
        self.enrichment = enrichment

    def handle_export_event(
        self,
        session_id: Optional[str],
        video_id: Optional[str],
        stream_url: Optional[str],
        player_url: Optional[str],
    ) -> CorrelationResult:
        # Synchronous on purpose: no other handler may run between lookup and insert.
        if not video_id:
            logger.warning(f"[Webhook] No video_id in exported event (session: {session_id})")
            return CorrelationResult(Outcome.IGNORED)

        recording = self.recordings.get_by_session_id(session_id)
        if recording:
            self.recordings.update(
                recording.id,
                video_id=video_id,
                stream_url=stream_url,
                player_url=player_url,
                insights_status=InsightsStatus.PENDING,
            )
            outcome = Outcome.UPDATED
            logger.info(f"[Webhook] Updated recording: {video_id}")
        else:
            existing = self.recordings.get_by_video_id(video_id)
            if existing:
                logger.info(f"[Webhook] Recording already exists: {existing.video_id}")
                return CorrelationResult(Outcome.DUPLICATE, recording_id=existing.id)

            self.recordings.create(
                video_id=video_id,
                stream_url=stream_url,
                player_url=player_url,
                session_id=session_id,
                insights_status=InsightsStatus.PENDING,
            )
            outcome = Outcome.CREATED
            logger.info(f"[Webhook] Created recording: {video_id}")

        recording = self.recordings.get_by_video_id(video_id)
        result = CorrelationResult(outcome, recording_id=recording.id)

        # Events carry no user identity; the latest registration owns the key
        user = self.users.latest()
        if user and user.api_key:
            self.enrichment.submit(recording.id, video_id, user.api_key)
            result.enrichment_scheduled = True
            logger.info(f"[Webhook] Scheduled indexing for recording: {recording.id}")
        else:
            logger.info(f"[Webhook] No registered user, skipping indexing for: {recording.id}")

        return result
