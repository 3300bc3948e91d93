"""
Store access for users and recordings.

Every call opens its own session and commits before returning, so a row written
by the webhook handler is on disk before enrichment is scheduled. None of these
methods await, which lets callers group several of them into one unit of work
on the event loop.
"""
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from async_recorder.db.models import Recording, User, InsightsStatus

RECORDING_FIELDS = {
    "video_id",
    "stream_url",
    "player_url",
    "session_id",
    "duration",
    "insights",
    "insights_status",
}


class RecordingStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get(self, recording_id: int) -> Optional[Recording]:
        with self._session_factory() as db:
            return db.get(Recording, recording_id)

    def get_by_session_id(self, session_id: str) -> Optional[Recording]:
        if session_id is None:
            return None
        with self._session_factory() as db:
            return db.query(Recording).filter(Recording.session_id == session_id).first()

    def get_by_video_id(self, video_id: str) -> Optional[Recording]:
        if video_id is None:
            return None
        with self._session_factory() as db:
            return db.query(Recording).filter(Recording.video_id == video_id).first()

    def create(self, **fields) -> Recording:
        self._check_fields(fields)
        fields.setdefault("insights_status", InsightsStatus.PENDING.value)
        recording = Recording(**fields)
        with self._session_factory() as db:
            db.add(recording)
            db.commit()
            db.refresh(recording)
        return recording

    def update(self, recording_id: int, **fields) -> bool:
        """Set only the given columns. Returns False when the row is gone."""
        self._check_fields(fields)
        if not fields:
            return True
        with self._session_factory() as db:
            updated = (
                db.query(Recording)
                .filter(Recording.id == recording_id)
                .update(fields, synchronize_session=False)
            )
            db.commit()
        return updated > 0

    def list_recent(self, limit: int) -> List[Recording]:
        with self._session_factory() as db:
            return (
                db.query(Recording)
                .order_by(Recording.created_at.desc(), Recording.id.desc())
                .limit(limit)
                .all()
            )

    @staticmethod
    def _check_fields(fields: dict):
        unknown = set(fields) - RECORDING_FIELDS
        if unknown:
            raise ValueError(f"Unknown recording fields: {sorted(unknown)}")
        status = fields.get("insights_status")
        if isinstance(status, InsightsStatus):
            fields["insights_status"] = status.value


class UserStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get_by_access_token(self, access_token: str) -> Optional[User]:
        with self._session_factory() as db:
            return db.query(User).filter(User.access_token == access_token).first()

    def get_by_api_key(self, api_key: str) -> Optional[User]:
        with self._session_factory() as db:
            return db.query(User).filter(User.api_key == api_key).first()

    def latest(self) -> Optional[User]:
        """Most recently registered user."""
        with self._session_factory() as db:
            return db.query(User).order_by(User.id.desc()).first()

    def create(self, name: str, api_key: str, access_token: str) -> User:
        user = User(name=name, api_key=api_key, access_token=access_token)
        with self._session_factory() as db:
            db.add(user)
            db.commit()
            db.refresh(user)
        return user

    def update_name(self, user_id: int, name: str) -> None:
        with self._session_factory() as db:
            db.query(User).filter(User.id == user_id).update({"name": name})
            db.commit()
