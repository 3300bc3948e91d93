from enum import Enum
from sqlalchemy import Column, Integer, String, Text, DateTime
from async_recorder.db.database import Base
from datetime import datetime


class InsightsStatus(str, Enum):
    PENDING = "pending"        # created or reset by a webhook
    PROCESSING = "processing"  # enrichment started
    READY = "ready"
    FAILED = "failed"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String)
    api_key = Column(String) # VideoDB API key, stored as given
    access_token = Column(String, unique=True, index=True) # Local UUID session key

class Recording(Base):
    __tablename__ = "recordings"

    id = Column(Integer, primary_key=True, index=True)
    video_id = Column(String, index=True)
    stream_url = Column(String)
    player_url = Column(String)
    session_id = Column(String, index=True)  # capture session the webhook refers to
    duration = Column(Integer)
    created_at = Column(DateTime, default=datetime.utcnow)
    insights = Column(Text, nullable=True)  # JSON blob, e.g. {"transcript": ...}
    insights_status = Column(String, default=InsightsStatus.PENDING.value)

    def to_summary(self) -> dict:
        """Row shape used by the history listing."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "stream_url": self.stream_url,
            "player_url": self.player_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "duration": self.duration,
            "insights_status": self.insights_status,
            "insights": self.insights,
        }
