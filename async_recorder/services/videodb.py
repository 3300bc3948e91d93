import logging
import time
from typing import Optional, Dict
import videodb
from videodb import AuthenticationError, InvalidRequestError

logger = logging.getLogger(__name__)

class VideoDBService:
    """Thin wrapper over the VideoDB SDK with a connection cache keyed by API key."""

    def __init__(self, base_url: Optional[str] = None, default_api_key: Optional[str] = None):
        self.base_url = base_url
        self.default_api_key = default_api_key
        self._connections: Dict[str, videodb.Connection] = {}

    def _connect(self, api_key: str) -> videodb.Connection:
        connect_kwargs = {"api_key": api_key}
        if self.base_url:
            connect_kwargs["base_url"] = self.base_url
        return videodb.connect(**connect_kwargs)

    def _get_connection(self, api_key: str = None) -> videodb.Connection:
        """Get or create a VideoDB connection for the given API key."""
        key = api_key or self.default_api_key
        if not key:
            raise ValueError("No API key available")

        if key not in self._connections:
            self._connections[key] = self._connect(key)
        return self._connections[key]

    def verify_api_key(self, api_key: str) -> bool:
        """
        Verify an API key with a fresh connection.

        Returns False only when VideoDB rejects the key; network and server
        errors propagate to the caller.
        """
        try:
            conn = self._connect(api_key)
            conn.get_collection()
        except AuthenticationError:
            logger.warning("SDK Authentication failed for provided key")
            return False
        self._connections[api_key] = conn
        return True

    def create_session_token(self, api_key: str, expires_in: int = 86400) -> Dict:
        """
        Create a client token for the capture client.

        Returns:
            {
                "session_token": "st-xxx",
                "expires_in": 86400,
                "expires_at": 1765267937
            }
        """
        conn = self._get_connection(api_key)
        logger.info(f"Generating client token (expires_in: {expires_in}s)")
        session_token = conn.generate_client_token(expires_in=expires_in)
        if not session_token:
            raise RuntimeError("SDK returned empty token")

        return {
            "session_token": session_token,
            "expires_in": expires_in,
            "expires_at": int(time.time()) + expires_in,
        }

    def create_capture_session(
        self,
        api_key: str,
        end_user_id: str,
        callback_url: str = None,
        metadata: dict = None,
    ) -> Dict:
        """
        Create a capture session in the default collection.

        Returns:
            {
                "session_id": "cap-xxx",
                "collection_id": "c-xxx",
                "end_user_id": "user-1",
                "status": "created",
                "callback_url": "https://.../api/webhook"
            }
        """
        conn = self._get_connection(api_key)
        coll = conn.get_collection()

        logger.info(f"Creating capture session for user: {end_user_id}")
        session = coll.create_capture_session(
            end_user_id=end_user_id,
            callback_url=callback_url,
            metadata=metadata
        )
        return {
            "session_id": session.id,
            "collection_id": session.collection_id,
            "end_user_id": session.end_user_id,
            "status": session.status,
            "callback_url": getattr(session, "callback_url", callback_url),
        }

    def get_video(self, api_key: str, video_id: str):
        """Fetch a video from the default collection, or None if VideoDB has no such video."""
        coll = self._get_connection(api_key).get_collection()
        try:
            return coll.get_video(video_id)
        except InvalidRequestError as e:
            logger.warning(f"Video lookup failed for {video_id}: {e}")
            return None

    def clear_all(self):
        """Drop every cached connection (logout)."""
        self._connections.clear()
