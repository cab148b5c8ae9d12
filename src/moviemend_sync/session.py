"""Persisted authentication session for the managed backend."""

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ValidationError

from .constants import SESSION_EXPIRY_BUFFER_SECONDS

logger = logging.getLogger(__name__)


class AuthSession(BaseModel):
    """Current user identity plus the bearer token for backend calls."""

    user_id: str
    access_token: str
    expires_at: Optional[datetime] = None

    def is_expired(self, buffer_seconds: int = SESSION_EXPIRY_BUFFER_SECONDS) -> bool:
        """Check if the session is expired or will expire soon (within buffer)."""
        if self.expires_at is None:
            return False
        now = datetime.now(timezone.utc)
        return now >= self.expires_at - timedelta(seconds=buffer_seconds)


class SessionStore:
    """Stores a session obtained by the app's sign-in flow.

    `MOVIEMEND_USER_ID` / `MOVIEMEND_ACCESS_TOKEN` take precedence over the
    session file when both are set.
    """

    def __init__(self, session_file: Path):
        """Initialize session store with file path."""
        self.session_file = Path(session_file)
        self.data = self._load_session()

    def _load_session(self) -> dict:
        """Load session from file."""
        if self.session_file.exists():
            try:
                with open(self.session_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    return data
                logger.warning(f"Session file {self.session_file} is not an object, ignoring")
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to load session: {e}")
        return {}

    def current(self) -> Optional[AuthSession]:
        """Return the active session, or None if signed out or expired."""
        env_user = os.environ.get("MOVIEMEND_USER_ID")
        env_token = os.environ.get("MOVIEMEND_ACCESS_TOKEN")
        if env_user and env_token:
            return AuthSession(user_id=env_user, access_token=env_token)

        if not self.data.get("access_token") or not self.data.get("user_id"):
            return None

        try:
            session = AuthSession(**self.data)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed session file: {e}")
            return None
        if session.is_expired():
            logger.warning("Session is expired or expiring soon; sign in again")
            return None
        return session

    def save(self, user_id: str, access_token: str, expires_in: Optional[int] = None) -> AuthSession:
        """Persist a session with expiry tracking."""
        expires_at = None
        if expires_in:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)

        session = AuthSession(user_id=user_id, access_token=access_token, expires_at=expires_at)
        self.data = session.model_dump(mode="json")

        self.session_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.session_file, "w", encoding="utf-8") as f:
            json.dump(self.data, f, indent=4)
        logger.info(f"Session saved to {self.session_file}")
        return session

    def clear(self) -> None:
        """Forget the stored session."""
        self.data = {}
        if self.session_file.exists():
            self.session_file.unlink()
        logger.info("Session cleared")
