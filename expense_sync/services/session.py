"""
Session Provider

Supplies the user-scoped session that gates every remote operation.
The sync engine does not care who the user is; it only reacts to a
session becoming active (start syncing) or ending (stop the live feed).
"""

import json
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional, Union
from uuid import uuid4

import structlog

from expense_sync.models.sync import Session


logger = structlog.get_logger(__name__)

SessionListener = Callable[[Optional[Session]], None]


class SignInError(Exception):
    """Could not obtain a session."""
    pass


class SessionProvider(ABC):
    """Source of the current session plus change notifications."""

    @abstractmethod
    async def sign_in_anonymously(self) -> Session:
        """
        Obtain an anonymous session and make it current.

        Raises:
            SignInError: If no session could be obtained
        """

    @abstractmethod
    def current_session(self) -> Optional[Session]:
        """The active session, or None when signed out."""

    @abstractmethod
    def sign_out(self) -> None:
        """End the current session (listeners receive None)."""

    @abstractmethod
    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        """
        Register for session changes.

        Returns:
            A callable that removes the listener
        """


class AnonymousSessionProvider(SessionProvider):
    """
    Anonymous, device-stable sessions.

    The first sign-in generates a user id. When `session_path` is given
    the id is written there, so the device keeps addressing the same
    remote collection after a restart.
    """

    def __init__(
        self,
        session_path: Optional[Union[str, Path]] = None,
        user_id: Optional[str] = None,
    ):
        self._path = Path(session_path) if session_path else None
        self._user_id = user_id
        self._session: Optional[Session] = None
        self._listeners: list[SessionListener] = []
        self._lock = threading.Lock()

    def _load_user_id(self) -> Optional[str]:
        if self._user_id:
            return self._user_id
        if self._path and self._path.exists():
            try:
                data = json.loads(self._path.read_text(encoding="utf-8"))
                return data.get("user_id") or None
            except (OSError, ValueError) as e:
                logger.warning("session_file_unreadable", path=str(self._path), error=str(e))
        return None

    def _store_user_id(self, user_id: str) -> None:
        if not self._path:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps({"user_id": user_id}), encoding="utf-8")
        except OSError as e:
            raise SignInError(f"Could not persist session: {e}") from e

    async def sign_in_anonymously(self) -> Session:
        current = self.current_session()
        if current is not None:
            return current

        user_id = self._load_user_id() or uuid4().hex
        self._store_user_id(user_id)
        self._user_id = user_id
        session = Session(user_id=user_id, is_anonymous=True)

        with self._lock:
            self._session = session
        logger.info("session_signed_in", user_id=user_id)
        self._notify(session)
        return session

    def current_session(self) -> Optional[Session]:
        with self._lock:
            return self._session

    def sign_out(self) -> None:
        with self._lock:
            if self._session is None:
                return
            self._session = None
        logger.info("session_signed_out")
        self._notify(None)

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def _notify(self, session: Optional[Session]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(session)
            except Exception as e:
                logger.error("session_listener_failed", error=str(e))
