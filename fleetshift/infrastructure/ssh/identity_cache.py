"""
Identity Cache

Architectural Intent:
- Maps (host, user, key path) to a single RemoteSession for the whole run so
  authenticated connections are reused across operations
- Key paths are expanded before keying, so "~/.ssh/id" and its absolute
  form collapse into one entry
- Owned by the composition root and injected; not a process-wide global

Concurrency:
- Populated and read from the single orchestration sequence only, so it is
  not locked. Parallelizing nodes would require synchronization here first
"""

from __future__ import annotations
import logging

from fleetshift.infrastructure.ssh.identity import RemoteIdentity, expand_path
from fleetshift.infrastructure.ssh.remote_session import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_KEEPALIVE_INTERVAL,
    RemoteSession,
)

logger = logging.getLogger(__name__)


class IdentityCache:
    def __init__(
        self,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL,
    ) -> None:
        self._connect_timeout = connect_timeout
        self._keepalive_interval = keepalive_interval
        self._sessions: dict[str, RemoteSession] = {}

    @property
    def connect_timeout(self) -> float:
        return self._connect_timeout

    def set_connect_timeout(self, timeout: float) -> None:
        """Applies to sessions created after this call only."""
        self._connect_timeout = timeout

    @staticmethod
    def cache_key(user: str, key_path: str, host: str) -> str:
        return host + user + expand_path(key_path)

    def get_or_create(self, user: str, key_path: str, host: str) -> RemoteSession:
        key = self.cache_key(user, key_path, host)
        session = self._sessions.get(key)
        if session is not None:
            return session

        identity = RemoteIdentity.from_key_file(user, key_path, host)
        session = RemoteSession(
            identity,
            connect_timeout=self._connect_timeout,
            keepalive_interval=self._keepalive_interval,
        )
        self._sessions[key] = session
        return session

    def clear_all(self) -> None:
        """Close every cached connection and scrub its credentials."""
        for key in list(self._sessions):
            session = self._sessions.pop(key)
            try:
                session.destroy()
            except Exception as e:
                logger.warning("Error closing connection to %s: %s", session.host, e)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, key: object) -> bool:
        return key in self._sessions
