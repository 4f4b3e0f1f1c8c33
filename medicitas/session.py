"""Session/identity context shared by every component.

There is exactly one active identity per client. It is passed explicitly to
the components that need it (gateway, services, view-models). Writes happen
only through ``establish`` (login, registration, bootstrap) and ``clear``
(logout, forced logout on 401).
"""
import logging
from typing import Callable, List, Optional

from medicitas.models import Identity, Role
from medicitas.storage import SessionStorage

logger = logging.getLogger(__name__)

Listener = Callable[[Optional[Identity]], None]


class SessionContext:
    """Authenticated identity plus bearer token, persisted across restarts."""

    def __init__(self, storage: Optional[SessionStorage] = None):
        self.storage = storage or SessionStorage()
        self._token: Optional[str] = None
        self._identity: Optional[Identity] = None
        self._listeners: List[Listener] = []

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def role(self) -> Optional[Role]:
        return self._identity.role if self._identity else None

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None and self._identity is not None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener(identity) on every change. Returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def establish(self, token: str, identity: Identity) -> None:
        """Install a new authenticated session and persist it."""
        self._token = token
        self._identity = identity
        self.storage.save(token, identity)
        logger.info("Session established for user %s (role %s)", identity.user_id, identity.role.name)
        self._notify()

    def restore(self) -> Optional[str]:
        """
        Load a stored token so the bootstrap call can be authorized.

        The identity stays unset until the backend confirms it.

        Returns:
            The stored token, or None
        """
        stored = self.storage.load()
        if stored is None:
            return None
        self._token = stored.token
        return stored.token

    def adopt(self, token: str) -> None:
        """Use a token handed over by an external login until /auth/me confirms it."""
        self._token = token
        self._identity = None

    def clear(self) -> None:
        """Drop the session in memory and in storage."""
        had_session = self._token is not None
        self._token = None
        self._identity = None
        self.storage.clear()
        if had_session:
            logger.info("Session cleared")
        self._notify()

    def _notify(self):
        for listener in list(self._listeners):
            listener(self._identity)
