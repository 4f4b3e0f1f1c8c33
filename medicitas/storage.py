"""Durable client storage for the authenticated session.

Only the bearer token and the minimal user profile are persisted, as a
small JSON file. Nothing else is stored locally.
"""
import json
import logging
import os
from pathlib import Path
from typing import NamedTuple, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from medicitas import config
from medicitas.models import Identity

logger = logging.getLogger(__name__)


class StoredSession(NamedTuple):
    token: str
    identity: Optional[Identity]


class SessionStorage:
    """Reads and writes the session file."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        """
        Args:
            path: Session file location. Defaults to config.SESSION_FILE.
        """
        self.path = Path(path) if path is not None else config.SESSION_FILE

    def save(self, token: str, identity: Optional[Identity]) -> None:
        """Persist token and profile, readable by the current user only."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "token": token,
            "user": identity.model_dump(mode="json") if identity else None,
        }
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False)
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, self.path)

    def load(self) -> Optional[StoredSession]:
        """
        Load the stored session.

        Returns:
            StoredSession, or None if nothing usable is stored. A corrupt
            file is removed.
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            token = data["token"]
            user = data.get("user")
            identity = Identity.model_validate(user) if user else None
        except (OSError, ValueError, KeyError, TypeError, PydanticValidationError):
            logger.warning("Discarding unreadable session file %s", self.path)
            self.clear()
            return None

        if not token:
            return None
        return StoredSession(token=token, identity=identity)

    def clear(self) -> None:
        """Remove the stored session, if any."""
        self.path.unlink(missing_ok=True)
