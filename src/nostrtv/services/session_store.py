"""Persistence of remote-signer sessions.

The signer session only needs three operations from its store: ``save``,
``load`` and ``clear``. [FileSessionStore][nostrtv.services.session_store.FileSessionStore]
keeps the session as a JSON document readable only by its owner;
[MemorySessionStore][nostrtv.services.session_store.MemorySessionStore]
keeps it in memory for embedding and tests.

Warning:
    The saved session contains the ephemeral client private key. Anyone who
    can read it can ask the signer to sign as the user until the session is
    revoked in the signer app.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Protocol

from nostrtv.core.logger import Logger
from nostrtv.models.session import SavedSession


class SessionStore(Protocol):
    """Where a [RemoteSignerSession][nostrtv.services.signer.RemoteSignerSession]
    keeps its established session between runs."""

    def save(self, session: SavedSession) -> None: ...

    def load(self) -> SavedSession | None: ...

    def clear(self) -> None: ...


class MemorySessionStore:
    """In-process store; nothing survives the process."""

    def __init__(self, session: SavedSession | None = None) -> None:
        self._session = session
        self.save_count = 0

    def save(self, session: SavedSession) -> None:
        self._session = session
        self.save_count += 1

    def load(self) -> SavedSession | None:
        return self._session

    def clear(self) -> None:
        self._session = None


class FileSessionStore:
    """JSON file store created with ``0600`` permissions.

    A missing, unreadable or malformed file loads as ``None``; the problem is
    logged and the next ``save`` overwrites it.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()
        self._logger = Logger("session_store")

    @property
    def path(self) -> Path:
        return self._path

    def save(self, session: SavedSession) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(session.to_dict(), f, indent=2)
        os.replace(tmp, self._path)
        self._logger.info("session_saved", path=str(self._path))

    def load(self) -> SavedSession | None:
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return SavedSession.from_dict(data)
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            self._logger.warning("session_load_failed", path=str(self._path), error=str(e))
            return None

    def clear(self) -> None:
        try:
            self._path.unlink()
        except FileNotFoundError:
            return
        self._logger.info("session_cleared", path=str(self._path))
