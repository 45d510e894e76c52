"""Small JSON backed key/value stores used for persisted state."""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

logger = logging.getLogger(__name__)


class ConfigStore(Protocol):
    """Mutable document that can be flushed to durable storage."""

    def data(self) -> Dict[str, Any]:
        ...

    def write(self) -> None:
        ...


class JsonConfig:
    """A JSON document on disk exposed as a mutable dictionary.

    ``data()`` returns the live dictionary; callers mutate it in place and call
    :meth:`write` to persist it.  Writes go through a temporary file followed by
    :func:`os.replace` so a crash never leaves a half written document behind.
    Missing or unreadable files start out as an empty document.
    """

    def __init__(self, path: Path, default: Optional[Dict[str, Any]] = None) -> None:
        self._path = Path(path)
        self._data = self._load(default or {})

    @property
    def path(self) -> Path:
        return self._path

    def data(self) -> Dict[str, Any]:
        return self._data

    def write(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(self._data, handle, separators=(",", ":"))
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            logger.error("Error writing config %s: %s", self._path, exc)

    def _load(self, default: Dict[str, Any]) -> Dict[str, Any]:
        if not self._path.exists():
            return dict(default)
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                loaded = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Error reading config %s, starting empty: %s", self._path, exc)
            return dict(default)
        if not isinstance(loaded, dict):
            logger.warning("Config %s is not a JSON object, starting empty", self._path)
            return dict(default)
        return loaded


class InMemoryConfig:
    """Non-persistent :class:`ConfigStore`, handy for tests and dry runs."""

    def __init__(self, data: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = data if data is not None else {}
        self.write_count = 0

    def data(self) -> Dict[str, Any]:
        return self._data

    def write(self) -> None:
        self.write_count += 1
