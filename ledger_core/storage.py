"""Persistence adapters storing the ledger as a single serialized blob."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, Optional

from .exceptions import PersistenceError

KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{1,100}$")


def _check_key(key: str) -> str:
    if not isinstance(key, str) or not KEY_PATTERN.fullmatch(key) or key in {".", ".."}:
        raise PersistenceError(f"Invalid storage key {key!r}")
    return key


class JSONStorage:
    """Simple file-based key-value storage with crash-safe writes."""

    def __init__(self, base_path: Path) -> None:
        self._base_path = Path(base_path)
        try:
            self._base_path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Unable to create data directory {self._base_path}") from exc

    def load(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as handle:
                return handle.read()
        except (OSError, UnicodeDecodeError) as exc:
            raise PersistenceError(f"Unable to read from {path}") from exc

    def save(self, key: str, payload: str) -> None:
        path = self._path_for(key)
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            with temp_path.open("w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
            # Use replace for atomic move on POSIX; ensures crash-safe persistence.
            temp_path.replace(path)
        except OSError as exc:
            raise PersistenceError(f"Unable to write to {path}") from exc

    def _path_for(self, key: str) -> Path:
        return self._base_path / f"{_check_key(key)}.json"

    @property
    def base_path(self) -> Path:
        return self._base_path


class MemoryStorage:
    """In-process storage with the same contract as :class:`JSONStorage`."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._blobs: Dict[str, str] = dict(initial or {})

    def load(self, key: str) -> Optional[str]:
        return self._blobs.get(_check_key(key))

    def save(self, key: str, payload: str) -> None:
        self._blobs[_check_key(key)] = payload
