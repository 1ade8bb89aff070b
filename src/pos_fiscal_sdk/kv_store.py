from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from platformdirs import user_data_dir

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")

JsonValue = Any


class KeyValueStore(Protocol):
    def get(self, key: str) -> JsonValue | None: ...

    def set(self, key: str, value: JsonValue) -> None: ...

    def remove(self, key: str) -> None: ...


def _check_key(key: str) -> str:
    if not _KEY_RE.match(key or ""):
        raise ValueError(f"Invalid store key: {key!r}")
    return key


@dataclass
class JsonFileKeyValueStore:
    """One JSON document per key under the user data directory."""

    app_name: str = "pos-fiscal"
    directory: Path | None = None

    def _base(self) -> Path:
        base = Path(self.directory) if self.directory else Path(user_data_dir(self.app_name, "POSFiscal"))
        base.mkdir(parents=True, exist_ok=True)
        return base

    def _path(self, key: str) -> Path:
        return self._base() / f"{_check_key(key)}.json"

    def get(self, key: str) -> JsonValue | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("kv_store_corrupt_entry", extra={"key": key})
            self.remove(key)
            return None

    def set(self, key: str, value: JsonValue) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(value, indent=2, sort_keys=True), encoding="utf-8")
        try:
            tmp_path.chmod(0o600)
        except OSError:
            pass
        # Readers see either the previous document or the new one, never a partial write.
        os.replace(tmp_path, path)

    def remove(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()


@dataclass
class MemoryKeyValueStore:
    data: dict[str, str] = field(default_factory=dict)

    def get(self, key: str) -> JsonValue | None:
        raw = self.data.get(_check_key(key))
        return None if raw is None else json.loads(raw)

    def set(self, key: str, value: JsonValue) -> None:
        self.data[_check_key(key)] = json.dumps(value, sort_keys=True)

    def remove(self, key: str) -> None:
        self.data.pop(_check_key(key), None)
