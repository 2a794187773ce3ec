"""Key-value stores for resolved locations."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Protocol

from routemap.common.fs import read_json, write_json

_WHITESPACE = re.compile(r"\s+")


def normalise_cache_key(prefix: str, *parts: str) -> str:
    cleaned = [_WHITESPACE.sub("_", part) for part in parts]
    return "_".join([prefix, *cleaned])


class CacheStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryCacheStore:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.entries: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.entries.get(key)

    def set(self, key: str, value: str) -> None:
        self.entries[key] = value

    def __len__(self) -> int:
        return len(self.entries)


class JsonFileCacheStore(MemoryCacheStore):
    """Memory store mirrored to a JSON file so entries outlive the process."""

    def __init__(self, path: Path) -> None:
        self.path = path
        initial: dict[str, str] = {}
        if path.exists():
            try:
                loaded = read_json(path)
            except ValueError:
                loaded = {}
            if isinstance(loaded, dict):
                initial = {str(k): v for k, v in loaded.items() if isinstance(v, str)}
        super().__init__(initial)

    def set(self, key: str, value: str) -> None:
        super().set(key, value)
        write_json(self.path, self.entries)
