"""Hierarchical JSON key-value store addressed by slash paths.

Paths look like ``users/{uid}/scenarios/{id}``. The whole tree lives in one
JSON file (or only in memory when no path is given); every write rewrites the
file. Last writer wins.
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Optional

from models.base import new_id, utcnow

logger = logging.getLogger(__name__)


class _ServerTimestamp:
    """Sentinel replaced with epoch milliseconds at write time."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


class StoreError(Exception):
    """Store failure carrying a backend error code."""

    PERMISSION_DENIED = "PERMISSION_DENIED"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNAVAILABLE = "UNAVAILABLE"

    def __init__(self, code: str, detail: str = "") -> None:
        self.code = code
        self.detail = detail
        super().__init__(f"{code}: {detail}" if detail else code)


def _split(path: str) -> list[str]:
    parts = [p for p in path.strip("/").split("/") if p]
    for p in parts:
        if p in (".", ".."):
            raise ValueError(f"Invalid path segment in {path!r}")
    return parts


def _resolve_timestamps(value: Any, now_ms: int) -> Any:
    """Replaces SERVER_TIMESTAMP sentinels recursively; drops None values."""
    if value is SERVER_TIMESTAMP:
        return now_ms
    if isinstance(value, dict):
        return {
            str(k): _resolve_timestamps(v, now_ms)
            for k, v in value.items() if v is not None
        }
    if isinstance(value, (list, tuple)):
        return [_resolve_timestamps(v, now_ms) for v in value]
    return value


class TreeStore:
    """Point-read, subtree-read, push, set, update and remove on a JSON tree."""

    def __init__(self, path: Optional[Path] = None, read_only: bool = False) -> None:
        self.path = Path(path) if path is not None else None
        self.read_only = read_only
        self._root: dict = {}
        self._loaded = False

    # ─── Internal ───

    def _load(self) -> dict:
        if self._loaded:
            return self._root
        if self.path is not None and self.path.exists():
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    text = f.read()
                self._root = json.loads(text) if text.strip() else {}
            except OSError as e:
                raise StoreError(StoreError.UNAVAILABLE, str(e)) from e
            except json.JSONDecodeError as e:
                raise StoreError(StoreError.UNAVAILABLE, f"corrupt store file: {e}") from e
        self._loaded = True
        return self._root

    def _flush(self) -> None:
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(self._root, f, ensure_ascii=False, indent=2)
            tmp.replace(self.path)
        except OSError as e:
            raise StoreError(StoreError.UNAVAILABLE, str(e)) from e

    def _check_writable(self, path: str) -> None:
        if self.read_only:
            raise StoreError(StoreError.PERMISSION_DENIED, f"write to {path}")

    def _parent(self, parts: list[str], create: bool) -> Optional[dict]:
        node = self._load()
        for p in parts[:-1]:
            child = node.get(p)
            if not isinstance(child, dict):
                if not create:
                    return None
                child = {}
                node[p] = child
            node = child
        return node

    @staticmethod
    def _now_ms() -> int:
        return int(utcnow().timestamp() * 1000)

    # ─── Reads ───

    def get(self, path: str) -> Any:
        """Value at path (deep copy) or None."""
        node: Any = self._load()
        for p in _split(path):
            if not isinstance(node, dict) or p not in node:
                return None
            node = node[p]
        return copy.deepcopy(node)

    def exists(self, path: str) -> bool:
        return self.get(path) is not None

    # ─── Writes ───

    def set(self, path: str, value: Any) -> None:
        """Overwrites the value at path; None removes it."""
        self._check_writable(path)
        parts = _split(path)
        if not parts:
            raise ValueError("Cannot overwrite the store root")
        if value is None:
            self.remove(path)
            return
        parent = self._parent(parts, create=True)
        parent[parts[-1]] = _resolve_timestamps(value, self._now_ms())
        self._flush()
        logger.debug(f"set {path}")

    def push(self, path: str, value: Any) -> str:
        """Writes value under a freshly generated child key; returns the key."""
        key = new_id()
        self.set(f"{path.rstrip('/')}/{key}", value)
        return key

    def update(self, path: str, fields: dict) -> None:
        """Shallow merge: each top-level field is replaced, others kept."""
        self._check_writable(path)
        parts = _split(path)
        node = self._parent(parts + ["_"], create=True)
        now = self._now_ms()
        for key, value in fields.items():
            if value is None:
                node.pop(key, None)
            else:
                node[key] = _resolve_timestamps(value, now)
        self._flush()
        logger.debug(f"update {path}: {sorted(fields)}")

    def remove(self, path: str) -> None:
        self._check_writable(path)
        parts = _split(path)
        if not parts:
            raise ValueError("Cannot remove the store root")
        parent = self._parent(parts, create=False)
        if parent is not None and parts[-1] in parent:
            del parent[parts[-1]]
            self._flush()
            logger.debug(f"remove {path}")
