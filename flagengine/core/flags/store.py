"""Feature Flag Store.

Provides flag storage backends:
- In-memory store
- File-based store (JSON)

Stores persist whatever they are given; definitions are validated by the
manager before they are saved.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from flagengine.core.errors import FlagStoreError
from flagengine.core.flags.models import FeatureFlag, utcnow

logger = logging.getLogger(__name__)


class FlagStore(ABC):
    """Abstract base class for flag storage, keyed by flag key."""

    @abstractmethod
    async def get(self, key: str) -> Optional[FeatureFlag]:
        """Get a flag by key."""
        pass

    @abstractmethod
    async def list_flags(self) -> List[FeatureFlag]:
        """Get all flags."""
        pass

    @abstractmethod
    async def save(self, flag: FeatureFlag) -> None:
        """Insert or replace a flag."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a flag. Returns False if it did not exist."""
        pass

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None


class InMemoryFlagStore(FlagStore):
    """In-memory flag storage."""

    def __init__(self, flags: Optional[List[FeatureFlag]] = None):
        self._flags: Dict[str, FeatureFlag] = {f.key: f for f in flags or []}
        self._lock: Optional[asyncio.Lock] = None

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def get(self, key: str) -> Optional[FeatureFlag]:
        async with self._get_lock():
            return self._flags.get(key)

    async def list_flags(self) -> List[FeatureFlag]:
        async with self._get_lock():
            return list(self._flags.values())

    async def save(self, flag: FeatureFlag) -> None:
        async with self._get_lock():
            self._flags[flag.key] = flag

    async def delete(self, key: str) -> bool:
        async with self._get_lock():
            return self._flags.pop(key, None) is not None


class FileFlagStore(FlagStore):
    """JSON file flag storage.

    The file is re-read whenever its modification time changes, so edits made
    by another process are picked up on the next registry refresh.
    """

    def __init__(self, file_path: str):
        self.file_path = Path(file_path)
        self._flags: Dict[str, FeatureFlag] = {}
        self._loaded_mtime: Optional[int] = None
        self._lock: Optional[asyncio.Lock] = None

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def _ensure_loaded(self) -> None:
        """Load flags from file if it changed since the last load."""
        if not self.file_path.exists():
            if self._loaded_mtime is not None:
                self._flags = {}
                self._loaded_mtime = None
            return

        try:
            mtime = self.file_path.stat().st_mtime_ns
            if mtime == self._loaded_mtime:
                return
            data = json.loads(self.file_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise FlagStoreError(f"Failed to read flags from {self.file_path}: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get("flags", []), list):
            raise FlagStoreError(f"Unexpected flag file layout in {self.file_path}")

        flags: Dict[str, FeatureFlag] = {}
        for record in data.get("flags", []):
            if not isinstance(record, dict):
                logger.error(f"Skipping non-object flag record in {self.file_path}: {record!r}")
                continue
            try:
                flag = FeatureFlag.from_dict(record)
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Skipping malformed flag record in {self.file_path}: {e}")
                continue
            flags[flag.key] = flag

        self._flags = flags
        self._loaded_mtime = mtime

    def _save_to_file(self) -> None:
        data = {
            "flags": [flag.to_dict() for flag in self._flags.values()],
            "updated_at": utcnow().isoformat(),
        }
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.file_path.with_suffix(self.file_path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
            tmp_path.replace(self.file_path)
            self._loaded_mtime = self.file_path.stat().st_mtime_ns
        except OSError as e:
            raise FlagStoreError(f"Failed to write flags to {self.file_path}: {e}") from e

    async def get(self, key: str) -> Optional[FeatureFlag]:
        async with self._get_lock():
            self._ensure_loaded()
            return self._flags.get(key)

    async def list_flags(self) -> List[FeatureFlag]:
        async with self._get_lock():
            self._ensure_loaded()
            return list(self._flags.values())

    async def save(self, flag: FeatureFlag) -> None:
        async with self._get_lock():
            self._ensure_loaded()
            self._flags[flag.key] = flag
            self._save_to_file()

    async def delete(self, key: str) -> bool:
        async with self._get_lock():
            self._ensure_loaded()
            if key not in self._flags:
                return False
            del self._flags[key]
            self._save_to_file()
            return True
