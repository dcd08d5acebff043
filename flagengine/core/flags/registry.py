"""Flag registry.

Holds the current set of flag definitions as one immutable snapshot that is
replaced wholesale on refresh. Readers grab the snapshot reference and never
see a partially updated set; only writers are serialized.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Optional

from flagengine.core.errors import FlagValidationError
from flagengine.core.flags.models import FeatureFlag, utcnow
from flagengine.utils.metrics import flag_registry_flags, flag_registry_refresh_total

if TYPE_CHECKING:
    from flagengine.core.flags.store import FlagStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistrySnapshot:
    """Immutable view of all flag definitions."""
    flags: Mapping[str, FeatureFlag] = field(default_factory=lambda: MappingProxyType({}))
    version: int = 0
    refreshed_at: datetime = field(default_factory=utcnow)

    def get(self, key: str) -> Optional[FeatureFlag]:
        return self.flags.get(key)

    def __len__(self) -> int:
        return len(self.flags)

    def __contains__(self, key: object) -> bool:
        return key in self.flags


class FlagRegistry:
    """In-memory, atomically swappable set of flag definitions."""

    def __init__(self, flags: Optional[Iterable[FeatureFlag]] = None):
        self._snapshot = RegistrySnapshot()
        self._write_lock = threading.Lock()
        if flags is not None:
            self.refresh(flags)

    @property
    def snapshot(self) -> RegistrySnapshot:
        return self._snapshot

    def get(self, key: str) -> Optional[FeatureFlag]:
        """Look up a flag by key. No I/O."""
        return self._snapshot.get(key)

    def list_flags(self) -> List[FeatureFlag]:
        return list(self._snapshot.flags.values())

    def __len__(self) -> int:
        return len(self._snapshot)

    def __contains__(self, key: object) -> bool:
        return key in self._snapshot

    def refresh(self, flags: Iterable[FeatureFlag]) -> RegistrySnapshot:
        """Replace the snapshot with ``flags``.

        Raises:
            FlagValidationError: if ``flags`` repeats a key. The previous
                snapshot stays installed.
        """
        table: Dict[str, FeatureFlag] = {}
        duplicates = set()
        for flag in flags:
            if flag.key in table:
                duplicates.add(flag.key)
            table[flag.key] = flag

        if duplicates:
            flag_registry_refresh_total.labels(status="rejected").inc()
            raise FlagValidationError(
                "Duplicate flag keys in registry refresh",
                details=[{"key": key} for key in sorted(duplicates)],
            )

        with self._write_lock:
            snapshot = RegistrySnapshot(
                flags=MappingProxyType(table),
                version=self._snapshot.version + 1,
            )
            self._snapshot = snapshot

        flag_registry_refresh_total.labels(status="success").inc()
        flag_registry_flags.set(len(table))
        logger.info(f"Flag registry refreshed: {len(table)} flags (version {snapshot.version})")
        return snapshot


class RegistryRefresher:
    """Keeps a registry in sync with a flag store by polling."""

    def __init__(
        self,
        store: "FlagStore",
        registry: FlagRegistry,
        interval: float = 30.0,
    ):
        self.store = store
        self.registry = registry
        self.interval = interval
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def refresh_now(self) -> bool:
        """Reload the registry from the store.

        Returns:
            False if the store could not be read or its contents were
            rejected; the previous snapshot keeps serving in that case.
        """
        try:
            flags = await self.store.list_flags()
            self.registry.refresh(flags)
        except FlagValidationError as e:
            logger.error(f"Flag registry refresh rejected: {e}")
            return False
        except Exception as e:
            flag_registry_refresh_total.labels(status="store_error").inc()
            logger.error(f"Flag registry refresh failed: {e}", exc_info=True)
            return False
        return True

    async def start(self) -> None:
        """Start the polling loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._refresh_loop())
        logger.info(f"Flag registry refresher started (interval={self.interval}s)")

    async def stop(self) -> None:
        """Stop the polling loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Flag registry refresher stopped")

    async def _refresh_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)
            await self.refresh_now()
