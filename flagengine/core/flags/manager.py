"""Feature Flag Manager.

Provides high-level flag management:
- Validated create / update / toggle / delete through a store
- Registry refresh after every mutation
- Evaluation entry points
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Dict, List, Mapping, Optional

from flagengine.core.config import get_settings
from flagengine.core.errors import (
    FlagExistsError,
    FlagNotFoundError,
    FlagValidationError,
)
from flagengine.core.flags.evaluator import FlagEvaluator
from flagengine.core.flags.models import (
    EvaluationContext,
    EvaluationResult,
    FeatureFlag,
    utcnow,
)
from flagengine.core.flags.registry import FlagRegistry, RegistryRefresher, RegistrySnapshot
from flagengine.core.flags.schema import to_wire_names, validate_flag_definition
from flagengine.core.flags.store import FileFlagStore, FlagStore, InMemoryFlagStore
from flagengine.utils.metrics import flag_store_operations_total

logger = logging.getLogger(__name__)


class FlagManager:
    """Flag administration plus evaluation over a refreshed registry."""

    def __init__(
        self,
        store: Optional[FlagStore] = None,
        registry: Optional[FlagRegistry] = None,
        refresh_interval: float = 0.0,
    ):
        self.store = store or InMemoryFlagStore()
        self.registry = registry or FlagRegistry()
        self.evaluator = FlagEvaluator(self.registry)
        self.refresh_interval = refresh_interval
        self.refresher = RegistryRefresher(self.store, self.registry, interval=refresh_interval)
        self._lock: Optional[asyncio.Lock] = None

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def start(self) -> None:
        """Load the initial snapshot and start polling if configured."""
        await self.refresher.refresh_now()
        if self.refresh_interval > 0:
            await self.refresher.start()

    async def stop(self) -> None:
        await self.refresher.stop()

    async def refresh(self) -> RegistrySnapshot:
        """Reload the registry from the store, propagating store errors."""
        flags = await self.store.list_flags()
        return self.registry.refresh(flags)

    # Administration

    async def list_flags(self) -> List[FeatureFlag]:
        return await self.store.list_flags()

    async def get_flag(self, key: str) -> FeatureFlag:
        flag = await self.store.get(key)
        if flag is None:
            raise FlagNotFoundError(key)
        return flag

    async def create_flag(self, data: Mapping[str, Any], created_by: str = "") -> FeatureFlag:
        """Validate and persist a new flag.

        Raises:
            FlagValidationError: if the definition is malformed.
            FlagExistsError: if the key is taken.
        """
        payload = to_wire_names(data)
        if created_by:
            payload["createdBy"] = created_by
        flag = validate_flag_definition(payload)

        async with self._get_lock():
            if await self.store.exists(flag.key):
                flag_store_operations_total.labels(operation="create", status="conflict").inc()
                raise FlagExistsError(flag.key)
            await self.store.save(flag)
            await self.refresh()

        flag_store_operations_total.labels(operation="create", status="success").inc()
        logger.info(f"Created feature flag: {flag.key}")
        return flag

    async def update_flag(self, key: str, changes: Mapping[str, Any]) -> FeatureFlag:
        """Apply a full or partial update. The key cannot change."""
        changes = to_wire_names(changes)
        if "key" in changes and changes["key"] != key:
            raise FlagValidationError(
                "Flag key is immutable",
                details=[{"loc": ["key"], "msg": "key cannot be changed", "type": "immutable"}],
            )

        async with self._get_lock():
            current = await self.get_flag(key)
            merged = {**current.to_dict(), **changes}
            flag = validate_flag_definition(merged, created_at=current.created_at)
            await self.store.save(flag)
            await self.refresh()

        flag_store_operations_total.labels(operation="update", status="success").inc()
        logger.info(f"Updated feature flag: {key}")
        return flag

    async def toggle_flag(self, key: str) -> FeatureFlag:
        """Flip the kill switch of a flag."""
        async with self._get_lock():
            current = await self.get_flag(key)
            flag = dataclasses.replace(
                current,
                is_active=not current.is_active,
                updated_at=utcnow(),
            )
            await self.store.save(flag)
            await self.refresh()

        flag_store_operations_total.labels(operation="toggle", status="success").inc()
        logger.info(f"Feature flag '{key}' {'enabled' if flag.is_active else 'disabled'}")
        return flag

    async def delete_flag(self, key: str) -> None:
        async with self._get_lock():
            if not await self.store.delete(key):
                raise FlagNotFoundError(key)
            await self.refresh()

        flag_store_operations_total.labels(operation="delete", status="success").inc()
        logger.info(f"Deleted feature flag: {key}")

    # Evaluation

    def evaluate(
        self,
        key: str,
        context: Optional[EvaluationContext] = None,
    ) -> EvaluationResult:
        return self.evaluator.evaluate(key, context)

    def is_enabled(self, key: str, context: Optional[EvaluationContext] = None) -> bool:
        return self.evaluator.is_enabled(key, context)

    def get_value(
        self,
        key: str,
        context: Optional[EvaluationContext] = None,
        default: Any = None,
    ) -> Any:
        return self.evaluator.get_value(key, context, default)

    def evaluate_all(
        self,
        context: Optional[EvaluationContext] = None,
    ) -> Dict[str, EvaluationResult]:
        return self.evaluator.evaluate_all(context)


_manager: Optional[FlagManager] = None


def build_flag_store(backend: str, path: str) -> FlagStore:
    if backend == "memory":
        return InMemoryFlagStore()
    if backend == "file":
        return FileFlagStore(path)
    raise ValueError(f"Unknown flag store backend: {backend}")


def get_flag_manager() -> FlagManager:
    """Get the process-wide flag manager, built from settings on first use."""
    global _manager
    if _manager is None:
        settings = get_settings()
        _manager = FlagManager(
            store=build_flag_store(settings.FLAG_STORE_BACKEND, settings.FLAG_STORE_PATH),
            refresh_interval=settings.FLAG_REFRESH_INTERVAL_SECONDS,
        )
    return _manager


def reset_flag_manager() -> None:
    global _manager
    _manager = None
