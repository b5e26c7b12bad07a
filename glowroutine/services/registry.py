"""
glowroutine/services/registry.py
────────────────────────────────
One RoutineService per user scope, created and loaded on first use.

Backend selection happens here and nowhere else: a request with a user
id is served from the database; an anonymous request uses the on-device
JSON store under the fixed local identity.

At most MAX_USER_SESSIONS database sessions stay loaded; opening one
more closes the least recently used, flushing its pending reorder.
The local session is never evicted.
"""

import asyncio
import logging
from collections import OrderedDict
from typing import Optional

from sqlalchemy.engine import Engine

from glowroutine.core.config import Settings
from glowroutine.services.routine import RoutineService
from glowroutine.stores.base import Backend
from glowroutine.stores.local import (
    LocalCompletionStore,
    LocalKeyValueStore,
    LocalProductService,
    LocalStepStore,
)
from glowroutine.stores.sql import SqlCompletionStore, SqlProductService, SqlStepStore

logger = logging.getLogger(__name__)


class RoutineRegistry:
    def __init__(
        self,
        settings: Settings,
        engine: Engine,
        local_kv: Optional[LocalKeyValueStore] = None,
    ) -> None:
        self._settings = settings
        self._engine = engine
        self._local_kv = local_kv or LocalKeyValueStore(settings.LOCAL_STORE_PATH)
        # "user:<id>" or "local:<id>", least recently used first
        self._services: OrderedDict[str, RoutineService] = OrderedDict()
        self._lock = asyncio.Lock()

    def backend_for(self, user_id: Optional[str]) -> Backend:
        if user_id:
            return Backend(
                scope=user_id,
                steps=SqlStepStore(self._engine),
                completions=SqlCompletionStore(self._engine),
                products=SqlProductService(self._engine, user_id),
            )
        return Backend(
            scope=self._settings.LOCAL_USER_ID,
            steps=LocalStepStore(self._local_kv, seed_defaults=self._settings.SEED_DEFAULT_ROUTINE),
            completions=LocalCompletionStore(self._local_kv),
            products=LocalProductService(self._local_kv),
        )

    def _key(self, user_id: Optional[str]) -> str:
        return f"user:{user_id}" if user_id else f"local:{self._settings.LOCAL_USER_ID}"

    async def get(self, user_id: Optional[str] = None) -> RoutineService:
        key = self._key(user_id)
        async with self._lock:
            service = self._services.get(key)
            if service is not None:
                self._services.move_to_end(key)
                return service

            service = RoutineService(
                self.backend_for(user_id),
                debounce_seconds=self._settings.reorder_debounce_seconds,
            )
            await service.reload()
            self._services[key] = service
            logger.info(
                "Opened routine session: scope=%s backend=%s",
                key,
                "database" if user_id else "local",
            )
            if user_id:
                await self._evict_idle_users()
            return service

    async def _evict_idle_users(self) -> None:
        """Close the least recently used user sessions beyond MAX_USER_SESSIONS."""
        user_keys = [k for k in self._services if k.startswith("user:")]
        for key in user_keys[: max(0, len(user_keys) - self._settings.MAX_USER_SESSIONS)]:
            service = self._services.pop(key)
            await service.aclose()
            logger.info("Closed idle routine session: scope=%s", key)

    def __contains__(self, user_id: Optional[str]) -> bool:
        return self._key(user_id) in self._services

    async def aclose(self) -> None:
        """Close every session, flushing pending reorder batches."""
        services, self._services = list(self._services.values()), OrderedDict()
        for service in services:
            await service.aclose()
        logger.info("Closed %d routine sessions", len(services))
