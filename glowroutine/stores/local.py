"""
glowroutine/stores/local.py
───────────────────────────
On-device backend: a single JSON document holding one list per key,
the way the mobile client keeps its routine in a key-value store.

• Scope is the fixed local identity, so records are not filtered by user.
• path=None keeps everything in memory (used by tests and previews).
• Records written by older clients are migrated on read: missing
  schedule_type → weekly, missing completion status → completed.
• The first read of a store that has never held steps seeds the
  default routine template.
"""

import json
import logging
import os
import uuid
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

from pydantic import ValidationError

from glowroutine.constants import (
    DEFAULT_ROUTINE_TEMPLATE,
    STORAGE_KEY_COMPLETED_STEPS,
    STORAGE_KEY_PRODUCTS,
    STORAGE_KEY_ROUTINE_STEPS,
)
from glowroutine.core.exceptions import PersistenceError
from glowroutine.schemas import (
    CompletionRecord,
    CompletionStatus,
    RoutineStep,
    WeeklySchedule,
)
from glowroutine.stores.base import CompletionStore, ProductService, StepStore

logger = logging.getLogger(__name__)


def _encode(value: Any) -> Any:
    """json.dumps fallback for the non-JSON types found in records."""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Cannot store value of type {type(value).__name__}")


class LocalKeyValueStore:
    """A tiny persistent dict of JSON values, loaded lazily and written through."""

    def __init__(self, path: Optional[Union[str, Path]] = None) -> None:
        self._path = Path(path) if path else None
        self._data: Optional[dict[str, Any]] = None

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data
        if self._path is not None and self._path.exists():
            try:
                self._data = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                raise PersistenceError(f"Local routine data is unreadable: {exc}") from exc
            logger.debug("Loaded local store from %s", self._path)
        else:
            self._data = {}
        return self._data

    def _flush(self) -> None:
        if self._path is None:
            return
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(self._data, indent=2), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise PersistenceError(f"Could not save local routine data: {exc}") from exc

    async def get_item(self, key: str) -> Optional[Any]:
        value = self._load().get(key)
        # Hand out copies so callers cannot mutate the cache in place
        return json.loads(json.dumps(value)) if value is not None else None

    async def set_item(self, key: str, value: Any) -> None:
        data = self._load()
        previous = data.get(key)
        data[key] = json.loads(json.dumps(value, default=_encode))
        try:
            self._flush()
        except PersistenceError:
            if previous is None:
                data.pop(key, None)
            else:
                data[key] = previous
            raise


class LocalStepStore(StepStore):
    def __init__(self, kv: LocalKeyValueStore, seed_defaults: bool = True) -> None:
        self._kv = kv
        self._seed_defaults = seed_defaults

    async def _records(self) -> list[dict[str, Any]]:
        return await self._kv.get_item(STORAGE_KEY_ROUTINE_STEPS) or []

    async def _seed(self, scope: str) -> list[RoutineStep]:
        steps = [
            RoutineStep(
                id=uuid.uuid4().hex,
                user_id=scope,
                name=template["name"],
                category=template["category"],
                time_of_day=template["time_of_day"],
                order=index,
                schedule=WeeklySchedule(days=template["days"]),
            )
            for index, template in enumerate(DEFAULT_ROUTINE_TEMPLATE)
        ]
        await self._kv.set_item(STORAGE_KEY_ROUTINE_STEPS, [s.to_record() for s in steps])
        logger.info("Seeded local routine with %d default steps", len(steps))
        return steps

    async def list_steps(self, scope: str) -> list[RoutineStep]:
        raw = await self._kv.get_item(STORAGE_KEY_ROUTINE_STEPS)
        if raw is None:
            return await self._seed(scope) if self._seed_defaults else []
        try:
            steps = [RoutineStep.from_record(record) for record in raw]
        except ValidationError as exc:
            raise PersistenceError(f"Stored routine step is malformed: {exc}") from exc
        return sorted(steps, key=lambda s: s.order)

    async def insert_step(self, scope: str, step: RoutineStep) -> RoutineStep:
        records = await self._records()
        records.append(step.to_record())
        await self._kv.set_item(STORAGE_KEY_ROUTINE_STEPS, records)
        return step

    async def update_step(self, scope: str, step_id: str, fields: dict[str, Any]) -> None:
        records = await self._records()
        for record in records:
            if record.get("id") == step_id:
                record.update(fields)
                break
        else:
            logger.debug("update_step: %s not in local store", step_id)
            return
        await self._kv.set_item(STORAGE_KEY_ROUTINE_STEPS, records)

    async def delete_step(self, scope: str, step_id: str) -> None:
        records = await self._records()
        await self._kv.set_item(
            STORAGE_KEY_ROUTINE_STEPS, [r for r in records if r.get("id") != step_id]
        )

    async def update_orders(self, scope: str, orders: Iterable[tuple[str, int]]) -> None:
        new_orders = dict(orders)
        now = datetime.now().astimezone()
        records = await self._records()
        for record in records:
            if record.get("id") in new_orders:
                record["order"] = new_orders[record["id"]]
                record["updated_at"] = now
        await self._kv.set_item(STORAGE_KEY_ROUTINE_STEPS, records)


class LocalCompletionStore(CompletionStore):
    def __init__(self, kv: LocalKeyValueStore) -> None:
        self._kv = kv

    async def _records(self) -> list[dict[str, Any]]:
        return await self._kv.get_item(STORAGE_KEY_COMPLETED_STEPS) or []

    async def list_completions(self, scope: str) -> list[CompletionRecord]:
        try:
            return [
                CompletionRecord.model_validate(
                    {**record, "status": record.get("status") or CompletionStatus.COMPLETED}
                )
                for record in await self._records()
            ]
        except ValidationError as exc:
            raise PersistenceError(f"Stored completion record is malformed: {exc}") from exc

    async def insert_completion(self, scope: str, record: CompletionRecord) -> None:
        day = record.date.isoformat()
        records = [
            r for r in await self._records()
            if not (r.get("step_id") == record.step_id and r.get("date") == day)
        ]
        records.append(record.model_dump())
        await self._kv.set_item(STORAGE_KEY_COMPLETED_STEPS, records)

    async def delete_completion(self, scope: str, step_id: str, on_date: date) -> None:
        day = on_date.isoformat()
        records = await self._records()
        await self._kv.set_item(
            STORAGE_KEY_COMPLETED_STEPS,
            [r for r in records if not (r.get("step_id") == step_id and r.get("date") == day)],
        )

    async def bulk_insert_completions(self, scope: str, records: list[CompletionRecord]) -> None:
        if not records:
            return
        stored = await self._records()
        stored.extend(record.model_dump() for record in records)
        await self._kv.set_item(STORAGE_KEY_COMPLETED_STEPS, stored)

    async def delete_completions_for_step(self, scope: str, step_id: str) -> None:
        records = await self._records()
        await self._kv.set_item(
            STORAGE_KEY_COMPLETED_STEPS, [r for r in records if r.get("step_id") != step_id]
        )


class LocalProductService(ProductService):
    """Shelf state for products kept in the same local document."""

    def __init__(self, kv: LocalKeyValueStore, clock: Callable[[], date] = date.today) -> None:
        self._kv = kv
        self._clock = clock

    async def _update(self, product_id: str, changes: dict[str, Any]) -> None:
        products = await self._kv.get_item(STORAGE_KEY_PRODUCTS) or []
        for product in products:
            if product.get("id") == product_id:
                product.update(changes)
                product["updated_at"] = datetime.now().astimezone()
                break
        else:
            logger.debug("Product %s not in local store", product_id)
            return
        await self._kv.set_item(STORAGE_KEY_PRODUCTS, products)

    async def _get(self, product_id: str) -> Optional[dict[str, Any]]:
        products = await self._kv.get_item(STORAGE_KEY_PRODUCTS) or []
        return next((p for p in products if p.get("id") == product_id), None)

    async def activate(self, product_id: str) -> None:
        product = await self._get(product_id)
        if product is None or (product.get("is_active", True) and not product.get("stopped_at")):
            return
        await self._update(
            product_id,
            {"is_active": True, "stopped_at": None, "started_at": self._clock()},
        )
        logger.info("Product %s moved back into use", product_id)

    async def deactivate_if_unused(self, product_id: str) -> None:
        steps = await self._kv.get_item(STORAGE_KEY_ROUTINE_STEPS) or []
        if any(s.get("product_id") == product_id for s in steps):
            return
        product = await self._get(product_id)
        if product is None or product.get("stopped_at"):
            return
        await self._update(product_id, {"is_active": False, "stopped_at": self._clock()})
        logger.info("Product %s moved to the shelf", product_id)
