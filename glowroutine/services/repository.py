"""
glowroutine/services/repository.py
──────────────────────────────────
Ordered, in-memory collection of routine steps backed by a StepStore.

Ordering
────────
Steps iterate ascending by ``order``; ties keep insertion order
(sorted() is stable and new steps are appended).

Reordering
──────────
reorder() rewrites every ``order`` in memory immediately. Writing the
positions to the store is debounced: each call cancels any batch still
waiting out its quiet period and schedules a new one, so a burst of
drags produces a single update_orders() call with the final order.
Batch writes run one at a time. flush() writes a waiting batch right
away and is called on teardown so nothing is lost.
"""

import asyncio
import logging
import uuid
from typing import Iterable, Optional

from glowroutine.core.exceptions import PersistenceError, StepNotFoundError
from glowroutine.schemas import (
    SCHEDULE_COLUMNS,
    RoutineStep,
    StepDraft,
    StepUpdate,
    TimeOfDay,
    utcnow,
)
from glowroutine.stores.base import StepStore

logger = logging.getLogger(__name__)

REORDER_DEBOUNCE_SECONDS = 0.5


class StepRepository:
    def __init__(
        self,
        store: StepStore,
        scope: str,
        debounce_seconds: float = REORDER_DEBOUNCE_SECONDS,
    ) -> None:
        self._store = store
        self._scope = scope
        self._debounce = debounce_seconds
        self._steps: list[RoutineStep] = []

        self._pending_reorder: Optional[asyncio.Task] = None
        self._order_tasks: set[asyncio.Task] = set()
        self._order_lock = asyncio.Lock()

    # ── Reads ─────────────────────────────────────────────────────────────

    def ordered(self) -> list[RoutineStep]:
        return sorted(self._steps, key=lambda s: s.order)

    def get(self, step_id: str) -> Optional[RoutineStep]:
        return next((s for s in self._steps if s.id == step_id), None)

    def require(self, step_id: str) -> RoutineStep:
        step = self.get(step_id)
        if step is None:
            raise StepNotFoundError(step_id)
        return step

    def references(self, product_id: str) -> bool:
        """True while any step still links to ``product_id``."""
        return any(s.product_id == product_id for s in self._steps)

    @property
    def has_pending_reorder(self) -> bool:
        return self._pending_reorder is not None

    def replace_all(self, steps: Iterable[RoutineStep]) -> None:
        self._steps = list(steps)

    async def load(self) -> None:
        self.replace_all(await self._store.list_steps(self._scope))
        logger.debug("Loaded %d steps for scope=%s", len(self._steps), self._scope)

    # ── Writes ────────────────────────────────────────────────────────────

    def _next_order(self, time_of_day: TimeOfDay) -> int:
        if time_of_day == TimeOfDay.BOTH:
            return len(self._steps)
        return sum(1 for s in self._steps if s.time_of_day == time_of_day)

    async def add(self, draft: StepDraft) -> RoutineStep:
        now = utcnow()
        step = RoutineStep(
            id=uuid.uuid4().hex,
            user_id=self._scope,
            order=draft.order if draft.order is not None else self._next_order(draft.time_of_day),
            created_at=now,
            updated_at=now,
            **draft.model_dump(exclude={"order", "schedule"}),
            schedule=draft.schedule,
        )
        stored = await self._store.insert_step(self._scope, step)
        self._steps.append(stored)
        logger.info("Added step %s (%s, order=%d)", stored.id, stored.name, stored.order)
        return stored

    async def update(self, step_id: str, patch: StepUpdate) -> tuple[RoutineStep, RoutineStep]:
        """
        Merge the fields present in ``patch`` into the step.
        Returns ``(previous, updated)``.
        """
        previous = self.require(step_id)
        changes = patch.changes()
        updated = previous.model_copy(update={**changes, "updated_at": utcnow()})

        columns = {name for name in changes if name != "schedule"}
        if "schedule" in changes:
            columns.update(SCHEDULE_COLUMNS)
            columns.add("schedule_type")
        columns.add("updated_at")
        record = updated.to_record()
        fields = {name: record[name] for name in columns}

        index = self._steps.index(previous)
        self._steps[index] = updated
        try:
            await self._store.update_step(self._scope, step_id, fields)
        except PersistenceError:
            self._steps[index] = previous
            raise
        logger.info("Updated step %s: %s", step_id, ", ".join(sorted(changes)) or "touch")
        return previous, updated

    async def delete(self, step_id: str) -> RoutineStep:
        step = self.require(step_id)
        index = self._steps.index(step)
        del self._steps[index]
        try:
            await self._store.delete_step(self._scope, step_id)
        except PersistenceError:
            self._steps.insert(index, step)
            raise
        logger.info("Deleted step %s (%s)", step_id, step.name)
        return step

    # ── Reordering ────────────────────────────────────────────────────────

    def reorder(self, step_ids: Iterable[str]) -> list[RoutineStep]:
        """
        Give the listed steps positions 0..n-1 in the given sequence.
        Steps not listed follow in their previous relative order; unknown
        ids are ignored. Must be called from a running event loop.
        """
        by_id = {s.id: s for s in self._steps}
        listed = [by_id[i] for i in dict.fromkeys(step_ids) if i in by_id]
        listed_ids = {s.id for s in listed}
        rest = [s for s in self.ordered() if s.id not in listed_ids]

        now = utcnow()
        self._steps = [
            step.model_copy(update={"order": position, "updated_at": now})
            for position, step in enumerate(listed + rest)
        ]
        self._schedule_order_write()
        return list(self._steps)

    def _cancel_pending_reorder(self) -> bool:
        task, self._pending_reorder = self._pending_reorder, None
        if task is not None and not task.done():
            task.cancel()
            return True
        return False

    def _schedule_order_write(self) -> None:
        self._cancel_pending_reorder()
        task = asyncio.get_running_loop().create_task(self._write_orders_later())
        self._pending_reorder = task
        self._order_tasks.add(task)
        task.add_done_callback(self._order_tasks.discard)

    async def _write_orders_later(self) -> None:
        await asyncio.sleep(self._debounce)
        # Quiet period is over; later reorders queue behind this write instead of cancelling it
        self._pending_reorder = None
        await self._write_orders()

    async def _write_orders(self) -> None:
        async with self._order_lock:
            orders = [(s.id, s.order) for s in self._steps]
            try:
                await self._store.update_orders(self._scope, orders)
            except PersistenceError:
                logger.exception("Failed to save step order for scope=%s", self._scope)
                return
            logger.debug("Saved order of %d steps for scope=%s", len(orders), self._scope)

    async def flush(self) -> None:
        """Write a waiting reorder batch now and wait for in-flight batches."""
        if self._cancel_pending_reorder():
            await self._write_orders()
        if self._order_tasks:
            await asyncio.gather(*list(self._order_tasks), return_exceptions=True)
