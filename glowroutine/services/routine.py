"""
glowroutine/services/routine.py
───────────────────────────────
RoutineService — the single entry point the presentation layer uses.

Composes the step repository, the completion ledger and the product
reconciler for one user scope. It is not meant for concurrent writers:
callers invoke mutations one after another (one UI event loop).

Every mutating method leaves the in-memory state matching what the
store just accepted; store failures propagate as PersistenceError.
"""

import logging
from datetime import date
from typing import Callable, Iterable, Optional, Union

from glowroutine.core.exceptions import PersistenceError
from glowroutine.schemas import (
    CompletionRecord,
    CompletionStatus,
    Progress,
    RoutineStep,
    StepDraft,
    StepUpdate,
    TimeOfDay,
    TodayStep,
)
from glowroutine.services.ledger import CompletionLedger
from glowroutine.services.reconciler import ProductLinkReconciler
from glowroutine.services.repository import REORDER_DEBOUNCE_SECONDS, StepRepository
from glowroutine.services.schedule import as_date, is_active_on_date
from glowroutine.stores.base import Backend

logger = logging.getLogger(__name__)


class RoutineService:
    def __init__(
        self,
        backend: Backend,
        debounce_seconds: float = REORDER_DEBOUNCE_SECONDS,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self.scope = backend.scope
        self.repository = StepRepository(backend.steps, backend.scope, debounce_seconds)
        self.ledger = CompletionLedger(backend.completions, backend.scope)
        self.reconciler = ProductLinkReconciler(backend.products, self.repository)
        self._clock = clock
        self.is_loaded = False

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def reload(self) -> None:
        """Re-read steps and records from the store, replacing in-memory state."""
        await self.repository.load()
        await self.ledger.load()
        self.is_loaded = True
        logger.info(
            "Routine loaded for scope=%s: %d steps, %d records",
            self.scope,
            len(self.repository.ordered()),
            len(self.ledger.records()),
        )

    async def aclose(self) -> None:
        """Teardown: flush any reorder batch still waiting to be written."""
        await self.repository.flush()

    # ── Queries ───────────────────────────────────────────────────────────

    def today(self) -> date:
        return self._clock()

    def _resolve_date(self, on_date: Union[date, str, None]) -> date:
        return self.today() if on_date is None else as_date(on_date)

    @property
    def steps(self) -> list[RoutineStep]:
        return self.repository.ordered()

    @property
    def completions(self) -> list[CompletionRecord]:
        return self.ledger.records()

    def get_today_steps(
        self,
        time_of_day: Optional[TimeOfDay] = None,
        on_date: Union[date, str, None] = None,
    ) -> list[TodayStep]:
        """Steps due on the date (default today), in order, with their status."""
        day = self._resolve_date(on_date)
        result: list[TodayStep] = []
        for step in self.repository.ordered():
            if not step.matches_time(time_of_day) or not is_active_on_date(step, day):
                continue
            record = self.ledger.lookup(step.id, day)
            result.append(
                TodayStep(
                    **step.model_dump(exclude={"schedule"}),
                    schedule=step.schedule,
                    is_completed=record is not None and record.status == CompletionStatus.COMPLETED,
                    is_skipped=record is not None and record.status == CompletionStatus.SKIPPED,
                    product_used=record.product_used if record is not None else None,
                )
            )
        return result

    def get_today_progress(self, on_date: Union[date, str, None] = None) -> Progress:
        steps = self.get_today_steps(on_date=on_date)
        return Progress(completed=sum(1 for s in steps if s.is_completed), total=len(steps))

    # ── Completion ledger ─────────────────────────────────────────────────

    async def toggle_step_completion(
        self,
        step_id: str,
        product_used: Optional[str] = None,
        on_date: Union[date, str, None] = None,
    ) -> Optional[CompletionRecord]:
        self.repository.require(step_id)
        return await self.ledger.toggle_completion(step_id, self._resolve_date(on_date), product_used)

    async def skip_step(
        self, step_id: str, on_date: Union[date, str, None] = None
    ) -> Optional[CompletionRecord]:
        self.repository.require(step_id)
        return await self.ledger.toggle_skip(step_id, self._resolve_date(on_date))

    async def finish_routine(
        self,
        time_of_day: Optional[TimeOfDay] = None,
        on_date: Union[date, str, None] = None,
    ) -> int:
        """Skip every due step not yet actioned; returns how many were skipped."""
        day = self._resolve_date(on_date)
        unactioned = [
            s.id
            for s in self.get_today_steps(time_of_day, day)
            if not s.is_completed and not s.is_skipped
        ]
        return await self.ledger.skip_unactioned(unactioned, day)

    # ── Steps ─────────────────────────────────────────────────────────────

    async def add_step(self, draft: StepDraft) -> RoutineStep:
        step = await self.repository.add(draft)
        await self.reconciler.step_linked(step.product_id)
        return step

    async def update_step(self, step_id: str, patch: StepUpdate) -> RoutineStep:
        previous, updated = await self.repository.update(step_id, patch)
        if "product_id" in patch.changes():
            await self.reconciler.link_changed(previous.product_id, updated.product_id)
        return updated

    async def delete_step(self, step_id: str) -> None:
        """Delete a step, its completion records, and shelve its product if now unused."""
        self.repository.require(step_id)
        await self.ledger.purge_step(step_id)
        try:
            step = await self.repository.delete(step_id)
        except PersistenceError:
            logger.error("Step %s kept after its records were purged", step_id)
            raise
        await self.reconciler.step_unlinked(step.product_id)

    def reorder_steps(self, step_ids: Iterable[str]) -> list[RoutineStep]:
        return self.repository.reorder(step_ids)
