"""
glowroutine/services/ledger.py
──────────────────────────────
Per-day completion / skip records, keyed by (step_id, date).

At most one record exists per key. Replacing a record always deletes
the old one before inserting the new one, in memory and in the store.

Every write updates the in-memory view first, then awaits the store;
if the store raises, the previous in-memory state is restored and the
PersistenceError propagates to the caller.
"""

import logging
import uuid
from datetime import date
from typing import Iterable, Optional

from glowroutine.core.exceptions import PersistenceError
from glowroutine.schemas import CompletionRecord, CompletionStatus
from glowroutine.stores.base import CompletionStore

logger = logging.getLogger(__name__)

LedgerKey = tuple[str, date]


class CompletionLedger:
    def __init__(self, store: CompletionStore, scope: str) -> None:
        self._store = store
        self._scope = scope
        self._records: dict[LedgerKey, CompletionRecord] = {}

    # ── Reads ─────────────────────────────────────────────────────────────

    def lookup(self, step_id: str, on_date: date) -> Optional[CompletionRecord]:
        return self._records.get((step_id, on_date))

    def records(self) -> list[CompletionRecord]:
        return list(self._records.values())

    def replace_all(self, records: Iterable[CompletionRecord]) -> None:
        """Swap in a fresh record set; the latest action wins on duplicate keys."""
        fresh: dict[LedgerKey, CompletionRecord] = {}
        for record in sorted(records, key=lambda r: r.completed_at.timestamp()):
            fresh[record.key] = record
        self._records = fresh

    async def load(self) -> None:
        self.replace_all(await self._store.list_completions(self._scope))
        logger.debug("Ledger loaded %d records for scope=%s", len(self._records), self._scope)

    # ── Writes ────────────────────────────────────────────────────────────

    def _new_record(
        self,
        step_id: str,
        on_date: date,
        status: CompletionStatus,
        product_used: Optional[str] = None,
    ) -> CompletionRecord:
        return CompletionRecord(
            id=uuid.uuid4().hex,
            user_id=self._scope,
            step_id=step_id,
            status=status,
            product_used=product_used if status == CompletionStatus.COMPLETED else None,
            date=on_date,
        )

    async def _toggle(
        self,
        step_id: str,
        on_date: date,
        status: CompletionStatus,
        product_used: Optional[str] = None,
    ) -> Optional[CompletionRecord]:
        key = (step_id, on_date)
        existing = self._records.get(key)

        if existing is not None and existing.status == status:
            del self._records[key]
            try:
                await self._store.delete_completion(self._scope, step_id, on_date)
            except PersistenceError:
                self._records[key] = existing
                raise
            logger.info("Cleared %s mark: step=%s date=%s", status.value, step_id, on_date)
            return None

        record = self._new_record(step_id, on_date, status, product_used)
        self._records[key] = record
        try:
            # insert_completion replaces any record already stored for the key
            await self._store.insert_completion(self._scope, record)
        except PersistenceError:
            if existing is None:
                self._records.pop(key, None)
            else:
                self._records[key] = existing
            raise
        logger.info("Marked %s: step=%s date=%s", status.value, step_id, on_date)
        return record

    async def toggle_completion(
        self, step_id: str, on_date: date, product_used: Optional[str] = None
    ) -> Optional[CompletionRecord]:
        """
        Check or un-check a step for a day.

        Returns the new record, or None when an existing completion was
        removed. Applying it twice to an unmarked or completed key
        restores that state; a skip is replaced and not brought back.
        """
        return await self._toggle(step_id, on_date, CompletionStatus.COMPLETED, product_used)

    async def toggle_skip(self, step_id: str, on_date: date) -> Optional[CompletionRecord]:
        """Same as toggle_completion, for skips."""
        return await self._toggle(step_id, on_date, CompletionStatus.SKIPPED)

    async def skip_unactioned(self, step_ids: Iterable[str], on_date: date) -> int:
        """
        Insert a skip for every step in ``step_ids`` that has no record
        for ``on_date``. Existing completions and skips are never touched.
        Returns the number of skips created.
        """
        new_records: list[CompletionRecord] = []
        for step_id in dict.fromkeys(step_ids):
            if (step_id, on_date) not in self._records:
                new_records.append(self._new_record(step_id, on_date, CompletionStatus.SKIPPED))
        if not new_records:
            return 0

        for record in new_records:
            self._records[record.key] = record
        try:
            await self._store.bulk_insert_completions(self._scope, new_records)
        except PersistenceError:
            for record in new_records:
                self._records.pop(record.key, None)
            raise
        logger.info("Skipped %d unactioned steps on %s", len(new_records), on_date)
        return len(new_records)

    async def purge_step(self, step_id: str) -> int:
        """Drop every record of a step (cascade for step deletion)."""
        removed = {k: r for k, r in self._records.items() if r.step_id == step_id}
        for key in removed:
            del self._records[key]
        try:
            await self._store.delete_completions_for_step(self._scope, step_id)
        except PersistenceError:
            self._records.update(removed)
            raise
        return len(removed)
