# tests/helpers.py
"""Shared test doubles and builders."""

from datetime import date

from glowroutine.core.exceptions import PersistenceError
from glowroutine.schemas import ALL_DAYS, StepDraft, TimeOfDay, WeeklySchedule
from glowroutine.stores.base import ProductService
from glowroutine.stores.local import LocalCompletionStore, LocalKeyValueStore, LocalStepStore

# 2024-01-01 is a Monday
TODAY = date(2024, 1, 1)


class RecordingProducts(ProductService):
    """Product service double that remembers every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.fail = False

    async def activate(self, product_id: str) -> None:
        self.calls.append(("activate", product_id))
        if self.fail:
            raise RuntimeError("product service down")

    async def deactivate_if_unused(self, product_id: str) -> None:
        self.calls.append(("deactivate", product_id))
        if self.fail:
            raise RuntimeError("product service down")


class FlakyCompletionStore(LocalCompletionStore):
    """Completion store whose writes can be switched to fail."""

    def __init__(self, kv: LocalKeyValueStore) -> None:
        super().__init__(kv)
        self.fail = False
        self.fail_inserts = False

    def _check(self) -> None:
        if self.fail:
            raise PersistenceError("store unreachable")

    async def insert_completion(self, scope, record):
        self._check()
        if self.fail_inserts:
            raise PersistenceError("insert rejected")
        await super().insert_completion(scope, record)

    async def delete_completion(self, scope, step_id, on_date):
        self._check()
        await super().delete_completion(scope, step_id, on_date)

    async def bulk_insert_completions(self, scope, records):
        self._check()
        await super().bulk_insert_completions(scope, records)

    async def delete_completions_for_step(self, scope, step_id):
        self._check()
        await super().delete_completions_for_step(scope, step_id)


class CountingStepStore(LocalStepStore):
    """Step store that records every order batch it is asked to write."""

    def __init__(self, kv: LocalKeyValueStore) -> None:
        super().__init__(kv, seed_defaults=False)
        self.order_batches: list[list[tuple[str, int]]] = []
        self.fail_orders = False

    async def update_orders(self, scope, orders):
        orders = list(orders)
        self.order_batches.append(orders)
        if self.fail_orders:
            raise PersistenceError("store unreachable")
        await super().update_orders(scope, orders)


def make_draft(name: str, time_of_day: TimeOfDay = TimeOfDay.MORNING, **kwargs) -> StepDraft:
    kwargs.setdefault("schedule", WeeklySchedule(days=ALL_DAYS))
    return StepDraft(name=name, time_of_day=time_of_day, **kwargs)
