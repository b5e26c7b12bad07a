"""
glowroutine/stores/base.py
──────────────────────────
Persistence contract for the routine engine.

The services only ever talk to these interfaces. Which concrete backend
sits behind them (on-device JSON or the networked database) is chosen
once per user session in services/registry.py.

Every method is a coroutine and raises PersistenceError when the
backend cannot complete the operation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable

from glowroutine.schemas import CompletionRecord, RoutineStep


class StepStore(ABC):
    @abstractmethod
    async def list_steps(self, scope: str) -> list[RoutineStep]:
        """Return every step owned by ``scope``, ascending by order."""

    @abstractmethod
    async def insert_step(self, scope: str, step: RoutineStep) -> RoutineStep:
        """Persist a new step and return it as stored."""

    @abstractmethod
    async def update_step(self, scope: str, step_id: str, fields: dict[str, Any]) -> None:
        """Write ``fields`` (flat record keys) onto an existing step."""

    @abstractmethod
    async def delete_step(self, scope: str, step_id: str) -> None:
        ...

    @abstractmethod
    async def update_orders(self, scope: str, orders: Iterable[tuple[str, int]]) -> None:
        """Batch-write ``(step_id, order)`` pairs."""


class CompletionStore(ABC):
    @abstractmethod
    async def list_completions(self, scope: str) -> list[CompletionRecord]:
        ...

    @abstractmethod
    async def insert_completion(self, scope: str, record: CompletionRecord) -> None:
        """Store ``record``, replacing any record for the same step and date in one write."""

    @abstractmethod
    async def delete_completion(self, scope: str, step_id: str, on_date: date) -> None:
        ...

    @abstractmethod
    async def bulk_insert_completions(self, scope: str, records: list[CompletionRecord]) -> None:
        ...

    @abstractmethod
    async def delete_completions_for_step(self, scope: str, step_id: str) -> None:
        """Remove every record of ``step_id``; used when the step is deleted."""


class ProductService(ABC):
    """The slice of the product shelf the routine engine is allowed to touch."""

    @abstractmethod
    async def activate(self, product_id: str) -> None:
        """Mark the product as in use. Re-activating is a no-op."""

    @abstractmethod
    async def deactivate_if_unused(self, product_id: str) -> None:
        """Move the product to the shelf unless a step still references it."""


@dataclass(frozen=True)
class Backend:
    """The store triple bound to one user scope."""

    scope: str
    steps: StepStore
    completions: CompletionStore
    products: ProductService
