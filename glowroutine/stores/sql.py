"""
glowroutine/stores/sql.py
─────────────────────────
Networked backend on SQLModel. Scope is the authenticated user id and
every statement is filtered by it.

Each call opens a short-lived session; SQLAlchemy errors roll the
session back and surface as PersistenceError. Sessions are blocking,
so every store method runs in the threadpool to keep the event loop
(and the reorder debounce timer) responsive.
"""

import functools
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from typing import Any, Callable, Iterable, Optional

from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError
from sqlalchemy import delete
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from glowroutine.core.exceptions import PersistenceError
from glowroutine.models import CompletedStepRow, Product, RoutineStepRow
from glowroutine.schemas import CompletionRecord, RoutineStep, utcnow
from glowroutine.stores.base import CompletionStore, ProductService, StepStore

logger = logging.getLogger(__name__)


@contextmanager
def session_scope(engine: Engine) -> Iterator[Session]:
    """Yield a session; translate database failures into PersistenceError."""
    with Session(engine) as session:
        try:
            yield session
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Database operation failed: %s", exc)
            raise PersistenceError(f"Database error: {exc.__class__.__name__}") from exc


def _off_loop(func):
    """Turn a blocking store method into a coroutine run in the threadpool."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        return await run_in_threadpool(func, *args, **kwargs)

    return wrapper


def _step_from_row(row: RoutineStepRow) -> RoutineStep:
    try:
        return RoutineStep.from_record(row.model_dump())
    except ValidationError as exc:
        raise PersistenceError(f"Stored routine step is malformed: {exc}") from exc


def _completion_row(scope: str, record: CompletionRecord) -> CompletedStepRow:
    return CompletedStepRow(
        id=record.id,
        user_id=scope,
        step_id=record.step_id,
        status=record.status.value,
        product_used=record.product_used,
        completed_at=record.completed_at,
        date=record.date,
    )


class SqlStepStore(StepStore):
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @_off_loop
    def list_steps(self, scope: str) -> list[RoutineStep]:
        statement = (
            select(RoutineStepRow)
            .where(RoutineStepRow.user_id == scope)
            .order_by(RoutineStepRow.order)  # type: ignore[arg-type]
        )
        with session_scope(self._engine) as session:
            rows = session.exec(statement).all()
            return [_step_from_row(row) for row in rows]

    @_off_loop
    def insert_step(self, scope: str, step: RoutineStep) -> RoutineStep:
        row = RoutineStepRow(**{**step.to_record(), "user_id": scope})
        with session_scope(self._engine) as session:
            session.add(row)
            session.commit()
            session.refresh(row)
            return _step_from_row(row)

    @_off_loop
    def update_step(self, scope: str, step_id: str, fields: dict[str, Any]) -> None:
        with session_scope(self._engine) as session:
            row = session.get(RoutineStepRow, step_id)
            if row is None or row.user_id != scope:
                logger.debug("update_step: %s not found for user %s", step_id, scope)
                return
            for key, value in fields.items():
                setattr(row, key, value)
            session.add(row)
            session.commit()

    @_off_loop
    def delete_step(self, scope: str, step_id: str) -> None:
        statement = delete(RoutineStepRow).where(
            RoutineStepRow.id == step_id, RoutineStepRow.user_id == scope
        )
        with session_scope(self._engine) as session:
            session.execute(statement)
            session.commit()

    @_off_loop
    def update_orders(self, scope: str, orders: Iterable[tuple[str, int]]) -> None:
        new_orders = dict(orders)
        if not new_orders:
            return
        now = utcnow()
        statement = select(RoutineStepRow).where(
            RoutineStepRow.user_id == scope,
            RoutineStepRow.id.in_(list(new_orders)),  # type: ignore[union-attr]
        )
        with session_scope(self._engine) as session:
            for row in session.exec(statement).all():
                row.order = new_orders[row.id]
                row.updated_at = now
                session.add(row)
            session.commit()


class SqlCompletionStore(CompletionStore):
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @_off_loop
    def list_completions(self, scope: str) -> list[CompletionRecord]:
        statement = select(CompletedStepRow).where(CompletedStepRow.user_id == scope)
        with session_scope(self._engine) as session:
            rows = session.exec(statement).all()
            return [CompletionRecord.model_validate(row.model_dump()) for row in rows]

    def _delete_day(self, session: Session, scope: str, step_id: str, on_date: date) -> None:
        session.execute(
            delete(CompletedStepRow).where(
                CompletedStepRow.user_id == scope,
                CompletedStepRow.step_id == step_id,
                CompletedStepRow.date == on_date,
            )
        )

    @_off_loop
    def insert_completion(self, scope: str, record: CompletionRecord) -> None:
        with session_scope(self._engine) as session:
            # Delete-before-insert keeps one record per step and day
            self._delete_day(session, scope, record.step_id, record.date)
            session.add(_completion_row(scope, record))
            session.commit()

    @_off_loop
    def delete_completion(self, scope: str, step_id: str, on_date: date) -> None:
        with session_scope(self._engine) as session:
            self._delete_day(session, scope, step_id, on_date)
            session.commit()

    @_off_loop
    def bulk_insert_completions(self, scope: str, records: list[CompletionRecord]) -> None:
        if not records:
            return
        with session_scope(self._engine) as session:
            session.add_all([_completion_row(scope, record) for record in records])
            session.commit()

    @_off_loop
    def delete_completions_for_step(self, scope: str, step_id: str) -> None:
        statement = delete(CompletedStepRow).where(
            CompletedStepRow.user_id == scope, CompletedStepRow.step_id == step_id
        )
        with session_scope(self._engine) as session:
            session.execute(statement)
            session.commit()


class SqlProductService(ProductService):
    def __init__(self, engine: Engine, scope: str, clock: Callable[[], date] = date.today) -> None:
        self._engine = engine
        self._scope = scope
        self._clock = clock

    def _owned(self, session: Session, product_id: str) -> Optional[Product]:
        product = session.get(Product, product_id)
        if product is None or product.user_id != self._scope:
            logger.debug("Product %s not found for user %s", product_id, self._scope)
            return None
        return product

    @_off_loop
    def activate(self, product_id: str) -> None:
        with session_scope(self._engine) as session:
            product = self._owned(session, product_id)
            if product is None or (product.is_active and product.stopped_at is None):
                return
            product.is_active = True
            product.stopped_at = None
            product.started_at = self._clock()
            product.updated_at = utcnow()
            session.add(product)
            session.commit()
        logger.info("Product %s moved back into use", product_id)

    @_off_loop
    def deactivate_if_unused(self, product_id: str) -> None:
        still_used = select(RoutineStepRow.id).where(
            RoutineStepRow.user_id == self._scope,
            RoutineStepRow.product_id == product_id,
        )
        with session_scope(self._engine) as session:
            if session.exec(still_used).first() is not None:
                return
            product = self._owned(session, product_id)
            if product is None or product.stopped_at is not None:
                return
            product.is_active = False
            product.stopped_at = self._clock()
            product.updated_at = utcnow()
            session.add(product)
            session.commit()
        logger.info("Product %s moved to the shelf", product_id)
