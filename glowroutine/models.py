"""
glowroutine/models.py
─────────────────────
SQLModel table definitions for the networked backend.

Each class that carries  table=True  maps to a database table.
Steps are stored flat: one nullable column per schedule field, with
schedule_type saying which of them are meaningful.
"""

import uuid
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from glowroutine.schemas import utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


class RoutineStepRow(SQLModel, table=True):
    """A user's scheduled routine step."""

    __tablename__ = "routine_steps"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=64)
    user_id: str = Field(index=True, max_length=128)

    name: str = Field(max_length=200)
    product_name: Optional[str] = Field(default=None, max_length=256)
    category: str = Field(default="other", max_length=32)      # cleanser | toner | serum …
    notes: Optional[str] = Field(default=None)

    time_of_day: str = Field(default="morning", max_length=16)  # morning | evening | both
    order: int = Field(default=0)

    # Weak link to the products table; no FK so a deleted product never blocks a step
    product_id: Optional[str] = Field(default=None, index=True, max_length=64)

    # Scheduling: weekly | cycle | interval
    schedule_type: str = Field(default="weekly", max_length=16)
    days: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))
    cycle_length: Optional[int] = Field(default=None)
    cycle_days: Optional[List[int]] = Field(default=None, sa_column=Column(JSON))
    cycle_start_date: Optional[date] = Field(default=None)
    interval_days: Optional[int] = Field(default=None)
    interval_start_date: Optional[date] = Field(default=None)

    # Audit timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CompletedStepRow(SQLModel, table=True):
    """
    One completion or skip of a step on a calendar date.
    The unique constraint backs up the delete-before-insert rule in the ledger.
    """

    __tablename__ = "completed_steps"
    __table_args__ = (UniqueConstraint("user_id", "step_id", "date", name="uq_completed_steps_day"),)

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=64)
    user_id: str = Field(index=True, max_length=128)
    step_id: str = Field(index=True, max_length=64)

    status: str = Field(default="completed", max_length=16)     # completed | skipped
    product_used: Optional[str] = Field(default=None, max_length=256)

    completed_at: datetime = Field(default_factory=utcnow)
    date: date


class Product(SQLModel, table=True):
    """
    A product on the user's shelf. Only the activation columns are
    managed by the routine engine; the rest belongs to the catalogue.
    """

    __tablename__ = "products"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=64)
    user_id: str = Field(index=True, max_length=128)

    name: str = Field(max_length=256)
    brand: Optional[str] = Field(default=None, max_length=128)
    step_category: str = Field(default="other", max_length=32)

    is_active: bool = Field(default=True)
    started_at: Optional[date] = Field(default=None)
    stopped_at: Optional[date] = Field(default=None)   # None = still in use

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
