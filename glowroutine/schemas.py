"""
glowroutine/schemas.py
──────────────────────
Pydantic v2 domain models and request / response schemas (DTOs).

Kept separate from the SQLModel table models so that the routine engine
and the API contract can evolve independently of the persistence layer.
Both backends store steps as flat records; RoutineStep.from_record() and
RoutineStep.to_record() are the only places that know the flat shape.
"""

import logging
from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Any, FrozenSet, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Return the current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


class DayOfWeek(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"


# Indexed by date.weekday() (Monday == 0)
WEEKDAYS: List[DayOfWeek] = list(DayOfWeek)
ALL_DAYS: FrozenSet[DayOfWeek] = frozenset(DayOfWeek)


class TimeOfDay(str, Enum):
    MORNING = "morning"
    EVENING = "evening"
    BOTH = "both"


class StepCategory(str, Enum):
    CLEANSER = "cleanser"
    TONER = "toner"
    SERUM = "serum"
    MOISTURIZER = "moisturizer"
    SUNSCREEN = "sunscreen"
    EXFOLIANT = "exfoliant"
    MASK = "mask"
    EYE_CREAM = "eye_cream"
    LIP_CARE = "lip_care"
    TREATMENT = "treatment"
    OTHER = "other"


class CompletionStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"


# ─── Schedule descriptors ───────────────────────────────────────────────────


class WeeklySchedule(BaseModel):
    """Active on the named days of the week."""

    model_config = ConfigDict(frozen=True)

    schedule_type: Literal["weekly"] = "weekly"
    days: FrozenSet[DayOfWeek] = frozenset()


class CycleSchedule(BaseModel):
    """Repeating N-day rota; ``cycle_days`` are 1-indexed positions."""

    model_config = ConfigDict(frozen=True)

    schedule_type: Literal["cycle"] = "cycle"
    cycle_length: Optional[int] = None
    cycle_days: FrozenSet[int] = frozenset()
    cycle_start_date: Optional[date] = None


class IntervalSchedule(BaseModel):
    """Every ``interval_days`` days, starting on the anchor date."""

    model_config = ConfigDict(frozen=True)

    schedule_type: Literal["interval"] = "interval"
    interval_days: Optional[int] = None
    interval_start_date: Optional[date] = None


Schedule = Annotated[
    Union[WeeklySchedule, CycleSchedule, IntervalSchedule],
    Field(discriminator="schedule_type"),
]

_SCHEDULE_ADAPTER: TypeAdapter = TypeAdapter(Schedule)

SCHEDULE_TYPES = {"weekly", "cycle", "interval"}

SCHEDULE_COLUMNS = (
    "days",
    "cycle_length",
    "cycle_days",
    "cycle_start_date",
    "interval_days",
    "interval_start_date",
)


def schedule_problem(schedule: Union[WeeklySchedule, CycleSchedule, IntervalSchedule]) -> Optional[str]:
    """
    Return a description of what makes ``schedule`` unusable, or None.

    Only used to reject new input. Stored schedules are never validated
    this way; the predicate treats them as inactive instead.
    """
    if isinstance(schedule, CycleSchedule):
        if schedule.cycle_length is None or schedule.cycle_length < 2:
            return "cycle_length must be at least 2."
        if not schedule.cycle_days:
            return "cycle_days must not be empty."
        if any(d < 1 or d > schedule.cycle_length for d in schedule.cycle_days):
            return f"cycle_days must lie within 1..{schedule.cycle_length}."
        if schedule.cycle_start_date is None:
            return "cycle_start_date is required."
    elif isinstance(schedule, IntervalSchedule):
        if schedule.interval_days is None or schedule.interval_days < 1:
            return "interval_days must be at least 1."
        if schedule.interval_start_date is None:
            return "interval_start_date is required."
    return None


# ─── Routine steps ──────────────────────────────────────────────────────────


class RoutineStep(BaseModel):
    """A scheduled routine action owned by one user scope."""

    id: str
    user_id: str
    name: str
    product_name: Optional[str] = None
    category: StepCategory = StepCategory.OTHER
    notes: Optional[str] = None
    time_of_day: TimeOfDay = TimeOfDay.MORNING
    order: int = 0
    product_id: Optional[str] = None
    schedule: Schedule = Field(default_factory=WeeklySchedule)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def matches_time(self, time_of_day: Optional[TimeOfDay]) -> bool:
        """A step tagged ``both`` shows up in morning and evening queries."""
        if time_of_day is None:
            return True
        return self.time_of_day == time_of_day or self.time_of_day == TimeOfDay.BOTH

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "RoutineStep":
        """
        Build a step from a flat stored record.

        Records written before schedule types existed carry no
        ``schedule_type``; they (and any unrecognised type) are read as
        weekly, using whatever ``days`` were stored. A schedule whose
        values cannot be parsed becomes a weekly schedule with no days,
        so the step is kept but never due.
        """
        schedule_type = record.get("schedule_type")
        if schedule_type not in SCHEDULE_TYPES:
            schedule_type = "weekly"

        if schedule_type == "weekly":
            schedule: dict[str, Any] = {"days": record.get("days") or []}
        elif schedule_type == "cycle":
            schedule = {
                "cycle_length": record.get("cycle_length"),
                "cycle_days": record.get("cycle_days") or [],
                "cycle_start_date": record.get("cycle_start_date"),
            }
        else:
            schedule = {
                "interval_days": record.get("interval_days"),
                "interval_start_date": record.get("interval_start_date"),
            }
        schedule["schedule_type"] = schedule_type

        try:
            parsed = _SCHEDULE_ADAPTER.validate_python(schedule)
        except ValidationError as exc:
            logger.warning(
                "Step %s has an unreadable %s schedule; treating it as inactive: %s",
                record.get("id"),
                schedule_type,
                exc.errors(include_url=False),
            )
            parsed = WeeklySchedule()

        fields = {
            k: v
            for k, v in record.items()
            if k != "schedule_type" and k not in SCHEDULE_COLUMNS and v is not None
        }
        return cls.model_validate({**fields, "schedule": parsed})

    def to_record(self) -> dict[str, Any]:
        """Flatten into the stored shape; columns of other schedule types are None."""
        record = self.model_dump(exclude={"schedule"})
        record.update({column: None for column in SCHEDULE_COLUMNS})
        record["category"] = self.category.value
        record["time_of_day"] = self.time_of_day.value

        schedule = self.schedule
        record["schedule_type"] = schedule.schedule_type
        if isinstance(schedule, WeeklySchedule):
            record["days"] = [d.value for d in WEEKDAYS if d in schedule.days]
        elif isinstance(schedule, CycleSchedule):
            record["cycle_length"] = schedule.cycle_length
            record["cycle_days"] = sorted(schedule.cycle_days)
            record["cycle_start_date"] = schedule.cycle_start_date
        else:
            record["interval_days"] = schedule.interval_days
            record["interval_start_date"] = schedule.interval_start_date
        return record


class TodayStep(RoutineStep):
    """A step annotated with its completion state for one date."""

    is_completed: bool = False
    is_skipped: bool = False
    product_used: Optional[str] = None


class StepDraft(BaseModel):
    """Request body for creating a routine step."""

    name: str = Field(min_length=1, max_length=200, examples=["Vitamin C Serum"])
    product_name: Optional[str] = Field(default=None, max_length=256)
    category: StepCategory = StepCategory.OTHER
    notes: Optional[str] = None
    time_of_day: TimeOfDay = TimeOfDay.MORNING
    order: Optional[int] = Field(
        default=None,
        ge=0,
        description="Explicit position; appended to its time-of-day group when omitted.",
    )
    product_id: Optional[str] = None
    schedule: Schedule = Field(default_factory=lambda: WeeklySchedule(days=ALL_DAYS))

    @model_validator(mode="after")
    def schedule_must_be_complete(self) -> "StepDraft":
        problem = schedule_problem(self.schedule)
        if problem:
            raise ValueError(problem)
        return self


class StepUpdate(BaseModel):
    """
    Partial update. Only fields present in the request are applied;
    an explicit ``null`` for ``product_id`` unlinks the product.
    A new ``schedule`` replaces the old one wholesale.
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    product_name: Optional[str] = Field(default=None, max_length=256)
    category: Optional[StepCategory] = None
    notes: Optional[str] = None
    time_of_day: Optional[TimeOfDay] = None
    order: Optional[int] = Field(default=None, ge=0)
    product_id: Optional[str] = None
    schedule: Optional[Schedule] = None

    @model_validator(mode="after")
    def schedule_must_be_complete(self) -> "StepUpdate":
        if self.schedule is not None:
            problem = schedule_problem(self.schedule)
            if problem:
                raise ValueError(problem)
        return self

    def changes(self) -> dict[str, Any]:
        """Fields explicitly provided by the caller, as model objects."""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if getattr(self, name) is not None or name in _CLEARABLE_FIELDS
        }


# Step fields an update may explicitly set back to null
_CLEARABLE_FIELDS = {"product_name", "notes", "product_id"}


# ─── Completion ledger ──────────────────────────────────────────────────────


class CompletionRecord(BaseModel):
    """The fact that a step was completed or skipped on a calendar date."""

    id: str
    user_id: str
    step_id: str
    status: CompletionStatus = CompletionStatus.COMPLETED
    product_used: Optional[str] = None
    completed_at: datetime = Field(default_factory=utcnow)
    date: date

    @property
    def key(self) -> tuple[str, date]:
        return (self.step_id, self.date)


class Progress(BaseModel):
    completed: int
    total: int


# ─── Request / response bodies ──────────────────────────────────────────────


class ReorderRequest(BaseModel):
    step_ids: List[str] = Field(description="Step ids in their new display order.")


# A field named ``date`` with a default would shadow the ``date`` type in
# the class body, so these bodies use ``on_date`` with a wire alias.


class ToggleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_used: Optional[str] = Field(default=None, max_length=256)
    on_date: Optional[date] = Field(default=None, alias="date")


class SkipRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    on_date: Optional[date] = Field(default=None, alias="date")


class FinishRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    time_of_day: Optional[TimeOfDay] = None
    on_date: Optional[date] = Field(default=None, alias="date")


class FinishResponse(BaseModel):
    skipped: int = Field(description="Number of steps newly marked as skipped.")


class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str
