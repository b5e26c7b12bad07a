"""
glowroutine/api/routes.py
─────────────────────────
Routine API v1 endpoints. A thin adapter over RoutineService.

User scope
──────────
Requests carrying an ``X-User-Id`` header are served from the database
for that user; requests without it use the on-device store.

Endpoints
─────────
GET    /routine/steps              ordered list of steps
POST   /routine/steps              add a step
PATCH  /routine/steps/{id}         partial update
DELETE /routine/steps/{id}         delete (cascades to completion records)
PUT    /routine/steps/order        reorder; persisted after a quiet period
GET    /routine/today              steps due on a date, with status
GET    /routine/progress           completed / total for a date
POST   /routine/steps/{id}/toggle  check / un-check a step
POST   /routine/steps/{id}/skip    skip / un-skip a step
POST   /routine/finish             skip every step not yet actioned
POST   /routine/reload             re-read state from the store
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request, Response, status

from glowroutine.schemas import (
    CompletionRecord,
    FinishRequest,
    FinishResponse,
    Progress,
    ReorderRequest,
    RoutineStep,
    SkipRequest,
    StepDraft,
    StepUpdate,
    TimeOfDay,
    TodayStep,
    ToggleRequest,
)
from glowroutine.services.registry import RoutineRegistry
from glowroutine.services.routine import RoutineService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/routine", tags=["Routine"])


def get_registry(request: Request) -> RoutineRegistry:
    return request.app.state.routines


async def get_routine(
    x_user_id: Optional[str] = Header(
        default=None,
        description="Authenticated user id; omit for the on-device routine.",
        max_length=128,
    ),
    registry: RoutineRegistry = Depends(get_registry),
) -> RoutineService:
    return await registry.get(x_user_id)


@router.get(
    "/steps",
    response_model=List[RoutineStep],
    summary="List routine steps",
)
async def list_steps(routine: RoutineService = Depends(get_routine)) -> List[RoutineStep]:
    return routine.steps


@router.post(
    "/steps",
    response_model=RoutineStep,
    status_code=status.HTTP_201_CREATED,
    summary="Add a routine step",
    description=(
        "Creates a step with a weekly, cycle or interval schedule. "
        "Without an explicit order it is appended to its time-of-day group. "
        "A linked product is marked as in use."
    ),
)
async def add_step(
    draft: StepDraft,
    routine: RoutineService = Depends(get_routine),
) -> RoutineStep:
    logger.info("add_step: scope=%s name=%s", routine.scope, draft.name)
    return await routine.add_step(draft)


@router.put(
    "/steps/order",
    response_model=List[RoutineStep],
    summary="Reorder routine steps",
    description=(
        "Applies the new order immediately. The positions are written to "
        "storage once reordering has been quiet for a moment."
    ),
)
async def reorder_steps(
    request: ReorderRequest,
    routine: RoutineService = Depends(get_routine),
) -> List[RoutineStep]:
    return routine.reorder_steps(request.step_ids)


@router.patch(
    "/steps/{step_id}",
    response_model=RoutineStep,
    summary="Update a routine step",
)
async def update_step(
    step_id: str,
    patch: StepUpdate,
    routine: RoutineService = Depends(get_routine),
) -> RoutineStep:
    logger.info("update_step: scope=%s step=%s", routine.scope, step_id)
    return await routine.update_step(step_id, patch)


@router.delete(
    "/steps/{step_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a routine step",
)
async def delete_step(
    step_id: str,
    routine: RoutineService = Depends(get_routine),
) -> Response:
    logger.info("delete_step: scope=%s step=%s", routine.scope, step_id)
    await routine.delete_step(step_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/today",
    response_model=List[TodayStep],
    summary="Steps due on a date",
    description="Defaults to today. A morning or evening filter also includes steps tagged 'both'.",
)
async def today_steps(
    time_of_day: Optional[TimeOfDay] = Query(default=None),
    on_date: Optional[date] = Query(default=None, alias="date"),
    routine: RoutineService = Depends(get_routine),
) -> List[TodayStep]:
    return routine.get_today_steps(time_of_day, on_date)


@router.get(
    "/progress",
    response_model=Progress,
    summary="Completion progress for a date",
)
async def progress(
    on_date: Optional[date] = Query(default=None, alias="date"),
    routine: RoutineService = Depends(get_routine),
) -> Progress:
    return routine.get_today_progress(on_date)


@router.post(
    "/steps/{step_id}/toggle",
    response_model=Optional[CompletionRecord],
    summary="Check or un-check a step",
    description="Returns the new completion record, or null when the completion was removed.",
)
async def toggle_step(
    step_id: str,
    request: Optional[ToggleRequest] = None,
    routine: RoutineService = Depends(get_routine),
) -> Optional[CompletionRecord]:
    request = request or ToggleRequest()
    return await routine.toggle_step_completion(step_id, request.product_used, request.on_date)


@router.post(
    "/steps/{step_id}/skip",
    response_model=Optional[CompletionRecord],
    summary="Skip or un-skip a step",
)
async def skip_step(
    step_id: str,
    request: Optional[SkipRequest] = None,
    routine: RoutineService = Depends(get_routine),
) -> Optional[CompletionRecord]:
    request = request or SkipRequest()
    return await routine.skip_step(step_id, request.on_date)


@router.post(
    "/finish",
    response_model=FinishResponse,
    summary="Finish a routine",
    description="Marks every due step without a completion or skip as skipped.",
)
async def finish_routine(
    request: Optional[FinishRequest] = None,
    routine: RoutineService = Depends(get_routine),
) -> FinishResponse:
    request = request or FinishRequest()
    skipped = await routine.finish_routine(request.time_of_day, request.on_date)
    logger.info("finish_routine: scope=%s skipped=%d", routine.scope, skipped)
    return FinishResponse(skipped=skipped)


@router.post(
    "/reload",
    response_model=List[RoutineStep],
    summary="Reload from storage",
)
async def reload_routine(routine: RoutineService = Depends(get_routine)) -> List[RoutineStep]:
    await routine.reload()
    return routine.steps
