"""
Scheduler Endpoints: solve, apply and field-slot preview.

  POST /accounts/{account_id}/scheduler/solve
       ProblemSpec in, SolveResult out. Reads committed games once as a
       snapshot; never writes. 200 for completed/partial/infeasible.

  POST /accounts/{account_id}/scheduler/apply
       ApplyRequest in, ApplyResult out. The only endpoint that writes.
       409 when allOrNothing aborts.

  POST /accounts/{account_id}/scheduler/field-slots/preview
       Expand weekly field availability rules into FieldSlots.
"""

import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from sqlmodel import Session

from season_scheduler.database import get_session
from season_scheduler.services.apply_transactor import apply_assignments
from season_scheduler.services.field_slot_generator import preview_field_slots
from season_scheduler.services.schedule_repository import load_committed_bookings
from season_scheduler.services.scheduler_schemas import (
    ApplyRequest,
    ApplyResult,
    FieldSlotPreviewRequest,
    FieldSlotPreviewResponse,
    ProblemSpec,
    SolveResult,
)
from season_scheduler.services.solver_engine import SolverEngine

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_SOLVE_TIMEOUT_MS = int(os.getenv("SCHEDULER_SOLVE_TIMEOUT_MS", "10000"))


@router.post(
    "/accounts/{account_id}/scheduler/solve",
    response_model=SolveResult,
    response_model_by_alias=True,
    tags=["scheduler"],
)
def solve_schedule(
    account_id: int,
    spec: ProblemSpec,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    timeout_ms: Optional[int] = Query(default=None, alias="timeoutMs", ge=0),
    session: Session = Depends(get_session),
) -> SolveResult:
    """
    Propose assignments for every game in the ProblemSpec.

    Identical spec + Idempotency-Key always yields the same runId.
    """
    existing = load_committed_bookings(session, spec, account_id=account_id)
    return SolverEngine().solve(
        spec,
        existing_bookings=existing,
        account_id=account_id,
        idempotency_key=idempotency_key,
        timeout_ms=DEFAULT_SOLVE_TIMEOUT_MS if timeout_ms is None else timeout_ms,
    )


@router.post(
    "/accounts/{account_id}/scheduler/apply",
    response_model=ApplyResult,
    response_model_by_alias=True,
    tags=["scheduler"],
)
def apply_schedule(
    account_id: int,
    request: ApplyRequest,
    session: Session = Depends(get_session),
) -> ApplyResult:
    """Persist chosen assignments after re-validating them against live data."""
    return apply_assignments(session, request, account_id=account_id)


@router.post(
    "/accounts/{account_id}/scheduler/field-slots/preview",
    response_model=FieldSlotPreviewResponse,
    response_model_by_alias=True,
    tags=["scheduler"],
)
def preview_slots(
    account_id: int,
    request: FieldSlotPreviewRequest,
) -> FieldSlotPreviewResponse:
    return preview_field_slots(request)
