"""
Fulfillment Orchestration API Endpoints

Plan, review and execute the fulfilment of a sales order.
"""
from typing import Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from app.api.v1.deps import get_actor, get_db
from app.logging_config import get_logger
from app.schemas.common import ERROR_RESPONSES
from app.schemas.orchestration import (
    ExecutePlanRequest,
    ExecutionResult,
    GeneratePlanRequest,
    OrchestrationPlan,
)
from app.services.orchestration_service import OrchestrationService

logger = get_logger(__name__)

router = APIRouter(responses=ERROR_RESPONSES)


@router.post("/{order_id}/fulfillment-plan", response_model=OrchestrationPlan)
def generate_fulfillment_plan(
    order_id: int,
    request: Optional[GeneratePlanRequest] = Body(default=None),
    db: Session = Depends(get_db),
):
    """
    Work out how the outstanding part of an order would be fulfilled.

    Read-only: nothing is reserved or created. Review the plan, then send
    it back unchanged to the execute endpoint.
    """
    policy_override = request.policy_override if request else None
    return OrchestrationService(db).generate_plan(order_id, policy_override=policy_override)


@router.post("/{order_id}/fulfillment-plan/execute", response_model=ExecutionResult)
def execute_fulfillment_plan(
    order_id: int,
    request: ExecutePlanRequest,
    db: Session = Depends(get_db),
    actor: Optional[str] = Depends(get_actor),
):
    """
    Execute a reviewed plan as the order's next fulfillment wave.

    The plan is regenerated first. If stock or order lines moved since it
    was made the request fails with STALE_PLAN and nothing is written.
    """
    return OrchestrationService(db).execute_plan(order_id, request.plan, executed_by=actor)
