"""
Plan Executor

Commits an OrchestrationPlan: one fulfillment wave, its documents and
their reservations, all in a single transaction.

Before anything is written the plan is regenerated against current
data. If stock moved beyond STALE_PLAN_TOLERANCE, or the documents the
plan would create no longer match, execution is refused with
StalePlanError and the caller re-plans.

Executions for the same order are serialised: a per-order lock inside
the process, and a row lock on the sales order where the database
supports it.
"""
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.settings import Settings, get_settings
from app.exceptions import (
    DependencyError,
    FulfillOpsException,
    NotFoundError,
    PolicyBlockedError,
    StalePlanError,
    ValidationError,
)
from app.logging_config import get_logger
from app.models import FulfillmentWave, PickingSlip, SalesOrder
from app.schemas.orchestration import (
    CreatedDocument,
    CreatedDocuments,
    ExecutionResult,
    FulfillmentPolicy,
    OrchestrationPlan,
)
from app.services import document_service, inventory_service
from app.services.inventory_helpers import ZERO
from app.services.order_status import OrderStatusService

logger = get_logger(__name__)

PlanGenerator = Callable[[int, Optional[FulfillmentPolicy]], OrchestrationPlan]

DOCUMENT_SECTIONS = {"picking_slips", "job_cards", "transfers", "purchase_orders"}


class _OrderLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0  # holders plus waiters


_order_locks: Dict[int, _OrderLock] = {}
_registry_lock = threading.Lock()


@contextmanager
def order_lock(order_id: int) -> Iterator[None]:
    """Serialise executions for one order; the entry goes once nobody holds or waits on it."""
    with _registry_lock:
        entry = _order_locks.get(order_id)
        if entry is None:
            entry = _order_locks[order_id] = _OrderLock()
        entry.users += 1
    try:
        with entry.lock:
            yield
    finally:
        with _registry_lock:
            entry.users -= 1
            if entry.users == 0:
                del _order_locks[order_id]


def stock_changes(
    submitted: OrchestrationPlan, current: OrchestrationPlan, tolerance
) -> List[dict]:
    """Basis entries that moved by more than tolerance since the plan was made"""
    before = {(b.product_id, b.warehouse_id): b.available for b in submitted.stock_basis}
    now = {(b.product_id, b.warehouse_id): b.available for b in current.stock_basis}
    changed = []
    for key in sorted(set(before) | set(now)):
        old = before.get(key, ZERO)
        new = now.get(key, ZERO)
        if abs(new - old) > tolerance:
            changed.append({
                "product_id": key[0],
                "warehouse_id": key[1],
                "planned": str(old),
                "current": str(new),
            })
    return changed


def documents_match(submitted: OrchestrationPlan, current: OrchestrationPlan) -> bool:
    return submitted.model_dump(include=DOCUMENT_SECTIONS) == current.model_dump(include=DOCUMENT_SECTIONS)


class PlanExecutor:

    def __init__(self, db: Session, generate: PlanGenerator, settings: Optional[Settings] = None):
        self.db = db
        self.generate = generate
        self.settings = settings or get_settings()

    def execute(
        self,
        order_id: int,
        plan: OrchestrationPlan,
        executed_by: Optional[str] = None,
    ) -> ExecutionResult:
        if plan.order_id != order_id:
            raise ValidationError(
                f"Plan is for order {plan.order_id}, not {order_id}",
                field="plan.order_id",
                value=plan.order_id,
            )
        if not plan.can_proceed:
            raise PolicyBlockedError(
                plan.blocked_reason or "Plan cannot proceed",
                policy=plan.effective_policy.value,
            )

        with order_lock(order_id):
            try:
                result = self._execute(order_id, plan, executed_by)
                self.db.commit()
            except FulfillOpsException as e:
                self.db.rollback()
                logger.warning(
                    f"Plan execution refused: {e.message}",
                    extra={"order_id": order_id, "error_code": e.error_code},
                )
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error("Plan execution failed", exc_info=True, extra={"order_id": order_id})
                raise DependencyError("database", str(e)) from e
            except Exception:
                self.db.rollback()
                logger.error("Plan execution failed", exc_info=True, extra={"order_id": order_id})
                raise

        logger.info(
            f"Executed wave {result.wave_number} for order {order_id}",
            extra={
                "order_id": order_id,
                "wave_id": result.wave_id,
                "reservations": result.reservations_created,
                "executed_by": executed_by,
            },
        )
        return result

    def check_stale(self, submitted: OrchestrationPlan, current: OrchestrationPlan) -> None:
        changed = stock_changes(submitted, current, self.settings.STALE_PLAN_TOLERANCE)
        if changed:
            raise StalePlanError(changed=changed)
        if not documents_match(submitted, current):
            raise StalePlanError(
                "Order lines or stock changed since the plan was generated, re-plan before executing"
            )

    # ------------------------------------------------------------------

    def _execute(
        self, order_id: int, plan: OrchestrationPlan, executed_by: Optional[str]
    ) -> ExecutionResult:
        db = self.db
        order = (
            db.query(SalesOrder)
            .filter(SalesOrder.id == order_id)
            .with_for_update()
            .first()
        )
        if not order:
            raise NotFoundError("SalesOrder", order_id)

        current = self.generate(order_id, plan.effective_policy)
        self.check_stale(plan, current)
        if not current.can_proceed:
            raise PolicyBlockedError(
                current.blocked_reason or "Plan cannot proceed",
                policy=current.effective_policy.value,
            )

        last_wave = (
            db.query(func.max(FulfillmentWave.wave_number))
            .filter(FulfillmentWave.order_id == order.id)
            .scalar()
        )
        wave = FulfillmentWave(
            order_id=order.id,
            wave_number=(last_wave or 0) + 1,
            effective_policy=current.effective_policy.value,
            plan_fingerprint=current.fingerprint,
            executed_by=executed_by,
        )
        db.add(wave)
        db.flush()

        created = CreatedDocuments()
        reservations = 0

        slips: List[PickingSlip] = []
        for spec in current.picking_slips:
            slip = document_service.create_picking_slip(db, order, wave, spec, created_by=executed_by)
            slips.append(slip)
            created.picking_slips.append(CreatedDocument(id=slip.id, number=slip.number))
            for line in slip.lines:
                inventory_service.reserve_stock(
                    db,
                    line.product_id,
                    slip.warehouse_id,
                    line.quantity_to_pick,
                    reference_type="picking_slip_line",
                    reference_id=line.id,
                    order_id=order.id,
                    wave_id=wave.id,
                    document=slip.number,
                    created_by=executed_by,
                )
                reservations += 1

        for spec in current.job_cards:
            card = document_service.create_job_card(db, order, wave, spec, created_by=executed_by)
            created.job_cards.append(CreatedDocument(id=card.id, number=card.number))
            for component, component_spec in zip(card.components, spec.components):
                if component_spec.quantity_available <= ZERO:
                    continue
                inventory_service.reserve_stock(
                    db,
                    component.product_id,
                    card.warehouse_id,
                    component_spec.quantity_available,
                    reference_type="job_card_component",
                    reference_id=component.id,
                    order_id=order.id,
                    wave_id=wave.id,
                    document=card.number,
                    created_by=executed_by,
                )
                component.quantity_reserved = component_spec.quantity_available
                reservations += 1

        for spec in current.transfers:
            slip_id = None
            if spec.linked_picking_slip_index is not None:
                slip_id = slips[spec.linked_picking_slip_index].id
            transfer = document_service.create_transfer_request(
                db, order, wave, spec, picking_slip_id=slip_id, created_by=executed_by
            )
            created.transfer_requests.append(CreatedDocument(id=transfer.id, number=transfer.number))

        for spec in current.purchase_orders:
            po = document_service.create_purchase_order(db, order, wave, spec, created_by=executed_by)
            created.purchase_orders.append(CreatedDocument(id=po.id, number=po.number))

        changed, status = OrderStatusService(db).recompute(order, actor=executed_by)

        return ExecutionResult(
            success=True,
            order_id=order.id,
            wave_id=wave.id,
            wave_number=wave.wave_number,
            created_documents=created,
            reservations_created=reservations,
            order_status_updated=changed,
            order_status=status,
            warnings=current.warnings,
        )
