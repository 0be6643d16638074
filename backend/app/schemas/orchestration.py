"""
Fulfillment orchestration Pydantic schemas

Schemas for:
- Stock snapshots
- Per-line allocation decisions
- The orchestration plan and its document specs
- Execution results and document transitions

A plan is a value: it has no id, is never stored, and two plans are
equal when their dumps (less generated_at) are equal.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Enums
# ============================================================================

class FulfillmentPolicy(str, Enum):
    """How much of an order may ship before all of it is available"""
    SHIP_COMPLETE = "ship_complete"  # Hold until every line can go
    SHIP_PARTIAL = "ship_partial"  # Ship what's here, backorder the rest
    SALES_DECISION = "sales_decision"  # A person decides; never auto-executes


class ProductType(str, Enum):
    STOCK_ONLY = "stock_only"
    ASSEMBLY_REQUIRED = "assembly_required"
    MADE_TO_ORDER = "made_to_order"
    KIT = "kit"


class JobType(str, Enum):
    ASSEMBLY = "assembly"
    MACHINING = "machining"


class StockStatus(str, Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"
    ON_ORDER = "on_order"
    OVERSTOCK = "overstock"


class AllocationKind(str, Enum):
    """What one slice of a line's quantity turns into"""
    FROM_STOCK = "from_stock"  # Picked at the line's own warehouse
    TRANSFER = "transfer"  # Picked elsewhere and moved in
    ASSEMBLY = "assembly"  # Built on a job card
    BACKORDER = "backorder"  # Bought from the supplier
    BLOCKED = "blocked"  # Can't be planned, see blocked_reason


class FulfillmentType(str, Enum):
    """Overall classification of a line"""
    FROM_STOCK = "from_stock"
    FROM_STOCK_PARTIAL_TRANSFER = "from_stock_partial_transfer"
    ASSEMBLY_REQUIRED = "assembly_required"
    BACKORDER = "backorder"
    BLOCKED = "blocked"


class PurchaseOrderReason(str, Enum):
    FINISHED_GOODS_BACKORDER = "finished_goods_backorder"
    COMPONENT_SHORTAGE = "component_shortage"


class PurchaseSourceType(str, Enum):
    ORDER_LINE = "order_line"
    JOB_CARD_COMPONENT = "job_card_component"


class DocumentType(str, Enum):
    PICKING_SLIP = "picking_slip"
    JOB_CARD = "job_card"
    TRANSFER_REQUEST = "transfer_request"
    PURCHASE_ORDER = "purchase_order"


# ============================================================================
# Stock
# ============================================================================

class StockSnapshot(BaseModel):
    """Stock position of one product at one warehouse"""
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    warehouse_id: int
    on_hand: Decimal = Decimal("0")
    soft_reserved: Decimal = Decimal("0")
    hard_reserved: Decimal = Decimal("0")
    available: Decimal = Decimal("0")
    on_order: Decimal = Decimal("0")
    reorder_point: Decimal = Decimal("0")
    reorder_quantity: Decimal = Decimal("0")
    maximum_stock: Optional[Decimal] = None
    stock_status: StockStatus = StockStatus.OUT_OF_STOCK


class StockBasisEntry(BaseModel):
    """One availability figure a plan was computed from"""
    product_id: int
    warehouse_id: int
    available: Decimal


# ============================================================================
# Line allocations
# ============================================================================

class AllocationLeg(BaseModel):
    kind: AllocationKind
    quantity: Decimal
    warehouse_id: Optional[int] = Field(None, description="Where the stock is picked or built")
    warehouse_code: Optional[str] = None
    to_warehouse_id: Optional[int] = Field(None, description="Destination of a transfer")
    to_warehouse_code: Optional[str] = None
    supplier_id: Optional[int] = None
    below_reorder_point: bool = False
    already_on_order: Decimal = Field(Decimal("0"), description="Covered by open purchase orders from earlier waves")


class LineAllocation(BaseModel):
    order_line_id: int
    line_number: int
    product_id: int
    sku: str
    product_name: str
    product_type: ProductType
    quantity_ordered: Decimal
    quantity_outstanding: Decimal
    target_warehouse_id: int
    target_warehouse_code: str
    fulfillment_type: FulfillmentType
    legs: List[AllocationLeg] = Field(default_factory=list)
    immediately_fulfillable: bool = False
    can_move_now: bool = False  # Some of it can be picked, transferred or built in this wave
    blocked_reason: Optional[str] = None


# ============================================================================
# Document specs
# ============================================================================

class PickingSlipLinePlan(BaseModel):
    order_line_id: int
    line_number: int
    product_id: int
    sku: str
    product_name: str
    quantity: Decimal
    transfer_to_warehouse_id: Optional[int] = None
    transfer_to_warehouse_code: Optional[str] = None


class PickingSlipPlan(BaseModel):
    warehouse_id: int
    warehouse_code: str
    is_transfer_source: bool = False
    lines: List[PickingSlipLinePlan] = Field(default_factory=list)


class JobCardComponentPlan(BaseModel):
    product_id: int
    sku: str
    product_name: str
    quantity_required: Decimal
    quantity_available: Decimal
    shortfall: Decimal = Decimal("0")
    is_optional: bool = False
    supplier_id: Optional[int] = None
    supplier_name: Optional[str] = None


class ComponentAvailability(BaseModel):
    all_components_available: bool = True
    components_with_shortfall: List[JobCardComponentPlan] = Field(default_factory=list)


class JobCardOrderLinePlan(BaseModel):
    order_line_id: int
    line_number: int
    quantity: Decimal


class JobCardPlan(BaseModel):
    product_id: int
    sku: str
    product_name: str
    warehouse_id: int
    warehouse_code: str
    job_type: JobType
    quantity: Decimal
    order_lines: List[JobCardOrderLinePlan] = Field(default_factory=list)
    components: List[JobCardComponentPlan] = Field(default_factory=list)
    component_availability: ComponentAvailability = Field(default_factory=ComponentAvailability)


class TransferLinePlan(BaseModel):
    order_line_id: int
    line_number: int
    product_id: int
    sku: str
    product_name: str
    quantity: Decimal
    from_job_card: bool = False


class TransferPlan(BaseModel):
    from_warehouse_id: int
    from_warehouse_code: str
    to_warehouse_id: int
    to_warehouse_code: str
    lines: List[TransferLinePlan] = Field(default_factory=list)
    linked_picking_slip_index: Optional[int] = None


class PurchaseOrderLinePlan(BaseModel):
    product_id: int
    sku: str
    product_name: str
    quantity: Decimal
    warehouse_id: int = Field(..., description="Delivery warehouse")
    warehouse_code: str
    estimated_unit_cost: Optional[Decimal] = None
    source_type: PurchaseSourceType
    source_id: int = Field(..., description="Sales order line the need comes from")
    line_number: int


class PurchaseOrderPlan(BaseModel):
    supplier_id: int
    supplier_code: str
    supplier_name: str
    currency: str
    reason: PurchaseOrderReason
    lines: List[PurchaseOrderLinePlan] = Field(default_factory=list)


# ============================================================================
# Plan
# ============================================================================

class OrchestrationSummary(BaseModel):
    total_order_lines: int = 0
    lines_from_stock: int = 0
    lines_requiring_assembly: int = 0
    lines_requiring_transfer: int = 0
    lines_backordered: int = 0
    lines_blocked: int = 0
    picking_slips_to_create: int = 0
    job_cards_to_create: int = 0
    transfers_to_create: int = 0
    purchase_orders_to_create: int = 0
    can_fulfill_completely: bool = False
    immediately_fulfillable_percent: Decimal = Decimal("0")


class OrchestrationPlan(BaseModel):
    """Everything execute-plan would create for one order, right now"""
    order_id: int
    order_number: str
    customer_warehouse_id: int
    customer_warehouse_code: str
    effective_policy: FulfillmentPolicy
    can_proceed: bool
    blocked_reason: Optional[str] = None
    line_allocations: List[LineAllocation] = Field(default_factory=list)
    picking_slips: List[PickingSlipPlan] = Field(default_factory=list)
    job_cards: List[JobCardPlan] = Field(default_factory=list)
    transfers: List[TransferPlan] = Field(default_factory=list)
    purchase_orders: List[PurchaseOrderPlan] = Field(default_factory=list)
    summary: OrchestrationSummary = Field(default_factory=OrchestrationSummary)
    warnings: List[str] = Field(default_factory=list)
    stock_basis: List[StockBasisEntry] = Field(default_factory=list)
    fingerprint: str = ""
    generated_at: datetime


# ============================================================================
# Requests / responses
# ============================================================================

class GeneratePlanRequest(BaseModel):
    policy_override: Optional[FulfillmentPolicy] = Field(
        None, description="Use this policy instead of the order's or company's"
    )


class ExecutePlanRequest(BaseModel):
    plan: OrchestrationPlan


class CreatedDocument(BaseModel):
    id: int
    number: str


class CreatedDocuments(BaseModel):
    picking_slips: List[CreatedDocument] = Field(default_factory=list)
    job_cards: List[CreatedDocument] = Field(default_factory=list)
    transfer_requests: List[CreatedDocument] = Field(default_factory=list)
    purchase_orders: List[CreatedDocument] = Field(default_factory=list)


class ExecutionResult(BaseModel):
    success: bool
    order_id: int
    wave_id: Optional[int] = None
    wave_number: Optional[int] = None
    created_documents: CreatedDocuments = Field(default_factory=CreatedDocuments)
    reservations_created: int = 0
    order_status_updated: bool = False
    order_status: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class DocumentTransitionRequest(BaseModel):
    status: str = Field(..., min_length=1, max_length=30)
    notes: Optional[str] = None


class DocumentTransitionResponse(BaseModel):
    document_type: DocumentType
    document_id: int
    number: str
    status: str
    order_id: int
    order_status: str
