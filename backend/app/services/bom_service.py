"""
BOM Service

Expands a product's bill of materials down to its leaf components and
guards the BOM graph against cycles.

The walk is an explicit depth-first traversal with its own path stack,
so a cyclic or absurdly deep BOM fails with a ConfigurationError instead
of a RecursionError.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.settings import get_settings
from app.exceptions import ConfigurationError, NotFoundError, ValidationError
from app.logging_config import get_logger
from app.models import BOMComponent, Product
from app.schemas.orchestration import ProductType
from app.services.inventory_helpers import ZERO, to_quantity

logger = get_logger(__name__)


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class ComponentRequirement:
    """A leaf component and how much of it one expansion needs"""
    product_id: int
    product_sku: str
    product_name: str
    required_quantity: Decimal
    is_optional: bool = False
    bom_level: int = 1
    default_supplier_id: Optional[int] = None
    unit_cost: Optional[Decimal] = None
    source_warehouse_hint: Optional[int] = None


@dataclass
class _Frame:
    product_id: int
    quantity: Decimal
    optional: bool
    path: Tuple[int, ...] = field(default_factory=tuple)


# ============================================================================
# Expander
# ============================================================================

class BOMExpander:
    """Expands BOMs for one planning pass; component rows are cached."""

    def __init__(self, db: Session, max_depth: Optional[int] = None):
        self.db = db
        self.max_depth = max_depth or get_settings().BOM_MAX_DEPTH
        self._children: Dict[int, List[BOMComponent]] = {}
        self._products: Dict[int, Product] = {}

    def get_bom_components(self, product_id: int) -> List[BOMComponent]:
        if product_id not in self._children:
            self._children[product_id] = self.db.query(BOMComponent).filter(
                BOMComponent.parent_product_id == product_id
            ).order_by(BOMComponent.sort_order, BOMComponent.id).all()
        return self._children[product_id]

    def has_bom(self, product_id: int) -> bool:
        return bool(self.get_bom_components(product_id))

    def _product(self, product_id: int) -> Product:
        product = self._products.get(product_id)
        if product is None:
            product = self.db.query(Product).filter(Product.id == product_id).first()
            if product is None:
                raise NotFoundError("Product", product_id)
            self._products[product_id] = product
        return product

    def expand(
        self,
        product_id: int,
        quantity: Decimal,
        source_warehouse_hint: Optional[int] = None,
    ) -> List[ComponentRequirement]:
        """
        Expand product_id x quantity to its leaf components.

        Leaves are components with no BOM of their own. A leaf reached by
        several paths accumulates; it stays optional only if every path to
        it is optional. Results come back in first-visit order.

        Raises:
            ConfigurationError: cycle, depth over max_depth, or a kit
                with no components
        """
        root = self._product(product_id)
        if not self.get_bom_components(product_id):
            if root.product_type == ProductType.KIT.value:
                raise ConfigurationError(
                    f"Kit {root.sku} has no BOM components",
                    product_id=product_id,
                )
            return []

        totals: "OrderedDict[int, ComponentRequirement]" = OrderedDict()
        stack: List[_Frame] = [_Frame(product_id, to_quantity(quantity), False, (product_id,))]

        while stack:
            frame = stack.pop()
            children = self.get_bom_components(frame.product_id)

            # Reverse so the first BOM line is walked first
            for bom_line in reversed(children):
                component_id = bom_line.component_product_id
                level = len(frame.path)

                if component_id in frame.path:
                    cycle = " -> ".join(
                        self._product(pid).sku for pid in frame.path + (component_id,)
                    )
                    raise ConfigurationError(
                        f"Circular BOM reference: {cycle}",
                        product_id=product_id,
                        details={"cycle": list(frame.path + (component_id,))},
                    )
                if level > self.max_depth:
                    raise ConfigurationError(
                        f"BOM for {root.sku} is deeper than {self.max_depth} levels",
                        product_id=product_id,
                        details={"max_depth": self.max_depth},
                    )

                needed = to_quantity(frame.quantity * to_quantity(bom_line.quantity))
                optional = frame.optional or bool(bom_line.is_optional)
                component = self._product(component_id)

                if self.get_bom_components(component_id):
                    stack.append(_Frame(component_id, needed, optional, frame.path + (component_id,)))
                    continue

                if component.product_type == ProductType.KIT.value:
                    raise ConfigurationError(
                        f"Kit {component.sku} has no BOM components",
                        product_id=product_id,
                    )

                existing = totals.get(component_id)
                if existing is None:
                    totals[component_id] = ComponentRequirement(
                        product_id=component_id,
                        product_sku=component.sku,
                        product_name=component.name,
                        required_quantity=needed,
                        is_optional=optional,
                        bom_level=level,
                        default_supplier_id=component.default_supplier_id,
                        unit_cost=component.cost_price,
                        source_warehouse_hint=source_warehouse_hint,
                    )
                else:
                    existing.required_quantity = to_quantity(existing.required_quantity + needed)
                    # Required on any path means required
                    existing.is_optional = existing.is_optional and optional
                    existing.bom_level = min(existing.bom_level, level)

        # Stack order differs from BOM order for nested branches; the
        # OrderedDict preserves first-visit order, which is deterministic.
        return [req for req in totals.values() if req.required_quantity > ZERO]


# ============================================================================
# Maintenance
# ============================================================================

def validate_bom_circular(db: Session, parent_product_id: int, component_product_id: int) -> bool:
    """
    True when adding component under parent would close a cycle,
    i.e. parent is reachable from component (or they're the same).
    """
    if parent_product_id == component_product_id:
        return True

    seen = set()
    pending = [component_product_id]
    while pending:
        current = pending.pop()
        if current == parent_product_id:
            return True
        if current in seen:
            continue
        seen.add(current)
        rows = db.query(BOMComponent.component_product_id).filter(
            BOMComponent.parent_product_id == current
        ).all()
        pending.extend(row[0] for row in rows)
    return False


def add_bom_component(
    db: Session,
    parent_product_id: int,
    component_product_id: int,
    quantity: Decimal,
    is_optional: bool = False,
    sort_order: Optional[int] = None,
) -> BOMComponent:
    """
    Add a component to a BOM, refusing cycles and non-positive quantities.

    Does NOT commit - caller is responsible for transaction management.
    """
    quantity = to_quantity(quantity)
    if quantity <= ZERO:
        raise ValidationError("BOM component quantity must be positive", field="quantity", value=quantity)

    for pid in (parent_product_id, component_product_id):
        if db.query(Product.id).filter(Product.id == pid).first() is None:
            raise NotFoundError("Product", pid)

    if validate_bom_circular(db, parent_product_id, component_product_id):
        raise ConfigurationError(
            "Adding this component would create a circular BOM",
            product_id=parent_product_id,
            details={"component_product_id": component_product_id},
        )

    if sort_order is None:
        sort_order = db.query(BOMComponent).filter(
            BOMComponent.parent_product_id == parent_product_id
        ).count()

    row = BOMComponent(
        parent_product_id=parent_product_id,
        component_product_id=component_product_id,
        quantity=quantity,
        is_optional=is_optional,
        sort_order=sort_order,
    )
    db.add(row)
    db.flush()
    logger.info(
        "BOM component added",
        extra={
            "parent_product_id": parent_product_id,
            "component_product_id": component_product_id,
            "quantity": str(quantity),
        },
    )
    return row
