from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from procuremed.exceptions import (
    AlreadyAcceptedError,
    ConflictError,
    RecordNotFoundError,
    TransitionNotAllowedError,
    ValidationError,
)
from procuremed.logging import get_logger
from procuremed.models import InventoryRow, Order, OrderStatus, RequisitionItemStatus
from procuremed.services.inventory_service import consume_inventory, find_row_for_allocation, list_inventory
from procuremed.services.matching_service import AllocationPlan
from procuremed.services.money import line_cost
from procuremed.services.requisition_service import get_requisition_item, mark_item_accepted
from procuremed.services.text_utils import clean_text, normalize_text

logger = get_logger(__name__)

TransitionPolicy = Callable[[OrderStatus, OrderStatus], bool]

ORDER_PROGRESSION = (
    OrderStatus.ACCEPTED,
    OrderStatus.PREPARING,
    OrderStatus.IN_TRANSIT,
    OrderStatus.DELIVERED,
)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def permissive_transitions(current: OrderStatus, requested: OrderStatus) -> bool:
    return True


def forward_only_transitions(current: OrderStatus, requested: OrderStatus) -> bool:
    if current == requested:
        return True
    if current == OrderStatus.CANCELLED:
        return False
    if requested == OrderStatus.CANCELLED:
        return True
    return ORDER_PROGRESSION.index(requested) > ORDER_PROGRESSION.index(current)


TRANSITION_POLICIES: dict[str, TransitionPolicy] = {
    'permissive': permissive_transitions,
    'forward_only': forward_only_transitions,
}


def resolve_transition_policy(name: str | None) -> TransitionPolicy:
    key = (name or 'permissive').strip().lower()
    if key not in TRANSITION_POLICIES:
        raise ValueError(f'Unknown order status policy: {name}')
    return TRANSITION_POLICIES[key]


def parse_order_status(value: OrderStatus | str) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    text = normalize_text(clean_text(value))
    for status in OrderStatus:
        if text in {status.value.lower(), status.name.lower()}:
            return status
    raise ValidationError(
        f'Unknown order status: {value}',
        {'status': 'Must be one of ' + ', '.join(status.value for status in OrderStatus)},
    )


def _validate_plan_shape(plan: AllocationPlan) -> None:
    if not plan.allocations:
        raise ValidationError('No allocations to accept.', {'allocations': 'Plan has no allocations'})
    if plan.request.item_id is None:
        raise ValidationError('Plan is not tied to a requisition item.', {'item_id': 'Required'})

    errors: dict[str, str] = {}
    for idx, line in enumerate(plan.allocations):
        if line.allocated_qty <= 0:
            errors[f'allocations[{idx}].allocated_qty'] = 'Allocated quantity must be greater than zero'
        if line.unit_price < 0:
            errors[f'allocations[{idx}].unit_price'] = 'Unit price cannot be negative'
    if errors:
        raise ValidationError.from_fields(errors, subject='allocation plan')


def accept_allocation_plan(db: Session, *, plan: AllocationPlan, now: datetime | None = None) -> list[Order]:
    """
    Commit a reviewed plan: one order per allocation line, inventory decrement,
    and the Open -> Accepted transition of the requisition item.

    Every check runs before the first write, so a rejected plan leaves the
    session untouched. Inventory is floored at zero when a row has shrunk since
    the plan was built.
    """
    _validate_plan_shape(plan)

    item = get_requisition_item(db, plan.request.item_id)
    if item.status == RequisitionItemStatus.ACCEPTED:
        logger.warning('Rejected plan for item %s: already accepted', item.id)
        raise AlreadyAcceptedError(item.id)
    if plan.request.requisition_id is not None and plan.request.requisition_id != item.requisition_id:
        raise ConflictError(f'Requisition item {item.id} does not belong to requisition {plan.request.requisition_id}')

    allocated_total = sum(line.allocated_qty for line in plan.allocations)
    if allocated_total > item.quantity:
        raise ValidationError(
            f'Plan allocates {allocated_total} but item {item.id} requests {item.quantity}',
            {'allocations': 'Allocated quantity exceeds requested quantity'},
        )

    rows = list_inventory(db)
    targets: list[InventoryRow] = []
    for line in plan.allocations:
        row = find_row_for_allocation(rows, line)
        if row is None:
            logger.warning('Rejected plan for item %s: inventory row %s is gone', item.id, line.inventory_row_id)
            raise RecordNotFoundError('Inventory row', line.inventory_row_id)
        targets.append(row)

    requisition = item.requisition
    timestamp = now or _now()
    orders: list[Order] = []
    for line, row in zip(plan.allocations, targets):
        order = Order(
            requisition_id=requisition.id,
            requisition_item_id=item.id,
            inventory_row_id=row.id,
            supplier_name=line.supplier_name,
            item_name=line.item_name,
            brand=line.brand,
            quantity=line.allocated_qty,
            unit_price=line.unit_price,
            line_cost=line_cost(line.allocated_qty, line.unit_price),
            delivery_location=requisition.delivery_location,
            needed_by=requisition.delivery_date,
            urgency=requisition.urgency,
            status=OrderStatus.ACCEPTED,
            created_at=timestamp,
            updated_at=timestamp,
        )
        db.add(order)
        orders.append(order)
        consume_inventory(row, line.allocated_qty)

    mark_item_accepted(db, item=item, now=timestamp)
    db.flush()
    logger.info(
        'Accepted plan for item %s: %s order(s), %s unit(s)',
        item.id,
        len(orders),
        allocated_total,
    )
    return orders


def get_order(db: Session, order_id: int) -> Order:
    order = db.execute(select(Order).where(Order.id == order_id)).scalar_one_or_none()
    if not order:
        raise RecordNotFoundError('Order', order_id)
    return order


def update_order_status(
    db: Session,
    *,
    order_id: int,
    status: OrderStatus | str,
    policy: TransitionPolicy = permissive_transitions,
    now: datetime | None = None,
) -> Order:
    requested = parse_order_status(status)
    order = get_order(db, order_id)
    if not policy(order.status, requested):
        logger.warning('Refused order %s status change %s -> %s', order_id, order.status.value, requested.value)
        raise TransitionNotAllowedError(order.status.value, requested.value)

    order.status = requested
    order.updated_at = now or _now()
    db.flush()
    return order


def list_orders(
    db: Session,
    *,
    supplier_name: str | None = None,
    requisition_id: int | None = None,
    status: OrderStatus | None = None,
) -> list[Order]:
    query = select(Order).order_by(Order.id.desc())
    if supplier_name is not None:
        query = query.where(func.lower(func.trim(Order.supplier_name)) == normalize_text(supplier_name))
    if requisition_id is not None:
        query = query.where(Order.requisition_id == requisition_id)
    if status is not None:
        query = query.where(Order.status == status)
    return list(db.execute(query).scalars().all())
