from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from procuremed.exceptions import RecordNotFoundError, ValidationError
from procuremed.logging import get_logger
from procuremed.models import (
    Requisition,
    RequisitionItem,
    RequisitionItemStatus,
    RequisitionStatus,
    Urgency,
)
from procuremed.services.matching_service import MatchRequest
from procuremed.services.text_utils import clean_text

logger = get_logger(__name__)

# Largest value a signed 64-bit INTEGER column holds.
MAX_QUANTITY = 2**63 - 1


@dataclass(frozen=True)
class RequisitionHeaderInput:
    delivery_date: date | str | None
    delivery_location: str | None
    urgency: Urgency | str = Urgency.NORMAL


@dataclass(frozen=True)
class RequisitionItemInput:
    item_name: str | None
    brand: str | None
    quantity: int | str | None


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _coerce_header(header: RequisitionHeaderInput | Mapping) -> RequisitionHeaderInput:
    if isinstance(header, RequisitionHeaderInput):
        return header
    return RequisitionHeaderInput(
        delivery_date=header.get('delivery_date'),
        delivery_location=header.get('delivery_location'),
        urgency=header.get('urgency') or Urgency.NORMAL,
    )


def _coerce_item(item: RequisitionItemInput | Mapping) -> RequisitionItemInput:
    if isinstance(item, RequisitionItemInput):
        return item
    return RequisitionItemInput(
        item_name=item.get('item_name'),
        brand=item.get('brand'),
        quantity=item.get('quantity'),
    )


def parse_delivery_date(value: date | str | None) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = clean_text(value)
    if not text:
        return None
    return date.fromisoformat(text)


def parse_urgency(value: Urgency | str) -> Urgency:
    if isinstance(value, Urgency):
        return value
    text = clean_text(value).lower()
    for urgency in Urgency:
        if text in {urgency.value.lower(), urgency.name.lower()}:
            return urgency
    raise ValueError(f'Unknown urgency: {value}')


def parse_quantity(value: int | str | None) -> int | None:
    """Whole positive quantity, or ``None`` when the value is not one."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        qty = value
    else:
        text = clean_text(value)
        try:
            qty = int(text)
        except ValueError:
            try:
                as_float = float(text)
            except ValueError:
                return None
            if not as_float.is_integer():
                return None
            qty = int(as_float)
    return qty if 0 < qty <= MAX_QUANTITY else None


def validate_requisition(
    header: RequisitionHeaderInput,
    items: Sequence[RequisitionItemInput],
) -> dict[str, str]:
    errors: dict[str, str] = {}

    if not clean_text(header.delivery_date):
        errors['delivery_date'] = 'Delivery date is required'
    else:
        try:
            parse_delivery_date(header.delivery_date)
        except ValueError:
            errors['delivery_date'] = 'Delivery date must be an ISO date (YYYY-MM-DD)'

    if not clean_text(header.delivery_location):
        errors['delivery_location'] = 'Delivery location is required'

    try:
        parse_urgency(header.urgency)
    except ValueError:
        errors['urgency'] = 'Urgency must be Normal or Critical'

    if not items:
        errors['items'] = 'Enter at least one item'

    for idx, item in enumerate(items):
        if not clean_text(item.item_name):
            errors[f'items[{idx}].item_name'] = 'Item name is required'
        if not clean_text(item.brand):
            errors[f'items[{idx}].brand'] = 'Brand is required'
        if parse_quantity(item.quantity) is None:
            errors[f'items[{idx}].quantity'] = 'Quantity must be a whole number greater than zero'

    return errors


def create_requisition(
    db: Session,
    *,
    header: RequisitionHeaderInput | Mapping,
    items: Sequence[RequisitionItemInput | Mapping],
) -> Requisition:
    header_input = _coerce_header(header)
    item_inputs = [_coerce_item(item) for item in items]

    errors = validate_requisition(header_input, item_inputs)
    if errors:
        logger.warning('Rejected requisition: %s', ', '.join(errors))
        raise ValidationError.from_fields(errors, subject='requisition')

    requisition = Requisition(
        delivery_date=parse_delivery_date(header_input.delivery_date),
        delivery_location=clean_text(header_input.delivery_location),
        urgency=parse_urgency(header_input.urgency),
        status=RequisitionStatus.OPEN,
        created_at=_now(),
        items=[
            RequisitionItem(
                position=position,
                item_name=clean_text(item.item_name),
                brand=clean_text(item.brand),
                quantity=parse_quantity(item.quantity),
                status=RequisitionItemStatus.OPEN,
            )
            for position, item in enumerate(item_inputs)
        ],
    )
    db.add(requisition)
    db.flush()
    logger.info('Created requisition %s with %s item(s)', requisition.id, len(item_inputs))
    return requisition


def get_requisition(db: Session, requisition_id: int) -> Requisition:
    requisition = db.execute(select(Requisition).where(Requisition.id == requisition_id)).scalar_one_or_none()
    if not requisition:
        raise RecordNotFoundError('Requisition', requisition_id)
    return requisition


def get_requisition_item(db: Session, item_id: int) -> RequisitionItem:
    item = db.execute(select(RequisitionItem).where(RequisitionItem.id == item_id)).scalar_one_or_none()
    if not item:
        raise RecordNotFoundError('Requisition item', item_id)
    return item


def list_requisitions(db: Session, *, status: RequisitionStatus | None = None) -> list[Requisition]:
    query = select(Requisition).order_by(Requisition.id.desc())
    if status is not None:
        query = query.where(Requisition.status == status)
    return list(db.execute(query).scalars().all())


def list_open_items(db: Session) -> list[RequisitionItem]:
    return list(
        db.execute(
            select(RequisitionItem)
            .join(Requisition, Requisition.id == RequisitionItem.requisition_id)
            .where(RequisitionItem.status == RequisitionItemStatus.OPEN)
            .order_by(Requisition.id.desc(), RequisitionItem.position.asc())
        ).scalars().all()
    )


def build_match_request(item: RequisitionItem) -> MatchRequest:
    requisition = item.requisition
    return MatchRequest(
        item_name=item.item_name,
        brand=item.brand,
        quantity=item.quantity,
        delivery_location=requisition.delivery_location,
        requisition_id=requisition.id,
        item_id=item.id,
        delivery_date=requisition.delivery_date,
        urgency=requisition.urgency,
    )


def mark_item_accepted(db: Session, *, item: RequisitionItem, now: datetime | None = None) -> Requisition:
    item.status = RequisitionItemStatus.ACCEPTED
    item.accepted_at = now or _now()
    requisition = item.requisition
    if all(line.status == RequisitionItemStatus.ACCEPTED for line in requisition.items):
        requisition.status = RequisitionStatus.CLOSED
        logger.info('Requisition %s closed; all items accepted', requisition.id)
    db.flush()
    return requisition
