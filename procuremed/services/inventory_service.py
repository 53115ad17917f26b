from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from procuremed.config import settings
from procuremed.exceptions import RecordNotFoundError, ValidationError
from procuremed.logging import get_logger
from procuremed.models import InventoryRow
from procuremed.services.matching_service import AllocationLine, InventorySnapshot
from procuremed.services.money import round_money, to_money
from procuremed.services.requisition_service import parse_quantity
from procuremed.services.text_utils import clean_text, normalize_text, offer_key

logger = get_logger(__name__)

EDITABLE_FIELDS = ('supplier_name', 'item_name', 'brand', 'quantity', 'price', 'delivery_regions')


@dataclass(frozen=True)
class InventoryRowInput:
    item_name: str | None
    brand: str | None
    quantity: int | str | None
    price: Decimal | int | float | str | None
    delivery_regions: str | None
    supplier_name: str | None = None


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _coerce_row(row: InventoryRowInput | Mapping) -> InventoryRowInput:
    if isinstance(row, InventoryRowInput):
        return row
    return InventoryRowInput(
        item_name=row.get('item_name'),
        brand=row.get('brand'),
        quantity=row.get('quantity'),
        price=row.get('price'),
        delivery_regions=row.get('delivery_regions'),
        supplier_name=row.get('supplier_name'),
    )


def _parse_stock_quantity(value: int | str | None) -> int | None:
    """Like ``parse_quantity`` but zero is allowed, for rows already depleted."""
    if isinstance(value, int) and not isinstance(value, bool) and value == 0:
        return 0
    if clean_text(value) == '0':
        return 0
    return parse_quantity(value)


def validate_inventory_fields(
    *,
    item_name: object,
    brand: object,
    quantity: object,
    price: object,
    delivery_regions: object,
    allow_zero_quantity: bool = False,
) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not clean_text(item_name):
        errors['item_name'] = 'Item name is required'
    if not clean_text(brand):
        errors['brand'] = 'Brand is required'
    qty = _parse_stock_quantity(quantity) if allow_zero_quantity else parse_quantity(quantity)
    if qty is None:
        errors['quantity'] = (
            'Quantity must be a whole number of zero or more'
            if allow_zero_quantity
            else 'Quantity must be a whole number greater than zero'
        )
    parsed_price = to_money(price)
    if parsed_price is None or parsed_price < 0:
        errors['price'] = 'Price must be a number of zero or more'
    if not clean_text(delivery_regions):
        errors['delivery_regions'] = 'Delivery regions are required'
    return errors


def validate_inventory_row(row: InventoryRowInput) -> dict[str, str]:
    return validate_inventory_fields(
        item_name=row.item_name,
        brand=row.brand,
        quantity=row.quantity,
        price=row.price,
        delivery_regions=row.delivery_regions,
    )


def _build_row(row: InventoryRowInput, *, supplier_name: str | None) -> InventoryRow:
    now = _now()
    return InventoryRow(
        supplier_name=clean_text(row.supplier_name) or clean_text(supplier_name) or settings.default_supplier_name,
        item_name=clean_text(row.item_name),
        brand=clean_text(row.brand),
        quantity=parse_quantity(row.quantity),
        price=round_money(to_money(row.price)),
        delivery_regions=clean_text(row.delivery_regions),
        created_at=now,
        updated_at=now,
    )


def add_inventory_item(
    db: Session,
    *,
    row: InventoryRowInput | Mapping,
    supplier_name: str | None = None,
) -> InventoryRow:
    row_input = _coerce_row(row)
    errors = validate_inventory_row(row_input)
    if errors:
        logger.warning('Rejected inventory row: %s', ', '.join(errors))
        raise ValidationError.from_fields(errors, subject='inventory row')

    inventory_row = _build_row(row_input, supplier_name=supplier_name)
    db.add(inventory_row)
    db.flush()
    logger.info('Added inventory row %s for %s', inventory_row.id, inventory_row.supplier_name)
    return inventory_row


def add_inventory_bulk(
    db: Session,
    *,
    rows: Sequence[InventoryRowInput | Mapping],
    supplier_name: str | None = None,
) -> list[InventoryRow]:
    """
    Import every valid row and silently drop the rest.

    Listings are newest first, so rows are inserted last-to-first to keep the
    batch at the front in its input order.
    """
    valid = [row for row in (_coerce_row(raw) for raw in rows) if not validate_inventory_row(row)]
    dropped = len(rows) - len(valid)

    created = [_build_row(row, supplier_name=supplier_name) for row in valid]
    for inventory_row in reversed(created):
        db.add(inventory_row)
        db.flush()

    logger.info('Bulk inventory import: %s imported, %s dropped', len(created), dropped)
    return created


def get_inventory_row(db: Session, row_id: int) -> InventoryRow:
    row = db.execute(select(InventoryRow).where(InventoryRow.id == row_id)).scalar_one_or_none()
    if not row:
        raise RecordNotFoundError('Inventory row', row_id)
    return row


def update_inventory_item(db: Session, *, row_id: int, patch: Mapping) -> InventoryRow:
    unknown = sorted(set(patch) - set(EDITABLE_FIELDS))
    if unknown:
        raise ValidationError.from_fields({name: 'Field cannot be edited' for name in unknown}, subject='inventory update')

    row = get_inventory_row(db, row_id)
    merged = {field: patch.get(field, getattr(row, field)) for field in EDITABLE_FIELDS}
    errors = validate_inventory_fields(
        item_name=merged['item_name'],
        brand=merged['brand'],
        quantity=merged['quantity'],
        price=merged['price'],
        delivery_regions=merged['delivery_regions'],
        allow_zero_quantity=True,
    )
    if 'supplier_name' in patch and not clean_text(patch['supplier_name']):
        errors['supplier_name'] = 'Supplier name is required'
    if errors:
        logger.warning('Rejected update of inventory row %s: %s', row_id, ', '.join(errors))
        raise ValidationError.from_fields(errors, subject='inventory update')

    row.supplier_name = clean_text(merged['supplier_name'])
    row.item_name = clean_text(merged['item_name'])
    row.brand = clean_text(merged['brand'])
    row.quantity = _parse_stock_quantity(merged['quantity'])
    row.price = round_money(to_money(merged['price']))
    row.delivery_regions = clean_text(merged['delivery_regions'])
    row.updated_at = _now()
    db.flush()
    return row


def delete_inventory_item(db: Session, *, row_id: int) -> bool:
    row = db.execute(select(InventoryRow).where(InventoryRow.id == row_id)).scalar_one_or_none()
    if not row:
        return False
    db.delete(row)
    db.flush()
    logger.info('Deleted inventory row %s', row_id)
    return True


def list_inventory(db: Session, *, supplier_name: str | None = None) -> list[InventoryRow]:
    query = select(InventoryRow).order_by(InventoryRow.id.desc())
    if supplier_name is not None:
        query = query.where(func.lower(func.trim(InventoryRow.supplier_name)) == normalize_text(supplier_name))
    return list(db.execute(query).scalars().all())


def take_snapshot(db: Session) -> InventorySnapshot:
    return InventorySnapshot.from_rows(list_inventory(db))


def find_row_for_allocation(rows: Sequence[InventoryRow], line: AllocationLine) -> InventoryRow | None:
    """
    Locate the row an allocation consumes.

    Rows are matched on supplier, item and brand (case-insensitive). The row the
    plan was built from wins when it still carries that key; otherwise the
    newest row with the same key is used.
    """
    key = offer_key(supplier_name=line.supplier_name, item_name=line.item_name, brand=line.brand)
    same_key = [
        row
        for row in rows
        if offer_key(supplier_name=row.supplier_name, item_name=row.item_name, brand=row.brand) == key
    ]
    for row in same_key:
        if row.id == line.inventory_row_id:
            return row
    return same_key[0] if same_key else None


def consume_inventory(row: InventoryRow, quantity: int) -> int:
    """Decrement ``row`` by ``quantity`` without going below zero; returns the amount taken."""
    current = int(row.quantity or 0)
    new_qty = max(0, current - max(int(quantity), 0))
    row.quantity = new_qty
    row.updated_at = _now()
    return current - new_qty
