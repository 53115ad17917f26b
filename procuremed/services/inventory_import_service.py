from __future__ import annotations

import csv
from dataclasses import dataclass, field
from io import StringIO

from sqlalchemy.orm import Session

from procuremed.logging import get_logger
from procuremed.models import InventoryRow
from procuremed.services.inventory_service import (
    InventoryRowInput,
    add_inventory_bulk,
    validate_inventory_row,
)

logger = get_logger(__name__)

COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    'item_name': ('itemName', 'Item'),
    'brand': ('brand', 'Brand'),
    'quantity': ('quantity', 'Qty', 'qty'),
    'price': ('price', 'Price'),
    'delivery_regions': ('deliveryRegions', 'regions'),
}


@dataclass(frozen=True)
class ParsedInventoryCsv:
    rows: list[InventoryRowInput]
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ImportSummary:
    imported_ids: list[int]
    dropped: int
    errors: list[str] = field(default_factory=list)

    @property
    def imported(self) -> int:
        return len(self.imported_ids)


def _pick(row: dict, aliases: tuple[str, ...]) -> str:
    for alias in aliases:
        value = row.get(alias)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ''


def parse_inventory_csv(csv_text: str) -> ParsedInventoryCsv:
    """
    Read supplier inventory from CSV text with a header row.

    Recognized headers (first non-empty alias wins): itemName/Item, brand/Brand,
    quantity/Qty/qty, price/Price, deliveryRegions/regions. Rows that fail
    validation are left out and reported in ``errors`` by line number.
    """
    reader = csv.DictReader(StringIO(csv_text.lstrip('\ufeff')))
    if reader.fieldnames:
        reader.fieldnames = [name.strip() for name in reader.fieldnames]

    rows: list[InventoryRowInput] = []
    errors: list[str] = []
    for raw in reader:
        if not any(str(value or '').strip() for value in raw.values() if not isinstance(value, list)):
            continue
        candidate = InventoryRowInput(
            item_name=_pick(raw, COLUMN_ALIASES['item_name']),
            brand=_pick(raw, COLUMN_ALIASES['brand']),
            quantity=_pick(raw, COLUMN_ALIASES['quantity']),
            price=_pick(raw, COLUMN_ALIASES['price']),
            delivery_regions=_pick(raw, COLUMN_ALIASES['delivery_regions']),
        )
        problems = validate_inventory_row(candidate)
        if problems:
            errors.append(f'Line {reader.line_num}: ' + '; '.join(problems.values()))
            continue
        rows.append(candidate)
    return ParsedInventoryCsv(rows=rows, errors=errors)


def import_inventory_csv(db: Session, *, csv_text: str, supplier_name: str | None = None) -> ImportSummary:
    parsed = parse_inventory_csv(csv_text)
    created: list[InventoryRow] = add_inventory_bulk(db, rows=parsed.rows, supplier_name=supplier_name)
    if parsed.errors:
        logger.warning('Inventory CSV import dropped %s row(s)', len(parsed.errors))
    return ImportSummary(
        imported_ids=[row.id for row in created],
        dropped=len(parsed.errors),
        errors=parsed.errors,
    )
