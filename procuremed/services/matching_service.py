from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from procuremed.config import settings
from procuremed.models import InventoryRow, Urgency
from procuremed.services.money import line_cost
from procuremed.services.text_utils import normalize_text, region_matches


class PlanStatus(str, Enum):
    FULLY_MATCHED = 'Fully Matched'
    PARTIALLY_MATCHED = 'Partially Matched'
    NO_MATCH = 'No Match'


@dataclass(frozen=True)
class InventoryOffer:
    id: int
    supplier_name: str
    item_name: str
    brand: str
    quantity: int
    price: Decimal
    delivery_regions: str

    @classmethod
    def from_row(cls, row: InventoryRow) -> InventoryOffer:
        return cls(
            id=row.id,
            supplier_name=row.supplier_name,
            item_name=row.item_name,
            brand=row.brand,
            quantity=int(row.quantity or 0),
            price=Decimal(row.price or 0),
            delivery_regions=row.delivery_regions or '',
        )


@dataclass(frozen=True)
class InventorySnapshot:
    """Immutable copy of the inventory collection, most recent row first."""

    offers: tuple[InventoryOffer, ...] = ()

    @classmethod
    def from_rows(cls, rows: list[InventoryRow]) -> InventorySnapshot:
        return cls(offers=tuple(InventoryOffer.from_row(row) for row in rows))


@dataclass(frozen=True)
class MatchRequest:
    item_name: str
    brand: str
    quantity: int
    delivery_location: str
    requisition_id: int | None = None
    item_id: int | None = None
    delivery_date: date | None = None
    urgency: Urgency = Urgency.NORMAL


@dataclass(frozen=True)
class AllocationLine:
    inventory_row_id: int
    supplier_name: str
    item_name: str
    brand: str
    unit_price: Decimal
    allocated_qty: int
    line_cost: Decimal


@dataclass(frozen=True)
class AllocationPlan:
    request: MatchRequest
    allocations: tuple[AllocationLine, ...]
    total_cost: Decimal
    matched_qty: int
    remaining_qty: int
    status: PlanStatus


def is_eligible(offer: InventoryOffer, request: MatchRequest) -> bool:
    if normalize_text(offer.item_name) != normalize_text(request.item_name):
        return False
    wanted_brand = normalize_text(request.brand)
    if wanted_brand and normalize_text(offer.brand) != wanted_brand:
        return False
    if not region_matches(offer.delivery_regions, request.delivery_location):
        return False
    return offer.quantity > 0


def rank_offers(offers: list[InventoryOffer]) -> list[InventoryOffer]:
    # Cheapest first; at equal price deplete the larger lot first. Stable for remaining ties.
    return sorted(offers, key=lambda offer: (offer.price, -offer.quantity))


def eligible_offers(request: MatchRequest, snapshot: InventorySnapshot) -> list[InventoryOffer]:
    return rank_offers([offer for offer in snapshot.offers if is_eligible(offer, request)])


def _plan_status(*, allocations: list[AllocationLine], remaining: int) -> PlanStatus:
    if remaining <= 0:
        return PlanStatus.FULLY_MATCHED
    if allocations:
        return PlanStatus.PARTIALLY_MATCHED
    return PlanStatus.NO_MATCH


def build_allocation_plan(request: MatchRequest, snapshot: InventorySnapshot) -> AllocationPlan:
    """
    Greedily fill ``request.quantity`` from the cheapest eligible offers.

    Taking from the cheapest capacity first is cost-minimal for a single demand
    line. No eligible offers is a normal outcome reported as ``NO_MATCH``.
    """
    remaining = max(int(request.quantity), 0)
    allocations: list[AllocationLine] = []
    total_cost = Decimal('0')

    for offer in eligible_offers(request, snapshot):
        if remaining <= 0:
            break
        take = min(offer.quantity, remaining)
        cost = line_cost(take, offer.price)
        allocations.append(
            AllocationLine(
                inventory_row_id=offer.id,
                supplier_name=offer.supplier_name or settings.default_supplier_name,
                item_name=offer.item_name,
                brand=offer.brand,
                unit_price=offer.price,
                allocated_qty=take,
                line_cost=cost,
            )
        )
        total_cost += cost
        remaining -= take

    return AllocationPlan(
        request=request,
        allocations=tuple(allocations),
        total_cost=total_cost,
        matched_qty=max(int(request.quantity), 0) - remaining,
        remaining_qty=remaining,
        status=_plan_status(allocations=allocations, remaining=remaining),
    )
