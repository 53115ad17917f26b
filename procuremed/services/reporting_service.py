from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from procuremed.models import InventoryRow, Order, Requisition, RequisitionStatus
from procuremed.services.inventory_service import list_inventory
from procuremed.services.order_service import list_orders
from procuremed.services.requisition_service import list_requisitions


@dataclass(frozen=True)
class SupplierDashboard:
    supplier_name: str
    total_skus: int
    inventory_qty: int
    assigned_orders: int
    order_qty: int
    orders: list[Order]
    inventory: list[InventoryRow]


@dataclass(frozen=True)
class ComplianceLog:
    accepted_orders: list[Order]
    open_requisitions: list[Requisition]
    inventory_snapshot: list[InventoryRow]
    inventory_total_rows: int


def build_supplier_dashboard(db: Session, *, supplier_name: str) -> SupplierDashboard:
    inventory = list_inventory(db, supplier_name=supplier_name)
    orders = list_orders(db, supplier_name=supplier_name)
    return SupplierDashboard(
        supplier_name=supplier_name.strip(),
        total_skus=len(inventory),
        inventory_qty=sum(int(row.quantity or 0) for row in inventory),
        assigned_orders=len(orders),
        order_qty=sum(int(order.quantity or 0) for order in orders),
        orders=orders,
        inventory=inventory,
    )


def build_compliance_log(db: Session, *, inventory_limit: int = 12) -> ComplianceLog:
    inventory = list_inventory(db)
    return ComplianceLog(
        accepted_orders=list_orders(db),
        open_requisitions=list_requisitions(db, status=RequisitionStatus.OPEN),
        inventory_snapshot=inventory[: max(inventory_limit, 0)],
        inventory_total_rows=len(inventory),
    )
