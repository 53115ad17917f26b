"""
The state store: single owner of the requisition, inventory and order
collections plus the signed-in user.

Each mutating method is one unit of work on the store's session. It commits
when the service call returns and rolls back when it raises, so callers either
see the whole change or none of it. Planning never goes through a mutation; it
works on an ``InventorySnapshot``.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager

from sqlalchemy.orm import Session

from procuremed.auth import Role, User
from procuremed.config import settings
from procuremed.db import create_session_factory
from procuremed.logging import get_logger
from procuremed.models import InventoryRow, Order, OrderStatus, Requisition, RequisitionItem, RequisitionStatus
from procuremed.services import (
    inventory_import_service,
    inventory_service,
    order_service,
    reporting_service,
    requisition_service,
    user_session_service,
)
from procuremed.services.inventory_import_service import ImportSummary
from procuremed.services.inventory_service import InventoryRowInput
from procuremed.services.matching_service import AllocationPlan, InventorySnapshot, build_allocation_plan
from procuremed.services.order_service import TransitionPolicy
from procuremed.services.reporting_service import ComplianceLog, SupplierDashboard
from procuremed.services.requisition_service import RequisitionHeaderInput, RequisitionItemInput
from procuremed.services.user_session_service import SessionSlot

logger = get_logger(__name__)


class StateStore:
    def __init__(
        self,
        db: Session,
        *,
        session_slot: SessionSlot | None = None,
        transition_policy: TransitionPolicy | None = None,
    ) -> None:
        self.db = db
        self.session_slot = session_slot if session_slot is not None else user_session_service.get_session_slot()
        self.transition_policy = transition_policy or order_service.resolve_transition_policy(
            settings.order_status_policy
        )
        self._user: User | None = None

    @classmethod
    def open(cls, database_url: str | None = None, **kwargs) -> StateStore:
        factory = create_session_factory(database_url)
        return cls(factory(), **kwargs)

    def close(self) -> None:
        self.db.close()

    @contextmanager
    def _unit_of_work(self) -> Iterator[Session]:
        try:
            yield self.db
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    # ----- requisitions -----

    def create_requisition(
        self,
        header: RequisitionHeaderInput | Mapping,
        items: Sequence[RequisitionItemInput | Mapping],
    ) -> int:
        with self._unit_of_work() as db:
            requisition = requisition_service.create_requisition(db, header=header, items=items)
        return requisition.id

    def requisitions(self, status: RequisitionStatus | None = None) -> list[Requisition]:
        return requisition_service.list_requisitions(self.db, status=status)

    def requisition(self, requisition_id: int) -> Requisition:
        return requisition_service.get_requisition(self.db, requisition_id)

    def open_items(self) -> list[RequisitionItem]:
        return requisition_service.list_open_items(self.db)

    # ----- inventory -----

    def _supplier_name(self, supplier_name: str | None) -> str | None:
        if supplier_name:
            return supplier_name
        if self._user and self._user.role == Role.SUPPLIER:
            return self._user.name
        return None

    def add_inventory_item(self, row: InventoryRowInput | Mapping, supplier_name: str | None = None) -> int:
        with self._unit_of_work() as db:
            created = inventory_service.add_inventory_item(
                db, row=row, supplier_name=self._supplier_name(supplier_name)
            )
        return created.id

    def add_inventory_bulk(
        self,
        rows: Sequence[InventoryRowInput | Mapping],
        supplier_name: str | None = None,
    ) -> list[int]:
        with self._unit_of_work() as db:
            created = inventory_service.add_inventory_bulk(
                db, rows=rows, supplier_name=self._supplier_name(supplier_name)
            )
        return [row.id for row in created]

    def import_inventory_csv(self, csv_text: str, supplier_name: str | None = None) -> ImportSummary:
        with self._unit_of_work() as db:
            return inventory_import_service.import_inventory_csv(
                db, csv_text=csv_text, supplier_name=self._supplier_name(supplier_name)
            )

    def update_inventory_item(self, row_id: int, patch: Mapping) -> InventoryRow:
        with self._unit_of_work() as db:
            return inventory_service.update_inventory_item(db, row_id=row_id, patch=patch)

    def delete_inventory_item(self, row_id: int) -> bool:
        with self._unit_of_work() as db:
            return inventory_service.delete_inventory_item(db, row_id=row_id)

    def inventory(self, supplier_name: str | None = None) -> list[InventoryRow]:
        return inventory_service.list_inventory(self.db, supplier_name=supplier_name)

    def snapshot(self) -> InventorySnapshot:
        return inventory_service.take_snapshot(self.db)

    # ----- matching -----

    def plan_for_item(self, item_id: int) -> AllocationPlan:
        item = requisition_service.get_requisition_item(self.db, item_id)
        return build_allocation_plan(requisition_service.build_match_request(item), self.snapshot())

    def accept_allocation_plan(self, plan: AllocationPlan) -> list[int]:
        with self._unit_of_work() as db:
            orders = order_service.accept_allocation_plan(db, plan=plan)
        return [order.id for order in orders]

    # ----- orders -----

    def update_order_status(self, order_id: int, status: OrderStatus | str) -> Order:
        with self._unit_of_work() as db:
            return order_service.update_order_status(
                db, order_id=order_id, status=status, policy=self.transition_policy
            )

    def orders(self, supplier_name: str | None = None, requisition_id: int | None = None) -> list[Order]:
        return order_service.list_orders(self.db, supplier_name=supplier_name, requisition_id=requisition_id)

    def supplier_dashboard(self, supplier_name: str | None = None) -> SupplierDashboard:
        name = self._supplier_name(supplier_name) or settings.default_supplier_name
        return reporting_service.build_supplier_dashboard(self.db, supplier_name=name)

    def compliance_log(self, inventory_limit: int = 12) -> ComplianceLog:
        return reporting_service.build_compliance_log(self.db, inventory_limit=inventory_limit)

    # ----- session -----

    @property
    def current_user(self) -> User | None:
        return self._user

    def login(self, name: str, role: Role | str) -> User:
        self._user = user_session_service.login(self.session_slot, name=name, role=role)
        return self._user

    def logout(self) -> None:
        self._user = None
        user_session_service.logout(self.session_slot)

    def restore_session(self) -> User | None:
        self._user = user_session_service.load_session(self.session_slot)
        return self._user
