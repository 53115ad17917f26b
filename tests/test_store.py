from __future__ import annotations

import unittest
from dataclasses import replace
from decimal import Decimal

from procuremed.auth import Role
from procuremed.exceptions import (
    AlreadyAcceptedError,
    ConflictError,
    RecordNotFoundError,
    TransitionNotAllowedError,
    ValidationError,
)
from procuremed.models import OrderStatus, RequisitionItemStatus, RequisitionStatus
from procuremed.services.matching_service import PlanStatus
from procuremed.services.order_service import forward_only_transitions, get_order
from procuremed.services.user_session_service import MemorySessionSlot
from procuremed.store import StateStore

MEMORY_URL = 'sqlite+pysqlite:///:memory:'


def _stock(item_name: str, brand: str, quantity: int, price: str, regions: str) -> dict:
    return {
        'item_name': item_name,
        'brand': brand,
        'quantity': quantity,
        'price': price,
        'delivery_regions': regions,
    }


class StateStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.slot = MemorySessionSlot()
        self.store = StateStore.open(MEMORY_URL, session_slot=self.slot)
        self.medsupply_id = self.store.add_inventory_item(
            _stock('Amoxicillin 500mg', 'Generix', 60, '5.00', 'Region I, Region II'),
            supplier_name='MedSupply Co',
        )
        self.northern_id = self.store.add_inventory_item(
            _stock('Amoxicillin 500mg', 'Generix', 50, '4.00', 'Region I'),
            supplier_name='Northern Pharma',
        )

    def tearDown(self) -> None:
        self.store.close()

    def _requisition(self, *items: dict, location: str = 'Region I') -> int:
        return self.store.create_requisition(
            {'delivery_date': '2025-09-01', 'delivery_location': location, 'urgency': 'Critical'},
            list(items) or [{'item_name': 'Amoxicillin 500mg', 'brand': 'Generix', 'quantity': 100}],
        )

    def _first_item_id(self, requisition_id: int) -> int:
        return self.store.requisition(requisition_id).items[0].id

    def _quantity(self, row_id: int) -> int:
        return {row.id: row.quantity for row in self.store.inventory()}[row_id]

    def test_accepting_plan_creates_orders_and_decrements_inventory(self) -> None:
        requisition_id = self._requisition()
        plan = self.store.plan_for_item(self._first_item_id(requisition_id))
        self.assertEqual(plan.status, PlanStatus.FULLY_MATCHED)
        self.assertEqual(plan.total_cost, Decimal('450'))

        order_ids = self.store.accept_allocation_plan(plan)

        self.assertEqual(len(order_ids), 2)
        orders = self.store.orders(requisition_id=requisition_id)
        self.assertEqual({order.supplier_name for order in orders}, {'Northern Pharma', 'MedSupply Co'})
        self.assertTrue(all(order.status == OrderStatus.ACCEPTED for order in orders))
        self.assertTrue(all(order.delivery_location == 'Region I' for order in orders))
        self.assertEqual(sum(order.line_cost for order in orders), Decimal('450'))
        self.assertEqual(self._quantity(self.northern_id), 0)
        self.assertEqual(self._quantity(self.medsupply_id), 10)

        requisition = self.store.requisition(requisition_id)
        self.assertEqual(requisition.items[0].status, RequisitionItemStatus.ACCEPTED)
        self.assertEqual(requisition.status, RequisitionStatus.CLOSED)

    def test_second_accept_is_rejected_without_changes(self) -> None:
        plan = self.store.plan_for_item(self._first_item_id(self._requisition()))
        self.store.accept_allocation_plan(plan)

        with self.assertRaises(AlreadyAcceptedError):
            self.store.accept_allocation_plan(plan)

        self.assertEqual(len(self.store.orders()), 2)
        self.assertEqual(self._quantity(self.northern_id), 0)
        self.assertEqual(self._quantity(self.medsupply_id), 10)

    def test_inventory_is_floored_when_row_shrank_after_planning(self) -> None:
        plan = self.store.plan_for_item(self._first_item_id(self._requisition()))
        self.store.update_inventory_item(self.medsupply_id, {'quantity': 20})

        self.store.accept_allocation_plan(plan)

        self.assertEqual(self._quantity(self.medsupply_id), 0)
        self.assertEqual(self._quantity(self.northern_id), 0)

    def test_vanished_row_rejects_plan_and_leaves_state_untouched(self) -> None:
        requisition_id = self._requisition()
        item_id = self._first_item_id(requisition_id)
        plan = self.store.plan_for_item(item_id)
        self.store.delete_inventory_item(self.northern_id)

        with self.assertRaises(RecordNotFoundError):
            self.store.accept_allocation_plan(plan)

        self.assertEqual(self.store.orders(), [])
        self.assertEqual(self._quantity(self.medsupply_id), 60)
        self.assertEqual(self.store.requisition(requisition_id).items[0].status, RequisitionItemStatus.OPEN)

        replanned = self.store.plan_for_item(item_id)
        self.assertEqual(replanned.status, PlanStatus.PARTIALLY_MATCHED)
        self.assertEqual(len(self.store.accept_allocation_plan(replanned)), 1)

    def test_empty_plan_cannot_be_accepted(self) -> None:
        requisition_id = self._requisition({'item_name': 'Unobtainium', 'brand': 'None', 'quantity': 5})
        plan = self.store.plan_for_item(self._first_item_id(requisition_id))
        self.assertEqual(plan.status, PlanStatus.NO_MATCH)

        with self.assertRaises(ValidationError):
            self.store.accept_allocation_plan(plan)
        self.assertEqual(self.store.open_items()[0].id, plan.request.item_id)

    def _assert_nothing_accepted(self, requisition_id: int) -> None:
        self.assertEqual(self.store.orders(), [])
        self.assertEqual(self._quantity(self.northern_id), 50)
        self.assertEqual(self._quantity(self.medsupply_id), 60)
        self.assertEqual(self.store.requisition(requisition_id).items[0].status, RequisitionItemStatus.OPEN)

    def test_plan_allocating_more_than_requested_is_rejected(self) -> None:
        requisition_id = self._requisition()
        plan = self.store.plan_for_item(self._first_item_id(requisition_id))
        first, *rest = plan.allocations
        inflated = replace(plan, allocations=(replace(first, allocated_qty=first.allocated_qty + 1), *rest))

        with self.assertRaises(ValidationError) as ctx:
            self.store.accept_allocation_plan(inflated)
        self.assertIn('allocations', ctx.exception.fields)
        self._assert_nothing_accepted(requisition_id)

    def test_plan_with_zero_quantity_line_is_rejected(self) -> None:
        requisition_id = self._requisition()
        plan = self.store.plan_for_item(self._first_item_id(requisition_id))
        first, *rest = plan.allocations
        zeroed = replace(plan, allocations=(replace(first, allocated_qty=0), *rest))

        with self.assertRaises(ValidationError) as ctx:
            self.store.accept_allocation_plan(zeroed)
        self.assertIn('allocations[0].allocated_qty', ctx.exception.fields)
        self._assert_nothing_accepted(requisition_id)

    def test_requisition_closes_after_last_item(self) -> None:
        requisition_id = self._requisition(
            {'item_name': 'Amoxicillin 500mg', 'brand': 'Generix', 'quantity': 10},
            {'item_name': 'Amoxicillin 500mg', 'brand': 'Generix', 'quantity': 5},
        )
        first, second = self.store.requisition(requisition_id).items

        self.store.accept_allocation_plan(self.store.plan_for_item(first.id))
        self.assertEqual(self.store.requisition(requisition_id).status, RequisitionStatus.OPEN)
        self.assertEqual([item.id for item in self.store.open_items()], [second.id])

        self.store.accept_allocation_plan(self.store.plan_for_item(second.id))
        self.assertEqual(self.store.requisition(requisition_id).status, RequisitionStatus.CLOSED)
        self.assertEqual(self.store.requisitions(status=RequisitionStatus.OPEN), [])

    def test_plan_for_another_requisition_is_a_conflict(self) -> None:
        first_id = self._requisition()
        second_id = self._requisition()
        plan = self.store.plan_for_item(self._first_item_id(first_id))
        mismatched = replace(plan, request=replace(plan.request, requisition_id=second_id))

        with self.assertRaises(ConflictError):
            self.store.accept_allocation_plan(mismatched)
        self.assertEqual(self.store.orders(), [])

    def test_permissive_status_updates(self) -> None:
        order_id = self.store.accept_allocation_plan(self.store.plan_for_item(self._first_item_id(self._requisition())))[0]

        self.assertEqual(self.store.update_order_status(order_id, 'Delivered').status, OrderStatus.DELIVERED)
        self.assertEqual(self.store.update_order_status(order_id, 'in transit').status, OrderStatus.IN_TRANSIT)
        self.assertEqual(self.store.update_order_status(order_id, OrderStatus.ACCEPTED).status, OrderStatus.ACCEPTED)

        with self.assertRaises(ValidationError):
            self.store.update_order_status(order_id, 'Lost')
        with self.assertRaises(RecordNotFoundError):
            self.store.update_order_status(9999, 'Delivered')

    def test_forward_only_status_updates(self) -> None:
        self.store.transition_policy = forward_only_transitions
        order_id = self.store.accept_allocation_plan(self.store.plan_for_item(self._first_item_id(self._requisition())))[0]

        self.store.update_order_status(order_id, 'Preparing')
        with self.assertRaises(TransitionNotAllowedError):
            self.store.update_order_status(order_id, 'Accepted')
        self.store.update_order_status(order_id, 'Cancelled')
        with self.assertRaises(TransitionNotAllowedError):
            self.store.update_order_status(order_id, 'Delivered')

        self.assertEqual(get_order(self.store.db, order_id).status, OrderStatus.CANCELLED)

    def test_login_sets_default_supplier_for_inventory(self) -> None:
        user = self.store.login('  Surgitech Direct ', 'supplier')
        self.assertEqual(user.name, 'Surgitech Direct')
        self.assertEqual(user.role, Role.SUPPLIER)

        row_id = self.store.add_inventory_item(_stock('IV Catheters M', 'Surgitech', 300, '18.50', 'NCR'))
        rows = self.store.inventory(supplier_name='surgitech direct')
        self.assertEqual([row.id for row in rows], [row_id])

        dashboard = self.store.supplier_dashboard()
        self.assertEqual(dashboard.supplier_name, 'Surgitech Direct')
        self.assertEqual(dashboard.total_skus, 1)
        self.assertEqual(dashboard.inventory_qty, 300)

    def test_provider_login_does_not_name_the_supplier(self) -> None:
        self.store.login('City Hospital', 'provider')

        row_id = self.store.add_inventory_item(_stock('IV Catheters M', 'Surgitech', 300, '18.50', 'NCR'))

        row = {row.id: row for row in self.store.inventory()}[row_id]
        self.assertEqual(row.supplier_name, 'Supplier')
        self.assertEqual(self.store.inventory(supplier_name='City Hospital'), [])

    def test_session_survives_a_new_store_on_the_same_slot(self) -> None:
        user = self.store.login('City Hospital', Role.PROVIDER)

        other = StateStore.open(MEMORY_URL, session_slot=self.slot)
        self.addCleanup(other.close)
        self.assertEqual(other.restore_session(), user)

        other.logout()
        self.assertIsNone(other.current_user)
        self.assertIsNone(self.store.restore_session())

    def test_blank_login_name_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            self.store.login('   ', 'provider')
        self.assertIsNone(self.store.current_user)


if __name__ == '__main__':
    unittest.main()
