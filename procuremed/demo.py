from __future__ import annotations

import argparse
import sys
from datetime import date, timedelta
from pathlib import Path

from procuremed.exceptions import ProcureMedError
from procuremed.logging import configure_logging
from procuremed.models import Urgency
from procuremed.seed_example import seed
from procuremed.services.matching_service import AllocationPlan
from procuremed.services.money import format_money
from procuremed.services.user_session_service import MemorySessionSlot
from procuremed.store import StateStore


def render_plan(plan: AllocationPlan) -> str:
    request = plan.request
    lines = [
        f'Request: {request.item_name} ({request.brand or "Any"}) x {request.quantity} to {request.delivery_location or "any region"}',
        f'Status: {plan.status.value}',
        f'Requested: {request.quantity}  Matched: {plan.matched_qty}  Remaining: {plan.remaining_qty}',
        f'Total Cost: {format_money(plan.total_cost)}',
    ]
    if not plan.allocations:
        lines.append('No eligible suppliers found.')
    for line in plan.allocations:
        lines.append(
            f'  {line.supplier_name}: {line.item_name} ({line.brand}) '
            f'{line.allocated_qty} @ {format_money(line.unit_price)} = {format_money(line.line_cost)}'
        )
    return '\n'.join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Plan a requisition line against supplier inventory.')
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument('--inventory-csv', type=Path, help='CSV file with supplier inventory')
    source.add_argument('--seed', action='store_true', help='Use the built-in demo inventory')
    parser.add_argument('--supplier', default=None, help='Supplier name for CSV rows')
    parser.add_argument('--item', required=True)
    parser.add_argument('--brand', required=True)
    parser.add_argument('--quantity', required=True)
    parser.add_argument('--location', required=True)
    parser.add_argument('--needed-by', default=None, help='ISO date, defaults to one week from today')
    parser.add_argument('--urgency', default=Urgency.NORMAL.value, choices=[urgency.value for urgency in Urgency])
    parser.add_argument('--accept', action='store_true', help='Accept the plan and create orders')
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    store = StateStore.open('sqlite+pysqlite:///:memory:', session_slot=MemorySessionSlot())
    try:
        if args.seed:
            seed(store.db)
        else:
            summary = store.import_inventory_csv(
                args.inventory_csv.read_text(encoding='utf-8'),
                supplier_name=args.supplier,
            )
            print(f'Imported {summary.imported} inventory row(s), dropped {summary.dropped}.')

        requisition_id = store.create_requisition(
            {
                'delivery_date': args.needed_by or (date.today() + timedelta(days=7)).isoformat(),
                'delivery_location': args.location,
                'urgency': args.urgency,
            },
            [{'item_name': args.item, 'brand': args.brand, 'quantity': args.quantity}],
        )
        item = store.requisition(requisition_id).items[0]
        plan = store.plan_for_item(item.id)
        print(render_plan(plan))

        if args.accept:
            order_ids = store.accept_allocation_plan(plan)
            print(f'Plan accepted: {len(order_ids)} order(s) sent to suppliers.')
    except ProcureMedError as exc:
        print(f'Error: {exc}', file=sys.stderr)
        return 1
    finally:
        store.close()
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
