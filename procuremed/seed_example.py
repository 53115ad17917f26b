from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from procuremed.db import SessionLocal, engine, init_db
from procuremed.models import InventoryRow, Requisition
from procuremed.services.inventory_service import InventoryRowInput, add_inventory_bulk
from procuremed.services.requisition_service import (
    RequisitionHeaderInput,
    RequisitionItemInput,
    create_requisition,
)

DEMO_INVENTORY = [
    ('MedSupply Co', 'Amoxicillin 500mg', 'Generix', 60, Decimal('5.00'), 'Region I, Region II'),
    ('Northern Pharma', 'Amoxicillin 500mg', 'Generix', 50, Decimal('4.00'), 'Region I'),
    ('MedSupply Co', 'Paracetamol 500mg', 'Generix', 600, Decimal('1.25'), 'Region I, Region III, NCR'),
    ('Surgitech Direct', 'IV Catheters M', 'Surgitech', 300, Decimal('18.50'), 'NCR, Region IV-A'),
    ('Northern Pharma', 'Surgical Gloves M', 'SafeHands', 1000, Decimal('3.10'), 'Region I, Region II, NCR'),
]


def seed(db: Session) -> None:
    has_inventory = db.execute(select(InventoryRow.id).limit(1)).scalar_one_or_none()
    if not has_inventory:
        for supplier_name, item_name, brand, quantity, price, regions in DEMO_INVENTORY:
            add_inventory_bulk(
                db,
                rows=[
                    InventoryRowInput(
                        item_name=item_name,
                        brand=brand,
                        quantity=quantity,
                        price=price,
                        delivery_regions=regions,
                    )
                ],
                supplier_name=supplier_name,
            )

    has_requisition = db.execute(select(Requisition.id).limit(1)).scalar_one_or_none()
    if not has_requisition:
        create_requisition(
            db,
            header=RequisitionHeaderInput(delivery_date='2025-09-01', delivery_location='Region I', urgency='Critical'),
            items=[
                RequisitionItemInput(item_name='Amoxicillin 500mg', brand='Generix', quantity=100),
                RequisitionItemInput(item_name='Surgical Gloves M', brand='SafeHands', quantity=200),
            ],
        )

    db.commit()


if __name__ == '__main__':
    init_db(engine)
    with SessionLocal() as db:
        seed(db)
    print('Seed data inserted/verified.')
