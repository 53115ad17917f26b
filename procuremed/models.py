from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Urgency(str, Enum):
    NORMAL = 'Normal'
    CRITICAL = 'Critical'


class RequisitionStatus(str, Enum):
    OPEN = 'Open'
    CLOSED = 'Closed'


class RequisitionItemStatus(str, Enum):
    OPEN = 'Open'
    ACCEPTED = 'Accepted'


class OrderStatus(str, Enum):
    ACCEPTED = 'Accepted'
    PREPARING = 'Preparing'
    IN_TRANSIT = 'In Transit'
    DELIVERED = 'Delivered'
    CANCELLED = 'Cancelled'


class Requisition(Base):
    __tablename__ = 'requisitions'
    __table_args__ = {'sqlite_autoincrement': True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    delivery_date: Mapped[date] = mapped_column(Date, nullable=False)
    delivery_location: Mapped[str] = mapped_column(Text, nullable=False)
    urgency: Mapped[Urgency] = mapped_column(
        SQLEnum(Urgency, name='requisition_urgency'),
        nullable=False,
        default=Urgency.NORMAL,
        server_default='NORMAL',
    )
    status: Mapped[RequisitionStatus] = mapped_column(
        SQLEnum(RequisitionStatus, name='requisition_status'),
        nullable=False,
        default=RequisitionStatus.OPEN,
        server_default='OPEN',
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    items: Mapped[list[RequisitionItem]] = relationship(
        back_populates='requisition',
        order_by='RequisitionItem.position',
        lazy='selectin',
    )


class RequisitionItem(Base):
    __tablename__ = 'requisition_items'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='requisition_items_quantity_positive'),
        {'sqlite_autoincrement': True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    requisition_id: Mapped[int] = mapped_column(Integer, ForeignKey('requisitions.id', ondelete='CASCADE'), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    brand: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[RequisitionItemStatus] = mapped_column(
        SQLEnum(RequisitionItemStatus, name='requisition_item_status'),
        nullable=False,
        default=RequisitionItemStatus.OPEN,
        server_default='OPEN',
    )
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    requisition: Mapped[Requisition] = relationship(back_populates='items')


class InventoryRow(Base):
    __tablename__ = 'inventory_rows'
    __table_args__ = (
        CheckConstraint('quantity >= 0', name='inventory_rows_quantity_non_negative'),
        CheckConstraint('price >= 0', name='inventory_rows_price_non_negative'),
        {'sqlite_autoincrement': True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    supplier_name: Mapped[str] = mapped_column(Text, nullable=False)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    brand: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    delivery_regions: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Order(Base):
    __tablename__ = 'orders'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='orders_quantity_positive'),
        {'sqlite_autoincrement': True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    requisition_id: Mapped[int] = mapped_column(Integer, ForeignKey('requisitions.id'), nullable=False)
    requisition_item_id: Mapped[int] = mapped_column(Integer, ForeignKey('requisition_items.id'), nullable=False)
    # Informational only; inventory rows may be deleted after an order exists.
    inventory_row_id: Mapped[int | None] = mapped_column(Integer)
    supplier_name: Mapped[str] = mapped_column(Text, nullable=False)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    brand: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    line_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    delivery_location: Mapped[str] = mapped_column(Text, nullable=False)
    needed_by: Mapped[date] = mapped_column(Date, nullable=False)
    urgency: Mapped[Urgency] = mapped_column(SQLEnum(Urgency, name='order_urgency'), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name='order_status'),
        nullable=False,
        default=OrderStatus.ACCEPTED,
        server_default='ACCEPTED',
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
