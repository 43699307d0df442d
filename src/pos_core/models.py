"""
SQLAlchemy ORM models for the settlement engine and the entities it touches.
"""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from pos_core.constants import (
    DiscountType,
    ExportStatus,
    OrderPriority,
    OrderStatus,
    OrderType,
    TableStatus,
)
from pos_core.datetime_utils import utcnow

MONEY = Numeric(12, 2)


class JSONBType(TypeDecorator):
    """JSON column: native JSONB on PostgreSQL, serialized TEXT elsewhere."""

    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect):
        native = JSONB() if dialect.name == "postgresql" else Text()
        return dialect.type_descriptor(native)

    def process_bind_param(self, value, dialect):
        if value is None or dialect.name == "postgresql":
            return value
        return json.dumps(value)

    def process_result_value(self, value, dialect):
        if value is None or dialect.name == "postgresql" or not isinstance(value, str):
            return value
        return json.loads(value)

    @property
    def python_type(self):
        return object


JSONB_TYPE = JSONBType()


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class Employee(Base):
    __tablename__ = "pos_employees"
    __table_args__ = (
        CheckConstraint("total_sales >= 0", name="ck_employee_total_sales_non_negative"),
        CheckConstraint("total_tips >= 0", name="ck_employee_total_tips_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="CASHIER")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    total_sales: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    total_tips: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class Customer(Base):
    __tablename__ = "pos_customers"
    __table_args__ = (
        CheckConstraint("loyalty_points >= 0", name="ck_customer_points_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    membership_card_number: Mapped[str | None] = mapped_column(
        String(64), unique=True, nullable=True
    )
    loyalty_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tags: Mapped[list[str] | None] = mapped_column(JSONB_TYPE, nullable=True)
    total_spent: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    visit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_visit_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    orders: Mapped[list[Order]] = relationship("Order", back_populates="customer")


class Product(Base):
    __tablename__ = "pos_products"
    __table_args__ = (CheckConstraint("total_stock >= 0", name="ck_product_stock_non_negative"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    base_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    total_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reorder_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    variants: Mapped[list[ProductVariant]] = relationship(
        "ProductVariant", back_populates="product", cascade="all, delete-orphan"
    )

    @property
    def needs_reorder(self) -> bool:
        return self.total_stock <= self.reorder_threshold


class ProductVariant(Base):
    __tablename__ = "pos_product_variants"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_variant_stock_non_negative"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("pos_products.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    price: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    product: Mapped[Product] = relationship("Product", back_populates="variants")


class Table(Base):
    """Physical dining table and the order currently seated at it."""

    __tablename__ = "pos_tables"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=TableStatus.AVAILABLE.value
    )
    # Plain column: a FK here would form a cycle with pos_orders.table_id.
    current_order_id: Mapped[int | None] = mapped_column(Integer, nullable=True)


class FiscalCounter(Base):
    """Singleton row holding the gap-free invoice and credit-memo sequences."""

    __tablename__ = "pos_fiscal_counter"
    __table_args__ = (
        CheckConstraint("last_invoice_number >= 0", name="ck_counter_invoice_non_negative"),
        CheckConstraint("last_refund_number >= 0", name="ck_counter_refund_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    last_invoice_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_refund_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    grand_total: Mapped[Decimal] = mapped_column(
        Numeric(16, 2), nullable=False, default=Decimal("0")
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Order(Base):
    __tablename__ = "pos_orders"
    __table_args__ = (
        Index("ix_order_status", "status"),
        Index("ix_order_created_at", "created_at"),
        Index("ix_order_employee_id", "employee_id"),
        CheckConstraint("invoice_number > 0", name="ck_order_invoice_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_number: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    client_reference: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    order_type: Mapped[str] = mapped_column(
        String(16), nullable=False, default=OrderType.DINE_IN.value
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=OrderStatus.PENDING.value
    )

    subtotal: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    discount_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    tax: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    service_charge: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    tip: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    loyalty_points_redeemed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    loyalty_points_discount: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0")
    )
    loyalty_points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    discount_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DiscountType.NONE.value
    )
    discount_card_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    discount_verified_by: Mapped[str | None] = mapped_column(String(120), nullable=True)
    discount_verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    employee_id: Mapped[int] = mapped_column(ForeignKey("pos_employees.id"), nullable=False)
    customer_id: Mapped[int | None] = mapped_column(ForeignKey("pos_customers.id"), nullable=True)
    server_id: Mapped[int | None] = mapped_column(ForeignKey("pos_employees.id"), nullable=True)
    table_id: Mapped[int | None] = mapped_column(ForeignKey("pos_tables.id"), nullable=True)

    delivery_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_customer_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    delivery_customer_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    kitchen_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(
        String(16), nullable=False, default=OrderPriority.NORMAL.value
    )
    estimated_prep_time: Mapped[int | None] = mapped_column(Integer, nullable=True)

    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    voided_by_id: Mapped[int | None] = mapped_column(ForeignKey("pos_employees.id"), nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    employee: Mapped[Employee] = relationship("Employee", foreign_keys=[employee_id])
    server: Mapped[Employee | None] = relationship("Employee", foreign_keys=[server_id])
    customer: Mapped[Customer | None] = relationship("Customer", back_populates="orders")
    table: Mapped[Table | None] = relationship("Table", foreign_keys=[table_id])
    lines: Mapped[list[OrderLine]] = relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLine.position",
    )
    payments: Mapped[list[Payment]] = relationship(
        "Payment", back_populates="order", cascade="all, delete-orphan"
    )
    history: Mapped[list[OrderStatusHistory]] = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id",
    )
    refunds: Mapped[list[Refund]] = relationship(
        "Refund", back_populates="order", order_by="Refund.id"
    )

    @property
    def status_enum(self) -> OrderStatus:
        return OrderStatus(self.status)

    def mark_status(self, status: OrderStatus, changed_by_id: int | None = None) -> None:
        self.status = status.value
        self.updated_at = utcnow()
        self.history.append(OrderStatusHistory(status=status.value, changed_by_id=changed_by_id))


class OrderLine(Base):
    __tablename__ = "pos_order_lines"
    __table_args__ = (
        Index("ix_order_line_order_id", "order_id"),
        CheckConstraint("quantity >= 1", name="ck_order_line_quantity_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("pos_orders.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    product_id: Mapped[int | None] = mapped_column(ForeignKey("pos_products.id"), nullable=True)
    variant_id: Mapped[int | None] = mapped_column(
        ForeignKey("pos_product_variants.id"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    discount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    special_instructions: Mapped[str | None] = mapped_column(Text, nullable=True)

    order: Mapped[Order] = relationship("Order", back_populates="lines")
    modifiers: Mapped[list[OrderLineModifier]] = relationship(
        "OrderLineModifier", back_populates="line", cascade="all, delete-orphan"
    )

    @property
    def unit_price_with_modifiers(self) -> Decimal:
        return Decimal(self.unit_price) + sum(
            (Decimal(mod.price) for mod in self.modifiers), Decimal("0")
        )


class OrderLineModifier(Base):
    __tablename__ = "pos_order_line_modifiers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    line_id: Mapped[int] = mapped_column(ForeignKey("pos_order_lines.id"), nullable=False)
    modifier_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    price: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))

    line: Mapped[OrderLine] = relationship("OrderLine", back_populates="modifiers")


class Payment(Base):
    __tablename__ = "pos_payments"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_payment_amount_positive"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("pos_orders.id"), nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    order: Mapped[Order] = relationship("Order", back_populates="payments")


class OrderStatusHistory(Base):
    __tablename__ = "pos_order_status_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("pos_orders.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    changed_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("pos_employees.id"), nullable=True
    )
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    order: Mapped[Order] = relationship("Order", back_populates="history")


class Refund(Base):
    """Negative-value ledger entry issued against a completed order."""

    __tablename__ = "pos_refunds"
    __table_args__ = (
        Index("ix_refund_order_id", "order_id"),
        CheckConstraint("amount < 0", name="ck_refund_amount_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    refund_number: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("pos_orders.id"), nullable=False)
    employee_id: Mapped[int] = mapped_column(ForeignKey("pos_employees.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    order: Mapped[Order] = relationship("Order", back_populates="refunds")
    lines: Mapped[list[RefundLine]] = relationship(
        "RefundLine", back_populates="refund", cascade="all, delete-orphan"
    )


class RefundLine(Base):
    __tablename__ = "pos_refund_lines"
    __table_args__ = (CheckConstraint("quantity >= 1", name="ck_refund_line_quantity_positive"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    refund_id: Mapped[int] = mapped_column(ForeignKey("pos_refunds.id"), nullable=False)
    order_line_id: Mapped[int] = mapped_column(ForeignKey("pos_order_lines.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    refund: Mapped[Refund] = relationship("Refund", back_populates="lines")
    order_line: Mapped[OrderLine] = relationship("OrderLine")


class TaxExportPayload(Base):
    """Queued e-invoice payload awaiting transmission to the tax authority."""

    __tablename__ = "pos_tax_export_payloads"
    __table_args__ = (Index("ix_tax_export_status_created", "status", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("pos_orders.id"), nullable=False, unique=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONB_TYPE, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ExportStatus.PENDING.value
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    order: Mapped[Order] = relationship("Order")


class AuditLog(Base):
    """Audit trail for ledger-affecting operations."""

    __tablename__ = "pos_audit_logs"
    __table_args__ = (
        Index("ix_audit_employee_id", "employee_id"),
        Index("ix_audit_action", "action"),
        Index("ix_audit_entity", "entity_type", "entity_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("pos_employees.id"), nullable=True
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSONB_TYPE, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class CashDrawerSession(Base):
    __tablename__ = "pos_cash_drawers"
    __table_args__ = (
        # open_slot is 1 while the drawer is open and NULL once closed, so the
        # unique constraint admits at most one open drawer.
        UniqueConstraint("open_slot", name="uq_cash_drawer_single_open"),
        CheckConstraint("open_slot IS NULL OR open_slot = 1", name="ck_cash_drawer_open_slot"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("pos_employees.id"), nullable=False)
    opening_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    closing_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    expected_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    actual_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    difference: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    denomination_breakdown: Mapped[dict[str, int] | None] = mapped_column(
        JSONB_TYPE, nullable=True
    )
    open_slot: Mapped[int | None] = mapped_column(Integer, nullable=True, default=1)
    opened_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    employee: Mapped[Employee] = relationship("Employee")
    order_links: Mapped[list[CashDrawerOrder]] = relationship(
        "CashDrawerOrder", back_populates="drawer", cascade="all, delete-orphan"
    )
    cash_drops: Mapped[list[CashDrop]] = relationship(
        "CashDrop", back_populates="drawer", cascade="all, delete-orphan", order_by="CashDrop.id"
    )
    cash_pickups: Mapped[list[CashPickup]] = relationship(
        "CashPickup",
        back_populates="drawer",
        cascade="all, delete-orphan",
        order_by="CashPickup.id",
    )
    shift_notes: Mapped[list[ShiftNote]] = relationship(
        "ShiftNote", back_populates="drawer", cascade="all, delete-orphan", order_by="ShiftNote.id"
    )

    @property
    def is_open(self) -> bool:
        return self.closed_at is None


class CashDrawerOrder(Base):
    __tablename__ = "pos_cash_drawer_orders"
    __table_args__ = (
        UniqueConstraint("drawer_id", "order_id", name="uq_cash_drawer_order"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    drawer_id: Mapped[int] = mapped_column(ForeignKey("pos_cash_drawers.id"), nullable=False)
    order_id: Mapped[int] = mapped_column(ForeignKey("pos_orders.id"), nullable=False)

    drawer: Mapped[CashDrawerSession] = relationship(
        "CashDrawerSession", back_populates="order_links"
    )
    order: Mapped[Order] = relationship("Order")


class CashDrop(Base):
    __tablename__ = "pos_cash_drops"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    drawer_id: Mapped[int] = mapped_column(ForeignKey("pos_cash_drawers.id"), nullable=False)
    employee_id: Mapped[int] = mapped_column(ForeignKey("pos_employees.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    dropped_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    drawer: Mapped[CashDrawerSession] = relationship(
        "CashDrawerSession", back_populates="cash_drops"
    )


class CashPickup(Base):
    __tablename__ = "pos_cash_pickups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    drawer_id: Mapped[int] = mapped_column(ForeignKey("pos_cash_drawers.id"), nullable=False)
    employee_id: Mapped[int] = mapped_column(ForeignKey("pos_employees.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    picked_up_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    drawer: Mapped[CashDrawerSession] = relationship(
        "CashDrawerSession", back_populates="cash_pickups"
    )


class ShiftNote(Base):
    __tablename__ = "pos_shift_notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    drawer_id: Mapped[int] = mapped_column(ForeignKey("pos_cash_drawers.id"), nullable=False)
    employee_id: Mapped[int] = mapped_column(ForeignKey("pos_employees.id"), nullable=False)
    note: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    drawer: Mapped[CashDrawerSession] = relationship(
        "CashDrawerSession", back_populates="shift_notes"
    )
