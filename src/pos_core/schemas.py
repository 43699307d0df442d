"""
Pydantic schemas for request validation.

The models check shape and types only. Business rules (empty carts, payment
totals, discount verification) are enforced by the services so they surface
with their own error codes.
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pos_core.constants import DiscountType, OrderPriority, OrderType, PaymentMethod


class ModifierRequest(BaseModel):
    modifier_id: str | None = None
    name: str = ""
    price: Decimal = Decimal("0")


class OrderLineRequest(BaseModel):
    product_id: int | None = None
    variant_id: int | None = None
    name: str | None = Field(None, max_length=160)
    unit_price: Decimal
    quantity: int = 1
    discount: Decimal = Decimal("0")
    modifiers: list[ModifierRequest] = Field(default_factory=list)
    special_instructions: str | None = None


class PaymentRequest(BaseModel):
    method: PaymentMethod
    amount: Decimal


class PricingQuoteRequest(BaseModel):
    lines: list[OrderLineRequest] = Field(default_factory=list)
    order_type: OrderType = OrderType.DINE_IN
    discount_type: DiscountType = DiscountType.NONE
    tip: Decimal = Field(Decimal("0"), ge=0)
    loyalty_points_to_redeem: int = Field(0, ge=0)
    customer_id: int | None = None


class SettlementRequest(PricingQuoteRequest):
    payments: list[PaymentRequest] = Field(default_factory=list)
    server_id: int | None = None
    table_id: int | None = None
    discount_card_number: str | None = Field(None, max_length=64)
    discount_verified_by: str | None = Field(None, max_length=120)
    delivery_address: str | None = None
    delivery_customer_name: str | None = Field(None, max_length=120)
    delivery_customer_phone: str | None = Field(None, max_length=32)
    notes: str | None = None
    kitchen_notes: str | None = None
    priority: OrderPriority = OrderPriority.NORMAL
    estimated_prep_time: int | None = Field(None, ge=0)
    client_reference: str | None = Field(None, min_length=1, max_length=64)


class VoidOrderRequest(BaseModel):
    reason: str = ""


class UpdateStatusRequest(BaseModel):
    status: str = Field(..., min_length=1)

    @field_validator("status")
    @classmethod
    def normalize_status(cls, v: str) -> str:
        return v.strip().upper()


class UpdateOrderRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    notes: str | None = None
    kitchen_notes: str | None = None
    priority: OrderPriority | None = None
    estimated_prep_time: int | None = Field(None, ge=0)


class RefundLineRequest(BaseModel):
    order_line_id: int
    quantity: int = Field(0, ge=0)


class RefundRequest(BaseModel):
    lines: list[RefundLineRequest] = Field(default_factory=list)
    reason: str = ""
    amount: Decimal | None = None
    method: PaymentMethod | None = None


class OpenDrawerRequest(BaseModel):
    opening_amount: Decimal


class CloseDrawerRequest(BaseModel):
    counted_amount: Decimal
    expected_amount: Decimal | None = None
    denomination_breakdown: dict[str, int] | None = None

    @field_validator("denomination_breakdown")
    @classmethod
    def validate_breakdown(cls, v):
        if v is None:
            return v
        for denomination, count in v.items():
            try:
                value = Decimal(denomination)
            except ArithmeticError:
                raise ValueError(f"Invalid denomination: {denomination}") from None
            if not value.is_finite() or value <= 0:
                raise ValueError(f"Invalid denomination: {denomination}")
            if count < 0:
                raise ValueError(f"Negative count for denomination {denomination}")
        return v


class CashMovementRequest(BaseModel):
    amount: Decimal
    reason: str = ""


class ShiftNoteRequest(BaseModel):
    note: str = ""


class LinkOrderRequest(BaseModel):
    order_id: int


class ExportFailedRequest(BaseModel):
    error: str = Field(..., min_length=1)
