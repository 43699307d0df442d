"""
Application constants and enums.
"""

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PREPARING = "PREPARING"
    READY = "READY"
    SERVED = "SERVED"
    COMPLETED = "COMPLETED"
    VOIDED = "VOIDED"


class OrderType(str, Enum):
    DINE_IN = "DINE_IN"
    TAKEOUT = "TAKEOUT"
    DELIVERY = "DELIVERY"


class DiscountType(str, Enum):
    NONE = "NONE"
    PWD = "PWD"
    SENIOR_CITIZEN = "SENIOR_CITIZEN"

    @property
    def is_vat_exempt(self) -> bool:
        return self in {DiscountType.PWD, DiscountType.SENIOR_CITIZEN}


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    GCASH = "GCASH"
    PAYMAYA = "PAYMAYA"


class TableStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    RESERVED = "RESERVED"
    NEEDS_CLEANING = "NEEDS_CLEANING"


class OrderPriority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class ExportStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class Roles(str, Enum):
    MANAGER = "MANAGER"
    CASHIER = "CASHIER"
    SERVER = "SERVER"
    KITCHEN = "KITCHEN"

    @classmethod
    def all_values(cls) -> set:
        return {member.value for member in cls}


class AuditAction(str, Enum):
    CREATE_ORDER = "CREATE_ORDER"
    VOID_ORDER = "VOID_ORDER"
    REFUND_ORDER = "REFUND_ORDER"
    UPDATE_ORDER_STATUS = "UPDATE_ORDER_STATUS"
    UPDATE_ORDER = "UPDATE_ORDER"
    OPEN_CASH_DRAWER = "OPEN_CASH_DRAWER"
    CLOSE_CASH_DRAWER = "CLOSE_CASH_DRAWER"
    EXPORT_SENT = "EINVOICE_SENT"
    EXPORT_FAILED = "EINVOICE_FAILED"


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.VOIDED})

# Forward-only workflow; VOIDED is reachable from every non-terminal state
# but only through the void operation.
ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset(
        {
            OrderStatus.PREPARING,
            OrderStatus.READY,
            OrderStatus.SERVED,
            OrderStatus.COMPLETED,
            OrderStatus.VOIDED,
        }
    ),
    OrderStatus.PREPARING: frozenset(
        {OrderStatus.READY, OrderStatus.SERVED, OrderStatus.COMPLETED, OrderStatus.VOIDED}
    ),
    OrderStatus.READY: frozenset({OrderStatus.SERVED, OrderStatus.COMPLETED, OrderStatus.VOIDED}),
    OrderStatus.SERVED: frozenset({OrderStatus.COMPLETED, OrderStatus.VOIDED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.VOIDED: frozenset(),
}

# Order fields that stay editable once an order reaches a terminal state.
TERMINAL_EDITABLE_FIELDS = frozenset({"notes"})
MUTABLE_ORDER_FIELDS = frozenset({"notes", "kitchen_notes", "priority", "estimated_prep_time"})

FISCAL_COUNTER_ID = 1

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
