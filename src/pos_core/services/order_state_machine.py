"""
Order State Machine - keeps lifecycle transitions out of the Order model.

Transitions are validated against ``ORDER_TRANSITIONS`` and dispatched to a
handler registered for the target status. Handlers apply the side effects of
entering that status inside the caller's transaction.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from sqlalchemy.orm import Session

from pos_core.constants import ORDER_TRANSITIONS, OrderStatus, TableStatus
from pos_core.datetime_utils import utcnow
from pos_core.errors import OrderStateError
from pos_core.logging_config import get_logger
from pos_core.models import Customer, Employee, Order, Product, ProductVariant, Table

logger = get_logger(__name__)


class OrderEvent(Enum):
    """Events that can trigger a status change."""

    ADVANCE = "advance"
    VOID = "void"


@dataclass
class TransitionContext:
    """Context for a single status transition."""

    db_session: Session
    order: Order
    event: OrderEvent
    target_status: OrderStatus
    actor_id: int | None = None
    reason: str | None = None


class OrderStateMachine:
    """
    State machine for order transitions.

    Responsibilities:
    - Validate transitions against the lifecycle table
    - Apply side effects of entering a status
    - Record status history
    """

    def __init__(self):
        self._transition_handlers: dict[OrderStatus, Callable[[TransitionContext], None]] = {}
        self._register_handlers()

    def _register_handlers(self) -> None:
        self._transition_handlers[OrderStatus.COMPLETED] = self._handle_complete
        self._transition_handlers[OrderStatus.VOIDED] = self._handle_void

    def can_transition(self, current_status: OrderStatus, target_status: OrderStatus) -> bool:
        return target_status in ORDER_TRANSITIONS.get(current_status, frozenset())

    def validate_transition(self, context: TransitionContext) -> None:
        current_status = context.order.status_enum
        target = context.target_status

        if current_status == OrderStatus.VOIDED:
            code = "ALREADY_VOIDED" if context.event == OrderEvent.VOID else "ORDER_IMMUTABLE"
            raise OrderStateError(
                f"Order {context.order.id} is already voided",
                current_status.value,
                target.value,
                code=code,
            )

        if current_status == OrderStatus.COMPLETED:
            raise OrderStateError(
                f"Order {context.order.id} is completed and cannot change status",
                current_status.value,
                target.value,
                code="ORDER_IMMUTABLE",
            )

        if target == OrderStatus.VOIDED and context.event != OrderEvent.VOID:
            raise OrderStateError(
                "Orders can only be voided through the void operation",
                current_status.value,
                target.value,
            )

        if not self.can_transition(current_status, target):
            raise OrderStateError(
                f"Invalid transition: {current_status.value} -> {target.value}",
                current_status.value,
                target.value,
            )

    def apply_transition(self, context: TransitionContext) -> OrderStatus:
        """Validate, run the handler, and move the order. Returns the previous status."""
        self.validate_transition(context)
        previous = context.order.status_enum

        handler = self._transition_handlers.get(context.target_status)
        if handler:
            handler(context)

        context.order.mark_status(context.target_status, changed_by_id=context.actor_id)
        logger.info(
            "Order status changed",
            extra={
                "order_id": context.order.id,
                "from_status": previous.value,
                "to_status": context.target_status.value,
            },
        )
        return previous

    def _release_table(self, context: TransitionContext) -> None:
        """Free the table, unless it has since been seated with another order."""
        order = context.order
        if order.table_id is None:
            return
        table = context.db_session.get(Table, order.table_id)
        if table is None or table.current_order_id != order.id:
            return
        table.status = TableStatus.NEEDS_CLEANING.value
        table.current_order_id = None

    def _handle_complete(self, context: TransitionContext) -> None:
        context.order.completed_at = utcnow()
        self._release_table(context)

    def _handle_void(self, context: TransitionContext) -> None:
        """
        Void side effects.

        Only an order voided while still PENDING is reversed (stock, sales,
        earned points, the customer's spend and visit); once the kitchen has
        started, goods are consumed and nothing is given back.
        """
        order = context.order
        db_session = context.db_session

        if order.status_enum == OrderStatus.PENDING:
            for line in order.lines:
                if line.product_id is not None:
                    product = db_session.get(Product, line.product_id)
                    if product is not None:
                        product.total_stock += line.quantity
                if line.variant_id is not None:
                    variant = db_session.get(ProductVariant, line.variant_id)
                    if variant is not None:
                        variant.stock += line.quantity

            employee = db_session.get(Employee, order.employee_id)
            if employee is not None:
                employee.total_sales = max(
                    Decimal("0"), Decimal(employee.total_sales) - Decimal(order.total_amount)
                )

            customer = None
            if order.customer_id is not None:
                customer = db_session.get(Customer, order.customer_id)
            if customer is not None:
                customer.loyalty_points = max(
                    0, customer.loyalty_points - (order.loyalty_points_earned or 0)
                )
                customer.total_spent = max(
                    Decimal("0"), Decimal(customer.total_spent or 0) - Decimal(order.total_amount)
                )
                customer.visit_count = max(0, (customer.visit_count or 0) - 1)

        order.void_reason = context.reason
        order.voided_at = utcnow()
        order.voided_by_id = context.actor_id
        self._release_table(context)


order_state_machine = OrderStateMachine()
