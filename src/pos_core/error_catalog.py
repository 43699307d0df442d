"""
Centralized catalog of the controlled errors raised by the ledger engine.
Used for API documentation and by the error handlers to pick HTTP codes.
"""

ERROR_CATALOG = {
    "CART_EMPTY": {
        "title": "Empty Cart",
        "description": "Settlement was attempted without any order lines.",
        "http_code": 400,
        "solution": "Add at least one item to the cart before settling.",
    },
    "INVALID_LINE": {
        "title": "Invalid Order Line",
        "description": "A line has a quantity below one or a negative price or discount.",
        "http_code": 400,
        "solution": "Correct the offending line and resubmit.",
    },
    "PAYMENT_MISMATCH": {
        "title": "Payment Mismatch",
        "description": "The sum of payments does not match the computed order total.",
        "http_code": 400,
        "solution": "Re-quote the cart and tender exactly the quoted total.",
    },
    "PAYMENT_REQUIRED": {
        "title": "Payment Required",
        "description": "No payments were supplied or a payment amount is not positive.",
        "http_code": 400,
        "solution": "Supply at least one positive payment.",
    },
    "DISCOUNT_VERIFICATION_REQUIRED": {
        "title": "Discount Verification Required",
        "description": "A PWD or senior discount needs a card/ID number and a verifier.",
        "http_code": 400,
        "solution": "Record the ID number and the employee who verified it.",
    },
    "DELIVERY_CONTACT_REQUIRED": {
        "title": "Delivery Contact Required",
        "description": "Delivery orders need an address, a customer name and a phone.",
        "http_code": 400,
        "solution": "Fill in the delivery contact details.",
    },
    "CUSTOMER_REQUIRED": {
        "title": "Customer Required",
        "description": "Loyalty points can only be redeemed when a customer is attached.",
        "http_code": 400,
        "solution": "Attach the customer or drop the redemption.",
    },
    "INVALID_AMOUNT": {
        "title": "Invalid Amount",
        "description": "A monetary amount is missing, not numeric or out of range.",
        "http_code": 400,
        "solution": "Send a non-negative decimal amount.",
    },
    "REASON_REQUIRED": {
        "title": "Reason Required",
        "description": "The operation requires a non-empty reason or note.",
        "http_code": 400,
        "solution": "Provide a reason.",
    },
    "REFUND_REASON_REQUIRED": {
        "title": "Refund Reason Required",
        "description": "Refunds must state why they are issued.",
        "http_code": 400,
        "solution": "Provide a refund reason.",
    },
    "INVALID_STATUS": {
        "title": "Unknown Status",
        "description": "The requested status is not part of the order lifecycle.",
        "http_code": 400,
        "solution": "Use one of PENDING, PREPARING, READY, SERVED, COMPLETED.",
    },
    "INVALID_FIELD": {
        "title": "Field Not Editable",
        "description": "The order field cannot be edited through this operation.",
        "http_code": 400,
        "solution": "Only notes, kitchen_notes, priority and estimated_prep_time are editable.",
    },
    "ORDER_NOT_FOUND": {
        "title": "Order Not Found",
        "description": "Reference to an order id that does not exist.",
        "http_code": 404,
        "solution": "Verify the order id.",
    },
    "REFERENCE_NOT_FOUND": {
        "title": "Reference Not Found",
        "description": "A referenced employee, customer, table, product or variant does not exist.",
        "http_code": 404,
        "solution": "Refresh reference data and retry.",
    },
    "DRAWER_NOT_FOUND": {
        "title": "Cash Drawer Not Found",
        "description": "Reference to a cash drawer session that does not exist.",
        "http_code": 404,
        "solution": "Verify the drawer id.",
    },
    "EXPORT_NOT_FOUND": {
        "title": "Export Payload Not Found",
        "description": "No tax-authority payload is queued for the order.",
        "http_code": 404,
        "solution": "Verify the order id.",
    },
    "ALREADY_VOIDED": {
        "title": "Order Already Voided",
        "description": "The order was voided earlier and cannot be voided again.",
        "http_code": 409,
        "solution": "No action needed.",
    },
    "ORDER_IMMUTABLE": {
        "title": "Order Immutable",
        "description": "Completed and voided orders only accept note edits.",
        "http_code": 409,
        "solution": "Issue a refund for completed orders instead.",
    },
    "INVALID_TRANSITION": {
        "title": "Invalid Status Transition",
        "description": "The order cannot move from its current status to the requested one.",
        "http_code": 409,
        "solution": "Statuses only move forward; use void to cancel.",
    },
    "REFUND_NOT_ALLOWED": {
        "title": "Refund Not Allowed",
        "description": "Only completed orders can be refunded.",
        "http_code": 409,
        "solution": "Void orders that are still in progress.",
    },
    "REFUND_EMPTY": {
        "title": "Empty Refund",
        "description": "The refund does not select any quantity to return.",
        "http_code": 409,
        "solution": "Select at least one line quantity.",
    },
    "REFUND_EXCEEDS_QUANTITY": {
        "title": "Refund Exceeds Quantity",
        "description": "A refunded quantity is larger than what remains unrefunded on the line.",
        "http_code": 409,
        "solution": "Lower the refunded quantity.",
    },
    "REFUND_EXCEEDS_TOTAL": {
        "title": "Refund Exceeds Total",
        "description": "The refund amount is larger than the unrefunded order total.",
        "http_code": 409,
        "solution": "Lower the refund amount.",
    },
    "ACTIVE_DRAWER_EXISTS": {
        "title": "Active Drawer Exists",
        "description": "A cash drawer session is already open.",
        "http_code": 409,
        "solution": "Close the open drawer before opening a new one.",
    },
    "DRAWER_CLOSED": {
        "title": "Cash Drawer Closed",
        "description": "The cash drawer session is closed and no longer accepts movements.",
        "http_code": 409,
        "solution": "Open a new drawer session.",
    },
    "DRAWER_ALREADY_CLOSED": {
        "title": "Cash Drawer Already Closed",
        "description": "The cash drawer session was closed earlier.",
        "http_code": 409,
        "solution": "No action needed.",
    },
    "EXPORT_ALREADY_SENT": {
        "title": "Export Already Sent",
        "description": "The tax-authority payload was already transmitted.",
        "http_code": 409,
        "solution": "No action needed.",
    },
    "UNAUTHORIZED": {
        "title": "Authentication Required",
        "description": "The request carries no valid access token.",
        "http_code": 401,
        "solution": "Log in again to obtain a fresh token.",
    },
    "INVALID_REQUEST": {
        "title": "Invalid Request Data",
        "description": "The request body does not match the expected schema.",
        "http_code": 400,
        "solution": "Check field names and types.",
    },
    "FORBIDDEN": {
        "title": "Access Denied (Role)",
        "description": "The authenticated employee lacks the role required for the operation.",
        "http_code": 403,
        "solution": "Ask a manager to perform the operation.",
    },
    "SETTLEMENT_FAILED": {
        "title": "Settlement Failed",
        "description": "The ledger transaction was rolled back; no invoice number was consumed.",
        "http_code": 503,
        "solution": "Retry the settlement.",
    },
    "SYSTEM_001": {
        "title": "Internal Error",
        "description": "Unhandled exception on the server.",
        "http_code": 500,
        "solution": "Check the server logs.",
    },
}


def describe(code: str) -> dict:
    """Return the catalog entry for `code`, falling back to the generic internal error."""
    return ERROR_CATALOG.get(code, ERROR_CATALOG["SYSTEM_001"])
