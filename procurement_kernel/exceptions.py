"""
Typed Exception Hierarchy for the Procurement Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The procurement workflow crosses several parties (studio, suppliers, client)
and every failure has to be rendered at a boundary we do not own. Callers
must be able to catch by type and read structured data instead of parsing
message strings:
  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        po_service.create_purchase_orders(client_quote_id, actor_id)
    except InsufficientPaymentError as e:
        api_response(code=e.code, message=e.to_user_message())

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from ProcurementError:

    ProcurementError (base)
    |
    +-- ValidationError
    |   +-- InvalidCurrencyError (also a CurrencyError)
    |
    +-- EntityNotFoundError
    |
    +-- AccessError
    |   +-- InvalidTokenError
    |   +-- ExpiredTokenError
    |
    +-- CurrencyError
    |   +-- InvalidCurrencyError
    |   +-- CurrencyMismatchError
    |
    +-- WorkflowError
    |   +-- StateTransitionError
    |   +-- PurchaseOrderExistsError
    |
    +-- PaymentError
    |   +-- InsufficientPaymentError
    |   +-- OverpaymentError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError
        +-- DuplicateSubmissionError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Malformed or out-of-range input
                | INVALID_CURRENCY            | Not a known ISO 4217 code
----------------|-----------------------------|-----------------------------------------
Lookup          | ENTITY_NOT_FOUND            | Identifier does not resolve
----------------|-----------------------------|-----------------------------------------
Access          | INVALID_TOKEN               | Supplier token unknown
                | EXPIRED_TOKEN               | RFQ deadline passed (view still allowed)
----------------|-----------------------------|-----------------------------------------
Currency        | CURRENCY_MISMATCH           | Aggregation across currency codes
----------------|-----------------------------|-----------------------------------------
Workflow        | INVALID_STATE_TRANSITION    | Status does not permit the transition
                | PURCHASE_ORDER_EXISTS       | POs already issued for a client quote
----------------|-----------------------------|-----------------------------------------
Payment         | INSUFFICIENT_PAYMENT        | PO before payment covers the total
                | OVERPAYMENT                 | Payment above remaining balance
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Stale version on compare-and-set
                | DUPLICATE_SUBMISSION        | Lost a resubmission race

===============================================================================
"""


class ProcurementError(Exception):
    """
    Base exception for all procurement errors.

    All subclasses must have a `code` class attribute
    for machine-readable error identification.
    """

    code: str = "PROCUREMENT_ERROR"


# Validation


class ValidationError(ProcurementError):
    """Malformed or out-of-range input. Nothing was applied."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class EntityNotFoundError(ProcurementError):
    """Entity with given identifier was not found."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


# Supplier access


class AccessError(ProcurementError):
    """Base exception for supplier credential errors."""

    code: str = "ACCESS_ERROR"

    def to_user_message(self) -> str:
        return "This quote request link cannot be used."


class InvalidTokenError(AccessError):
    """Presented token does not resolve to any supplier invitation."""

    code: str = "INVALID_TOKEN"

    def __init__(self):
        super().__init__("Supplier access token is invalid")

    def to_user_message(self) -> str:
        return "This quote request link is not valid."


class ExpiredTokenError(AccessError):
    """
    The RFQ response deadline has passed.

    Viewing is still allowed; only submission is rejected.
    """

    code: str = "EXPIRED_TOKEN"

    def __init__(self, supplier_rfq_id: str, deadline: object):
        self.supplier_rfq_id = str(supplier_rfq_id)
        self.deadline = deadline
        super().__init__(
            f"Response deadline {deadline} has passed for supplier RFQ "
            f"{supplier_rfq_id}"
        )

    def to_user_message(self) -> str:
        return (
            "The response deadline for this quote request has passed. "
            "You can still view the request but can no longer submit a quote."
        )


# Currency


class CurrencyError(ProcurementError):
    """Base exception for currency-related errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError, ValidationError):
    """Currency code is not a valid ISO 4217 code."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        ValidationError.__init__(self, "currency", f"not a valid ISO 4217 code: {currency}")


class CurrencyMismatchError(CurrencyError):
    """Attempted to combine amounts with different currencies."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, currency1: str, currency2: str):
        self.currency1 = str(currency1)
        self.currency2 = str(currency2)
        super().__init__(
            f"Currency mismatch: cannot combine {currency1} and {currency2}"
        )


# Workflow


class WorkflowError(ProcurementError):
    """Base exception for lifecycle errors."""

    code: str = "WORKFLOW_ERROR"


class StateTransitionError(WorkflowError):
    """
    Requested transition is not permitted from the current status.

    Also raised when a compare-and-set finds the stored status changed
    since it was read.
    """

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        from_state: str,
        to_state: str,
        reason: str = "",
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason
        msg = (
            f"Cannot transition {entity_type} {entity_id} "
            f"from {from_state} to {to_state}"
        )
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class PurchaseOrderExistsError(WorkflowError):
    """Purchase orders were already issued for this client quote."""

    code: str = "PURCHASE_ORDER_EXISTS"

    def __init__(self, client_quote_id: str):
        self.client_quote_id = str(client_quote_id)
        super().__init__(
            f"Purchase orders already exist for client quote {client_quote_id}"
        )


# Payment


class PaymentError(ProcurementError):
    """Base exception for client payment errors."""

    code: str = "PAYMENT_ERROR"

    def to_user_message(self) -> str:
        return "The payment could not be applied."


class InsufficientPaymentError(PaymentError):
    """Recorded payment does not cover the client quote total."""

    code: str = "INSUFFICIENT_PAYMENT"

    def __init__(self, required: object, recorded: object, currency: str):
        self.required = required
        self.recorded = recorded
        self.currency = currency
        super().__init__(
            f"Recorded payment {recorded} {currency} is less than "
            f"required {required} {currency}"
        )

    def to_user_message(self) -> str:
        return (
            f"The order cannot be placed until the full amount of "
            f"{self.required} {self.currency} has been paid "
            f"({self.recorded} {self.currency} received)."
        )


class OverpaymentError(PaymentError):
    """Payment exceeds the remaining balance."""

    code: str = "OVERPAYMENT"

    def __init__(self, balance: object, attempted: object, currency: str):
        self.balance = balance
        self.attempted = attempted
        self.currency = currency
        super().__init__(
            f"Payment {attempted} {currency} exceeds remaining balance "
            f"{balance} {currency}"
        )

    def to_user_message(self) -> str:
        return (
            f"The payment of {self.attempted} {self.currency} is more than "
            f"the remaining balance of {self.balance} {self.currency}."
        )


# Concurrency


class ConcurrencyError(ProcurementError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


class DuplicateSubmissionError(ConcurrencyError):
    """
    Two resubmissions for the same supplier RFQ raced.

    The losing caller must reload and retry.
    """

    code: str = "DUPLICATE_SUBMISSION"

    def __init__(self, supplier_rfq_id: str):
        self.supplier_rfq_id = str(supplier_rfq_id)
        super().__init__(
            f"Concurrent quote submission for supplier RFQ {supplier_rfq_id} "
            "lost the race; reload and retry"
        )
