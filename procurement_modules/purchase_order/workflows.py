"""
Purchase Order Workflows.

Orders move forward one status at a time or to CANCELLED.  Nothing skips
a step, so the status history is a complete progress record.
"""

from procurement_kernel.domain.workflow import linear_chain
from procurement_modules.purchase_order.models import OrderStatus

ORDER_CHAIN = tuple(s.value for s in OrderStatus if s is not OrderStatus.CANCELLED)

ORDER_WORKFLOW = linear_chain(
    "purchase_order",
    "Supplier order from payment through installation",
    ORDER_CHAIN,
    cancel_state=OrderStatus.CANCELLED.value,
)

# Statuses at which carrier and tracking labels are recorded.
TRACKING_STATUSES = frozenset({OrderStatus.SHIPPED, OrderStatus.IN_TRANSIT})


def next_status(status: OrderStatus) -> OrderStatus | None:
    """The single status after ``status``, or None at the end of the chain."""
    if status is OrderStatus.CANCELLED:
        return None
    index = ORDER_CHAIN.index(status.value)
    if index + 1 >= len(ORDER_CHAIN):
        return None
    return OrderStatus(ORDER_CHAIN[index + 1])
