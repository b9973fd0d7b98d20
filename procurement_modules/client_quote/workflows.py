"""
Client Quote Workflows.

State machine for the client-facing quote.  A revision is a new quote
row; the one it replaces moves to SUPERSEDED and is kept.
"""

from procurement_kernel.domain.workflow import Guard, Transition, Workflow
from procurement_kernel.logging_config import get_logger
from procurement_modules.client_quote.models import ClientQuoteStatus

logger = get_logger("modules.client_quote.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_LINES = Guard(
    name="has_lines",
    description="Client quote carries at least one priced line",
)

PAYMENT_COVERS_TOTAL = Guard(
    name="payment_covers_total",
    description="Recorded client payments reach the quote total",
)

REBUILT = Guard(
    name="rebuilt",
    description="A new revision of this quote was built",
)

logger.info(
    "client_quote_workflow_guards_defined",
    extra={
        "guards": [
            HAS_LINES.name,
            PAYMENT_COVERS_TOTAL.name,
            REBUILT.name,
        ],
    },
)

_D = ClientQuoteStatus.DRAFT.value
_SENT = ClientQuoteStatus.SENT_TO_CLIENT.value
_REV = ClientQuoteStatus.CLIENT_REVIEWING.value
_APP = ClientQuoteStatus.APPROVED.value
_RR = ClientQuoteStatus.REVISION_REQUESTED.value
_REJ = ClientQuoteStatus.REJECTED.value
_PAID = ClientQuoteStatus.PAID.value
_SUP = ClientQuoteStatus.SUPERSEDED.value

CLIENT_QUOTE_WORKFLOW = Workflow(
    name="client_quote",
    description="Client-facing quote lifecycle",
    initial_state=_D,
    states=tuple(s.value for s in ClientQuoteStatus),
    transitions=(
        Transition(_D, _SENT, action="send", guard=HAS_LINES),
        Transition(_SENT, _REV, action="open"),
        Transition(_REV, _APP, action="approve"),
        Transition(_REV, _RR, action="request_revision"),
        Transition(_REV, _REJ, action="reject"),
        Transition(_APP, _PAID, action="record_payment", guard=PAYMENT_COVERS_TOTAL),
        Transition(_D, _SUP, action="rebuild", guard=REBUILT),
        Transition(_RR, _SUP, action="rebuild", guard=REBUILT),
    ),
    terminal_states=(_REJ, _PAID, _SUP),
)

# Statuses from which a new revision may be built.
REBUILDABLE_STATUSES = frozenset({
    ClientQuoteStatus.DRAFT, ClientQuoteStatus.REVISION_REQUESTED,
})
