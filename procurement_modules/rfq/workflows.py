"""
RFQ Workflows.

State machines for the RFQ and for each supplier's response to it.
"""

from procurement_kernel.domain.workflow import Guard, Transition, Workflow
from procurement_kernel.logging_config import get_logger
from procurement_modules.rfq.models import RFQStatus, SupplierResponseStatus

logger = get_logger("modules.rfq.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

READY_TO_SEND = Guard(
    name="ready_to_send",
    description="At least one line item, one invited supplier and a future deadline",
)

DEADLINE_PASSED = Guard(
    name="deadline_passed",
    description="Response deadline is in the past",
)

ALL_RESPONSES_IN = Guard(
    name="all_responses_in",
    description="Every invited supplier has submitted or declined",
)

LINES_ACCEPTED = Guard(
    name="lines_accepted",
    description="Every quoted line item has exactly one accepted option",
)

REOPEN_OVERRIDE = Guard(
    name="reopen_override",
    description="Studio explicitly reopened the RFQ with a new deadline",
)

REVISION_PERMITTED = Guard(
    name="revision_permitted",
    description="Studio allowed the supplier to revise a submitted quote",
)

logger.info(
    "rfq_workflow_guards_defined",
    extra={
        "guards": [
            READY_TO_SEND.name,
            DEADLINE_PASSED.name,
            ALL_RESPONSES_IN.name,
            LINES_ACCEPTED.name,
            REOPEN_OVERRIDE.name,
        ],
    },
)


# -----------------------------------------------------------------------------
# RFQ
# -----------------------------------------------------------------------------

_D = RFQStatus.DRAFT.value
_S = RFQStatus.SENT.value
_PQ = RFQStatus.PARTIALLY_QUOTED.value
_FQ = RFQStatus.FULLY_QUOTED.value
_QA = RFQStatus.QUOTE_ACCEPTED.value
_EX = RFQStatus.EXPIRED.value
_CX = RFQStatus.CANCELLED.value

RFQ_WORKFLOW = Workflow(
    name="rfq",
    description="Request for quote lifecycle",
    initial_state=_D,
    states=tuple(s.value for s in RFQStatus),
    transitions=(
        Transition(_D, _S, action="send", guard=READY_TO_SEND),
        Transition(_S, _PQ, action="record_response"),
        Transition(_S, _FQ, action="record_response", guard=ALL_RESPONSES_IN),
        Transition(_PQ, _FQ, action="record_response", guard=ALL_RESPONSES_IN),
        Transition(_PQ, _QA, action="finalize_acceptance", guard=LINES_ACCEPTED),
        Transition(_FQ, _QA, action="finalize_acceptance", guard=LINES_ACCEPTED),
        Transition(_S, _EX, action="expire", guard=DEADLINE_PASSED),
        Transition(_PQ, _EX, action="expire", guard=DEADLINE_PASSED),
        Transition(_EX, _S, action="reopen", guard=REOPEN_OVERRIDE),
        Transition(_D, _CX, action="cancel"),
        Transition(_S, _CX, action="cancel"),
        Transition(_PQ, _CX, action="cancel"),
        Transition(_FQ, _CX, action="cancel"),
        Transition(_EX, _CX, action="cancel"),
    ),
    terminal_states=(_QA, _CX),
)

# Statuses in which a supplier may still be invited.
INVITABLE_STATUSES = frozenset({
    RFQStatus.DRAFT, RFQStatus.SENT, RFQStatus.PARTIALLY_QUOTED,
})

# Statuses in which quotes are accepted (deadline permitting).
OPEN_STATUSES = frozenset({
    RFQStatus.SENT, RFQStatus.PARTIALLY_QUOTED, RFQStatus.FULLY_QUOTED,
})

# Statuses the deadline sweep moves to EXPIRED.
EXPIRABLE_STATUSES = frozenset({RFQStatus.SENT, RFQStatus.PARTIALLY_QUOTED})


# -----------------------------------------------------------------------------
# Supplier response
# -----------------------------------------------------------------------------

_P = SupplierResponseStatus.PENDING.value
_V = SupplierResponseStatus.VIEWED.value
_SUB = SupplierResponseStatus.SUBMITTED.value
_DEC = SupplierResponseStatus.DECLINED.value

SUPPLIER_RESPONSE_WORKFLOW = Workflow(
    name="supplier_response",
    description="One supplier's response to an RFQ",
    initial_state=_P,
    states=(_P, _V, _SUB, _DEC),
    transitions=(
        Transition(_P, _V, action="view"),
        Transition(_P, _SUB, action="submit"),
        Transition(_V, _SUB, action="submit"),
        Transition(_P, _DEC, action="decline"),
        Transition(_V, _DEC, action="decline"),
    ),
    terminal_states=(_SUB, _DEC),
)
