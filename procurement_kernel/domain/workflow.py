"""
Canonical workflow types (``procurement_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for lifecycle state machines.  Used by the RFQ,
supplier response, client quote and purchase order modules so that
Guard, Transition, and Workflow are defined once, and so that every
status change is looked up in an enumerated transition table instead of
being compared ad hoc.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass

from procurement_kernel.exceptions import StateTransitionError


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the owning service does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``; states listed in
    ``terminal_states`` have no outgoing transitions.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state} "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.from_state} -> "
                    f"{t.to_state} references an undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state} "
                    "has an outgoing transition"
                )

    def find(self, from_state: str, to_state: str) -> Transition | None:
        """Return the transition from ``from_state`` to ``to_state``, if declared."""
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def can_transition(self, from_state: str, to_state: str) -> bool:
        return self.find(from_state, to_state) is not None

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def targets_from(self, from_state: str) -> tuple[str, ...]:
        return tuple(t.to_state for t in self.transitions if t.from_state == from_state)

    def require(
        self,
        from_state: str,
        to_state: str,
        *,
        entity_type: str,
        entity_id: object,
        reason: str = "",
    ) -> Transition:
        """Return the declared transition or raise StateTransitionError."""
        transition = self.find(from_state, to_state)
        if transition is None:
            if not reason:
                allowed = self.targets_from(from_state)
                reason = (
                    f"{from_state} is terminal"
                    if not allowed
                    else f"allowed from {from_state}: {', '.join(allowed)}"
                )
            raise StateTransitionError(
                entity_type, str(entity_id), from_state, to_state, reason,
            )
        return transition


def linear_chain(
    name: str,
    description: str,
    chain: tuple[str, ...],
    *,
    cancel_state: str,
    action: str = "advance",
) -> Workflow:
    """Build a strictly forward, one-step-at-a-time workflow.

    Every state in ``chain`` except the last may move to its successor or
    to ``cancel_state``. The last state of the chain and ``cancel_state``
    are terminal.
    """
    transitions: list[Transition] = []
    for current, following in zip(chain, chain[1:]):
        transitions.append(Transition(current, following, action=action))
        transitions.append(Transition(current, cancel_state, action="cancel"))
    return Workflow(
        name=name,
        description=description,
        initial_state=chain[0],
        states=chain + (cancel_state,),
        transitions=tuple(transitions),
        terminal_states=(chain[-1], cancel_state),
    )
