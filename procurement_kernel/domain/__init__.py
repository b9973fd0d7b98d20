"""
Pure domain layer.

Value objects and workflow definitions with NO dependencies on the ORM,
the database or I/O.  All domain objects are immutable and deterministic.
"""

from procurement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from procurement_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from procurement_kernel.domain.values import Currency, Money, round2
from procurement_kernel.domain.workflow import Guard, Transition, Workflow, linear_chain

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "CurrencyInfo",
    "CurrencyRegistry",
    "Currency",
    "Money",
    "round2",
    "Guard",
    "Transition",
    "Workflow",
    "linear_chain",
]
