"""Kernel services: compare-and-set, sequences, activity trail."""

from procurement_kernel.services.activity_service import Activity, ActivityService
from procurement_kernel.services.base import (
    BaseService,
    compare_and_set,
    transition_status,
)
from procurement_kernel.services.sequence_service import (
    SequenceService,
    format_document_number,
)

__all__ = [
    "Activity",
    "ActivityService",
    "BaseService",
    "compare_and_set",
    "transition_status",
    "SequenceService",
    "format_document_number",
]
