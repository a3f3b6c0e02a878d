from talentbook.scheduling.availability import filter_conflicts, resolve_schedule_hours
from talentbook.scheduling.bulk import BulkMode, BulkSelectionResult, bulk_select
from talentbook.scheduling.lifecycle import BookingEvent, BookingStateMachine
from talentbook.scheduling.pricing import PriceGuardrail
from talentbook.scheduling.selection import (
    RunSet,
    SelectionState,
    deselect_hour,
    select_hour,
)

__all__ = [
    "resolve_schedule_hours",
    "filter_conflicts",
    "RunSet",
    "SelectionState",
    "select_hour",
    "deselect_hour",
    "BulkMode",
    "BulkSelectionResult",
    "bulk_select",
    "BookingStateMachine",
    "BookingEvent",
    "PriceGuardrail",
]
