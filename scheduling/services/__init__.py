"""
Scheduling services.

Services:
- availability_service: Bookable slots and the groomer day view
- appointment_service: Appointment reads (with auto-complete sweep) and lifecycle actions
- time_block_service: Groomer unavailability, including weekly recurrence
- directory_service: Groomer directory and role/ownership lookups
"""

from scheduling.services.appointment_service import (
    acknowledge_appointment,
    cancel_appointment,
    complete_service,
    get_appointment,
    list_appointments,
    mark_no_show,
    set_pricing,
    start_service,
)
from scheduling.services.availability_service import get_available_slots, get_groomer_schedule
from scheduling.services.directory_service import get_groomer_profile, list_groomers
from scheduling.services.time_block_service import (
    create_time_block,
    delete_time_block,
    list_time_blocks,
    update_time_block,
)

__all__ = [
    # Groomers
    "get_groomer_profile",
    "list_groomers",
    # Availability
    "get_available_slots",
    "get_groomer_schedule",
    # Appointments
    "acknowledge_appointment",
    "cancel_appointment",
    "complete_service",
    "get_appointment",
    "list_appointments",
    "mark_no_show",
    "set_pricing",
    "start_service",
    # Time blocks
    "create_time_block",
    "delete_time_block",
    "list_time_blocks",
    "update_time_block",
]
