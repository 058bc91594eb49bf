"""
Appointment lifecycle state machine.

Public exports:
    - AppointmentLifecycle: Transition controller wrapped around an Appointment
    - AppointmentAction: Enum of lifecycle events
    - can_modify: Owner modification cutoff predicate
"""

from scheduling.fsm.appointment_fsm import AppointmentAction, AppointmentLifecycle, can_modify

__all__ = [
    "AppointmentAction",
    "AppointmentLifecycle",
    "can_modify",
]
