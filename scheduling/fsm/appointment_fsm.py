"""
AppointmentLifecycle - state machine for a booked appointment.

States:
    CONFIRMED (initial) -> IN_PROGRESS -> COMPLETED
    CONFIRMED / IN_PROGRESS -> CANCELLED  (owner, terminal)
    CONFIRMED / IN_PROGRESS -> NO_SHOW    (groomer, terminal)
    CONFIRMED / IN_PROGRESS -> COMPLETED  (read-time sweep once end_time passed)
    any reschedulable state -> CONFIRMED  (reschedule)

Key responsibilities:
- Validate transitions and raise PolicyViolationError on invalid ones
- Apply the side fields of each transition (actual times, flags, history)
- Hold the modification cutoff predicate (can_modify)

Role and ownership checks are not done here; the services check the actor
before touching the lifecycle.
"""

import logging
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Optional
from uuid import UUID

from database.models import (
    OCCUPYING_STATUSES,
    SERVICE_DURATIONS,
    Appointment,
    AppointmentStatus,
    PricingStatus,
    ServiceType,
)
from scheduling.errors import PolicyViolationError, ValidationError
from shared.config import get_settings

logger = logging.getLogger(__name__)


class AppointmentAction(str, Enum):
    """Events that move an appointment between states."""

    RESCHEDULE = "reschedule"
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"
    MARK_NO_SHOW = "mark_no_show"
    AUTO_COMPLETE = "auto_complete"


def can_modify(
    start_time: datetime,
    now: Optional[datetime] = None,
    cutoff_hours: Optional[int] = None,
) -> bool:
    """
    Check whether an owner may still reschedule or cancel.

    True iff strictly more than cutoff_hours (default 24) remain before the
    start; exactly at the cutoff the answer is False.
    """
    if now is None:
        now = datetime.now(UTC)
    if cutoff_hours is None:
        cutoff_hours = get_settings().MODIFICATION_CUTOFF_HOURS
    return (start_time - now) > timedelta(hours=cutoff_hours)


def duration_for(service_type: ServiceType | str) -> int:
    """
    Minutes of a service package.

    Raises:
        ValidationError: Unknown service type
    """
    try:
        return SERVICE_DURATIONS[ServiceType(service_type)]
    except ValueError:
        raise ValidationError(
            "Service type must be either 'basic' or 'full'",
            error_code="INVALID_SERVICE_TYPE",
            details={"service_type": str(service_type)},
        ) from None


def minutes_between(start_time: datetime, end_time: datetime) -> int:
    """Whole minutes between two instants, rounded to nearest."""
    return round((end_time - start_time).total_seconds() / 60)


def is_past_due(appointment: Appointment, now: Optional[datetime] = None) -> bool:
    """True when an occupying appointment's scheduled end has already passed."""
    if now is None:
        now = datetime.now(UTC)
    return appointment.status in OCCUPYING_STATUSES and appointment.end_time < now


def auto_complete_values(appointment: Appointment, now: datetime) -> dict[str, Any]:
    """
    Column values written by the read-time sweep for a past-due appointment.

    Mid-service appointments get actual_end_time backfilled with the
    scheduled end and actual_duration computed from it.
    """
    values: dict[str, Any] = {
        "status": AppointmentStatus.COMPLETED,
        "auto_completed": True,
        "updated_at": now,
    }
    if appointment.actual_start_time is not None and appointment.actual_end_time is None:
        values["actual_end_time"] = appointment.end_time
        values["actual_duration"] = minutes_between(
            appointment.actual_start_time, appointment.end_time
        )
    return values


class AppointmentLifecycle:
    """
    Transition controller wrapped around one Appointment instance.

    Example:
        >>> lifecycle = AppointmentLifecycle(appointment)
        >>> lifecycle.acknowledge()
        >>> lifecycle.start(now)
        >>> appointment.status
        AppointmentStatus.IN_PROGRESS
    """

    # Valid transitions: from_status -> {action: to_status}
    TRANSITIONS: ClassVar[dict[AppointmentStatus, dict[AppointmentAction, AppointmentStatus]]] = {
        AppointmentStatus.CONFIRMED: {
            AppointmentAction.RESCHEDULE: AppointmentStatus.CONFIRMED,
            AppointmentAction.START: AppointmentStatus.IN_PROGRESS,
            AppointmentAction.CANCEL: AppointmentStatus.CANCELLED,
            AppointmentAction.MARK_NO_SHOW: AppointmentStatus.NO_SHOW,
            AppointmentAction.AUTO_COMPLETE: AppointmentStatus.COMPLETED,
        },
        AppointmentStatus.IN_PROGRESS: {
            AppointmentAction.RESCHEDULE: AppointmentStatus.CONFIRMED,
            AppointmentAction.COMPLETE: AppointmentStatus.COMPLETED,
            AppointmentAction.CANCEL: AppointmentStatus.CANCELLED,
            AppointmentAction.MARK_NO_SHOW: AppointmentStatus.NO_SHOW,
            AppointmentAction.AUTO_COMPLETE: AppointmentStatus.COMPLETED,
        },
        # Only sweep-completed appointments may be rescheduled (checked in reschedule)
        AppointmentStatus.COMPLETED: {
            AppointmentAction.RESCHEDULE: AppointmentStatus.CONFIRMED,
        },
        AppointmentStatus.CANCELLED: {},
        AppointmentStatus.NO_SHOW: {},
    }

    def __init__(self, appointment: Appointment) -> None:
        self._appointment = appointment

    @property
    def appointment(self) -> Appointment:
        return self._appointment

    @property
    def status(self) -> AppointmentStatus:
        return self._appointment.status

    @classmethod
    def can_transition(cls, current: AppointmentStatus, action: AppointmentAction) -> bool:
        return action in cls.TRANSITIONS.get(current, {})

    @classmethod
    def next_status(cls, current: AppointmentStatus, action: AppointmentAction) -> AppointmentStatus:
        """
        Resolve the target state of an action.

        Raises:
            PolicyViolationError: action not allowed from current state
        """
        try:
            return cls.TRANSITIONS[current][action]
        except KeyError:
            raise PolicyViolationError(
                f"Cannot {action.value.replace('_', ' ')} an appointment that is {current.value}",
                error_code="INVALID_TRANSITION",
                details={"status": current.value, "action": action.value},
            ) from None

    def _transition(self, action: AppointmentAction, now: datetime) -> None:
        from_status = self.status
        to_status = self.next_status(from_status, action)
        self._appointment.status = to_status
        self._appointment.updated_at = now
        logger.info(
            f"Appointment transition: {from_status.value} -> {to_status.value} ({action.value})",
            extra={"appointment_id": self._appointment.id},
        )

    def can_modify(self, now: Optional[datetime] = None, cutoff_hours: Optional[int] = None) -> bool:
        return can_modify(self._appointment.start_time, now, cutoff_hours)

    def ensure_modifiable(self, now: datetime, cutoff_hours: Optional[int] = None) -> None:
        """
        Enforce the owner modification cutoff for occupying appointments.

        Raises:
            PolicyViolationError: MODIFICATION_CUTOFF inside the cutoff window
        """
        if self.status in OCCUPYING_STATUSES and not self.can_modify(now, cutoff_hours):
            if cutoff_hours is None:
                cutoff_hours = get_settings().MODIFICATION_CUTOFF_HOURS
            raise PolicyViolationError(
                f"Cannot modify appointments less than {cutoff_hours} hours before start time",
                error_code="MODIFICATION_CUTOFF",
                details={
                    "start_time": self._appointment.start_time.isoformat(),
                    "cutoff_hours": cutoff_hours,
                },
            )

    # ------------------------------------------------------------------
    # Owner actions
    # ------------------------------------------------------------------

    def check_reschedule(self, now: datetime, cutoff_hours: Optional[int] = None) -> None:
        """
        Raise unless the appointment may be moved.

        Sweep-completed appointments may be moved (the cutoff does not apply
        to them); groomer-completed, cancelled and no-show ones may not.
        """
        self.next_status(self.status, AppointmentAction.RESCHEDULE)
        if self.status == AppointmentStatus.COMPLETED and not self._appointment.auto_completed:
            raise PolicyViolationError(
                "Cannot reschedule an appointment whose service was completed",
                error_code="INVALID_TRANSITION",
                details={"status": self.status.value, "action": AppointmentAction.RESCHEDULE.value},
            )
        self.ensure_modifiable(now, cutoff_hours)

    def reschedule(
        self,
        *,
        pet_id: UUID,
        groomer_id: UUID,
        service_type: ServiceType,
        start_time: datetime,
        now: datetime,
        cutoff_hours: Optional[int] = None,
    ) -> None:
        """
        Move the appointment and reset it to CONFIRMED.

        The conflict check on the new interval is the caller's job, run
        before this in the same transaction.
        """
        self.check_reschedule(now, cutoff_hours)

        duration = duration_for(service_type)
        appointment = self._appointment
        groomer_changed = appointment.groomer_id != groomer_id

        appointment.pet_id = pet_id
        appointment.groomer_id = groomer_id
        appointment.service_type = ServiceType(service_type)
        appointment.duration_minutes = duration
        appointment.start_time = start_time
        appointment.end_time = start_time + timedelta(minutes=duration)

        # New booking window: previous service record no longer applies
        appointment.auto_completed = False
        appointment.actual_start_time = None
        appointment.actual_end_time = None
        appointment.actual_duration = None
        if groomer_changed:
            appointment.groomer_acknowledged = False

        self._transition(AppointmentAction.RESCHEDULE, now)

    def cancel(self, now: datetime, cutoff_hours: Optional[int] = None) -> None:
        self.next_status(self.status, AppointmentAction.CANCEL)
        self.ensure_modifiable(now, cutoff_hours)
        self._appointment.cancelled_at = now
        self._transition(AppointmentAction.CANCEL, now)

    # ------------------------------------------------------------------
    # Groomer actions
    # ------------------------------------------------------------------

    def acknowledge(self, now: datetime) -> bool:
        """
        Mark the appointment as seen by the groomer. Idempotent.

        Returns:
            True if the flag changed
        """
        if self._appointment.groomer_acknowledged:
            return False
        if self.status not in OCCUPYING_STATUSES:
            raise PolicyViolationError(
                f"Cannot acknowledge an appointment that is {self.status.value}",
                error_code="INVALID_TRANSITION",
                details={"status": self.status.value, "action": "acknowledge"},
            )
        self._appointment.groomer_acknowledged = True
        self._appointment.updated_at = now
        return True

    def start(self, now: datetime) -> None:
        self.next_status(self.status, AppointmentAction.START)
        if not self._appointment.groomer_acknowledged:
            raise PolicyViolationError(
                "Appointment must be acknowledged before starting the service",
                error_code="NOT_ACKNOWLEDGED",
            )
        self._appointment.actual_start_time = now
        self._transition(AppointmentAction.START, now)

    def complete(
        self,
        now: datetime,
        notes: Optional[str] = None,
        photos: Optional[list[str]] = None,
    ) -> None:
        self.next_status(self.status, AppointmentAction.COMPLETE)
        appointment = self._appointment
        appointment.actual_end_time = now
        appointment.actual_duration = minutes_between(appointment.actual_start_time, now)
        if notes is not None:
            appointment.notes = notes
        if photos:
            appointment.photos = [*(appointment.photos or []), *photos]
        self._transition(AppointmentAction.COMPLETE, now)

    def mark_no_show(self, now: datetime) -> None:
        """
        Record that the pet never arrived.

        Allowed only once the start time has been reached.

        Raises:
            PolicyViolationError: INVALID_TRANSITION or NO_SHOW_BEFORE_START
        """
        self.next_status(self.status, AppointmentAction.MARK_NO_SHOW)
        if self._appointment.start_time > now:
            raise PolicyViolationError(
                "Cannot mark a no-show before the appointment start time",
                error_code="NO_SHOW_BEFORE_START",
                details={"start_time": self._appointment.start_time.isoformat()},
            )
        self._transition(AppointmentAction.MARK_NO_SHOW, now)

    def set_price(self, amount: Decimal, reason: Optional[str], set_by: UUID, now: datetime) -> None:
        """
        Append a price history entry; total_cost mirrors the latest entry.

        Raises:
            ValidationError: negative amount
            PolicyViolationError: appointment cancelled or no-show
        """
        if amount < 0:
            raise ValidationError(
                "Price cannot be negative",
                error_code="INVALID_AMOUNT",
                details={"amount": str(amount)},
            )
        if self.status in (AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW):
            raise PolicyViolationError(
                f"Cannot price an appointment that is {self.status.value}",
                error_code="INVALID_TRANSITION",
                details={"status": self.status.value, "action": "set_price"},
            )

        amount = Decimal(amount).quantize(Decimal("0.01"))
        entry = {
            "amount": str(amount),
            "timestamp": now.isoformat(),
            "reason": reason,
            "set_by": str(set_by),
        }
        # Reassign so the JSON column is flagged dirty
        self._appointment.price_history = [*(self._appointment.price_history or []), entry]
        self._appointment.total_cost = amount
        self._appointment.pricing_status = PricingStatus.SET
        self._appointment.updated_at = now
