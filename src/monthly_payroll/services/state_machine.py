"""Payroll run state machine with guarded transitions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from monthly_payroll.models import Payroll


class PayrollStatus(str, Enum):
    """Payroll run status values."""

    DRAFT = "draft"
    CONFIRMED = "confirmed"
    PAID = "paid"


class PayrollEvent(str, Enum):
    """Events that move a payroll run forward."""

    CONFIRM = "confirm"
    MARK_AS_PAID = "mark_as_paid"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


def _confirm_guard(payroll: Payroll) -> list[str]:
    errors: list[str] = []
    if not payroll.items:
        errors.append("Payroll has no items; calculate it first")
        return errors

    uncomputed = [item for item in payroll.items if item.net_pay is None]
    if uncomputed:
        errors.append(f"{len(uncomputed)} item(s) have no computed net pay")
    return errors


@dataclass(frozen=True)
class Transition:
    """One edge of the state graph with its guard and timestamp column."""

    event: PayrollEvent
    from_status: PayrollStatus
    to_status: PayrollStatus
    stamp_attribute: str
    guard: Callable[[Payroll], list[str]] | None = None


class PayrollStateMachine:
    """State machine for payroll run status transitions.

    Allowed transitions:
    - draft → confirmed (confirm; needs at least one item, all with net pay)
    - confirmed → paid (mark_as_paid)

    No transition skips a state and none goes backwards; paid is terminal.
    """

    TRANSITIONS: dict[PayrollEvent, Transition] = {
        PayrollEvent.CONFIRM: Transition(
            event=PayrollEvent.CONFIRM,
            from_status=PayrollStatus.DRAFT,
            to_status=PayrollStatus.CONFIRMED,
            stamp_attribute="confirmed_at",
            guard=_confirm_guard,
        ),
        PayrollEvent.MARK_AS_PAID: Transition(
            event=PayrollEvent.MARK_AS_PAID,
            from_status=PayrollStatus.CONFIRMED,
            to_status=PayrollStatus.PAID,
            stamp_attribute="paid_at",
        ),
    }

    # Statuses where items may be (re)calculated
    EDITABLE = {PayrollStatus.DRAFT.value}

    @classmethod
    def _transition_for(cls, status: str, event: PayrollEvent | str) -> Transition:
        try:
            return cls.TRANSITIONS[PayrollEvent(event)]
        except ValueError:
            raise InvalidTransitionError(
                status, "unknown", f"unknown event '{event}'"
            ) from None

    @classmethod
    def next_status(cls, status: str, event: PayrollEvent | str) -> PayrollStatus:
        """Pure transition function: (status, event) -> next status.

        Raises InvalidTransitionError if the event is not allowed from status.
        Guards are not evaluated here.
        """
        transition = cls._transition_for(status, event)
        if status != transition.from_status:
            raise InvalidTransitionError(
                status,
                transition.to_status.value,
                f"'{transition.event.value}' is only allowed from '{transition.from_status.value}'",
            )
        return transition.to_status

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a direct transition exists between two statuses."""
        return any(
            t.from_status == from_status and t.to_status == to_status
            for t in cls.TRANSITIONS.values()
        )

    @classmethod
    def can_edit(cls, status: str) -> bool:
        """Check if calculation is allowed in this status."""
        if isinstance(status, PayrollStatus):
            status = status.value
        return status in cls.EDITABLE

    @classmethod
    def get_available_events(cls, status: str) -> list[PayrollEvent]:
        """Events whose source status matches (guards not evaluated)."""
        return [t.event for t in cls.TRANSITIONS.values() if t.from_status == status]

    @classmethod
    def validate_payroll_for_event(
        cls, payroll: Payroll, event: PayrollEvent | str
    ) -> list[str]:
        """Validate a payroll for a specific event, returning any errors.

        Returns list of error messages (empty if valid). The payroll's items
        must already be loaded.
        """
        transition = cls._transition_for(payroll.status, event)
        if payroll.status != transition.from_status:
            return [
                f"Cannot {transition.event.value} a payroll in '{payroll.status}' status"
            ]
        if transition.guard is None:
            return []
        return transition.guard(payroll)

    @classmethod
    def may_fire(cls, payroll: Payroll, event: PayrollEvent | str) -> bool:
        return not cls.validate_payroll_for_event(payroll, event)

    @classmethod
    def may_confirm(cls, payroll: Payroll) -> bool:
        return cls.may_fire(payroll, PayrollEvent.CONFIRM)

    @classmethod
    def fire(
        cls,
        payroll: Payroll,
        event: PayrollEvent | str,
        now: datetime | None = None,
    ) -> Payroll:
        """Apply an event to a payroll.

        The guard runs before any mutation; on failure the payroll is left
        untouched and InvalidTransitionError is raised.
        """
        transition = cls._transition_for(payroll.status, event)
        errors = cls.validate_payroll_for_event(payroll, transition.event)
        if errors:
            raise InvalidTransitionError(
                payroll.status, transition.to_status.value, "; ".join(errors)
            )

        payroll.status = transition.to_status.value
        setattr(payroll, transition.stamp_attribute, now or datetime.now(timezone.utc))
        return payroll

    @classmethod
    def confirm(cls, payroll: Payroll, now: datetime | None = None) -> Payroll:
        return cls.fire(payroll, PayrollEvent.CONFIRM, now)

    @classmethod
    def mark_as_paid(cls, payroll: Payroll, now: datetime | None = None) -> Payroll:
        return cls.fire(payroll, PayrollEvent.MARK_AS_PAID, now)
