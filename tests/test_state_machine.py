"""Tests for payroll run state machine."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from monthly_payroll.models import PayrollItem
from monthly_payroll.services.state_machine import (
    InvalidTransitionError,
    PayrollEvent,
    PayrollStateMachine,
    PayrollStatus,
)
from tests.conftest import new_payroll


def _item(net_pay: str | None = "43195") -> PayrollItem:
    return PayrollItem(
        employee_id=1,
        base_salary=Decimal("40000"),
        gross_pay=Decimal("45000"),
        net_pay=Decimal(net_pay) if net_pay is not None else None,
    )


class TestPayrollStateMachine:
    """Test state machine transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        # draft → confirmed
        assert PayrollStateMachine.can_transition("draft", "confirmed") is True

        # confirmed → paid
        assert PayrollStateMachine.can_transition("confirmed", "paid") is True

    def test_invalid_transitions(self):
        """Test that invalid transitions are blocked."""
        # Can't skip confirmed
        assert PayrollStateMachine.can_transition("draft", "paid") is False

        # Can't go backwards
        assert PayrollStateMachine.can_transition("confirmed", "draft") is False
        assert PayrollStateMachine.can_transition("paid", "confirmed") is False

        # Paid is terminal
        assert PayrollStateMachine.get_available_events("paid") == []

    def test_next_status(self):
        """The pure transition function maps (status, event) to the next status."""
        assert PayrollStateMachine.next_status("draft", "confirm") == PayrollStatus.CONFIRMED
        assert (
            PayrollStateMachine.next_status("confirmed", PayrollEvent.MARK_AS_PAID)
            == PayrollStatus.PAID
        )

    @pytest.mark.parametrize(
        "status,event",
        [
            ("draft", "mark_as_paid"),
            ("confirmed", "confirm"),
            ("paid", "confirm"),
            ("paid", "mark_as_paid"),
        ],
    )
    def test_next_status_raises(self, status, event):
        """Events outside their source status raise InvalidTransitionError."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            PayrollStateMachine.next_status(status, event)

        assert exc_info.value.from_status == status

    @pytest.mark.parametrize(
        "status,event",
        [
            ("draft", "approve"),
            ("archived", "confirm"),
            ("archived", "mark_as_paid"),
        ],
    )
    def test_unknown_status_or_event_raises(self, status, event):
        """Unknown statuses and events fail like any other disallowed transition."""
        with pytest.raises(InvalidTransitionError):
            PayrollStateMachine.next_status(status, event)

    def test_can_edit(self):
        """Only draft payrolls may be (re)calculated."""
        assert PayrollStateMachine.can_edit("draft") is True
        assert PayrollStateMachine.can_edit(PayrollStatus.DRAFT) is True
        assert PayrollStateMachine.can_edit("confirmed") is False
        assert PayrollStateMachine.can_edit("paid") is False

    def test_available_events(self):
        """Events are listed per source status."""
        assert PayrollStateMachine.get_available_events("draft") == [PayrollEvent.CONFIRM]
        assert PayrollStateMachine.get_available_events("confirmed") == [
            PayrollEvent.MARK_AS_PAID
        ]


class TestConfirmGuard:
    """Test the guard on the confirm event."""

    def test_may_confirm_with_computed_items(self):
        """A draft with fully computed items may be confirmed."""
        payroll = new_payroll(company_id=1)
        payroll.items.append(_item())

        assert PayrollStateMachine.may_confirm(payroll) is True

    def test_cannot_confirm_without_items(self):
        """An uncalculated draft may not be confirmed."""
        payroll = new_payroll(company_id=1)

        assert PayrollStateMachine.may_confirm(payroll) is False
        errors = PayrollStateMachine.validate_payroll_for_event(payroll, "confirm")
        assert "calculate it first" in errors[0]

    def test_cannot_confirm_with_uncomputed_item(self):
        """An item without net pay blocks confirmation."""
        payroll = new_payroll(company_id=1)
        payroll.items.extend([_item(), _item(net_pay=None)])

        assert PayrollStateMachine.may_confirm(payroll) is False

    def test_failed_guard_leaves_payroll_untouched(self):
        """A rejected confirm changes neither status nor timestamp."""
        payroll = new_payroll(company_id=1)

        with pytest.raises(InvalidTransitionError):
            PayrollStateMachine.confirm(payroll)

        assert payroll.status == "draft"
        assert payroll.confirmed_at is None


class TestFire:
    """Test applying events to a payroll."""

    def test_confirm_then_pay(self):
        """Events move the payroll forward and stamp the time."""
        confirmed_at = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
        paid_at = datetime(2024, 6, 5, 9, 0, tzinfo=timezone.utc)
        payroll = new_payroll(company_id=1)
        payroll.items.append(_item())

        PayrollStateMachine.confirm(payroll, now=confirmed_at)
        assert payroll.status == "confirmed"
        assert payroll.confirmed_at == confirmed_at

        PayrollStateMachine.mark_as_paid(payroll, now=paid_at)
        assert payroll.status == "paid"
        assert payroll.paid_at == paid_at

    def test_mark_as_paid_requires_confirmed(self):
        """Paying a draft is rejected."""
        payroll = new_payroll(company_id=1)
        payroll.items.append(_item())

        with pytest.raises(InvalidTransitionError) as exc_info:
            PayrollStateMachine.mark_as_paid(payroll)

        assert exc_info.value.to_status == "paid"
        assert payroll.status == "draft"
        assert payroll.paid_at is None

    def test_paid_is_terminal(self):
        """No event applies to a paid payroll."""
        payroll = new_payroll(company_id=1, status="paid")
        payroll.items.append(_item())

        assert PayrollStateMachine.may_fire(payroll, "confirm") is False
        assert PayrollStateMachine.may_fire(payroll, "mark_as_paid") is False

    def test_fire_unknown_event(self):
        """An unknown event leaves the payroll untouched."""
        payroll = new_payroll(company_id=1)
        payroll.items.append(_item())

        with pytest.raises(InvalidTransitionError) as exc_info:
            PayrollStateMachine.fire(payroll, "approve")

        assert exc_info.value.from_status == "draft"
        assert payroll.status == "draft"
        assert payroll.confirmed_at is None
