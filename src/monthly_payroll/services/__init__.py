"""Payroll services."""

from monthly_payroll.services.calculation_service import (
    NegativeNetPayError,
    NotEditableError,
    PayrollCalculationService,
    PersistenceError,
)
from monthly_payroll.services.employee_sequence import (
    EmployeeSequenceAllocator,
    SequenceAllocationError,
    format_employee_code,
    get_sequence_allocator,
)
from monthly_payroll.services.payroll_run_service import (
    CalculationOutcome,
    PayrollNotFoundError,
    PayrollRunService,
    PayrollValidationError,
)
from monthly_payroll.services.state_machine import (
    InvalidTransitionError,
    PayrollEvent,
    PayrollStateMachine,
    PayrollStatus,
)

__all__ = [
    "PayrollCalculationService",
    "NotEditableError",
    "NegativeNetPayError",
    "PersistenceError",
    "EmployeeSequenceAllocator",
    "SequenceAllocationError",
    "format_employee_code",
    "get_sequence_allocator",
    "PayrollRunService",
    "CalculationOutcome",
    "PayrollNotFoundError",
    "PayrollValidationError",
    "PayrollStateMachine",
    "PayrollStatus",
    "PayrollEvent",
    "InvalidTransitionError",
]
