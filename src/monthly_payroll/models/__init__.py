"""ORM models."""

from monthly_payroll.models.base import Base, TimestampMixin
from monthly_payroll.models.company import Company
from monthly_payroll.models.employee import Employee, EmployeeSequence
from monthly_payroll.models.insurance import InsuranceBracket
from monthly_payroll.models.payroll import Payroll, PayrollItem

__all__ = [
    "Base",
    "TimestampMixin",
    "Company",
    "Employee",
    "EmployeeSequence",
    "InsuranceBracket",
    "Payroll",
    "PayrollItem",
]
