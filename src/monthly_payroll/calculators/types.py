"""Type definitions for the calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from monthly_payroll.models import InsuranceBracket


def to_decimal(value: Any) -> Decimal:
    """Coerce ints, floats, strings and Decimals to Decimal without float drift."""
    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


class InsuranceType(str, Enum):
    """Government insurance schemes with an employee share."""

    LABOR = "labor"
    HEALTH = "health"
    LABOR_PENSION = "labor_pension"
    OCCUPATIONAL_INJURY = "occupational_injury"


@dataclass(frozen=True)
class InsuranceGrade:
    """Read-only, session-detached copy of an insurance bracket row."""

    insurance_type: str
    grade_level: int
    salary_min: Decimal
    salary_max: Decimal | None  # None = no upper limit
    premium_base: Decimal
    rate: Decimal
    employee_ratio: Decimal
    employer_ratio: Decimal
    government_ratio: Decimal = Decimal("0")
    effective_date: date | None = None
    expiry_date: date | None = None

    def contains(self, salary: Decimal) -> bool:
        """Check if salary falls inside [salary_min, salary_max]."""
        if salary < self.salary_min:
            return False
        return self.salary_max is None or salary <= self.salary_max

    @property
    def total_premium(self) -> Decimal:
        return self.premium_base * self.rate

    @classmethod
    def from_model(cls, bracket: InsuranceBracket) -> InsuranceGrade:
        """Snapshot an ORM row."""
        return cls(
            insurance_type=bracket.insurance_type,
            grade_level=bracket.grade_level,
            salary_min=to_decimal(bracket.salary_min),
            salary_max=(
                to_decimal(bracket.salary_max) if bracket.salary_max is not None else None
            ),
            premium_base=to_decimal(bracket.premium_base),
            rate=to_decimal(bracket.rate),
            employee_ratio=to_decimal(bracket.employee_ratio),
            employer_ratio=to_decimal(bracket.employer_ratio),
            government_ratio=to_decimal(bracket.government_ratio),
            effective_date=bracket.effective_date,
            expiry_date=bracket.expiry_date,
        )


@dataclass(frozen=True)
class PremiumBreakdown:
    """Premium for one insurance type, split by payer. Not truncated."""

    insurance_type: str
    total: Decimal
    employee: Decimal
    employer: Decimal
    government: Decimal
    grade: InsuranceGrade


@dataclass(frozen=True)
class PayrollCalculation:
    """Result of calculating one employee's pay.

    net_pay is not clamped; callers decide what a negative
    value means.
    """

    gross_pay: Decimal
    insurance_premium: int
    total_deductions_with_insurance: Decimal
    net_pay: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "gross_pay": self.gross_pay,
            "insurance_premium": self.insurance_premium,
            "total_deductions_with_insurance": self.total_deductions_with_insurance,
            "net_pay": self.net_pay,
        }
