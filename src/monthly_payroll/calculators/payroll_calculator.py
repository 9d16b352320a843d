"""Pure salary and insurance arithmetic.

Every function here is deterministic and side-effect free: same inputs,
same outputs, no database access. Insurance lookups read an
InsuranceRateTable snapshot that the caller already holds in memory.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal
from typing import Any

from monthly_payroll.calculators.rate_table import InsuranceRateTable
from monthly_payroll.calculators.types import (
    InsuranceType,
    PayrollCalculation,
    PremiumBreakdown,
    to_decimal,
)


class PayrollCalculator:
    """Salary calculation pipeline.

    Order (fixed):
    1) gross = base salary + allowances
    2) insurance premium (employee share, looked up by base salary)
    3) total deductions = other deductions + insurance premium
    4) net = gross - total deductions

    Rounding:
    - Intermediate premiums keep full Decimal precision
    - Only the summed insurance premium is truncated to whole currency units
    - Net pay is never clamped; it may come out negative
    """

    INSURANCE_TYPES: tuple[InsuranceType, ...] = (
        InsuranceType.LABOR,
        InsuranceType.HEALTH,
        InsuranceType.LABOR_PENSION,
        InsuranceType.OCCUPATIONAL_INJURY,
    )

    @staticmethod
    def gross_pay(base_salary: Any, total_allowances: Any) -> Decimal:
        """Calculate gross pay before any deduction."""
        return to_decimal(base_salary) + to_decimal(total_allowances)

    @staticmethod
    def premium_breakdown(
        base_salary: Any,
        table: InsuranceRateTable,
    ) -> dict[str, PremiumBreakdown | None]:
        """Per-type premium split for a salary (None where no bracket matches)."""
        salary = to_decimal(base_salary)
        return {
            insurance_type.value: table.premium_for(insurance_type, salary)
            for insurance_type in PayrollCalculator.INSURANCE_TYPES
        }

    @staticmethod
    def insurance_premium(base_salary: Any, table: InsuranceRateTable) -> int:
        """Calculate the employee's insurance premium across all four schemes."""
        salary = to_decimal(base_salary)
        if salary <= 0:
            return 0

        breakdowns = PayrollCalculator.premium_breakdown(salary, table)
        total = sum(
            (breakdown.employee for breakdown in breakdowns.values() if breakdown is not None),
            Decimal("0"),
        )
        return int(total.to_integral_value(rounding=ROUND_DOWN))

    @staticmethod
    def total_deductions(other_deductions: Any, insurance_premium: Any) -> Decimal:
        """Calculate total deductions including insurance."""
        return to_decimal(other_deductions) + to_decimal(insurance_premium)

    @staticmethod
    def net_pay(gross_pay: Any, total_deductions: Any) -> Decimal:
        """Calculate take-home pay. Not clamped at zero."""
        return to_decimal(gross_pay) - to_decimal(total_deductions)

    @staticmethod
    def calculate_all(
        base_salary: Any,
        total_allowances: Any,
        total_deductions: Any,
        table: InsuranceRateTable,
    ) -> PayrollCalculation:
        """Run the full pipeline for one employee."""
        gross = PayrollCalculator.gross_pay(base_salary, total_allowances)
        premium = PayrollCalculator.insurance_premium(base_salary, table)
        deductions = PayrollCalculator.total_deductions(total_deductions, premium)
        net = PayrollCalculator.net_pay(gross, deductions)

        return PayrollCalculation(
            gross_pay=gross,
            insurance_premium=premium,
            total_deductions_with_insurance=deductions,
            net_pay=net,
        )
