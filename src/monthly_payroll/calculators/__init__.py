"""Payroll calculation engine."""

from monthly_payroll.calculators.payroll_calculator import PayrollCalculator
from monthly_payroll.calculators.rate_table import (
    InsuranceBracketReader,
    InsuranceRateCache,
    InsuranceRateTable,
    LookupUnavailableError,
    OverlappingBracketsError,
    get_insurance_cache,
)
from monthly_payroll.calculators.types import (
    InsuranceGrade,
    InsuranceType,
    PayrollCalculation,
    PremiumBreakdown,
)

__all__ = [
    "PayrollCalculator",
    "InsuranceBracketReader",
    "InsuranceRateCache",
    "InsuranceRateTable",
    "LookupUnavailableError",
    "OverlappingBracketsError",
    "get_insurance_cache",
    "InsuranceGrade",
    "InsuranceType",
    "PayrollCalculation",
    "PremiumBreakdown",
]
