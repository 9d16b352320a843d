"""Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Payroll schemas
# ============================================================================


class PayrollCreate(BaseModel):
    """Schema for opening a payroll run."""

    year: int
    month: int


class PayrollItemResponse(BaseModel):
    """One employee's figures within a payroll run."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: int
    base_salary: Decimal
    total_allowances: Decimal
    total_deductions: Decimal
    total_insurance_premium: Decimal
    gross_pay: Decimal | None
    net_pay: Decimal | None


class PayrollResponse(BaseModel):
    """Schema for payroll run response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    year: int
    month: int
    status: str
    total_gross_pay: Decimal | None
    total_net_pay: Decimal | None
    confirmed_at: datetime | None
    paid_at: datetime | None


class PayrollDetailResponse(PayrollResponse):
    """Payroll run with its items and what can be done with it next."""

    items: list[PayrollItemResponse] = Field(default_factory=list)
    can_edit: bool
    may_confirm: bool


class PayrollListResponse(BaseModel):
    """Schema for list of payroll runs."""

    items: list[PayrollResponse]
    total: int


class CalculationResponse(BaseModel):
    """Outcome of a calculate request."""

    success: bool
    message: str


# ============================================================================
# Employee code schemas
# ============================================================================


class EmployeeCodeRequest(BaseModel):
    """Request for a new employee code (defaults to the current year)."""

    year: int | None = None


class EmployeeCodeResponse(BaseModel):
    """Allocated employee code."""

    employee_code: str
    number: int
    year: int


# ============================================================================
# Insurance schemas
# ============================================================================


class PremiumBreakdownResponse(BaseModel):
    """Premium for one insurance type, split by payer."""

    insurance_type: str
    grade_level: int
    premium_base: Decimal
    rate: Decimal
    total: Decimal
    employee: Decimal
    employer: Decimal
    government: Decimal


class PremiumResponse(BaseModel):
    """Insurance premium quote for a salary."""

    salary: Decimal
    employee_premium: int
    breakdown: list[PremiumBreakdownResponse]
    unmatched_types: list[str] = Field(default_factory=list)


class CacheStatusResponse(BaseModel):
    """State of the insurance rate cache."""

    warm: bool
    bracket_count: int
    types: list[str] = Field(default_factory=list)
    expires_in: float | None = None


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
