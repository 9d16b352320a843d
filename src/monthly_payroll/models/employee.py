"""Employee and employee sequence models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from monthly_payroll.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from monthly_payroll.models.company import Company


def _sum_amounts(amounts: dict[str, Any] | None) -> Decimal:
    if not amounts:
        return Decimal("0")
    return sum((Decimal(str(value)) for value in amounts.values()), Decimal("0"))


class Employee(Base, TimestampMixin):
    """Employee record.

    Owned by the HR side of the application; the payroll engine only reads it.
    `allowances` and `deductions` are label -> amount mappings.
    """

    __tablename__ = "employee"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("company.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    department: Mapped[str | None] = mapped_column(String, nullable=True)
    position: Mapped[str | None] = mapped_column(String, nullable=True)
    hire_date: Mapped[date] = mapped_column(Date, nullable=False)
    resign_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    base_salary: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0")
    )
    allowances: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    deductions: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("company_id", "employee_code", name="employee_company_code_unique"),
        CheckConstraint("base_salary >= 0", name="employee_base_salary_check"),
        CheckConstraint(
            "resign_date IS NULL OR resign_date >= hire_date",
            name="employee_dates_check",
        ),
    )

    # Relationships
    company: Mapped[Company] = relationship(back_populates="employees")

    @property
    def total_allowances(self) -> Decimal:
        """Sum of all allowance amounts."""
        return _sum_amounts(self.allowances)

    @property
    def total_deductions(self) -> Decimal:
        """Sum of all non-insurance deduction amounts."""
        return _sum_amounts(self.deductions)


class EmployeeSequence(Base, TimestampMixin):
    """Per-company, per-year counter backing employee code allocation.

    Only mutated through EmployeeSequenceAllocator.
    """

    __tablename__ = "employee_sequence"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("company.id", ondelete="CASCADE"),
        nullable=False,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    last_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("company_id", "year", name="employee_sequence_company_year_unique"),
        CheckConstraint("year > 1900", name="employee_sequence_year_check"),
        CheckConstraint("last_number >= 0", name="employee_sequence_last_number_check"),
    )

    # Relationships
    company: Mapped[Company] = relationship(back_populates="employee_sequences")
