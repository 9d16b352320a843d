"""Payroll run and payroll item models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    DateTime,
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
    from monthly_payroll.models.employee import Employee


class Payroll(Base, TimestampMixin):
    """One company's payroll run for a calendar month.

    Status only moves forward: draft -> confirmed -> paid. Totals are rolled
    up from the run's items by the calculation service.
    """

    __tablename__ = "payroll"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("company.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft", index=True)
    total_gross_pay: Mapped[Decimal | None] = mapped_column(Numeric(12, 0), nullable=True)
    total_net_pay: Mapped[Decimal | None] = mapped_column(Numeric(12, 0), nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("company_id", "year", "month", name="payroll_company_period_unique"),
        CheckConstraint(
            "status IN ('draft', 'confirmed', 'paid')",
            name="payroll_status_check",
        ),
        CheckConstraint("year > 2000", name="payroll_year_check"),
        CheckConstraint("month >= 1 AND month <= 12", name="payroll_month_check"),
        CheckConstraint(
            "total_gross_pay IS NULL OR total_gross_pay >= 0",
            name="payroll_total_gross_check",
        ),
        CheckConstraint(
            "total_net_pay IS NULL OR total_net_pay >= 0",
            name="payroll_total_net_check",
        ),
    )

    # Relationships
    company: Mapped[Company] = relationship(back_populates="payrolls")
    items: Mapped[list[PayrollItem]] = relationship(
        back_populates="payroll",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PayrollItem.id",
    )

    @property
    def period_text(self) -> str:
        return f"{self.year}-{self.month:02d}"


class PayrollItem(Base, TimestampMixin):
    """One employee's computed pay figures within a payroll run.

    gross_pay = base_salary + total_allowances
    net_pay = gross_pay - total_deductions - total_insurance_premium
    """

    __tablename__ = "payroll_item"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payroll_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("payroll.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employee.id"),
        nullable=False,
        index=True,
    )
    base_salary: Mapped[Decimal] = mapped_column(Numeric(10, 0), nullable=False)
    total_allowances: Mapped[Decimal] = mapped_column(
        Numeric(10, 0), nullable=False, default=Decimal("0")
    )
    total_deductions: Mapped[Decimal] = mapped_column(
        Numeric(10, 0), nullable=False, default=Decimal("0")
    )
    total_insurance_premium: Mapped[Decimal] = mapped_column(
        Numeric(10, 0), nullable=False, default=Decimal("0")
    )
    gross_pay: Mapped[Decimal | None] = mapped_column(Numeric(10, 0), nullable=True)
    net_pay: Mapped[Decimal | None] = mapped_column(Numeric(10, 0), nullable=True)

    __table_args__ = (
        UniqueConstraint("payroll_id", "employee_id", name="payroll_item_payroll_employee_unique"),
        CheckConstraint("base_salary >= 0", name="payroll_item_base_salary_check"),
        CheckConstraint("total_allowances >= 0", name="payroll_item_allowances_check"),
        CheckConstraint("total_deductions >= 0", name="payroll_item_deductions_check"),
        CheckConstraint(
            "total_insurance_premium >= 0", name="payroll_item_insurance_premium_check"
        ),
        CheckConstraint(
            "gross_pay IS NULL OR gross_pay >= 0", name="payroll_item_gross_pay_check"
        ),
        CheckConstraint("net_pay IS NULL OR net_pay >= 0", name="payroll_item_net_pay_check"),
    )

    # Relationships
    payroll: Mapped[Payroll] = relationship(back_populates="items")
    employee: Mapped[Employee] = relationship()
