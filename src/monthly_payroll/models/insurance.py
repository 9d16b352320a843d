"""Government insurance bracket (grade) model."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from monthly_payroll.models.base import Base, TimestampMixin


class InsuranceBracket(Base, TimestampMixin):
    """One salary grade of a government insurance scheme.

    The premium for an insured salary inside [salary_min, salary_max] is
    premium_base * rate, split between employee, employer and government by
    the three ratios. A NULL salary_max means the bracket is unbounded.
    """

    __tablename__ = "insurance_bracket"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    insurance_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    grade_level: Mapped[int] = mapped_column(Integer, nullable=False)
    salary_min: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    salary_max: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    premium_base: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    employee_ratio: Mapped[Decimal] = mapped_column(Numeric(4, 3), nullable=False)
    employer_ratio: Mapped[Decimal] = mapped_column(Numeric(4, 3), nullable=False)
    government_ratio: Mapped[Decimal] = mapped_column(
        Numeric(4, 3), nullable=False, default=Decimal("0")
    )
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "insurance_type IN ('labor', 'health', 'labor_pension', 'occupational_injury')",
            name="insurance_bracket_type_check",
        ),
        CheckConstraint(
            "salary_max IS NULL OR salary_max >= salary_min",
            name="insurance_bracket_salary_range_check",
        ),
        CheckConstraint(
            "expiry_date IS NULL OR expiry_date >= effective_date",
            name="insurance_bracket_dates_check",
        ),
        Index(
            "insurance_bracket_type_dates_idx",
            "insurance_type",
            "effective_date",
            "expiry_date",
        ),
    )
