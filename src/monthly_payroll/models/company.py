"""Company model."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from monthly_payroll.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from monthly_payroll.models.employee import Employee, EmployeeSequence
    from monthly_payroll.models.payroll import Payroll


class Company(Base, TimestampMixin):
    """Company owning employees and payroll runs."""

    __tablename__ = "company"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    tax_id: Mapped[str] = mapped_column(String(8), nullable=False, unique=True)

    # Relationships
    employees: Mapped[list[Employee]] = relationship(back_populates="company")
    payrolls: Mapped[list[Payroll]] = relationship(back_populates="company")
    employee_sequences: Mapped[list[EmployeeSequence]] = relationship(
        back_populates="company"
    )
