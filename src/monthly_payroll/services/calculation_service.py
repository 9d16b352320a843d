"""Two-phase payroll calculation: pure calculate, then transactional persist."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from monthly_payroll.calculators.payroll_calculator import PayrollCalculator
from monthly_payroll.calculators.rate_table import (
    InsuranceRateCache,
    InsuranceRateTable,
    LookupUnavailableError,
    get_insurance_cache,
)
from monthly_payroll.calculators.types import PayrollCalculation, to_decimal
from monthly_payroll.config import Settings, get_settings
from monthly_payroll.models import Employee, Payroll, PayrollItem
from monthly_payroll.services.state_machine import PayrollStateMachine

logger = logging.getLogger(__name__)


class NotEditableError(Exception):
    """Raised when a non-draft payroll would be recalculated or removed."""

    def __init__(self, payroll_id: int, status: str, action: str = "recalculated"):
        self.payroll_id = payroll_id
        self.status = status
        self.action = action
        super().__init__(f"Payroll {payroll_id} is {status} and cannot be {action}")


class NegativeNetPayError(Exception):
    """Raised before persisting when an employee's net pay comes out negative."""

    def __init__(self, employee_code: str, net_pay: Decimal):
        self.employee_code = employee_code
        self.net_pay = net_pay
        super().__init__(
            f"Net pay for employee {employee_code} is negative ({net_pay}); "
            "deductions exceed gross pay"
        )


class PersistenceError(Exception):
    """Raised when writing a batch fails. The whole batch is rolled back."""

    def __init__(self, payroll_id: int, reason: str, employee_code: str | None = None):
        self.payroll_id = payroll_id
        self.reason = reason
        self.employee_code = employee_code
        msg = f"Failed to persist payroll {payroll_id}"
        if employee_code:
            msg += f" at employee {employee_code}"
        super().__init__(f"{msg}: {reason}")


@dataclass(frozen=True)
class EmployeeCalculation:
    """Calculation result paired with the employee it belongs to."""

    employee: Employee
    result: PayrollCalculation


class PayrollCalculationService:
    """Calculates and stores a payroll run's items.

    Phases:
    1. calculate_all: pure, reads the roster and one rate table snapshot
    2. persist: upserts one item per employee and rolls totals up onto the
       run, all in a single transaction

    Key invariants:
    1. One item per (payroll, employee); re-running updates in place
    2. Totals are summed from the stored items after every upsert
    3. Any failure in persist leaves zero writes behind
    4. Only draft payrolls can be calculated
    """

    def __init__(
        self,
        session: AsyncSession,
        rate_cache: InsuranceRateCache | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.rate_cache = rate_cache or get_insurance_cache()
        self._table: InsuranceRateTable | None = None

    async def call(self, payroll: Payroll) -> bool:
        """Calculate and persist a payroll run.

        Raises:
            NotEditableError: If the payroll is not in draft status
            LookupUnavailableError: If the rate table cannot be loaded and
                missing insurance data is not tolerated
            NegativeNetPayError: If any employee's net pay is negative
            PersistenceError: If the batch could not be written
        """
        if not PayrollStateMachine.can_edit(payroll.status):
            raise NotEditableError(payroll.id, payroll.status)

        calculations = await self.calculate_all(payroll)
        await self.persist(payroll, calculations)
        return True

    async def rate_table(self) -> InsuranceRateTable:
        """Rate table snapshot used for the whole batch."""
        if self._table is None:
            try:
                self._table = await self.rate_cache.fetch()
            except LookupUnavailableError:
                if not self.settings.tolerate_missing_insurance:
                    raise
                logger.warning(
                    "Insurance rate table unavailable; computing zero insurance premiums"
                )
                self._table = InsuranceRateTable.empty()
        return self._table

    async def employees_of(self, company_id: int) -> list[Employee]:
        """All employees of a company, including inactive and resigned ones."""
        result = await self.session.execute(
            select(Employee).where(Employee.company_id == company_id).order_by(Employee.id)
        )
        return list(result.scalars().all())

    async def calculate_all(self, payroll: Payroll) -> list[EmployeeCalculation]:
        """Phase 1: calculate every employee's pay without writing anything.

        Resigned employees are paid the full month; no pro-ration is applied.
        """
        table = await self.rate_table()
        employees = await self.employees_of(payroll.company_id)

        return [
            EmployeeCalculation(
                employee=employee,
                result=self.calculate_for_employee(employee, table),
            )
            for employee in employees
        ]

    @staticmethod
    def calculate_for_employee(
        employee: Employee, table: InsuranceRateTable
    ) -> PayrollCalculation:
        """Pure calculation for a single employee."""
        return PayrollCalculator.calculate_all(
            base_salary=employee.base_salary,
            total_allowances=employee.total_allowances,
            total_deductions=employee.total_deductions,
            table=table,
        )

    async def persist(
        self,
        payroll: Payroll,
        calculations: Sequence[EmployeeCalculation],
    ) -> bool:
        """Phase 2: write all items and totals in one transaction.

        Negative net pay is rejected before anything is written. On any
        other failure the session is rolled back and PersistenceError is
        raised with the employee being written at the time.
        """
        payroll_id = payroll.id
        self._check_net_pay(calculations)

        employee_code: str | None = None
        try:
            existing = await self._existing_items(payroll_id)

            for calc in calculations:
                employee_code = calc.employee.employee_code
                item = existing.get(calc.employee.id)
                if item is None:
                    item = PayrollItem(payroll_id=payroll_id, employee_id=calc.employee.id)
                    self.session.add(item)
                self._apply_result(item, calc)
                await self.session.flush()

            employee_code = None
            await self._update_totals(payroll)
            await self.session.commit()
        except Exception as exc:
            await self.session.rollback()
            logger.error(
                "Rolled back payroll %s batch of %d item(s)%s: %s",
                payroll_id,
                len(calculations),
                f" at employee {employee_code}" if employee_code else "",
                exc,
            )
            raise PersistenceError(payroll_id, str(exc), employee_code) from exc

        logger.info("Persisted payroll %s with %d item(s)", payroll_id, len(calculations))
        return True

    @staticmethod
    def _check_net_pay(calculations: Sequence[EmployeeCalculation]) -> None:
        for calc in calculations:
            if calc.result.net_pay < 0:
                raise NegativeNetPayError(calc.employee.employee_code, calc.result.net_pay)

    @staticmethod
    def _apply_result(item: PayrollItem, calc: EmployeeCalculation) -> None:
        employee = calc.employee
        item.base_salary = to_decimal(employee.base_salary)
        item.total_allowances = employee.total_allowances
        item.total_deductions = employee.total_deductions
        item.gross_pay = calc.result.gross_pay
        item.total_insurance_premium = Decimal(calc.result.insurance_premium)
        item.net_pay = calc.result.net_pay

    async def _existing_items(self, payroll_id: int) -> dict[int, PayrollItem]:
        result = await self.session.execute(
            select(PayrollItem).where(PayrollItem.payroll_id == payroll_id)
        )
        return {item.employee_id: item for item in result.scalars().all()}

    async def _update_totals(self, payroll: Payroll) -> None:
        """Roll item sums up onto the payroll (sees this transaction's writes)."""
        result = await self.session.execute(
            select(
                func.coalesce(func.sum(PayrollItem.gross_pay), 0),
                func.coalesce(func.sum(PayrollItem.net_pay), 0),
            ).where(PayrollItem.payroll_id == payroll.id)
        )
        total_gross, total_net = result.one()
        payroll.total_gross_pay = to_decimal(total_gross)
        payroll.total_net_pay = to_decimal(total_net)
        await self.session.flush()
