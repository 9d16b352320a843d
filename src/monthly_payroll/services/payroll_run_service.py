"""Payroll run service - orchestrates the run lifecycle for request handlers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from monthly_payroll.calculators.rate_table import (
    InsuranceRateCache,
    LookupUnavailableError,
    OverlappingBracketsError,
)
from monthly_payroll.config import Settings, get_settings
from monthly_payroll.models import Payroll
from monthly_payroll.services.calculation_service import (
    NegativeNetPayError,
    NotEditableError,
    PayrollCalculationService,
    PersistenceError,
)
from monthly_payroll.services.state_machine import PayrollStateMachine, PayrollStatus

logger = logging.getLogger(__name__)


class PayrollValidationError(Exception):
    """Raised when a payroll run cannot be created for the requested period."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


class PayrollNotFoundError(Exception):
    """Raised when a payroll run does not exist (or belongs to another company)."""

    def __init__(self, payroll_id: int):
        self.payroll_id = payroll_id
        super().__init__(f"Payroll {payroll_id} not found")


@dataclass(frozen=True)
class CalculationOutcome:
    """Result of a calculate request as shown to the user."""

    success: bool
    message: str
    # "not_editable" or "calculation_error" when success is False
    error_code: str | None = None


class PayrollRunService:
    """Service for managing the payroll run lifecycle.

    Operations:
    - create_payroll: Open a draft run for a company and month
    - calculate: Compute and store every employee's pay
    - confirm: Lock the run's figures (draft → confirmed)
    - mark_as_paid: Record payment (confirmed → paid)
    - delete_payroll: Remove a draft run and its items
    """

    def __init__(
        self,
        session: AsyncSession,
        rate_cache: InsuranceRateCache | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.rate_cache = rate_cache
        self.settings = settings or get_settings()

    async def get_payroll(
        self,
        payroll_id: int,
        company_id: int | None = None,
        load_items: bool = True,
    ) -> Payroll:
        """Load a payroll run, refreshing any copy already in the session.

        Raises PayrollNotFoundError if it does not exist or, when company_id
        is given, belongs to a different company.
        """
        stmt = select(Payroll).where(Payroll.id == payroll_id)
        if company_id is not None:
            stmt = stmt.where(Payroll.company_id == company_id)
        if load_items:
            stmt = stmt.options(selectinload(Payroll.items))

        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        payroll = result.scalar_one_or_none()
        if payroll is None:
            raise PayrollNotFoundError(payroll_id)
        return payroll

    async def list_payrolls(
        self,
        company_id: int,
        status: str | None = None,
    ) -> list[Payroll]:
        """Payroll runs of a company, newest period first."""
        stmt = select(Payroll).where(Payroll.company_id == company_id)
        if status is not None:
            stmt = stmt.where(Payroll.status == status)
        result = await self.session.execute(
            stmt.order_by(Payroll.year.desc(), Payroll.month.desc())
        )
        return list(result.scalars().all())

    async def create_payroll(
        self,
        company_id: int,
        year: int,
        month: int,
        today: date | None = None,
    ) -> Payroll:
        """Open a draft payroll run for a month that has already started."""
        errors = self._validate_period(year, month, today or date.today())
        if errors:
            raise PayrollValidationError(errors)

        existing = await self.session.execute(
            select(Payroll.id).where(
                Payroll.company_id == company_id,
                Payroll.year == year,
                Payroll.month == month,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise PayrollValidationError([f"Payroll for {year}-{month:02d} already exists"])

        payroll = Payroll(
            company_id=company_id,
            year=year,
            month=month,
            status=PayrollStatus.DRAFT.value,
            total_gross_pay=None,
            total_net_pay=None,
            confirmed_at=None,
            paid_at=None,
            items=[],
        )
        self.session.add(payroll)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            await self.session.rollback()
            raise PayrollValidationError(
                [f"Payroll for {year}-{month:02d} already exists"]
            ) from exc
        await self.session.commit()

        logger.info(
            "Created payroll %s for company %s (%s)", payroll.id, company_id, payroll.period_text
        )
        return payroll

    @staticmethod
    def _validate_period(year: int, month: int, today: date) -> list[str]:
        errors: list[str] = []
        if year <= 2000:
            errors.append("year must be greater than 2000")
        if not 1 <= month <= 12:
            errors.append("month must be between 1 and 12")
        if errors:
            return errors

        if date(year, month, 1) > today:
            errors.append("payroll period cannot be in the future")
        return errors

    async def calculate(self, payroll_id: int, company_id: int | None = None) -> CalculationOutcome:
        """Calculate a run and translate failures into a short message.

        Raises PayrollNotFoundError for unknown runs; every other failure is
        reported through the outcome.
        """
        payroll = await self.get_payroll(payroll_id, company_id, load_items=False)
        service = PayrollCalculationService(
            self.session, rate_cache=self.rate_cache, settings=self.settings
        )

        try:
            await service.call(payroll)
        except NotEditableError as exc:
            return CalculationOutcome(
                False, f"payroll is {exc.status} and cannot be recalculated", "not_editable"
            )
        except NegativeNetPayError as exc:
            return CalculationOutcome(
                False,
                f"calculation error: net pay for {exc.employee_code} is negative",
                "calculation_error",
            )
        except PersistenceError as exc:
            where = f" for {exc.employee_code}" if exc.employee_code else ""
            return CalculationOutcome(
                False, f"calculation error: could not save results{where}", "calculation_error"
            )
        except LookupUnavailableError:
            logger.warning("Payroll %s not calculated: insurance rates unavailable", payroll_id)
            return CalculationOutcome(
                False, "calculation error: insurance rates unavailable", "calculation_error"
            )
        except OverlappingBracketsError as exc:
            logger.error("Payroll %s not calculated: %s", payroll_id, exc)
            return CalculationOutcome(
                False, "calculation error: insurance rate table is invalid", "calculation_error"
            )
        except Exception as exc:
            await self.session.rollback()
            logger.exception("Payroll %s not calculated", payroll_id)
            return CalculationOutcome(
                False,
                f"calculation error: unexpected {type(exc).__name__}",
                "calculation_error",
            )

        return CalculationOutcome(True, "payroll calculated")

    async def confirm(self, payroll_id: int, company_id: int | None = None) -> Payroll:
        """Confirm a calculated draft run.

        Raises InvalidTransitionError if the run is not a draft or has no
        fully computed items.
        """
        payroll = await self.get_payroll(payroll_id, company_id)
        PayrollStateMachine.confirm(payroll)
        await self.session.commit()
        logger.info("Payroll %s confirmed", payroll_id)
        return payroll

    async def mark_as_paid(self, payroll_id: int, company_id: int | None = None) -> Payroll:
        """Record that a confirmed run has been paid out."""
        payroll = await self.get_payroll(payroll_id, company_id)
        PayrollStateMachine.mark_as_paid(payroll)
        await self.session.commit()
        logger.info("Payroll %s marked as paid", payroll_id)
        return payroll

    async def delete_payroll(self, payroll_id: int, company_id: int | None = None) -> None:
        """Delete a draft run together with its items."""
        payroll = await self.get_payroll(payroll_id, company_id)
        if not PayrollStateMachine.can_edit(payroll.status):
            raise NotEditableError(payroll_id, payroll.status, action="deleted")

        await self.session.delete(payroll)
        await self.session.commit()
        logger.info("Payroll %s deleted", payroll_id)
