"""Property-based tests for payroll invariants.

These tests use hypothesis to generate salaries, deductions and bracket
layouts and verify that the invariants hold for all of them, not just the
hand-picked values in the unit tests.
"""

from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal

from hypothesis import given, settings, strategies as st
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from monthly_payroll.calculators import InsuranceRateCache, InsuranceRateTable, PayrollCalculator
from monthly_payroll.config import Settings
from monthly_payroll.database import create_all, make_session_factory
from monthly_payroll.models import Company, Employee, Payroll, PayrollItem
from monthly_payroll.services.calculation_service import PayrollCalculationService
from tests.conftest import TEST_DATABASE_URL, StaticBracketSource, make_grade, new_payroll

money = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("300000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
non_positive = st.decimals(
    max_value=Decimal("0"),
    min_value=Decimal("-1000000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
boundaries = st.lists(
    st.integers(min_value=0, max_value=200000), min_size=2, max_size=12, unique=True
).map(sorted)


def _contiguous_table(points: list[int], unbounded_top: bool) -> InsuranceRateTable:
    """Adjacent labor and health brackets [p_i, p_{i+1} - 1], optionally open-ended at the top."""
    grades = []
    for insurance_type, rate in (("labor", "0.115"), ("health", "0.0517")):
        for level, (low, high) in enumerate(zip(points, points[1:]), start=1):
            grades.append(
                make_grade(
                    insurance_type=insurance_type,
                    grade_level=level,
                    salary_min=str(low),
                    salary_max=str(high - 1),
                    premium_base=str(high - 1),
                    rate=rate,
                    employee_ratio="0.3",
                    employer_ratio="0.6",
                )
            )
        if unbounded_top:
            grades.append(
                make_grade(
                    insurance_type=insurance_type,
                    grade_level=len(points),
                    salary_min=str(points[-1]),
                    salary_max=None,
                    premium_base=str(points[-1]),
                    rate=rate,
                )
            )
    table = InsuranceRateTable.from_grades(grades)
    table.validate()
    return table


def _gapped_table(points: list[int]) -> InsuranceRateTable:
    """Labor brackets [p_0, p_1 - 1], [p_2, p_3 - 1], ... with gaps between them."""
    grades = [
        make_grade(grade_level=level, salary_min=str(low), salary_max=str(high - 1))
        for level, (low, high) in enumerate(zip(points[::2], points[1::2]), start=1)
    ]
    table = InsuranceRateTable.from_grades(grades)
    table.validate()
    return table


class TestCalculatorProperties:
    """Property tests for the pure salary pipeline."""

    @given(
        base_salary=money,
        allowances=money,
        deductions=money,
        points=boundaries,
        unbounded_top=st.booleans(),
    )
    @settings(max_examples=200)
    def test_net_is_gross_minus_deductions_and_premium(
        self, base_salary, allowances, deductions, points, unbounded_top
    ):
        """net = gross - other deductions - premium, for every input."""
        table = _contiguous_table(points, unbounded_top)

        result = PayrollCalculator.calculate_all(base_salary, allowances, deductions, table)

        assert result.gross_pay == base_salary + allowances
        assert result.total_deductions_with_insurance == deductions + result.insurance_premium
        assert result.net_pay == result.gross_pay - deductions - result.insurance_premium

    @given(base_salary=money, points=boundaries, unbounded_top=st.booleans())
    @settings(max_examples=200)
    def test_premium_is_truncated_sum_of_employee_shares(
        self, base_salary, points, unbounded_top
    ):
        """The premium is a whole, non-negative amount no more than 1 below the exact sum."""
        table = _contiguous_table(points, unbounded_top)

        premium = PayrollCalculator.insurance_premium(base_salary, table)
        exact = sum(
            (
                b.employee
                for b in PayrollCalculator.premium_breakdown(base_salary, table).values()
                if b is not None
            ),
            Decimal("0"),
        )

        assert isinstance(premium, int)
        assert premium >= 0
        if base_salary > 0:
            assert premium <= exact < premium + 1

    @given(salary=non_positive, points=boundaries, unbounded_top=st.booleans())
    @settings(max_examples=100)
    def test_no_premium_without_positive_salary(self, salary, points, unbounded_top):
        """A zero or negative salary pays no premium, whatever the brackets."""
        table = _contiguous_table([0] + [p + 1 for p in points], unbounded_top)
        assert PayrollCalculator.insurance_premium(salary, table) == 0


class TestBracketLookupProperties:
    """Property tests for bracket lookup."""

    @given(
        points=st.lists(
            st.integers(min_value=0, max_value=200000), min_size=2, max_size=12, unique=True
        ).map(sorted),
        salary=st.integers(min_value=-1000, max_value=210000),
    )
    @settings(max_examples=300)
    def test_returns_the_one_containing_bracket_or_none(self, points, salary):
        """find_bracket returns the single bracket containing the salary, or None."""
        table = _gapped_table(points)
        amount = Decimal(salary)

        found = table.find_bracket("labor", amount)
        containing = [g for g in table.grades_for("labor") if g.contains(amount)]

        assert len(containing) <= 1
        if found is None:
            assert containing == []
        else:
            assert containing == [found]

    @given(salary=money)
    def test_absent_type_never_matches(self, salary):
        """Types without brackets never match."""
        table = InsuranceRateTable.from_grades([make_grade()])
        assert table.find_bracket("health", salary) is None


async def _persist_repeatedly(salaries: list[Decimal], runs: int) -> tuple[int, list, tuple]:
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    try:
        await create_all(engine)
        session_factory = make_session_factory(engine)
        cache = InsuranceRateCache(source=StaticBracketSource([make_grade()]))
        config = Settings(database_url=TEST_DATABASE_URL)

        async with session_factory() as session:
            company = Company(name="Prop Co", tax_id="11223344")
            session.add(company)
            await session.flush()
            session.add_all(
                Employee(
                    company_id=company.id,
                    employee_code=f"EMP2024{n:04d}",
                    name=f"Employee {n}",
                    hire_date=date(2024, 1, 1),
                    base_salary=salary,
                )
                for n, salary in enumerate(salaries, start=1)
            )
            payroll = new_payroll(company.id)
            session.add(payroll)
            await session.commit()

            for _ in range(runs):
                service = PayrollCalculationService(session, rate_cache=cache, settings=config)
                await service.call(payroll)

            result = await session.execute(
                select(PayrollItem.employee_id, PayrollItem.gross_pay, PayrollItem.net_pay)
                .where(PayrollItem.payroll_id == payroll.id)
                .order_by(PayrollItem.employee_id)
            )
            items = [tuple(row) for row in result.all()]
            stored = await session.get(Payroll, payroll.id, populate_existing=True)
            return len(items), items, (stored.total_gross_pay, stored.total_net_pay)
    finally:
        await engine.dispose()


class TestPersistProperties:
    """Property tests for storing a calculated batch."""

    @given(
        salaries=st.lists(
            st.decimals(
                min_value=Decimal("1000"),
                max_value=Decimal("200000"),
                places=0,
                allow_nan=False,
                allow_infinity=False,
            ),
            min_size=0,
            max_size=5,
        ),
        runs=st.integers(min_value=2, max_value=3),
    )
    @settings(max_examples=20, deadline=None)
    def test_recalculating_is_idempotent(self, salaries, runs):
        """Running the batch again leaves the same items and totals as running it once."""
        once = asyncio.run(_persist_repeatedly(salaries, 1))
        repeated = asyncio.run(_persist_repeatedly(salaries, runs))

        count, items, totals = repeated
        assert count == len(salaries)
        assert repeated == once
        assert totals[0] == sum((gross for _, gross, _ in items), Decimal("0"))
        assert totals[1] == sum((net for _, _, net in items), Decimal("0"))
