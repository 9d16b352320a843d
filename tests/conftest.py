"""Pytest fixtures for monthly payroll tests."""

from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Iterable

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from monthly_payroll.calculators.rate_table import InsuranceRateCache
from monthly_payroll.calculators.types import InsuranceGrade
from monthly_payroll.config import Settings
from monthly_payroll.database import create_all, make_session_factory
from monthly_payroll.models import Company, Employee, Payroll

# In-memory SQLite shared by every session of a test (StaticPool)
TEST_DATABASE_URL = "sqlite+aiosqlite://"


class FakeClock:
    """Monotonic clock the tests can move forward by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StaticBracketSource:
    """Bracket source that serves a fixed list and counts its reads."""

    def __init__(self, grades: Iterable[InsuranceGrade], delay: float = 0.0):
        self.grades = list(grades)
        self.delay = delay
        self.calls = 0
        self.error: Exception | None = None

    async def __call__(self) -> list[InsuranceGrade]:
        self.calls += 1
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.grades)


def make_grade(
    insurance_type: str = "labor",
    grade_level: int = 1,
    salary_min: str = "25001",
    salary_max: str | None = "50000",
    premium_base: str = "35000",
    rate: str = "0.115",
    employee_ratio: str = "0.2",
    employer_ratio: str = "0.7",
    government_ratio: str = "0.1",
) -> InsuranceGrade:
    return InsuranceGrade(
        insurance_type=insurance_type,
        grade_level=grade_level,
        salary_min=Decimal(salary_min),
        salary_max=Decimal(salary_max) if salary_max is not None else None,
        premium_base=Decimal(premium_base),
        rate=Decimal(rate),
        employee_ratio=Decimal(employee_ratio),
        employer_ratio=Decimal(employer_ratio),
        government_ratio=Decimal(government_ratio),
    )


@pytest.fixture
def settings() -> Settings:
    """Settings with no retry delay and strict insurance handling."""
    return Settings(database_url=TEST_DATABASE_URL, sequence_retry_delay=0.0)


@pytest.fixture
async def engine():
    """Create a fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_all(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ============================================================================
# Insurance rate fixtures
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def labor_grade() -> InsuranceGrade:
    """Labor grade covering 25,001-50,000: employee share 35000 * 0.115 * 0.2 = 805."""
    return make_grade()


@pytest.fixture
def bracket_source(labor_grade) -> StaticBracketSource:
    return StaticBracketSource([labor_grade])


@pytest.fixture
def rate_cache(bracket_source, clock) -> InsuranceRateCache:
    return InsuranceRateCache(source=bracket_source, clock=clock)


# ============================================================================
# Data fixtures (committed so other sessions on the shared connection see them)
# ============================================================================


@pytest.fixture
async def company(session: AsyncSession) -> Company:
    company = Company(name="Acme Trading", tax_id="12345678")
    session.add(company)
    await session.commit()
    return company


@pytest.fixture
async def other_company(session: AsyncSession) -> Company:
    company = Company(name="Globex", tax_id="87654321")
    session.add(company)
    await session.commit()
    return company


@pytest.fixture
async def employees(session: AsyncSession, company: Company) -> list[Employee]:
    """Alice: 40,000 + 5,000 allowances - 1,000 advance; Bob: 50,000 + 5,000."""
    alice = Employee(
        company_id=company.id,
        employee_code="EMP20240001",
        name="Alice Chen",
        hire_date=date(2024, 1, 2),
        base_salary=Decimal("40000"),
        allowances={"transport": 2000, "meal": 3000},
        deductions={"advance": 1000},
    )
    bob = Employee(
        company_id=company.id,
        employee_code="EMP20240002",
        name="Bob Lin",
        hire_date=date(2024, 2, 1),
        base_salary=Decimal("50000"),
        allowances={"role": 5000},
        deductions={},
    )
    session.add_all([alice, bob])
    await session.commit()
    return [alice, bob]


def new_payroll(company_id: int, year: int = 2024, month: int = 5, status: str = "draft") -> Payroll:
    return Payroll(
        company_id=company_id,
        year=year,
        month=month,
        status=status,
        total_gross_pay=None,
        total_net_pay=None,
        confirmed_at=None,
        paid_at=None,
        items=[],
    )


@pytest.fixture
async def payroll(session: AsyncSession, company: Company) -> Payroll:
    """Draft payroll for May 2024."""
    payroll = new_payroll(company.id)
    session.add(payroll)
    await session.commit()
    return payroll
