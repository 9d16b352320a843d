"""Insurance rate table and its process-wide cache.

The rate table is loaded from the insurance_bracket table, grouped by
insurance type and sorted by salary_min. Payroll calculations read it from
memory so a batch never re-queries the database per employee.

Usage:
    cache = get_insurance_cache()
    await cache.warm_up()              # at process start
    table = await cache.fetch()        # rebuilt lazily after the TTL
    grade = table.find_bracket("labor", Decimal("30000"))
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Iterable, Mapping, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from monthly_payroll.calculators.types import (
    InsuranceGrade,
    InsuranceType,
    PremiumBreakdown,
    to_decimal,
)
from monthly_payroll.config import get_settings
from monthly_payroll.database import get_session_factory
from monthly_payroll.models import InsuranceBracket

logger = logging.getLogger(__name__)

BracketSource = Callable[[], Awaitable[Iterable[InsuranceGrade]]]


class LookupUnavailableError(Exception):
    """Raised when the rate table cannot be loaded from the slow store."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Insurance rate table unavailable: {reason}")


class OverlappingBracketsError(Exception):
    """Raised when two active brackets of one type cover the same salary."""

    def __init__(self, insurance_type: str, first: InsuranceGrade, second: InsuranceGrade):
        self.insurance_type = insurance_type
        self.first = first
        self.second = second
        super().__init__(
            f"Overlapping '{insurance_type}' brackets: grade {first.grade_level} "
            f"[{first.salary_min}, {first.salary_max}] and grade {second.grade_level} "
            f"[{second.salary_min}, {second.salary_max}]"
        )


def _type_key(insurance_type: InsuranceType | str) -> str:
    if isinstance(insurance_type, InsuranceType):
        return insurance_type.value
    return insurance_type


class InsuranceRateTable:
    """Immutable snapshot of active insurance brackets.

    Brackets are grouped by insurance type and sorted ascending by
    salary_min. Within a type at most one bracket matches a salary.
    """

    def __init__(
        self,
        grades_by_type: Mapping[str, Sequence[InsuranceGrade]],
        loaded_at: datetime | None = None,
    ):
        self._grades: Mapping[str, tuple[InsuranceGrade, ...]] = MappingProxyType(
            {
                _type_key(insurance_type): tuple(sorted(grades, key=lambda g: g.salary_min))
                for insurance_type, grades in grades_by_type.items()
            }
        )
        self.loaded_at = loaded_at or datetime.now(timezone.utc)

    @classmethod
    def from_grades(
        cls,
        grades: Iterable[InsuranceGrade],
        loaded_at: datetime | None = None,
    ) -> InsuranceRateTable:
        """Group a flat list of grades by type."""
        grouped: dict[str, list[InsuranceGrade]] = {}
        for grade in grades:
            grouped.setdefault(grade.insurance_type, []).append(grade)
        return cls(grouped, loaded_at=loaded_at)

    @classmethod
    def empty(cls) -> InsuranceRateTable:
        """A table with no brackets; every premium lookup yields nothing."""
        return cls({})

    @property
    def types(self) -> list[str]:
        return sorted(self._grades)

    @property
    def bracket_count(self) -> int:
        return sum(len(grades) for grades in self._grades.values())

    def grades_for(self, insurance_type: InsuranceType | str) -> tuple[InsuranceGrade, ...]:
        """All brackets for a type, sorted by salary_min."""
        return self._grades.get(_type_key(insurance_type), ())

    def find_bracket(
        self,
        insurance_type: InsuranceType | str,
        salary: Any,
    ) -> InsuranceGrade | None:
        """Find the bracket whose salary range contains salary.

        Returns None if the type is absent or no bracket matches.
        """
        amount = to_decimal(salary)
        for grade in self.grades_for(insurance_type):
            if grade.salary_min > amount:
                # Sorted ascending: nothing further can match
                break
            if grade.contains(amount):
                return grade
        return None

    def premium_for(
        self,
        insurance_type: InsuranceType | str,
        salary: Any,
    ) -> PremiumBreakdown | None:
        """Compute the premium split for a salary, or None if no bracket matches."""
        grade = self.find_bracket(insurance_type, salary)
        if grade is None:
            return None

        total = grade.total_premium
        return PremiumBreakdown(
            insurance_type=_type_key(insurance_type),
            total=total,
            employee=total * grade.employee_ratio,
            employer=total * grade.employer_ratio,
            government=total * grade.government_ratio,
            grade=grade,
        )

    def validate(self) -> None:
        """Reject tables where brackets of one type overlap."""
        for insurance_type, grades in self._grades.items():
            for previous, current in zip(grades, grades[1:]):
                if previous.salary_max is None or previous.salary_max >= current.salary_min:
                    raise OverlappingBracketsError(insurance_type, previous, current)


class InsuranceBracketReader:
    """Reads active insurance brackets from the database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def active_brackets(self, as_of_date: date | None = None) -> list[InsuranceGrade]:
        """Load every bracket effective on as_of_date (default today)."""
        as_of_date = as_of_date or date.today()
        async with self.session_factory() as session:
            result = await session.execute(
                select(InsuranceBracket)
                .where(
                    InsuranceBracket.effective_date <= as_of_date,
                    (
                        InsuranceBracket.expiry_date.is_(None)
                        | (InsuranceBracket.expiry_date >= as_of_date)
                    ),
                )
                .order_by(InsuranceBracket.insurance_type, InsuranceBracket.salary_min)
            )
            return [InsuranceGrade.from_model(bracket) for bracket in result.scalars().all()]

    async def __call__(self) -> list[InsuranceGrade]:
        return await self.active_brackets()


@dataclass(frozen=True)
class _CacheEntry:
    table: InsuranceRateTable
    expires_at: float


class InsuranceRateCache:
    """Process-wide cache holding the current InsuranceRateTable.

    The entry (table + expiry) is replaced as a whole, so readers never see
    a half-built table. Rebuilds are serialized by a lock and re-check the
    entry after acquiring it, so a cold cache hit by many callers results in
    a single read from the slow store.
    """

    DEFAULT_TTL = timedelta(hours=24)

    def __init__(
        self,
        source: BracketSource,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = source
        self._ttl_seconds = ttl.total_seconds()
        self._clock = clock
        self._entry: _CacheEntry | None = None
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self._ttl_seconds)

    @property
    def is_warm(self) -> bool:
        """True if a non-expired table is cached."""
        entry = self._entry
        return entry is not None and not self._is_expired(entry)

    @property
    def expires_in(self) -> float | None:
        """Seconds until the cached table expires, or None when cold."""
        entry = self._entry
        if entry is None:
            return None
        return max(0.0, entry.expires_at - self._clock())

    async def warm_up(self) -> InsuranceRateTable:
        """Eagerly (re)load the table from the slow store."""
        async with self._lock:
            return await self._rebuild()

    async def fetch(self) -> InsuranceRateTable:
        """Return the cached table, rebuilding it on miss or expiry."""
        entry = self._entry
        if entry is not None and not self._is_expired(entry):
            return entry.table

        async with self._lock:
            entry = self._entry
            if entry is not None and not self._is_expired(entry):
                return entry.table
            return await self._rebuild()

    def clear(self) -> None:
        """Evict the cached table."""
        self._entry = None
        logger.info("Insurance rate table cache cleared")

    def _is_expired(self, entry: _CacheEntry) -> bool:
        return self._clock() >= entry.expires_at

    async def _rebuild(self) -> InsuranceRateTable:
        logger.info("Warming up insurance rate table cache")
        try:
            grades = await self._source()
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
            logger.warning("Failed to warm up insurance rate table: %s", exc)
            raise LookupUnavailableError(str(exc)) from exc

        table = InsuranceRateTable.from_grades(grades)
        table.validate()

        self._entry = _CacheEntry(table=table, expires_at=self._clock() + self._ttl_seconds)
        self.refresh_count += 1
        logger.info(
            "Insurance rate table cache warmed up with %d brackets", table.bracket_count
        )
        return table


@lru_cache(maxsize=1)
def get_insurance_cache() -> InsuranceRateCache:
    """Get the process-wide insurance rate cache bound to the configured database."""
    settings = get_settings()
    reader = InsuranceBracketReader(get_session_factory())
    return InsuranceRateCache(
        source=reader,
        ttl=timedelta(hours=settings.insurance_cache_ttl_hours),
    )

