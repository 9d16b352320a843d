"""Employee code allocation backed by per-company, per-year counters.

Usage:
    allocator = EmployeeSequenceAllocator(session_factory)
    number = await allocator.next_number(company_id, 2024)       # 1, 2, 3, ...
    code = await allocator.next_employee_code(company_id, 2024)  # "EMP20240004"
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date
from functools import lru_cache

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from monthly_payroll.config import Settings, get_settings
from monthly_payroll.database import get_session_factory
from monthly_payroll.models import EmployeeSequence

logger = logging.getLogger(__name__)

EMPLOYEE_CODE_PREFIX = "EMP"


class SequenceAllocationError(Exception):
    """Raised when a number could not be allocated after all retries."""

    def __init__(self, company_id: int, year: int, reason: str):
        self.company_id = company_id
        self.year = year
        self.reason = reason
        super().__init__(
            f"Could not allocate employee number for company {company_id} "
            f"in {year}: {reason}"
        )


def format_employee_code(year: int, number: int) -> str:
    """Format an employee code, e.g. (2024, 7) -> 'EMP20240007'."""
    return f"{EMPLOYEE_CODE_PREFIX}{year}{number:04d}"


def _validate_year(year: int) -> None:
    if year <= 1900:
        raise ValueError(f"year must be greater than 1900 (got {year})")


class EmployeeSequenceAllocator:
    """Hands out gap-free, strictly increasing numbers per (company, year).

    Each allocation runs in its own transaction:
    1. Lock the counter row (SELECT ... FOR UPDATE), creating it at 0 if absent
    2. Increment and read back
    3. Commit, which releases the row lock

    A failure before commit rolls the transaction back, so the number is
    not consumed. Callers in this process are additionally serialized per
    key, which keeps them from queueing on the row lock; other processes
    are kept out by the row lock itself. Lock timeouts, deadlocks and the
    insert race on a brand-new counter are retried with backoff.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self._locks: dict[tuple[int, int], asyncio.Lock] = {}
        self._lock_users: dict[tuple[int, int], int] = {}

    @asynccontextmanager
    async def _key_lock(self, company_id: int, year: int) -> AsyncIterator[None]:
        """Serialize callers per key; the lock is dropped once nobody holds or awaits it."""
        key = (company_id, year)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def next_number(self, company_id: int, year: int | None = None) -> int:
        """Allocate the next number for a company and year, starting at 1."""
        year = year or date.today().year
        _validate_year(year)

        max_retries = self.settings.sequence_max_retries
        delay = self.settings.sequence_retry_delay

        async with self._key_lock(company_id, year):
            for attempt in range(max_retries + 1):
                try:
                    return await self._increment(company_id, year)
                except (OperationalError, IntegrityError) as exc:
                    if attempt == max_retries:
                        raise SequenceAllocationError(company_id, year, str(exc)) from exc

                    # Exponential backoff with up to 25% jitter
                    wait = delay * (2**attempt) * (1 + random.random() * 0.25)
                    logger.warning(
                        "Employee sequence contention for company %s/%s on attempt %d/%d, "
                        "retrying in %.3fs: %s",
                        company_id,
                        year,
                        attempt + 1,
                        max_retries + 1,
                        wait,
                        exc,
                    )
                    await asyncio.sleep(wait)

        raise SequenceAllocationError(company_id, year, "no attempts made")

    async def next_employee_code(self, company_id: int, year: int | None = None) -> str:
        """Allocate the next number and format it as an employee code."""
        year = year or date.today().year
        number = await self.next_number(company_id, year)
        return format_employee_code(year, number)

    async def reset_for(self, company_id: int, year: int) -> None:
        """Set the counter back to 0. No-op if the counter does not exist."""
        async with self._key_lock(company_id, year):
            async with self.session_factory() as session:
                async with session.begin():
                    sequence = await self._lock_row(session, company_id, year)
                    if sequence is None:
                        return
                    sequence.last_number = 0
        logger.info("Employee sequence reset for company %s/%s", company_id, year)

    async def current(self, company_id: int, year: int) -> int:
        """Last number handed out (0 if none)."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(EmployeeSequence.last_number).where(
                    EmployeeSequence.company_id == company_id,
                    EmployeeSequence.year == year,
                )
            )
            return result.scalar_one_or_none() or 0

    async def _increment(self, company_id: int, year: int) -> int:
        async with self.session_factory() as session:
            async with session.begin():
                sequence = await self._lock_row(session, company_id, year)
                if sequence is None:
                    sequence = EmployeeSequence(company_id=company_id, year=year, last_number=0)
                    session.add(sequence)
                    # Raises IntegrityError if another process created it first
                    await session.flush()

                sequence.last_number += 1
                await session.flush()
                number = sequence.last_number
        return number

    @staticmethod
    async def _lock_row(
        session: AsyncSession, company_id: int, year: int
    ) -> EmployeeSequence | None:
        result = await session.execute(
            select(EmployeeSequence)
            .where(
                EmployeeSequence.company_id == company_id,
                EmployeeSequence.year == year,
            )
            .with_for_update()
        )
        return result.scalar_one_or_none()


@lru_cache(maxsize=1)
def get_sequence_allocator() -> EmployeeSequenceAllocator:
    """Get the process-wide allocator so in-process callers share key locks."""
    return EmployeeSequenceAllocator(get_session_factory())
