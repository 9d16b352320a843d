"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from monthly_payroll.calculators.rate_table import InsuranceRateCache, get_insurance_cache
from monthly_payroll.database import get_session_factory
from monthly_payroll.services.employee_sequence import (
    EmployeeSequenceAllocator,
    get_sequence_allocator,
)
from monthly_payroll.services.payroll_run_service import PayrollRunService


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with get_session_factory()() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_company_id(
    x_company_id: Annotated[str | None, Header()] = None
) -> int:
    """Extract the caller's company ID from header."""
    if not x_company_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Company-ID header is required",
        )
    try:
        return int(x_company_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-Company-ID format",
        )


def get_rate_cache() -> InsuranceRateCache:
    """Get the process-wide insurance rate cache."""
    return get_insurance_cache()


def get_allocator() -> EmployeeSequenceAllocator:
    """Get the process-wide employee code allocator."""
    return get_sequence_allocator()


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
CompanyId = Annotated[int, Depends(get_company_id)]
RateCache = Annotated[InsuranceRateCache, Depends(get_rate_cache)]
SequenceAllocator = Annotated[EmployeeSequenceAllocator, Depends(get_allocator)]


def get_run_service(db: DbSession, rate_cache: RateCache) -> PayrollRunService:
    """Payroll run service bound to the request's session."""
    return PayrollRunService(db, rate_cache=rate_cache)


RunService = Annotated[PayrollRunService, Depends(get_run_service)]
