"""Insurance premium lookup and rate cache management."""

from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Response, status

from monthly_payroll.api.dependencies import RateCache
from monthly_payroll.api.schemas import (
    CacheStatusResponse,
    ErrorResponse,
    PremiumBreakdownResponse,
    PremiumResponse,
)
from monthly_payroll.calculators.payroll_calculator import PayrollCalculator
from monthly_payroll.calculators.rate_table import (
    InsuranceRateCache,
    InsuranceRateTable,
    LookupUnavailableError,
    OverlappingBracketsError,
)

router = APIRouter(prefix="/insurance", tags=["insurance"])


def _unavailable(exc: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=str(exc),
    )


def _cache_status(
    cache: InsuranceRateCache, table: InsuranceRateTable | None
) -> CacheStatusResponse:
    return CacheStatusResponse(
        warm=cache.is_warm,
        bracket_count=table.bracket_count if table else 0,
        types=table.types if table else [],
        expires_in=cache.expires_in,
    )


@router.get(
    "/premium",
    response_model=PremiumResponse,
    responses={503: {"model": ErrorResponse}},
)
async def quote_premium(
    cache: RateCache,
    salary: Annotated[Decimal, Query(ge=0)],
) -> PremiumResponse:
    """Quote the insurance premium for a base salary."""
    try:
        table = await cache.fetch()
    except (LookupUnavailableError, OverlappingBracketsError) as e:
        raise _unavailable(e)

    breakdowns = PayrollCalculator.premium_breakdown(salary, table)
    return PremiumResponse(
        salary=salary,
        employee_premium=PayrollCalculator.insurance_premium(salary, table),
        breakdown=[
            PremiumBreakdownResponse(
                insurance_type=b.insurance_type,
                grade_level=b.grade.grade_level,
                premium_base=b.grade.premium_base,
                rate=b.grade.rate,
                total=b.total,
                employee=b.employee,
                employer=b.employer,
                government=b.government,
            )
            for b in breakdowns.values()
            if b is not None
        ],
        unmatched_types=[t for t, b in breakdowns.items() if b is None],
    )


@router.post(
    "/cache/warm-up",
    response_model=CacheStatusResponse,
    responses={503: {"model": ErrorResponse}},
)
async def warm_up_cache(cache: RateCache) -> CacheStatusResponse:
    """Reload the insurance rate table from the database."""
    try:
        table = await cache.warm_up()
    except (LookupUnavailableError, OverlappingBracketsError) as e:
        raise _unavailable(e)
    return _cache_status(cache, table)


@router.delete("/cache", status_code=status.HTTP_204_NO_CONTENT)
async def clear_cache(cache: RateCache) -> Response:
    """Evict the cached insurance rate table."""
    cache.clear()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
