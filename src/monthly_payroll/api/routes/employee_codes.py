"""Employee code allocation endpoint."""

from datetime import date

from fastapi import APIRouter, HTTPException, status

from monthly_payroll.api.dependencies import CompanyId, DbSession, SequenceAllocator
from monthly_payroll.api.schemas import EmployeeCodeRequest, EmployeeCodeResponse, ErrorResponse
from monthly_payroll.models import Company
from monthly_payroll.services.employee_sequence import (
    SequenceAllocationError,
    format_employee_code,
)

router = APIRouter(prefix="/employee-codes", tags=["employee-codes"])


@router.post(
    "",
    response_model=EmployeeCodeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def allocate_employee_code(
    db: DbSession,
    allocator: SequenceAllocator,
    company_id: CompanyId,
    payload: EmployeeCodeRequest,
) -> EmployeeCodeResponse:
    """Allocate the next employee code for the company and year."""
    if await db.get(Company, company_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Company not found",
        )

    year = payload.year or date.today().year
    try:
        number = await allocator.next_number(company_id, year)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )
    except SequenceAllocationError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )

    return EmployeeCodeResponse(
        employee_code=format_employee_code(year, number),
        number=number,
        year=year,
    )
