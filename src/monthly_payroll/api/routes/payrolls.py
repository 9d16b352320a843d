"""Payroll run API endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Query, Response, status

from monthly_payroll.api.dependencies import CompanyId, RunService
from monthly_payroll.api.schemas import (
    CalculationResponse,
    ErrorResponse,
    PayrollCreate,
    PayrollDetailResponse,
    PayrollItemResponse,
    PayrollListResponse,
    PayrollResponse,
)
from monthly_payroll.models import Payroll
from monthly_payroll.services.calculation_service import NotEditableError
from monthly_payroll.services.payroll_run_service import (
    PayrollNotFoundError,
    PayrollValidationError,
)
from monthly_payroll.services.state_machine import InvalidTransitionError, PayrollStateMachine

router = APIRouter(prefix="/payrolls", tags=["payrolls"])


def _not_found(exc: PayrollNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


def _to_detail(payroll: Payroll) -> PayrollDetailResponse:
    """Build the detail view. Items must already be loaded."""
    return PayrollDetailResponse(
        **PayrollResponse.model_validate(payroll).model_dump(),
        items=[PayrollItemResponse.model_validate(item) for item in payroll.items],
        can_edit=PayrollStateMachine.can_edit(payroll.status),
        may_confirm=PayrollStateMachine.may_confirm(payroll),
    )


# ============================================================================
# Payroll CRUD
# ============================================================================


@router.post(
    "",
    response_model=PayrollResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def create_payroll(
    service: RunService,
    company_id: CompanyId,
    payload: PayrollCreate,
) -> PayrollResponse:
    """Open a draft payroll run for a month."""
    try:
        payroll = await service.create_payroll(company_id, payload.year, payload.month)
    except PayrollValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )
    return PayrollResponse.model_validate(payroll)


@router.get("", response_model=PayrollListResponse)
async def list_payrolls(
    service: RunService,
    company_id: CompanyId,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> PayrollListResponse:
    """List the company's payroll runs, newest period first."""
    payrolls = await service.list_payrolls(company_id, status=status_filter)
    return PayrollListResponse(
        items=[PayrollResponse.model_validate(p) for p in payrolls],
        total=len(payrolls),
    )


@router.get(
    "/{payroll_id}",
    response_model=PayrollDetailResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payroll(
    service: RunService,
    company_id: CompanyId,
    payroll_id: Annotated[int, Path()],
) -> PayrollDetailResponse:
    """Get a payroll run with its items."""
    try:
        payroll = await service.get_payroll(payroll_id, company_id)
    except PayrollNotFoundError as e:
        raise _not_found(e)
    return _to_detail(payroll)


@router.delete(
    "/{payroll_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_payroll(
    service: RunService,
    company_id: CompanyId,
    payroll_id: Annotated[int, Path()],
) -> Response:
    """Delete a draft payroll run and its items."""
    try:
        await service.delete_payroll(payroll_id, company_id)
    except PayrollNotFoundError as e:
        raise _not_found(e)
    except NotEditableError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Calculation and lifecycle
# ============================================================================


@router.post(
    "/{payroll_id}/calculate",
    response_model=CalculationResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": CalculationResponse},
        422: {"model": CalculationResponse},
    },
)
async def calculate_payroll(
    service: RunService,
    company_id: CompanyId,
    payroll_id: Annotated[int, Path()],
    response: Response,
) -> CalculationResponse:
    """Calculate every employee's pay for the run."""
    try:
        outcome = await service.calculate(payroll_id, company_id)
    except PayrollNotFoundError as e:
        raise _not_found(e)

    if not outcome.success:
        response.status_code = (
            status.HTTP_409_CONFLICT
            if outcome.error_code == "not_editable"
            else status.HTTP_422_UNPROCESSABLE_ENTITY
        )
    return CalculationResponse(success=outcome.success, message=outcome.message)


@router.post(
    "/{payroll_id}/confirm",
    response_model=PayrollDetailResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def confirm_payroll(
    service: RunService,
    company_id: CompanyId,
    payroll_id: Annotated[int, Path()],
) -> PayrollDetailResponse:
    """Confirm a calculated draft run."""
    try:
        payroll = await service.confirm(payroll_id, company_id)
    except PayrollNotFoundError as e:
        raise _not_found(e)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return _to_detail(payroll)


@router.post(
    "/{payroll_id}/mark-paid",
    response_model=PayrollDetailResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def mark_payroll_paid(
    service: RunService,
    company_id: CompanyId,
    payroll_id: Annotated[int, Path()],
) -> PayrollDetailResponse:
    """Record that a confirmed run has been paid."""
    try:
        payroll = await service.mark_as_paid(payroll_id, company_id)
    except PayrollNotFoundError as e:
        raise _not_found(e)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return _to_detail(payroll)
