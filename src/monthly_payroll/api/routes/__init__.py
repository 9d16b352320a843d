"""API routes."""

from monthly_payroll.api.routes.employee_codes import router as employee_codes_router
from monthly_payroll.api.routes.health import router as health_router
from monthly_payroll.api.routes.insurance import router as insurance_router
from monthly_payroll.api.routes.payrolls import router as payrolls_router

__all__ = ["payrolls_router", "employee_codes_router", "insurance_router", "health_router"]
