"""Seed script for insurance brackets.

Run with:
    python scripts/seed_insurance_brackets.py

This creates a sample set of salary grades for the four insurance schemes so
that payroll can be calculated in a development database. The figures are
illustrative; load the official grade tables for production use.
"""

from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from monthly_payroll.database import create_all, get_session
from monthly_payroll.models import InsuranceBracket

EFFECTIVE_DATE = date(2024, 1, 1)

# (grade_level, salary_min, salary_max, premium_base)
SALARY_GRADES: list[tuple[int, str, str | None, str]] = [
    (1, "0", "27470", "27470"),
    (2, "27471", "28800", "28800"),
    (3, "28801", "30300", "30300"),
    (4, "30301", "31800", "31800"),
    (5, "31801", "33300", "33300"),
    (6, "33301", "34800", "34800"),
    (7, "34801", "36300", "36300"),
    (8, "36301", "38200", "38200"),
    (9, "38201", "40100", "40100"),
    (10, "40101", "42000", "42000"),
    (11, "42001", "43900", "43900"),
    (12, "43901", "45800", "45800"),
    (13, "45801", None, "45800"),
]

# insurance_type -> (rate, employee_ratio, employer_ratio, government_ratio)
SCHEMES: dict[str, tuple[str, str, str, str]] = {
    "labor": ("0.115", "0.2", "0.7", "0.1"),
    "health": ("0.0517", "0.3", "0.6", "0.1"),
    "labor_pension": ("0.06", "0", "1", "0"),
    "occupational_injury": ("0.0021", "0", "1", "0"),
}


async def seed_scheme(session: AsyncSession, insurance_type: str) -> int:
    """Create the grades for one scheme, skipping it if already seeded."""
    result = await session.execute(
        select(InsuranceBracket.id).where(
            InsuranceBracket.insurance_type == insurance_type,
            InsuranceBracket.effective_date == EFFECTIVE_DATE,
        )
    )
    if result.first() is not None:
        print(f"{insurance_type} brackets already exist, skipping...")
        return 0

    rate, employee_ratio, employer_ratio, government_ratio = SCHEMES[insurance_type]
    for grade_level, salary_min, salary_max, premium_base in SALARY_GRADES:
        session.add(
            InsuranceBracket(
                insurance_type=insurance_type,
                grade_level=grade_level,
                salary_min=Decimal(salary_min),
                salary_max=Decimal(salary_max) if salary_max is not None else None,
                premium_base=Decimal(premium_base),
                rate=Decimal(rate),
                employee_ratio=Decimal(employee_ratio),
                employer_ratio=Decimal(employer_ratio),
                government_ratio=Decimal(government_ratio),
                effective_date=EFFECTIVE_DATE,
            )
        )
    await session.flush()
    print(f"Created {len(SALARY_GRADES)} {insurance_type} brackets")
    return len(SALARY_GRADES)


async def main():
    """Run seed script."""
    print("Seeding insurance brackets...")

    await create_all()
    async with get_session() as session:
        for insurance_type in SCHEMES:
            await seed_scheme(session, insurance_type)

    print("\nDone! Insurance brackets seeded successfully.")


if __name__ == "__main__":
    asyncio.run(main())
