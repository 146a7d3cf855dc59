"""Core HR service layer — employee bootstrap and lookup."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from staffhub.common.audit import create_audit_entry
from staffhub.common.constants import DEFAULT_BUCKET_BALANCES
from staffhub.common.exceptions import DuplicateException, NotFoundException
from staffhub.core_hr.models import Employee
from staffhub.core_hr.schemas import EmployeeCreate
from staffhub.leave.models import LeaveBalance

logger = logging.getLogger(__name__)


class EmployeeService:
    """Async employee operations used by the leave and attendance core."""

    @staticmethod
    async def create_employee(
        db: AsyncSession,
        data: EmployeeCreate,
        *,
        actor: str | None = None,
    ) -> Employee:
        """Create an employee together with a default-seeded leave balance."""

        existing = await db.execute(
            select(Employee).where(
                or_(
                    Employee.employee_code == data.employee_code,
                    Employee.email == data.email,
                )
            )
        )
        clash = existing.scalars().first()
        if clash is not None:
            if clash.employee_code == data.employee_code:
                raise DuplicateException("employee_code", data.employee_code)
            raise DuplicateException("email", data.email)

        employee = Employee(**data.model_dump())
        employee.leave_balance = LeaveBalance(**DEFAULT_BUCKET_BALANCES)
        db.add(employee)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="employee",
            entity_id=employee.id,
            actor=actor,
            new_values={
                "employee_code": employee.employee_code,
                "join_date": employee.join_date.isoformat(),
            },
        )
        logger.info("Created employee %s (%s)", employee.employee_code, employee.id)
        return employee

    @staticmethod
    async def get_employee(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        """Fetch an employee or raise ``NotFoundException``."""

        employee = await db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee
