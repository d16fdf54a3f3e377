from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.crud.vip import get_employee, get_owner_row_for_establishment, get_owner_rows_for_employee
from app.database.models import VIPSubscriptionType


logger = structlog.get_logger(__name__)


async def _can_manage_employee(db: AsyncSession, user_id: str, employee_id: str) -> bool:
    employee = await get_employee(db, employee_id)
    if employee is not None and employee.user_id == user_id:
        logger.debug('VIP access granted: employee managing own profile', user_id=user_id, employee_id=employee_id)
        return True

    owner_rows = await get_owner_rows_for_employee(db, user_id, employee_id)
    if any(row.can_edit_employees for row in owner_rows):
        logger.debug('VIP access granted: owner managing employee', user_id=user_id, employee_id=employee_id)
        return True
    return False


async def _can_manage_establishment(db: AsyncSession, user_id: str, establishment_id: str) -> bool:
    return await get_owner_row_for_establishment(db, user_id, establishment_id) is not None


async def can_manage_vip(db: AsyncSession, user_id: str, subscription_type: str, entity_id: str) -> bool:
    match VIPSubscriptionType(subscription_type):
        case VIPSubscriptionType.EMPLOYEE:
            return await _can_manage_employee(db, user_id, entity_id)
        case VIPSubscriptionType.ESTABLISHMENT:
            return await _can_manage_establishment(db, user_id, entity_id)


async def can_purchase_vip(db: AsyncSession, user_id: str, subscription_type: str, entity_id: str) -> bool:
    return await can_manage_vip(db, user_id, subscription_type, entity_id)


async def can_cancel_vip(db: AsyncSession, user_id: str, subscription_type: str, entity_id: str) -> bool:
    # Re-derived at cancel time: ownership or permissions may have changed since purchase.
    return await can_manage_vip(db, user_id, subscription_type, entity_id)
