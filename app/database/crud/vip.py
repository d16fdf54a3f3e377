from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.database.models import (
    Employee,
    EmployeeEmployment,
    EmployeeVIPSubscription,
    Establishment,
    EstablishmentOwner,
    EstablishmentVIPSubscription,
    VIPPaymentTransaction,
    VIPSubscriptionStatus,
    VIPSubscriptionType,
)


VIPSubscription = EmployeeVIPSubscription | EstablishmentVIPSubscription


def get_subscription_model(subscription_type: str) -> type[VIPSubscription]:
    match VIPSubscriptionType(subscription_type):
        case VIPSubscriptionType.EMPLOYEE:
            return EmployeeVIPSubscription
        case VIPSubscriptionType.ESTABLISHMENT:
            return EstablishmentVIPSubscription


def get_entity_column(subscription_type: str) -> str:
    match VIPSubscriptionType(subscription_type):
        case VIPSubscriptionType.EMPLOYEE:
            return 'employee_id'
        case VIPSubscriptionType.ESTABLISHMENT:
            return 'establishment_id'


async def lock_vip_entity(db: AsyncSession, subscription_type: str, entity_id: str) -> None:
    """Take a row lock on the employee/establishment so purchases for it serialize."""
    model = Employee if subscription_type == VIPSubscriptionType.EMPLOYEE.value else Establishment
    await db.execute(select(model.id).where(model.id == entity_id).with_for_update())


async def get_active_vip_subscription(
    db: AsyncSession,
    subscription_type: str,
    entity_id: str,
    *,
    now: datetime,
) -> VIPSubscription | None:
    model = get_subscription_model(subscription_type)
    entity_column = getattr(model, get_entity_column(subscription_type))
    result = await db.execute(
        select(model)
        .where(
            entity_column == entity_id,
            model.status == VIPSubscriptionStatus.ACTIVE.value,
            model.expires_at >= now,
        )
        .order_by(model.expires_at.desc())
        .limit(1)
    )
    return result.scalars().first()


async def get_vip_subscription(db: AsyncSession, subscription_type: str, subscription_id: str) -> VIPSubscription | None:
    return await db.get(get_subscription_model(subscription_type), subscription_id)


async def create_vip_subscription(db: AsyncSession, subscription_type: str, entity_id: str, **fields) -> VIPSubscription:
    model = get_subscription_model(subscription_type)
    subscription = model(**{get_entity_column(subscription_type): entity_id}, **fields)
    db.add(subscription)
    await db.flush()
    return subscription


async def create_payment_transaction(db: AsyncSession, **fields) -> VIPPaymentTransaction:
    transaction = VIPPaymentTransaction(**fields)
    db.add(transaction)
    await db.flush()
    return transaction


async def get_payment_transaction(
    db: AsyncSession,
    transaction_id: str,
    *,
    for_update: bool = False,
) -> VIPPaymentTransaction | None:
    query = select(VIPPaymentTransaction).where(VIPPaymentTransaction.id == transaction_id)
    if for_update:
        query = query.with_for_update()
    return (await db.execute(query)).scalars().first()


async def get_subscription_for_transaction(db: AsyncSession, transaction: VIPPaymentTransaction) -> VIPSubscription | None:
    return await db.get(get_subscription_model(transaction.subscription_type), transaction.subscription_id)


async def list_payment_transactions(
    db: AsyncSession,
    *,
    payment_method: str | None = None,
    payment_status: str | None = None,
) -> list[VIPPaymentTransaction]:
    query = (
        select(VIPPaymentTransaction)
        .options(selectinload(VIPPaymentTransaction.user))
        .order_by(VIPPaymentTransaction.created_at.desc())
    )
    if payment_method:
        query = query.where(VIPPaymentTransaction.payment_method == payment_method)
    if payment_status:
        query = query.where(VIPPaymentTransaction.payment_status == payment_status)
    return list((await db.execute(query)).scalars().all())


async def get_employee(db: AsyncSession, employee_id: str) -> Employee | None:
    return await db.get(Employee, employee_id)


async def get_owner_rows_for_employee(db: AsyncSession, user_id: str, employee_id: str) -> list[EstablishmentOwner]:
    """Ownership rows of ``user_id`` for establishments currently employing ``employee_id``."""
    result = await db.execute(
        select(EstablishmentOwner)
        .join(EmployeeEmployment, EmployeeEmployment.establishment_id == EstablishmentOwner.establishment_id)
        .where(
            EstablishmentOwner.user_id == user_id,
            EmployeeEmployment.employee_id == employee_id,
            EmployeeEmployment.is_current.is_(True),
        )
    )
    return list(result.scalars().all())


async def get_owner_row_for_establishment(db: AsyncSession, user_id: str, establishment_id: str) -> EstablishmentOwner | None:
    result = await db.execute(
        select(EstablishmentOwner)
        .where(
            EstablishmentOwner.user_id == user_id,
            EstablishmentOwner.establishment_id == establishment_id,
        )
        .limit(1)
    )
    return result.scalars().first()


async def list_user_employee_vip_subscriptions(db: AsyncSession, user_id: str) -> list[tuple[EmployeeVIPSubscription, Employee]]:
    owned_establishments = select(EstablishmentOwner.establishment_id).where(EstablishmentOwner.user_id == user_id)
    managed_employees = select(EmployeeEmployment.employee_id).where(
        EmployeeEmployment.establishment_id.in_(owned_establishments),
        EmployeeEmployment.is_current.is_(True),
    )
    result = await db.execute(
        select(EmployeeVIPSubscription, Employee)
        .join(Employee, Employee.id == EmployeeVIPSubscription.employee_id)
        .where((Employee.user_id == user_id) | Employee.id.in_(managed_employees))
        .order_by(EmployeeVIPSubscription.created_at.desc())
    )
    return [(row[0], row[1]) for row in result.all()]


async def list_user_establishment_vip_subscriptions(
    db: AsyncSession, user_id: str
) -> list[tuple[EstablishmentVIPSubscription, Establishment]]:
    owned_establishments = select(EstablishmentOwner.establishment_id).where(EstablishmentOwner.user_id == user_id)
    result = await db.execute(
        select(EstablishmentVIPSubscription, Establishment)
        .join(Establishment, Establishment.id == EstablishmentVIPSubscription.establishment_id)
        .where(Establishment.id.in_(owned_establishments))
        .order_by(EstablishmentVIPSubscription.created_at.desc())
    )
    return [(row[0], row[1]) for row in result.all()]
