from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database.crud.vip import (
    VIPSubscription,
    create_payment_transaction,
    create_vip_subscription,
    get_active_vip_subscription,
    get_vip_subscription,
    list_user_employee_vip_subscriptions,
    list_user_establishment_vip_subscriptions,
    lock_vip_entity,
)
from app.database.models import (
    User,
    VIPPaymentMethod,
    VIPPaymentStatus,
    VIPPaymentTransaction,
    VIPSubscriptionStatus,
)
from app.services.promptpay_service import PromptPayError, generate_promptpay_qr, is_promptpay_configured
from app.services.vip_notification_service import notify_vip_purchase_confirmed, notify_vip_subscription_cancelled
from app.services.vip_permission_service import can_cancel_vip, can_purchase_vip
from app.services.vip_pricing import (
    calculate_vip_price,
    is_valid_duration,
    is_valid_payment_method,
    is_valid_subscription_type,
)


logger = structlog.get_logger(__name__)

ADMIN_GRANT_NOTE = 'Admin granted VIP'
OWNER_CANCELLATION_REASON = 'Cancelled by establishment owner'

PURCHASE_MESSAGES = {
    VIPPaymentMethod.ADMIN_GRANT: 'VIP subscription activated successfully',
    VIPPaymentMethod.CASH: 'VIP subscription created. Please contact admin to verify cash payment.',
    VIPPaymentMethod.PROMPTPAY: 'VIP subscription created. Please scan QR code to complete payment.',
}


@dataclass
class VIPPurchaseResult:
    subscription: VIPSubscription
    transaction: VIPPaymentTransaction
    subscription_type: str
    message: str


def _now_utc() -> datetime:
    return datetime.now(UTC)


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def serialize_subscription(subscription: VIPSubscription, subscription_type: str) -> dict[str, Any]:
    return {
        'id': subscription.id,
        'type': subscription_type,
        'entity_id': subscription.entity_id,
        'tier': subscription.tier,
        'duration': subscription.duration,
        'status': subscription.status,
        'effective_status': subscription.effective_status,
        'starts_at': _isoformat(subscription.starts_at),
        'expires_at': _isoformat(subscription.expires_at),
        'cancelled_at': _isoformat(subscription.cancelled_at),
        'payment_method': subscription.payment_method,
        'payment_status': subscription.payment_status,
        'price_paid': subscription.price_paid,
        'transaction_id': subscription.transaction_id,
        'admin_verified_by': subscription.admin_verified_by,
        'admin_verified_at': _isoformat(subscription.admin_verified_at),
        'admin_notes': subscription.admin_notes,
    }


def serialize_transaction(transaction: VIPPaymentTransaction) -> dict[str, Any]:
    data = {
        'id': transaction.id,
        'subscription_type': transaction.subscription_type,
        'subscription_id': transaction.subscription_id,
        'amount': transaction.amount,
        'currency': transaction.currency,
        'payment_method': transaction.payment_method,
        'payment_status': transaction.payment_status,
    }
    if transaction.promptpay_qr_code:
        data['promptpay_qr_code'] = transaction.promptpay_qr_code
    if transaction.promptpay_reference:
        data['promptpay_reference'] = transaction.promptpay_reference
    return data


async def _rollback(db: AsyncSession, **log_context: Any) -> None:
    try:
        await db.rollback()
    except Exception as exc:
        logger.error('VIP purchase rollback failed', exc=exc, **log_context)


def _validate_purchase_request(
    subscription_type: str | None,
    entity_id: str | None,
    duration: int | None,
    payment_method: str | None,
) -> None:
    if not subscription_type or not entity_id or not duration or not payment_method:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='subscription_type, entity_id, duration, and payment_method are required',
        )
    if not is_valid_subscription_type(subscription_type):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid subscription type. Type must be "employee" or "establishment"',
        )
    if not is_valid_duration(duration):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid duration. Duration must be 7, 30, 90, or 365 days',
        )
    if not is_valid_payment_method(payment_method):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid payment method. Payment method must be "promptpay", "cash", or "admin_grant"',
        )


async def purchase_vip_subscription(
    db: AsyncSession,
    user: User,
    *,
    subscription_type: str,
    entity_id: str,
    duration: int,
    payment_method: str,
) -> VIPPurchaseResult:
    _validate_purchase_request(subscription_type, entity_id, duration, payment_method)
    tier = subscription_type
    method = VIPPaymentMethod(payment_method)

    if not await can_purchase_vip(db, user.id, subscription_type, entity_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='You do not have permission to purchase VIP for this entity',
        )

    await lock_vip_entity(db, subscription_type, entity_id)

    now = _now_utc()
    existing = await get_active_vip_subscription(db, subscription_type, entity_id, now=now)
    if existing is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=(
                f'This {subscription_type} already has an active {existing.tier} VIP subscription '
                f'until {_isoformat(existing.expires_at)}'
            ),
        )

    price = calculate_vip_price(subscription_type, duration)
    if price is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid pricing configuration. Could not calculate price for the selected options',
        )

    is_grant = method is VIPPaymentMethod.ADMIN_GRANT
    payment_status = VIPPaymentStatus.COMPLETED.value if is_grant else VIPPaymentStatus.PENDING.value

    try:
        subscription = await create_vip_subscription(
            db,
            subscription_type,
            entity_id,
            status=VIPSubscriptionStatus.ACTIVE.value if is_grant else VIPSubscriptionStatus.PENDING_PAYMENT.value,
            tier=tier,
            duration=duration,
            starts_at=now,
            expires_at=now + timedelta(days=duration),
            payment_method=method.value,
            payment_status=payment_status,
            price_paid=price,
            transaction_id=None,
            admin_verified_by=user.id if is_grant else None,
            admin_verified_at=now if is_grant else None,
        )
    except SQLAlchemyError as exc:
        logger.error('Failed to create VIP subscription', user_id=user.id, entity_id=entity_id, exc=exc)
        await _rollback(db, user_id=user.id, entity_id=entity_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail='Failed to create VIP subscription',
        )

    subscription_id = subscription.id

    # From here on the subscription row exists: every failure must roll it back.
    try:
        qr = None
        if method is VIPPaymentMethod.PROMPTPAY:
            if not is_promptpay_configured():
                logger.error('PromptPay selected but not configured', subscription_id=subscription_id)
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail='PromptPay not available. PromptPay payment is not configured. Please use cash or contact admin.',
                )
            # No transaction exists yet, so the subscription id is the payment reference.
            qr = await generate_promptpay_qr(price, subscription_id)

        transaction = await create_payment_transaction(
            db,
            subscription_type=subscription_type,
            subscription_id=subscription_id,
            user_id=user.id,
            amount=price,
            currency=settings.VIP_CURRENCY,
            payment_method=method.value,
            payment_status=payment_status,
            promptpay_qr_code=qr.qr_code if qr else None,
            promptpay_reference=qr.reference if qr else None,
            admin_verified_by=user.id if is_grant else None,
            admin_verified_at=now if is_grant else None,
            admin_notes=ADMIN_GRANT_NOTE if is_grant else None,
        )
        subscription.transaction_id = transaction.id
        await db.commit()
    except HTTPException:
        await _rollback(db, subscription_id=subscription_id)
        raise
    except PromptPayError as exc:
        await _rollback(db, subscription_id=subscription_id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except SQLAlchemyError as exc:
        logger.error('Failed to create VIP payment transaction', subscription_id=subscription_id, exc=exc)
        await _rollback(db, subscription_id=subscription_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail='Failed to create payment transaction',
        )

    await db.refresh(subscription)
    await db.refresh(transaction)

    logger.info(
        'VIP subscription purchased',
        user_id=user.id,
        subscription_type=subscription_type,
        subscription_id=subscription.id,
        transaction_id=transaction.id,
        payment_method=method.value,
        price=price,
    )

    notify_vip_purchase_confirmed(user.id, tier, duration, price, subscription_id=subscription.id)

    return VIPPurchaseResult(
        subscription=subscription,
        transaction=transaction,
        subscription_type=subscription_type,
        message=PURCHASE_MESSAGES[method],
    )


async def cancel_vip_subscription(
    db: AsyncSession,
    user: User,
    *,
    subscription_type: str,
    subscription_id: str,
) -> VIPSubscription:
    if not is_valid_subscription_type(subscription_type):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='subscription_type must be "employee" or "establishment"',
        )

    subscription = await get_vip_subscription(db, subscription_type, subscription_id)
    if subscription is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Subscription not found')

    if not await can_cancel_vip(db, user.id, subscription_type, subscription.entity_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='You do not have permission to cancel this subscription',
        )

    if subscription.status != VIPSubscriptionStatus.ACTIVE.value:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f'Subscription is not active (status: {subscription.status})',
        )

    subscription.status = VIPSubscriptionStatus.CANCELLED.value
    subscription.cancelled_at = _now_utc()
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        logger.error('Failed to cancel VIP subscription', subscription_id=subscription_id, exc=exc)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail='Failed to cancel subscription',
        )
    await db.refresh(subscription)

    logger.info('VIP subscription cancelled', user_id=user.id, subscription_id=subscription_id)
    notify_vip_subscription_cancelled(
        user.id, subscription.tier, OWNER_CANCELLATION_REASON, subscription_id=subscription.id
    )
    return subscription


async def get_my_vip_subscriptions(db: AsyncSession, user: User) -> dict[str, list[dict[str, Any]]]:
    employee_rows = await list_user_employee_vip_subscriptions(db, user.id)
    establishment_rows = await list_user_establishment_vip_subscriptions(db, user.id)

    employees = []
    for subscription, employee in employee_rows:
        item = serialize_subscription(subscription, 'employee')
        item['employee'] = {'id': employee.id, 'name': employee.name, 'nickname': employee.nickname}
        employees.append(item)

    establishments = []
    for subscription, establishment in establishment_rows:
        item = serialize_subscription(subscription, 'establishment')
        item['establishment'] = {'id': establishment.id, 'name': establishment.name}
        establishments.append(item)

    return {'employees': employees, 'establishments': establishments}
