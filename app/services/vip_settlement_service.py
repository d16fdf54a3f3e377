"""Admin settlement of VIP payments: verify cash, reject, list."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.crud.vip import (
    VIPSubscription,
    get_active_vip_subscription,
    get_payment_transaction,
    get_subscription_for_transaction,
    list_payment_transactions,
)
from app.database.models import (
    User,
    VIPPaymentMethod,
    VIPPaymentStatus,
    VIPPaymentTransaction,
    VIPSubscriptionStatus,
)
from app.services.vip_notification_service import notify_vip_payment_rejected, notify_vip_payment_verified


logger = structlog.get_logger(__name__)

DEFAULT_VERIFICATION_NOTE = 'Cash payment verified by admin'
REJECTION_NOTE_PREFIX = 'Rejected: '
ALL_FILTER = 'all'


def _ensure_admin(user: User) -> None:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Admin access required')


def _normalize_filter(value: str | None) -> str | None:
    if not value or value == ALL_FILTER:
        return None
    return value


async def _reload_after_failure(db: AsyncSession, transaction: VIPPaymentTransaction, **log_context: Any) -> None:
    try:
        await db.rollback()
        await db.refresh(transaction)
    except Exception as exc:
        logger.error('Failed to reload VIP transaction after rollback', exc=exc, **log_context)


async def verify_vip_payment(
    db: AsyncSession,
    admin: User,
    transaction_id: str,
    admin_notes: str | None = None,
) -> VIPSubscription:
    """Settle a pending cash payment and activate its subscription."""
    _ensure_admin(admin)

    transaction = await get_payment_transaction(db, transaction_id, for_update=True)
    if transaction is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Transaction not found')

    if transaction.payment_status == VIPPaymentStatus.COMPLETED.value:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='This transaction has already been verified',
        )
    if transaction.payment_method != VIPPaymentMethod.CASH.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Only cash payments require admin verification',
        )
    if transaction.payment_status != VIPPaymentStatus.PENDING.value:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f'Transaction status is {transaction.payment_status}',
        )

    subscription = await get_subscription_for_transaction(db, transaction)
    if subscription is None:
        logger.error('VIP transaction without subscription', transaction_id=transaction_id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Subscription not found for transaction')

    now = datetime.now(UTC)
    # Two pending cash purchases for one entity must not both become active.
    active = await get_active_vip_subscription(db, transaction.subscription_type, subscription.entity_id, now=now)
    if active is not None and active.id != subscription.id:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f'This {transaction.subscription_type} already has an active {active.tier} VIP subscription',
        )

    notes = admin_notes or DEFAULT_VERIFICATION_NOTE

    transaction.payment_status = VIPPaymentStatus.COMPLETED.value
    transaction.admin_verified_by = admin.id
    transaction.admin_verified_at = now
    transaction.admin_notes = notes

    subscription.status = VIPSubscriptionStatus.ACTIVE.value
    subscription.payment_status = VIPPaymentStatus.COMPLETED.value
    subscription.admin_verified_by = admin.id
    subscription.admin_verified_at = now
    subscription.admin_notes = notes

    try:
        await db.commit()
    except SQLAlchemyError as exc:
        logger.error('Failed to verify VIP payment', transaction_id=transaction_id, exc=exc)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail='Failed to verify payment',
        )
    await db.refresh(subscription)

    logger.info(
        'VIP cash payment verified',
        admin_id=admin.id,
        transaction_id=transaction_id,
        subscription_id=subscription.id,
    )
    notify_vip_payment_verified(
        transaction.user_id, subscription.tier, subscription.expires_at, subscription_id=subscription.id
    )
    return subscription


async def reject_vip_payment(
    db: AsyncSession,
    admin: User,
    transaction_id: str,
    admin_notes: str | None,
) -> VIPPaymentTransaction:
    """Fail a pending payment; the linked subscription is cancelled on a best-effort basis."""
    _ensure_admin(admin)

    if not admin_notes or not admin_notes.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Rejection reason (admin_notes) is required',
        )

    transaction = await get_payment_transaction(db, transaction_id, for_update=True)
    if transaction is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Transaction not found')

    if transaction.payment_status != VIPPaymentStatus.PENDING.value:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f'Transaction status is {transaction.payment_status}',
        )

    payer_id = transaction.user_id
    transaction.payment_status = VIPPaymentStatus.FAILED.value
    transaction.admin_notes = admin_notes
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        logger.error('Failed to reject VIP payment', transaction_id=transaction_id, exc=exc)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail='Failed to reject payment',
        )
    await db.refresh(transaction)

    logger.info('VIP payment rejected', admin_id=admin.id, transaction_id=transaction_id)

    tier = None
    subscription_id = transaction.subscription_id
    try:
        subscription = await get_subscription_for_transaction(db, transaction)
        if subscription is not None:
            tier = subscription.tier
            subscription.status = VIPSubscriptionStatus.CANCELLED.value
            subscription.cancelled_at = datetime.now(UTC)
            subscription.admin_notes = f'{REJECTION_NOTE_PREFIX}{admin_notes}'
            await db.commit()
    except SQLAlchemyError as exc:
        # The transaction is the settlement record; it stays failed either way.
        logger.error(
            'Failed to cancel subscription for rejected VIP payment',
            transaction_id=transaction_id,
            subscription_id=subscription_id,
            exc=exc,
        )
        await _reload_after_failure(db, transaction, transaction_id=transaction_id)

    if tier is not None:
        notify_vip_payment_rejected(payer_id, tier, admin_notes, subscription_id=subscription_id)
    return transaction


def _serialize_admin_transaction(transaction: VIPPaymentTransaction, subscription: VIPSubscription | None) -> dict[str, Any]:
    user = transaction.user
    return {
        'id': transaction.id,
        'subscription_type': transaction.subscription_type,
        'subscription_id': transaction.subscription_id,
        'user_id': transaction.user_id,
        'user': {'id': user.id, 'pseudonym': user.pseudonym, 'email': user.email} if user else None,
        'amount': transaction.amount,
        'currency': transaction.currency,
        'payment_method': transaction.payment_method,
        'payment_status': transaction.payment_status,
        'promptpay_reference': transaction.promptpay_reference,
        'admin_verified_by': transaction.admin_verified_by,
        'admin_verified_at': transaction.admin_verified_at.isoformat() if transaction.admin_verified_at else None,
        'admin_notes': transaction.admin_notes,
        'created_at': transaction.created_at.isoformat() if transaction.created_at else None,
        'subscription': {
            'tier': subscription.tier,
            'duration': subscription.duration,
            'starts_at': subscription.starts_at.isoformat(),
            'expires_at': subscription.expires_at.isoformat(),
        }
        if subscription
        else None,
    }


async def list_vip_transactions(
    db: AsyncSession,
    admin: User,
    *,
    payment_method: str | None = None,
    payment_status: str | None = None,
) -> list[dict[str, Any]]:
    _ensure_admin(admin)

    transactions = await list_payment_transactions(
        db,
        payment_method=_normalize_filter(payment_method),
        payment_status=_normalize_filter(payment_status),
    )

    items = []
    for transaction in transactions:
        subscription = await get_subscription_for_transaction(db, transaction)
        items.append(_serialize_admin_transaction(transaction, subscription))
    return items
