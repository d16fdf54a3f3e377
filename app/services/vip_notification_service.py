"""Best-effort user notifications for VIP subscription transitions.

Every ``notify_*`` helper schedules delivery on the running event loop and
returns immediately. Delivery opens its own session, so the caller's request
can finish (and close its session) before the notification is written.
Failures are logged and dropped.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import structlog

from app.database.crud.user_notification import create_user_notification
from app.database.database import AsyncSessionLocal


logger = structlog.get_logger(__name__)

VIP_NOTIFICATION_LINK = '/user/profile'


class VIPNotificationKind(Enum):
    PURCHASE_CONFIRMED = 'vip_purchase_confirmed'
    PAYMENT_VERIFIED = 'vip_payment_verified'
    PAYMENT_REJECTED = 'vip_payment_rejected'
    SUBSCRIPTION_CANCELLED = 'vip_subscription_cancelled'


@dataclass(frozen=True)
class VIPNotificationContent:
    title: str
    body: str
    i18n_key: str


def build_notification_content(kind: VIPNotificationKind, params: dict[str, Any]) -> VIPNotificationContent:
    tier = params.get('tier')
    match kind:
        case VIPNotificationKind.PURCHASE_CONFIRMED:
            return VIPNotificationContent(
                title='VIP purchase confirmed',
                body=f'Your {tier} VIP ({params.get("duration")} days, ฿{params.get("price"):,}) has been registered.',
                i18n_key='notifications.vipPurchaseConfirmed',
            )
        case VIPNotificationKind.PAYMENT_VERIFIED:
            return VIPNotificationContent(
                title='VIP payment verified',
                body=f'Your {tier} VIP is active until {params.get("expiresAt")}.',
                i18n_key='notifications.vipPaymentVerified',
            )
        case VIPNotificationKind.PAYMENT_REJECTED:
            return VIPNotificationContent(
                title='VIP payment rejected',
                body=f'Your {tier} VIP payment was rejected: {params.get("reason")}',
                i18n_key='notifications.vipPaymentRejected',
            )
        case VIPNotificationKind.SUBSCRIPTION_CANCELLED:
            return VIPNotificationContent(
                title='VIP subscription cancelled',
                body=f'Your {tier} VIP subscription was cancelled: {params.get("reason")}',
                i18n_key='notifications.vipSubscriptionCancelled',
            )


async def deliver_vip_notification(
    user_id: str,
    kind: VIPNotificationKind,
    params: dict[str, Any],
    subscription_id: str | None = None,
) -> None:
    try:
        content = build_notification_content(kind, params)
        async with AsyncSessionLocal() as db:
            await create_user_notification(
                db,
                user_id=user_id,
                notification_type=kind.value,
                title=content.title,
                body=content.body,
                i18n_key=content.i18n_key,
                i18n_params=params,
                link=VIP_NOTIFICATION_LINK,
                related_entity_type='vip_subscription',
                related_entity_id=subscription_id,
            )
            await db.commit()
        logger.info('User notified about VIP event', user_id=user_id, kind=kind.value)
    except Exception as exc:
        logger.warning('Failed to deliver VIP notification', user_id=user_id, kind=kind.value, exc=exc)


_background_tasks: set[asyncio.Task] = set()


def _spawn(coro: Coroutine[Any, Any, None]) -> None:
    try:
        task = asyncio.get_running_loop().create_task(coro)
    except RuntimeError as exc:
        coro.close()
        logger.warning('No running event loop for VIP notification', exc=exc)
        return
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


def dispatch_vip_notification(
    user_id: str,
    kind: VIPNotificationKind,
    params: dict[str, Any],
    subscription_id: str | None = None,
) -> None:
    try:
        _spawn(deliver_vip_notification(user_id, kind, params, subscription_id))
    except Exception as exc:
        logger.warning('Failed to schedule VIP notification', user_id=user_id, kind=kind.value, exc=exc)


async def drain_vip_notifications() -> None:
    """Wait for notifications still in flight (shutdown and tests)."""
    if _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)


def notify_vip_purchase_confirmed(
    user_id: str,
    tier: str,
    duration: int,
    price: int,
    *,
    subscription_id: str | None = None,
) -> None:
    dispatch_vip_notification(
        user_id,
        VIPNotificationKind.PURCHASE_CONFIRMED,
        {'tier': tier, 'duration': duration, 'price': price},
        subscription_id,
    )


def notify_vip_payment_verified(
    user_id: str,
    tier: str,
    expires_at: datetime,
    *,
    subscription_id: str | None = None,
) -> None:
    dispatch_vip_notification(
        user_id,
        VIPNotificationKind.PAYMENT_VERIFIED,
        {'tier': tier, 'expiresAt': expires_at.isoformat()},
        subscription_id,
    )


def notify_vip_payment_rejected(user_id: str, tier: str, reason: str, *, subscription_id: str | None = None) -> None:
    dispatch_vip_notification(
        user_id,
        VIPNotificationKind.PAYMENT_REJECTED,
        {'tier': tier, 'reason': reason},
        subscription_id,
    )


def notify_vip_subscription_cancelled(
    user_id: str,
    tier: str,
    reason: str,
    *,
    subscription_id: str | None = None,
) -> None:
    dispatch_vip_notification(
        user_id,
        VIPNotificationKind.SUBSCRIPTION_CANCELLED,
        {'tier': tier, 'reason': reason},
        subscription_id,
    )
