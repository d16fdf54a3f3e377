from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.rate_limit import VIP_PURCHASE_RATE_LIMIT, VIP_STATUS_RATE_LIMIT, limiter
from app.database.models import User
from app.services.vip_pricing import get_vip_type_config, is_valid_subscription_type
from app.services.vip_subscription_service import (
    cancel_vip_subscription,
    get_my_vip_subscriptions,
    purchase_vip_subscription,
    serialize_subscription,
    serialize_transaction,
)

from ..dependencies import get_cabinet_db, get_current_cabinet_user
from ..schemas.vip import VIPCancelRequest, VIPPricingResponse, VIPPurchaseRequest


router = APIRouter(prefix='/vip', tags=['VIP Subscriptions'])


@router.get('/pricing/{subscription_type}', response_model=VIPPricingResponse)
async def vip_pricing(subscription_type: str):
    if not is_valid_subscription_type(subscription_type):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid subscription type. Type must be "employee" or "establishment"',
        )
    return {
        'success': True,
        'type': subscription_type,
        'pricing': get_vip_type_config(subscription_type).as_dict(),
    }


@router.post('/purchase', status_code=status.HTTP_201_CREATED)
@limiter.limit(VIP_PURCHASE_RATE_LIMIT)
async def purchase_vip(
    request: Request,
    payload: VIPPurchaseRequest,
    user: User = Depends(get_current_cabinet_user),
    db: AsyncSession = Depends(get_cabinet_db),
):
    result = await purchase_vip_subscription(
        db,
        user,
        subscription_type=payload.subscription_type,
        entity_id=payload.entity_id,
        duration=payload.duration,
        payment_method=payload.payment_method,
    )
    return {
        'success': True,
        'message': result.message,
        'subscription': serialize_subscription(result.subscription, result.subscription_type),
        'transaction': serialize_transaction(result.transaction),
    }


@router.get('/my-subscriptions')
@limiter.limit(VIP_STATUS_RATE_LIMIT)
async def my_vip_subscriptions(
    request: Request,
    user: User = Depends(get_current_cabinet_user),
    db: AsyncSession = Depends(get_cabinet_db),
):
    return {'success': True, 'subscriptions': await get_my_vip_subscriptions(db, user)}


@router.patch('/subscriptions/{subscription_id}/cancel')
async def cancel_vip(
    subscription_id: str,
    payload: VIPCancelRequest,
    user: User = Depends(get_current_cabinet_user),
    db: AsyncSession = Depends(get_cabinet_db),
):
    subscription = await cancel_vip_subscription(
        db,
        user,
        subscription_type=payload.subscription_type,
        subscription_id=subscription_id,
    )
    return {
        'success': True,
        'message': 'VIP subscription cancelled successfully',
        'subscription': serialize_subscription(subscription, payload.subscription_type),
    }
