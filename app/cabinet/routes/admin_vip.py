from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import User
from app.services.vip_settlement_service import list_vip_transactions, reject_vip_payment, verify_vip_payment
from app.services.vip_subscription_service import serialize_subscription

from ..dependencies import get_cabinet_db, require_admin
from ..schemas.vip import AdminRejectPaymentRequest, AdminRejectPaymentResponse, AdminVerifyPaymentRequest


router = APIRouter(prefix='/admin/vip', tags=['Admin VIP'])


@router.post('/verify-payment/{transaction_id}')
async def verify_payment(
    transaction_id: str,
    payload: AdminVerifyPaymentRequest | None = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_cabinet_db),
):
    subscription = await verify_vip_payment(
        db,
        admin,
        transaction_id,
        admin_notes=payload.admin_notes if payload else None,
    )
    return {
        'success': True,
        'message': 'Payment verified and VIP subscription activated',
        'subscription': serialize_subscription(subscription, subscription.tier),
    }


@router.get('/transactions')
async def transactions(
    payment_method: str | None = Query(default=None),
    status: str | None = Query(default=None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_cabinet_db),
):
    items = await list_vip_transactions(db, admin, payment_method=payment_method, payment_status=status)
    return {'success': True, 'transactions': items, 'count': len(items)}


@router.post('/reject-payment/{transaction_id}', response_model=AdminRejectPaymentResponse)
async def reject_payment(
    transaction_id: str,
    payload: AdminRejectPaymentRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_cabinet_db),
):
    await reject_vip_payment(db, admin, transaction_id, payload.admin_notes)
    return {'success': True, 'message': 'Payment rejected'}
