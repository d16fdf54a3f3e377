from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.services import vip_settlement_service


ADMIN = SimpleNamespace(id='admin-1', is_admin=True)
MEMBER = SimpleNamespace(id='user-1', is_admin=False)


def _transaction(**overrides):
    fields = {
        'id': 'tx-1',
        'subscription_type': 'employee',
        'subscription_id': 'sub-1',
        'user_id': 'user-1',
        'payment_method': 'cash',
        'payment_status': 'pending',
        'admin_verified_by': None,
        'admin_verified_at': None,
        'admin_notes': None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _subscription(**overrides):
    fields = {
        'id': 'sub-1',
        'entity_id': 'emp-1',
        'tier': 'employee',
        'duration': 30,
        'status': 'pending_payment',
        'payment_status': 'pending',
        'starts_at': datetime(2026, 10, 1, tzinfo=UTC),
        'expires_at': datetime(2026, 10, 31, tzinfo=UTC),
        'cancelled_at': None,
        'admin_verified_by': None,
        'admin_verified_at': None,
        'admin_notes': None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.fixture
def settlement_env(monkeypatch):
    env = SimpleNamespace(
        transaction=_transaction(),
        subscription=_subscription(),
        verified=MagicMock(),
        rejected=MagicMock(),
    )
    env.get_transaction = AsyncMock(return_value=env.transaction)
    env.get_subscription = AsyncMock(return_value=env.subscription)
    env.get_active = AsyncMock(return_value=None)
    monkeypatch.setattr(vip_settlement_service, 'get_payment_transaction', env.get_transaction)
    monkeypatch.setattr(vip_settlement_service, 'get_subscription_for_transaction', env.get_subscription)
    monkeypatch.setattr(vip_settlement_service, 'get_active_vip_subscription', env.get_active)
    monkeypatch.setattr(vip_settlement_service, 'notify_vip_payment_verified', env.verified)
    monkeypatch.setattr(vip_settlement_service, 'notify_vip_payment_rejected', env.rejected)
    return env


async def test_verify_requires_admin(settlement_env):
    db = AsyncMock(spec=AsyncSession)

    with pytest.raises(HTTPException) as exc:
        await vip_settlement_service.verify_vip_payment(db, MEMBER, 'tx-1')

    assert exc.value.status_code == 403
    settlement_env.get_transaction.assert_not_awaited()


async def test_verify_cash_payment_activates_subscription(settlement_env):
    db = AsyncMock(spec=AsyncSession)

    subscription = await vip_settlement_service.verify_vip_payment(db, ADMIN, 'tx-1')

    transaction = settlement_env.transaction
    assert transaction.payment_status == 'completed'
    assert transaction.admin_verified_by == 'admin-1'
    assert transaction.admin_notes == 'Cash payment verified by admin'
    assert subscription.status == 'active'
    assert subscription.payment_status == 'completed'
    assert subscription.admin_verified_at == transaction.admin_verified_at
    db.commit.assert_awaited_once()
    settlement_env.get_transaction.assert_awaited_once_with(db, 'tx-1', for_update=True)
    settlement_env.verified.assert_called_once_with(
        'user-1', 'employee', subscription.expires_at, subscription_id='sub-1'
    )


async def test_verify_keeps_admin_notes(settlement_env):
    db = AsyncMock(spec=AsyncSession)

    subscription = await vip_settlement_service.verify_vip_payment(db, ADMIN, 'tx-1', 'Paid at front desk')

    assert subscription.admin_notes == 'Paid at front desk'
    assert settlement_env.transaction.admin_notes == 'Paid at front desk'


async def test_verify_missing_transaction_is_not_found(settlement_env):
    settlement_env.get_transaction.return_value = None
    db = AsyncMock(spec=AsyncSession)

    with pytest.raises(HTTPException) as exc:
        await vip_settlement_service.verify_vip_payment(db, ADMIN, 'missing')

    assert exc.value.status_code == 404


async def test_verify_twice_conflicts(settlement_env):
    settlement_env.transaction.payment_status = 'completed'
    db = AsyncMock(spec=AsyncSession)

    with pytest.raises(HTTPException) as exc:
        await vip_settlement_service.verify_vip_payment(db, ADMIN, 'tx-1')

    assert exc.value.status_code == 409
    assert exc.value.detail == 'This transaction has already been verified'


@pytest.mark.parametrize('payment_method', ['promptpay', 'admin_grant'])
async def test_verify_non_cash_payment_is_rejected_without_changes(settlement_env, payment_method):
    settlement_env.transaction.payment_method = payment_method
    db = AsyncMock(spec=AsyncSession)

    with pytest.raises(HTTPException) as exc:
        await vip_settlement_service.verify_vip_payment(db, ADMIN, 'tx-1')

    assert exc.value.status_code == 400
    assert exc.value.detail == 'Only cash payments require admin verification'
    assert settlement_env.transaction.payment_status == 'pending'
    assert settlement_env.subscription.status == 'pending_payment'
    db.commit.assert_not_awaited()


async def test_verify_rejected_payment_conflicts(settlement_env):
    settlement_env.transaction.payment_status = 'failed'
    db = AsyncMock(spec=AsyncSession)

    with pytest.raises(HTTPException) as exc:
        await vip_settlement_service.verify_vip_payment(db, ADMIN, 'tx-1')

    assert exc.value.status_code == 409
    assert exc.value.detail == 'Transaction status is failed'


async def test_verify_refuses_second_active_subscription_for_entity(settlement_env):
    settlement_env.get_active.return_value = _subscription(id='sub-other', status='active')
    db = AsyncMock(spec=AsyncSession)

    with pytest.raises(HTTPException) as exc:
        await vip_settlement_service.verify_vip_payment(db, ADMIN, 'tx-1')

    assert exc.value.status_code == 409
    assert settlement_env.transaction.payment_status == 'pending'


async def test_verify_commit_failure_is_server_error(settlement_env):
    db = AsyncMock(spec=AsyncSession)
    db.commit.side_effect = OperationalError('UPDATE', {}, Exception('db down'))

    with pytest.raises(HTTPException) as exc:
        await vip_settlement_service.verify_vip_payment(db, ADMIN, 'tx-1')

    assert exc.value.status_code == 500
    db.rollback.assert_awaited_once()
    settlement_env.verified.assert_not_called()


@pytest.mark.parametrize('notes', [None, '', '   '])
async def test_reject_requires_reason_before_any_read(settlement_env, notes):
    db = AsyncMock(spec=AsyncSession)

    with pytest.raises(HTTPException) as exc:
        await vip_settlement_service.reject_vip_payment(db, ADMIN, 'tx-1', notes)

    assert exc.value.status_code == 400
    assert exc.value.detail == 'Rejection reason (admin_notes) is required'
    settlement_env.get_transaction.assert_not_awaited()


async def test_reject_fails_transaction_and_cancels_subscription(settlement_env):
    db = AsyncMock(spec=AsyncSession)

    transaction = await vip_settlement_service.reject_vip_payment(db, ADMIN, 'tx-1', 'Slip not received')

    assert transaction.payment_status == 'failed'
    assert transaction.admin_notes == 'Slip not received'
    subscription = settlement_env.subscription
    assert subscription.status == 'cancelled'
    assert subscription.cancelled_at is not None
    assert subscription.admin_notes == 'Rejected: Slip not received'
    assert db.commit.await_count == 2
    settlement_env.rejected.assert_called_once_with('user-1', 'employee', 'Slip not received', subscription_id='sub-1')


@pytest.mark.parametrize('current_status', ['completed', 'failed'])
async def test_reject_settled_transaction_conflicts(settlement_env, current_status):
    settlement_env.transaction.payment_status = current_status
    db = AsyncMock(spec=AsyncSession)

    with pytest.raises(HTTPException) as exc:
        await vip_settlement_service.reject_vip_payment(db, ADMIN, 'tx-1', 'duplicate')

    assert exc.value.status_code == 409
    assert exc.value.detail == f'Transaction status is {current_status}'


async def test_reject_subscription_update_failure_keeps_transaction_failed(settlement_env):
    db = AsyncMock(spec=AsyncSession)
    db.commit.side_effect = [None, OperationalError('UPDATE', {}, Exception('db down'))]

    transaction = await vip_settlement_service.reject_vip_payment(db, ADMIN, 'tx-1', 'Slip not received')

    assert transaction.payment_status == 'failed'
    db.rollback.assert_awaited_once()


async def test_reject_survives_refresh_failure_after_rollback(settlement_env):
    db = AsyncMock(spec=AsyncSession)
    db.commit.side_effect = [None, OperationalError('UPDATE', {}, Exception('db down'))]
    db.refresh.side_effect = [None, OperationalError('SELECT', {}, Exception('connection lost'))]

    transaction = await vip_settlement_service.reject_vip_payment(db, ADMIN, 'tx-1', 'Slip not received')

    assert transaction.payment_status == 'failed'
    db.rollback.assert_awaited_once()
    assert db.refresh.await_count == 2


async def test_reject_requires_admin(settlement_env):
    db = AsyncMock(spec=AsyncSession)

    with pytest.raises(HTTPException) as exc:
        await vip_settlement_service.reject_vip_payment(db, MEMBER, 'tx-1', 'nope')

    assert exc.value.status_code == 403


async def test_list_transactions_normalizes_filters(settlement_env, monkeypatch):
    created_at = datetime.now(UTC) - timedelta(hours=1)
    transaction = _transaction(
        amount=3600,
        currency='THB',
        promptpay_reference=None,
        created_at=created_at,
        user=SimpleNamespace(id='user-1', pseudonym='nok', email='nok@example.com'),
    )
    listing = AsyncMock(return_value=[transaction])
    monkeypatch.setattr(vip_settlement_service, 'list_payment_transactions', listing)
    db = AsyncMock(spec=AsyncSession)

    items = await vip_settlement_service.list_vip_transactions(db, ADMIN, payment_method='cash', payment_status='all')

    listing.assert_awaited_once_with(db, payment_method='cash', payment_status=None)
    [item] = items
    assert item['user'] == {'id': 'user-1', 'pseudonym': 'nok', 'email': 'nok@example.com'}
    assert item['created_at'] == created_at.isoformat()
    assert item['subscription'] == {
        'tier': 'employee',
        'duration': 30,
        'starts_at': '2026-10-01T00:00:00+00:00',
        'expires_at': '2026-10-31T00:00:00+00:00',
    }


async def test_list_transactions_requires_admin(settlement_env):
    db = AsyncMock(spec=AsyncSession)

    with pytest.raises(HTTPException) as exc:
        await vip_settlement_service.list_vip_transactions(db, MEMBER)

    assert exc.value.status_code == 403
