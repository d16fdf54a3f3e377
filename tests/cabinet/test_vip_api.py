from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from app.cabinet.dependencies import get_cabinet_db
from app.cabinet.routes import admin_vip, vip
from app.config import settings
from app.core.rate_limit import get_rate_limit_key, limiter
from app.database.models import EmployeeVIPSubscription, User, VIPPaymentTransaction
from app.main import app
from app.services.vip_subscription_service import VIPPurchaseResult


USERS = {
    'owner-1': User(id='owner-1', pseudonym='nok', email='nok@example.com', role='user'),
    'owner-2': User(id='owner-2', pseudonym='ploy', email='ploy@example.com', role='user'),
    'admin-1': User(id='admin-1', pseudonym='admin', email='admin@example.com', role='admin'),
}

PURCHASE = {'subscription_type': 'employee', 'entity_id': 'emp-1', 'duration': 30, 'payment_method': 'cash'}


def _auth(user_id: str) -> dict[str, str]:
    token = jwt.encode({'sub': user_id}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return {'Authorization': f'Bearer {token}'}


def _subscription(**overrides) -> EmployeeVIPSubscription:
    now = datetime.now(UTC)
    fields = {
        'id': 'sub-1',
        'employee_id': 'emp-1',
        'tier': 'employee',
        'duration': 30,
        'status': 'pending_payment',
        'starts_at': now,
        'expires_at': now + timedelta(days=30),
        'payment_method': 'cash',
        'payment_status': 'pending',
        'price_paid': 3600,
        'transaction_id': 'tx-1',
    }
    fields.update(overrides)
    return EmployeeVIPSubscription(**fields)


def _purchase_result() -> VIPPurchaseResult:
    transaction = VIPPaymentTransaction(
        id='tx-1',
        subscription_type='employee',
        subscription_id='sub-1',
        user_id='owner-1',
        amount=3600,
        currency='THB',
        payment_method='cash',
        payment_status='pending',
    )
    return VIPPurchaseResult(
        subscription=_subscription(),
        transaction=transaction,
        subscription_type='employee',
        message='VIP subscription created. Please contact admin to verify cash payment.',
    )


@pytest.fixture
def db():
    session = AsyncMock(spec=AsyncSession)
    session.get.side_effect = lambda model, key: USERS.get(key)
    return session


@pytest.fixture
def client(db):
    async def _override_db():
        yield db

    limiter.reset()
    app.dependency_overrides[get_cabinet_db] = _override_db
    yield TestClient(app)
    app.dependency_overrides.clear()
    limiter.reset()


@pytest.fixture
def purchase(monkeypatch):
    mock = AsyncMock(side_effect=lambda *args, **kwargs: _purchase_result())
    monkeypatch.setattr(vip, 'purchase_vip_subscription', mock)
    return mock


def test_rate_limit_key_combines_user_and_peer_address():
    request = SimpleNamespace(
        state=SimpleNamespace(user_id='owner-1'),
        client=SimpleNamespace(host='10.0.0.7'),
        headers={'X-Forwarded-For': '1.2.3.4'},
    )
    anonymous = SimpleNamespace(state=SimpleNamespace(), client=SimpleNamespace(host='10.0.0.7'), headers={})

    assert get_rate_limit_key(request) == 'vip:owner-1:10.0.0.7'
    assert get_rate_limit_key(anonymous) == 'vip:anonymous:10.0.0.7'


def test_health(client):
    assert client.get('/health').json() == {'status': 'ok'}


def test_pricing_is_public(client):
    response = client.get('/api/vip/pricing/employee')

    assert response.status_code == 200
    assert response.json()['pricing']['prices'][1]['price'] == 3600


def test_purchase_created(client, purchase):
    response = client.post('/api/vip/purchase', json=PURCHASE, headers=_auth('owner-1'))

    assert response.status_code == 201
    body = response.json()
    assert body['success'] is True
    assert body['subscription']['id'] == 'sub-1'
    assert body['subscription']['entity_id'] == 'emp-1'
    assert body['transaction'] == {
        'id': 'tx-1',
        'subscription_type': 'employee',
        'subscription_id': 'sub-1',
        'amount': 3600,
        'currency': 'THB',
        'payment_method': 'cash',
        'payment_status': 'pending',
    }
    args, kwargs = purchase.await_args
    assert args[1] is USERS['owner-1']
    assert kwargs == {'subscription_type': 'employee', 'entity_id': 'emp-1', 'duration': 30, 'payment_method': 'cash'}


def test_purchase_requires_token(client, purchase):
    response = client.post('/api/vip/purchase', json=PURCHASE)

    assert response.status_code == 401
    purchase.assert_not_awaited()


@pytest.mark.parametrize(
    'overrides',
    [
        {'duration': 'abc'},
        {'duration': 30.5},
        {'subscription_type': 5},
        {'entity_id': ['emp-1']},
    ],
)
def test_purchase_malformed_field_is_bad_request(client, purchase, overrides):
    response = client.post('/api/vip/purchase', json={**PURCHASE, **overrides}, headers=_auth('owner-1'))

    assert response.status_code == 400
    assert response.json()['detail']
    purchase.assert_not_awaited()


def test_purchase_non_json_body_is_bad_request(client, purchase):
    response = client.post(
        '/api/vip/purchase',
        content='subscription_type=employee',
        headers={**_auth('owner-1'), 'Content-Type': 'application/json'},
    )

    assert response.status_code == 400
    purchase.assert_not_awaited()


def test_purchase_unknown_payment_method_is_bad_request(client):
    response = client.post(
        '/api/vip/purchase', json={**PURCHASE, 'payment_method': 'bitcoin'}, headers=_auth('owner-1')
    )

    assert response.status_code == 400
    assert response.json()['detail'].startswith('Invalid payment method')


def test_purchase_rate_limited_per_user_regardless_of_forwarded_for(client, purchase):
    for attempt in range(5):
        response = client.post(
            '/api/vip/purchase',
            json=PURCHASE,
            headers={**_auth('owner-1'), 'X-Forwarded-For': f'203.0.113.{attempt}'},
        )
        assert response.status_code == 201

    limited = client.post(
        '/api/vip/purchase',
        json=PURCHASE,
        headers={**_auth('owner-1'), 'X-Forwarded-For': '198.51.100.1'},
    )
    assert limited.status_code == 429
    assert limited.json()['detail'] == 'Too many requests. Please try again later.'

    other_user = client.post('/api/vip/purchase', json=PURCHASE, headers=_auth('owner-2'))
    assert other_user.status_code == 201
    assert purchase.await_count == 6


def test_my_subscriptions(client, monkeypatch):
    listing = AsyncMock(return_value={'employees': [], 'establishments': []})
    monkeypatch.setattr(vip, 'get_my_vip_subscriptions', listing)

    response = client.get('/api/vip/my-subscriptions', headers=_auth('owner-1'))

    assert response.status_code == 200
    assert response.json() == {'success': True, 'subscriptions': {'employees': [], 'establishments': []}}


def test_cancel_subscription(client, monkeypatch):
    cancel = AsyncMock(return_value=_subscription(status='cancelled', cancelled_at=datetime.now(UTC)))
    monkeypatch.setattr(vip, 'cancel_vip_subscription', cancel)

    response = client.patch(
        '/api/vip/subscriptions/sub-1/cancel', json={'subscription_type': 'employee'}, headers=_auth('owner-1')
    )

    assert response.status_code == 200
    assert response.json()['subscription']['status'] == 'cancelled'
    cancel.assert_awaited_once()
    assert cancel.await_args.kwargs == {'subscription_type': 'employee', 'subscription_id': 'sub-1'}


def test_cancel_without_type_is_bad_request(client, monkeypatch):
    cancel = AsyncMock()
    monkeypatch.setattr(vip, 'cancel_vip_subscription', cancel)

    response = client.patch('/api/vip/subscriptions/sub-1/cancel', json={}, headers=_auth('owner-1'))

    assert response.status_code == 400
    cancel.assert_not_awaited()


def test_verify_payment_without_body(client, monkeypatch):
    verify = AsyncMock(return_value=_subscription(status='active', payment_status='completed'))
    monkeypatch.setattr(admin_vip, 'verify_vip_payment', verify)

    response = client.post('/api/admin/vip/verify-payment/tx-1', headers=_auth('admin-1'))

    assert response.status_code == 200
    body = response.json()
    assert body['message'] == 'Payment verified and VIP subscription activated'
    assert body['subscription']['status'] == 'active'
    assert verify.await_args.args[1:] == (USERS['admin-1'], 'tx-1')
    assert verify.await_args.kwargs == {'admin_notes': None}


def test_verify_payment_requires_admin(client, monkeypatch):
    verify = AsyncMock()
    monkeypatch.setattr(admin_vip, 'verify_vip_payment', verify)

    response = client.post('/api/admin/vip/verify-payment/tx-1', headers=_auth('owner-1'))

    assert response.status_code == 403
    verify.assert_not_awaited()


def test_reject_payment(client, monkeypatch):
    reject = AsyncMock()
    monkeypatch.setattr(admin_vip, 'reject_vip_payment', reject)

    response = client.post(
        '/api/admin/vip/reject-payment/tx-1', json={'admin_notes': 'Slip not received'}, headers=_auth('admin-1')
    )

    assert response.status_code == 200
    assert response.json() == {'success': True, 'message': 'Payment rejected'}
    assert reject.await_args.args[1:] == (USERS['admin-1'], 'tx-1', 'Slip not received')


def test_reject_payment_without_reason_is_bad_request(client, db):
    response = client.post('/api/admin/vip/reject-payment/tx-1', json={}, headers=_auth('admin-1'))

    assert response.status_code == 400
    assert response.json()['detail'] == 'Rejection reason (admin_notes) is required'
    db.execute.assert_not_awaited()
