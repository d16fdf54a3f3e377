import pytest

from app.services import vip_pricing


@pytest.mark.parametrize(
    ('subscription_type', 'duration', 'price'),
    [
        ('employee', 7, 1000),
        ('employee', 30, 3600),
        ('employee', 90, 8400),
        ('employee', 365, 18250),
        ('establishment', 7, 3000),
        ('establishment', 30, 10800),
        ('establishment', 90, 25200),
        ('establishment', 365, 54750),
    ],
)
def test_calculate_vip_price_matches_pricing_table(subscription_type, duration, price):
    assert vip_pricing.calculate_vip_price(subscription_type, duration) == price


@pytest.mark.parametrize(('subscription_type', 'duration'), [('employee', 14), ('premium', 30), ('', 7)])
def test_calculate_vip_price_returns_none_for_unknown_combination(subscription_type, duration):
    assert vip_pricing.calculate_vip_price(subscription_type, duration) is None


def test_validators_accept_only_known_values():
    assert vip_pricing.is_valid_subscription_type('employee')
    assert vip_pricing.is_valid_subscription_type('establishment')
    assert not vip_pricing.is_valid_subscription_type('basic')
    assert not vip_pricing.is_valid_subscription_type(None)

    assert vip_pricing.is_valid_duration(365)
    assert not vip_pricing.is_valid_duration(31)
    assert not vip_pricing.is_valid_duration('30')
    assert not vip_pricing.is_valid_duration(True)

    assert vip_pricing.is_valid_payment_method('admin_grant')
    assert not vip_pricing.is_valid_payment_method('card')


def test_pricing_config_exposes_original_price_and_popular_flag():
    data = vip_pricing.get_vip_type_config('employee').as_dict()

    assert data['name'] == 'Employee VIP'
    assert len(data['features']) == 3
    assert data['prices'][0] == {'duration': 7, 'price': 1000, 'discount': 0}
    assert data['prices'][1] == {
        'duration': 30,
        'price': 3600,
        'discount': 10,
        'originalPrice': 4000,
        'popular': True,
    }


def test_discount_helpers():
    assert vip_pricing.calculate_discount('establishment', 365) == 54750
    assert vip_pricing.calculate_discount('employee', 7) == 0
    assert vip_pricing.get_savings_percentage('employee', 90) == 30
    assert vip_pricing.has_discount('employee', 30)
    assert not vip_pricing.has_discount('employee', 7)


def test_duration_and_feature_helpers():
    assert vip_pricing.get_available_durations('establishment') == [7, 30, 90, 365]
    assert vip_pricing.get_popular_duration('employee') == 30
    assert 'Homepage featured section placement' in vip_pricing.get_vip_features('establishment')
    assert vip_pricing.get_price_per_day('employee', 30) == 120.0
    assert vip_pricing.get_price_per_day('employee', 90) == 93.33
    assert vip_pricing.get_price_per_day('employee', 14) is None


def test_format_price_uses_baht_sign_and_thousands_separator():
    assert vip_pricing.format_price(18250) == '฿18,250'
    assert vip_pricing.format_price(1000) == '฿1,000'
