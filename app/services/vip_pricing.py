"""VIP pricing matrix for employee and establishment subscriptions.

Prices are in whole THB. Each entity type has a single VIP configuration
(the former basic/premium tiers were collapsed), offered for 7, 30, 90 or
365 days with growing discounts.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from app.database.models import VIPPaymentMethod, VIPSubscriptionType


VIP_DURATIONS: Final[tuple[int, ...]] = (7, 30, 90, 365)
SUBSCRIPTION_TYPES: Final[tuple[str, ...]] = tuple(t.value for t in VIPSubscriptionType)
PAYMENT_METHODS: Final[tuple[str, ...]] = tuple(m.value for m in VIPPaymentMethod)
DEFAULT_POPULAR_DURATION: Final[int] = 30


@dataclass(frozen=True)
class VIPPrice:
    duration: int
    price: int
    discount: int
    original_price: int | None = None
    popular: bool = False

    def as_dict(self) -> dict:
        data = {'duration': self.duration, 'price': self.price, 'discount': self.discount}
        if self.original_price is not None:
            data['originalPrice'] = self.original_price
        if self.popular:
            data['popular'] = True
        return data


@dataclass(frozen=True)
class VIPTypeConfig:
    name: str
    description: str
    features: tuple[str, ...]
    prices: tuple[VIPPrice, ...]

    def as_dict(self) -> dict:
        return {
            'name': self.name,
            'description': self.description,
            'features': list(self.features),
            'prices': [price.as_dict() for price in self.prices],
        }


VIP_PRICING: Final[dict[str, VIPTypeConfig]] = {
    VIPSubscriptionType.EMPLOYEE.value: VIPTypeConfig(
        name='Employee VIP',
        description='Boost your visibility in lineup and search results',
        features=(
            'VIP Badge on profile (gold border)',
            'Top position in establishment lineup',
            'Search ranking boost (priority in results)',
        ),
        prices=(
            VIPPrice(duration=7, price=1000, discount=0),
            VIPPrice(duration=30, price=3600, discount=10, original_price=4000, popular=True),
            VIPPrice(duration=90, price=8400, discount=30, original_price=12000),
            VIPPrice(duration=365, price=18250, discount=50, original_price=36500),
        ),
    ),
    VIPSubscriptionType.ESTABLISHMENT.value: VIPTypeConfig(
        name='Establishment VIP',
        description='Maximize visibility on maps and search results',
        features=(
            'VIP Badge on establishment listing',
            'Featured map marker (highlighted + larger)',
            'Priority search ranking (boosted in results)',
            'Homepage featured section placement',
        ),
        prices=(
            VIPPrice(duration=7, price=3000, discount=0),
            VIPPrice(duration=30, price=10800, discount=10, original_price=12000, popular=True),
            VIPPrice(duration=90, price=25200, discount=30, original_price=36000),
            VIPPrice(duration=365, price=54750, discount=50, original_price=109500),
        ),
    ),
}


def is_valid_subscription_type(value: object) -> bool:
    return isinstance(value, str) and value in SUBSCRIPTION_TYPES


def is_valid_duration(value: object) -> bool:
    # bool is an int subclass; True must not pass as a duration
    return isinstance(value, int) and not isinstance(value, bool) and value in VIP_DURATIONS


def is_valid_payment_method(value: object) -> bool:
    return isinstance(value, str) and value in PAYMENT_METHODS


def get_vip_type_config(subscription_type: str) -> VIPTypeConfig:
    return VIP_PRICING[subscription_type]


def get_vip_price(subscription_type: str, duration: int) -> VIPPrice | None:
    config = VIP_PRICING.get(subscription_type)
    if config is None:
        return None
    return next((price for price in config.prices if price.duration == duration), None)


def calculate_vip_price(subscription_type: str, duration: int) -> int | None:
    price = get_vip_price(subscription_type, duration)
    return price.price if price else None


def get_vip_features(subscription_type: str) -> list[str]:
    return list(VIP_PRICING[subscription_type].features)


def get_available_durations(subscription_type: str) -> list[int]:
    return [price.duration for price in VIP_PRICING[subscription_type].prices]


def calculate_discount(subscription_type: str, duration: int) -> int:
    """Savings in THB compared to the undiscounted price."""
    price = get_vip_price(subscription_type, duration)
    if not price or not price.original_price:
        return 0
    return price.original_price - price.price


def get_savings_percentage(subscription_type: str, duration: int) -> int:
    price = get_vip_price(subscription_type, duration)
    return price.discount if price else 0


def has_discount(subscription_type: str, duration: int) -> bool:
    return get_savings_percentage(subscription_type, duration) > 0


def get_popular_duration(subscription_type: str) -> int:
    popular = next((p for p in VIP_PRICING[subscription_type].prices if p.popular), None)
    return popular.duration if popular else DEFAULT_POPULAR_DURATION


def get_price_per_day(subscription_type: str, duration: int) -> float | None:
    price = calculate_vip_price(subscription_type, duration)
    if price is None:
        return None
    return round(price / duration, 2)


def format_price(price: int) -> str:
    return f'฿{price:,}'
