import uuid
from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func


def _aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is timezone-aware (SQLite and legacy columns return naive values)."""
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def _uuid() -> str:
    return str(uuid.uuid4())


class AwareDateTime(TypeDecorator):
    """DateTime that auto-converts naive values to UTC-aware on load from DB."""

    impl = DateTime
    cache_ok = True

    def __init__(self):
        super().__init__(timezone=True)

    def process_result_value(self, value, dialect):
        if value is not None and isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


Base = declarative_base()


class UserRole(Enum):
    USER = 'user'
    MODERATOR = 'moderator'
    ADMIN = 'admin'


class VIPSubscriptionType(Enum):
    EMPLOYEE = 'employee'
    ESTABLISHMENT = 'establishment'


class VIPSubscriptionStatus(Enum):
    PENDING_PAYMENT = 'pending_payment'
    ACTIVE = 'active'
    CANCELLED = 'cancelled'
    # Never stored: derived from ACTIVE + expires_at in the past.
    EXPIRED = 'expired'


class VIPPaymentMethod(Enum):
    PROMPTPAY = 'promptpay'
    CASH = 'cash'
    ADMIN_GRANT = 'admin_grant'


class VIPPaymentStatus(Enum):
    PENDING = 'pending'
    COMPLETED = 'completed'
    FAILED = 'failed'


class User(Base):
    __tablename__ = 'users'

    id = Column(String(36), primary_key=True, default=_uuid)
    pseudonym = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    role = Column(String(20), nullable=False, default=UserRole.USER.value)
    created_at = Column(AwareDateTime(), default=func.now(), nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


class Establishment(Base):
    __tablename__ = 'establishments'

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    created_at = Column(AwareDateTime(), default=func.now(), nullable=False)

    owners = relationship('EstablishmentOwner', back_populates='establishment')


class Employee(Base):
    __tablename__ = 'employees'

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    nickname = Column(String(100), nullable=True)
    # Linked account for self-managed profiles
    user_id = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    created_at = Column(AwareDateTime(), default=func.now(), nullable=False)

    employments = relationship('EmployeeEmployment', back_populates='employee')


class EstablishmentOwner(Base):
    __tablename__ = 'establishment_owners'
    __table_args__ = (Index('ix_establishment_owners_user_establishment', 'user_id', 'establishment_id'),)

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    establishment_id = Column(String(36), ForeignKey('establishments.id', ondelete='CASCADE'), nullable=False)
    owner_role = Column(String(20), nullable=False, default='owner')  # owner/manager
    permissions = Column(JSON, nullable=False, default=dict)
    created_at = Column(AwareDateTime(), default=func.now(), nullable=False)

    establishment = relationship('Establishment', back_populates='owners')

    @property
    def can_edit_employees(self) -> bool:
        return bool((self.permissions or {}).get('can_edit_employees') is True)


class EmployeeEmployment(Base):
    __tablename__ = 'current_employment'
    __table_args__ = (Index('ix_current_employment_employee_current', 'employee_id', 'is_current'),)

    id = Column(String(36), primary_key=True, default=_uuid)
    employee_id = Column(String(36), ForeignKey('employees.id', ondelete='CASCADE'), nullable=False)
    establishment_id = Column(String(36), ForeignKey('establishments.id', ondelete='CASCADE'), nullable=False)
    is_current = Column(Boolean, nullable=False, default=True)
    started_at = Column(AwareDateTime(), default=func.now(), nullable=False)

    employee = relationship('Employee', back_populates='employments')


class _VIPSubscriptionColumns:
    id = Column(String(36), primary_key=True, default=_uuid)
    status = Column(String(20), nullable=False, default=VIPSubscriptionStatus.PENDING_PAYMENT.value)
    # Mirrors the subscription type since basic/premium tiers were collapsed
    tier = Column(String(20), nullable=False)
    duration = Column(Integer, nullable=False)

    starts_at = Column(AwareDateTime(), nullable=False)
    expires_at = Column(AwareDateTime(), nullable=False)
    cancelled_at = Column(AwareDateTime(), nullable=True)

    payment_method = Column(String(20), nullable=False)
    payment_status = Column(String(20), nullable=False, default=VIPPaymentStatus.PENDING.value)
    price_paid = Column(Integer, nullable=False)
    transaction_id = Column(String(36), nullable=True, index=True)

    admin_verified_by = Column(String(36), nullable=True)
    admin_verified_at = Column(AwareDateTime(), nullable=True)
    admin_notes = Column(Text, nullable=True)

    created_at = Column(AwareDateTime(), default=func.now(), nullable=False)
    updated_at = Column(AwareDateTime(), default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def effective_status(self) -> str:
        if self.status == VIPSubscriptionStatus.ACTIVE.value and _aware(self.expires_at) < datetime.now(UTC):
            return VIPSubscriptionStatus.EXPIRED.value
        return self.status

    @property
    def is_vip_active(self) -> bool:
        return self.effective_status == VIPSubscriptionStatus.ACTIVE.value


class EmployeeVIPSubscription(_VIPSubscriptionColumns, Base):
    __tablename__ = 'employee_vip_subscriptions'
    __table_args__ = (Index('ix_employee_vip_status_expires', 'employee_id', 'status', 'expires_at'),)

    employee_id = Column(String(36), ForeignKey('employees.id', ondelete='CASCADE'), nullable=False)

    employee = relationship('Employee')

    @property
    def entity_id(self) -> str:
        return self.employee_id


class EstablishmentVIPSubscription(_VIPSubscriptionColumns, Base):
    __tablename__ = 'establishment_vip_subscriptions'
    __table_args__ = (Index('ix_establishment_vip_status_expires', 'establishment_id', 'status', 'expires_at'),)

    establishment_id = Column(String(36), ForeignKey('establishments.id', ondelete='CASCADE'), nullable=False)

    establishment = relationship('Establishment')

    @property
    def entity_id(self) -> str:
        return self.establishment_id


class VIPPaymentTransaction(Base):
    __tablename__ = 'vip_payment_transactions'
    __table_args__ = (
        Index('ix_vip_transactions_subscription', 'subscription_type', 'subscription_id'),
        Index('ix_vip_transactions_status_created', 'payment_status', 'created_at'),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    subscription_type = Column(String(20), nullable=False)
    # Polymorphic: points at employee_vip_subscriptions or establishment_vip_subscriptions
    subscription_id = Column(String(36), nullable=False)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)

    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default='THB')
    payment_method = Column(String(20), nullable=False)
    payment_status = Column(String(20), nullable=False, default=VIPPaymentStatus.PENDING.value)

    promptpay_qr_code = Column(Text, nullable=True)
    promptpay_reference = Column(String(255), nullable=True)

    admin_verified_by = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    admin_verified_at = Column(AwareDateTime(), nullable=True)
    admin_notes = Column(Text, nullable=True)

    created_at = Column(AwareDateTime(), default=func.now(), nullable=False)
    updated_at = Column(AwareDateTime(), default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship('User', foreign_keys=[user_id])


class UserNotification(Base):
    __tablename__ = 'user_notifications'
    __table_args__ = (Index('ix_user_notifications_user_read', 'user_id', 'read_at'),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    notification_type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=True)
    i18n_key = Column(String(255), nullable=True)
    i18n_params = Column(JSON, nullable=True, default=dict)
    link = Column(String(255), nullable=True)
    related_entity_type = Column(String(50), nullable=True)
    related_entity_id = Column(String(64), nullable=True)
    read_at = Column(AwareDateTime(), nullable=True)
    created_at = Column(AwareDateTime(), default=func.now(), nullable=False)
