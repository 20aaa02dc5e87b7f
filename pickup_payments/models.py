"""
Records persisted by the payments service
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

# Plan keys
PLAN_PRO_PLAYER = 'pro_player'
PLAN_ORGANIZER_PRO = 'organizer_pro'
PLAN_BOOST_GAME = 'boost_game'

RECURRING_PLANS = (PLAN_PRO_PLAYER, PLAN_ORGANIZER_PRO)
ALL_PLANS = RECURRING_PLANS + (PLAN_BOOST_GAME,)

# Subscription record states
STATUS_PENDING = 'pending'
STATUS_ACTIVE = 'active'
STATUS_CANCELLED = 'cancelled'
STATUS_EXPIRED = 'expired'
STATUS_COMPLETED = 'completed'

ALL_STATUSES = (STATUS_PENDING, STATUS_ACTIVE, STATUS_CANCELLED, STATUS_EXPIRED, STATUS_COMPLETED)


@dataclass(frozen=True)
class SubscriptionPlanConfig:
    """A sellable recurring tier, compiled into the service"""
    key: str
    name: str
    description: str
    amount: Decimal
    currency: str = 'USD'
    interval: str = 'MONTH'

    @property
    def billing_plan_name(self):
        label = 'Yearly' if self.interval == 'YEAR' else 'Monthly'
        return f"{self.name} {label}"


@dataclass(frozen=True)
class ProvisionedPlan:
    """PayPal product + billing plan created for a plan key"""
    plan_key: str
    paypal_product_id: str
    paypal_plan_id: str
    name: str = ''
    amount: Optional[Decimal] = None
    currency: str = 'USD'
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class OrderRef:
    """One-time payment correlated by PayPal order id"""
    order_id: str


@dataclass(frozen=True)
class SubscriptionRef:
    """Recurring billing correlated by PayPal subscription id"""
    subscription_id: str


ExternalRef = Union[OrderRef, SubscriptionRef]


@dataclass
class SubscriptionRecord:
    """
    One purchase attempt and its lifecycle.

    ``external`` is exactly one of OrderRef or SubscriptionRef, so a record
    can never carry both a PayPal order id and a subscription id.
    """
    user_id: str
    plan: str
    external: ExternalRef
    amount: Decimal
    currency: str = 'USD'
    status: str = STATUS_PENDING
    id: Optional[str] = None
    game_id: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    def __post_init__(self):
        if not isinstance(self.external, (OrderRef, SubscriptionRef)):
            raise TypeError("external must be an OrderRef or a SubscriptionRef")
        if self.plan not in ALL_PLANS:
            raise ValueError(f"Unknown plan: {self.plan}")
        if self.status not in ALL_STATUSES:
            raise ValueError(f"Unknown status: {self.status}")

    @property
    def is_one_time(self):
        return isinstance(self.external, OrderRef)

    @property
    def paypal_order_id(self):
        return self.external.order_id if isinstance(self.external, OrderRef) else None

    @property
    def paypal_subscription_id(self):
        return self.external.subscription_id if isinstance(self.external, SubscriptionRef) else None

    def with_status(self, status, updated_at, expires_at=None):
        """Copy with a new status; expires_at is only replaced when given"""
        changes = {'status': status, 'updated_at': updated_at}
        if expires_at is not None:
            changes['expires_at'] = expires_at
        return replace(self, **changes)

    def is_entitled(self, now):
        """Active and not past its expiry"""
        if self.status != STATUS_ACTIVE:
            return False
        return self.expires_at is None or self.expires_at > now

    def to_dict(self):
        """JSON-friendly representation for API responses"""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'plan': self.plan,
            'status': self.status,
            'paypal_order_id': self.paypal_order_id,
            'paypal_subscription_id': self.paypal_subscription_id,
            'amount': float(self.amount) if self.amount is not None else None,
            'currency': self.currency,
            'game_id': self.game_id,
            'description': self.description,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
        }


@dataclass
class FeatureAccess:
    """What a user may do in the app given their entitlements"""
    can_create_games: bool = True
    can_boost_games: bool = False
    can_see_advanced_stats: bool = False
    can_send_messages: bool = True
    max_games_per_month: int = 5
    has_pro_player_badge: bool = False
    has_organizer_pro_badge: bool = False
    active_plans: list = field(default_factory=list)
