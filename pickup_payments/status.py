"""
Entitlement queries used by the app to gate features
"""
import logging

from .errors import InvalidArgument
from .models import FeatureAccess, RECURRING_PLANS, PLAN_PRO_PLAYER, PLAN_ORGANIZER_PRO
from .utils.helpers import utc_now

logger = logging.getLogger('pickup_payments')

FREE_GAMES_PER_MONTH = 5
UNLIMITED = -1


class SubscriptionStatusService:
    """Recomputes entitlements from subscription records on every call"""

    def __init__(self, store, now_func=None):
        self.store = store
        self.now = now_func or utc_now

    def has_active_subscription(self, user_id, plan):
        """
        Whether the user currently holds the plan

        An active record whose expires_at has passed counts as inactive even
        before the cancellation webhook arrives.
        """
        if plan not in RECURRING_PLANS:
            raise InvalidArgument('Invalid plan selected')

        record = self.store.get_latest_active(user_id, plan)
        if record is None:
            return False

        entitled = record.is_entitled(self.now())
        if not entitled:
            logger.info(f"Subscription {record.id} for user {user_id} is past expires_at {record.expires_at}")
        return entitled

    def list_subscriptions(self, user_id):
        """All of a user's records, newest first"""
        return self.store.list_for_user(user_id)

    def get_feature_access(self, user_id):
        """Translate plan entitlements into app feature flags"""
        is_pro = self.has_active_subscription(user_id, PLAN_PRO_PLAYER)
        is_organizer = self.has_active_subscription(user_id, PLAN_ORGANIZER_PRO)

        active_plans = []
        if is_pro:
            active_plans.append(PLAN_PRO_PLAYER)
        if is_organizer:
            active_plans.append(PLAN_ORGANIZER_PRO)

        return FeatureAccess(
            can_create_games=True,
            can_boost_games=is_organizer,
            can_see_advanced_stats=is_pro or is_organizer,
            can_send_messages=True,
            max_games_per_month=UNLIMITED if is_organizer else FREE_GAMES_PER_MONTH,
            has_pro_player_badge=is_pro,
            has_organizer_pro_badge=is_organizer,
            active_plans=active_plans,
        )
