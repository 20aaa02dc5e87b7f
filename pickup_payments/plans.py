"""
Subscription tiers and their lazily provisioned PayPal billing plans
"""
import logging
from decimal import Decimal

from .errors import InvalidArgument
from .models import SubscriptionPlanConfig, ProvisionedPlan, PLAN_PRO_PLAYER, PLAN_ORGANIZER_PRO
from .utils.helpers import utc_now

logger = logging.getLogger('pickup_payments')

PLAN_CONFIGS = {
    PLAN_PRO_PLAYER: SubscriptionPlanConfig(
        key=PLAN_PRO_PLAYER,
        name='Pro Player',
        description='Advanced stats, priority matchmaking, and premium features for players.',
        amount=Decimal('9.99'),
        currency='USD',
        interval='MONTH',
    ),
    PLAN_ORGANIZER_PRO: SubscriptionPlanConfig(
        key=PLAN_ORGANIZER_PRO,
        name='Organizer Pro',
        description='Unlimited games, advanced management tools, and premium organizer features.',
        amount=Decimal('19.99'),
        currency='USD',
        interval='MONTH',
    ),
}


def get_plan_config(plan_key):
    """Look up a recurring plan, raising InvalidArgument for unknown keys"""
    if not isinstance(plan_key, str) or plan_key not in PLAN_CONFIGS:
        raise InvalidArgument('Invalid plan selected')
    return PLAN_CONFIGS[plan_key]


class PlanProvisioner:
    """
    Makes sure each plan key has a PayPal product and billing plan.

    The paypal_plans table is the cache: once a row exists for a key no
    PayPal call is made for it again.
    """

    def __init__(self, provider, store):
        self.provider = provider
        self.store = store

    def ensure_plan_provisioned(self, plan_key, access_token=None):
        """
        Return the PayPal billing plan id for a plan key, creating it on first use

        Args:
            plan_key: pro_player or organizer_pro
            access_token: reused for the create calls when given; only
                fetched on a cache miss otherwise

        Returns:
            str: PayPal billing plan id
        """
        plan_config = get_plan_config(plan_key)

        existing = self.store.get_provisioned_plan(plan_key)
        if existing and existing.paypal_plan_id:
            return existing.paypal_plan_id

        logger.info(f"Provisioning PayPal product and billing plan for {plan_key}")

        if access_token is None:
            access_token = self.provider.get_access_token()

        product_id = self.provider.create_product(access_token, plan_config)
        billing_plan_id = self.provider.create_billing_plan(access_token, product_id, plan_config)

        stored = self.store.save_provisioned_plan(ProvisionedPlan(
            plan_key=plan_key,
            paypal_product_id=product_id,
            paypal_plan_id=billing_plan_id,
            name=plan_config.name,
            amount=plan_config.amount,
            currency=plan_config.currency,
            created_at=utc_now(),
        ))

        if stored.paypal_plan_id != billing_plan_id:
            # Lost a cold-start race; PayPal now holds an unused duplicate plan
            logger.warning(
                f"Plan {plan_key} was provisioned concurrently; using {stored.paypal_plan_id}, "
                f"orphaned PayPal plan {billing_plan_id}"
            )
        else:
            logger.info(f"Provisioned PayPal plan {billing_plan_id} (product {product_id}) for {plan_key}")

        return stored.paypal_plan_id
