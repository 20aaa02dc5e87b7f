"""
PayPal checkout flows: one-time boost payments and recurring subscriptions
"""
import logging
import traceback
from decimal import InvalidOperation

from .errors import InvalidArgument, PersistenceError
from .models import (
    OrderRef, SubscriptionRef, SubscriptionRecord, PLAN_BOOST_GAME, STATUS_PENDING
)
from .plans import PlanProvisioner, get_plan_config
from .utils.helpers import round_amount, to_decimal

logger = logging.getLogger('pickup_payments')

DEFAULT_PAYMENT_DESCRIPTION = 'Boost Game'
DEFAULT_CURRENCY = 'USD'


class PayPalService:
    """
    Creates PayPal orders and subscriptions and records them as pending.

    The user finishes checkout in a browser; the webhook handler moves the
    records on from there.
    """

    def __init__(self, config, provider, store, provisioner=None):
        self.config = config
        self.paypal = provider
        self.store = store
        self.provisioner = provisioner or PlanProvisioner(provider, store)

    # =============================================================================
    # ONE-TIME PAYMENTS
    # =============================================================================

    def create_one_time_payment(self, user_id, amount, game_id=None, description=None):
        """
        Create a PayPal order for a boost purchase

        Args:
            user_id: authenticated user
            amount: price, must be > 0
            game_id: game being boosted (optional)
            description: purchase unit description (defaults to "Boost Game")

        Returns:
            dict: order_id and approval_url
        """
        value = to_decimal(amount)
        if value is not None:
            # PayPal charges whole cents
            try:
                value = round_amount(value)
            except InvalidOperation:
                value = None
        if value is None or value <= 0:
            raise InvalidArgument('Invalid amount')

        description = description or DEFAULT_PAYMENT_DESCRIPTION
        logger.info(f"Creating PayPal payment for user {user_id}: {value} {DEFAULT_CURRENCY}")

        access_token = self.paypal.get_access_token()
        order = self.paypal.create_order(
            access_token,
            value,
            DEFAULT_CURRENCY,
            description,
            custom_id=game_id,
        )

        record = SubscriptionRecord(
            user_id=user_id,
            plan=PLAN_BOOST_GAME,
            status=STATUS_PENDING,
            external=OrderRef(order.id),
            amount=value,
            currency=DEFAULT_CURRENCY,
            game_id=game_id,
            description=description,
        )

        try:
            self.store.insert_subscription(record)
        except PersistenceError:
            # The PayPal order stays open upstream; it is never captured
            logger.error(f"Failed to save payment record for PayPal order {order.id}")
            logger.error(traceback.format_exc())
            raise PersistenceError('Failed to save payment record')

        return {
            'order_id': order.id,
            'approval_url': order.approval_url,
        }

    # =============================================================================
    # SUBSCRIPTIONS
    # =============================================================================

    def create_subscription(self, user_id, plan_key):
        """
        Create a PayPal subscription for a recurring plan

        Args:
            user_id: authenticated user
            plan_key: pro_player or organizer_pro

        Returns:
            dict: subscription_id and approval_url
        """
        plan_config = get_plan_config(plan_key)
        logger.info(f"Creating PayPal subscription for user {user_id}, plan {plan_key}")

        access_token = self.paypal.get_access_token()
        paypal_plan_id = self.provisioner.ensure_plan_provisioned(plan_key, access_token)

        subscription = self.paypal.create_subscription(access_token, paypal_plan_id, custom_id=user_id)

        record = SubscriptionRecord(
            user_id=user_id,
            plan=plan_key,
            status=STATUS_PENDING,
            external=SubscriptionRef(subscription.id),
            amount=plan_config.amount,
            currency=plan_config.currency,
        )

        try:
            self.store.insert_subscription(record)
        except PersistenceError:
            logger.error(f"Failed to save subscription record for PayPal subscription {subscription.id}")
            logger.error(traceback.format_exc())
            raise PersistenceError('Failed to save subscription record')

        return {
            'subscription_id': subscription.id,
            'approval_url': subscription.approval_url,
        }

    # =============================================================================
    # DIAGNOSTICS
    # =============================================================================

    def check_setup(self):
        """Whether PayPal credentials are present and accepted"""
        return self.paypal.check_setup()
