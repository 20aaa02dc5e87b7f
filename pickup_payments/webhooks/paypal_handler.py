"""
PayPal webhook verification and subscription state reconciliation
"""
import json
import logging
import traceback
from datetime import timedelta

from ..errors import ConfigurationError, UpstreamError
from ..models import STATUS_ACTIVE, STATUS_CANCELLED, STATUS_COMPLETED, STATUS_PENDING
from ..providers.paypal_provider import WEBHOOK_SIGNATURE_HEADERS
from ..schemas import WebhookEvent
from ..utils.helpers import parse_paypal_datetime, utc_now

logger = logging.getLogger('pickup_payments')

EVENT_SUBSCRIPTION_ACTIVATED = 'BILLING.SUBSCRIPTION.ACTIVATED'
EVENT_SUBSCRIPTION_CANCELLED = 'BILLING.SUBSCRIPTION.CANCELLED'
EVENT_SUBSCRIPTION_EXPIRED = 'BILLING.SUBSCRIPTION.EXPIRED'
EVENT_PAYMENT_CAPTURE_COMPLETED = 'PAYMENT.CAPTURE.COMPLETED'
EVENT_CHECKOUT_ORDER_APPROVED = 'CHECKOUT.ORDER.APPROVED'


def extract_transmission_headers(headers):
    """
    Pick the five PAYPAL-* signature headers out of the request headers

    Returns:
        dict keyed by upper-case header name, or None if any is missing
    """
    normalized = {str(key).upper(): value for key, value in headers.items()}
    transmission = {name: normalized.get(name) for name in WEBHOOK_SIGNATURE_HEADERS}
    if not all(transmission.values()):
        return None
    return transmission


def verify_paypal_webhook_signature(headers, webhook_event, provider, config):
    """
    Verify a webhook delivery through PayPal's verify-webhook-signature API

    Args:
        headers: request headers (any mapping)
        webhook_event: parsed event body
        provider: PayPalProvider
        config: PaymentConfig

    Returns:
        bool: True when the event may be processed
    """
    webhook_id = config.paypal_webhook_id
    if not webhook_id:
        if config.paypal_webhook_skip_verification:
            logger.warning("PayPal webhook ID not configured, skipping verification")
            return True
        logger.error("PayPal webhook ID not configured and verification skip not enabled")
        return False

    transmission = extract_transmission_headers(headers)
    if transmission is None:
        logger.warning("Missing PayPal webhook signature headers")
        return False

    try:
        access_token = provider.get_access_token()
        return provider.verify_webhook_signature(access_token, webhook_id, transmission, webhook_event)
    except (ConfigurationError, UpstreamError) as e:
        logger.error(f"PayPal webhook verification failed: {e.message}")
        return False


class PayPalWebhookHandler:
    """
    Applies PayPal lifecycle events to local subscription records.

    States: pending -> active -> cancelled for subscriptions, pending ->
    completed for one-time orders. Events for records we do not know are
    acknowledged and ignored.
    """

    def __init__(self, config, provider, store, now_func=None):
        self.config = config
        self.paypal = provider
        self.store = store
        self.now = now_func or utc_now

    def process_event(self, event):
        """
        Process one verified webhook event

        Args:
            event: WebhookEvent

        Returns:
            dict: processing result (always a success from PayPal's point of view)
        """
        if event.id and self.store.is_event_processed(event.id):
            logger.info(f"PayPal event {event.id} already processed")
            return {'status': 'already_processed'}

        user_id = self._extract_user_id(event)
        self.store.log_event(event.event_type, event.resource_id, user_id, event.raw, processed=False)

        result = self._dispatch(event)

        if event.id:
            self.store.mark_event_processed(event.id)
        self.store.log_event(f"{event.event_type}_processed", event.resource_id, user_id, result, processed=True)

        return result

    def _dispatch(self, event):
        """Route PayPal webhook events to appropriate handlers"""
        event_type = event.event_type
        logger.info(f"Processing PayPal webhook: {event_type}, ID: {event.id}")

        if event_type == EVENT_SUBSCRIPTION_ACTIVATED:
            return self._handle_subscription_activated(event)
        elif event_type in (EVENT_SUBSCRIPTION_CANCELLED, EVENT_SUBSCRIPTION_EXPIRED):
            return self._handle_subscription_cancelled(event)
        elif event_type == EVENT_PAYMENT_CAPTURE_COMPLETED:
            return self._handle_payment_capture_completed(event)
        elif event_type == EVENT_CHECKOUT_ORDER_APPROVED:
            return self._handle_order_approved(event)
        else:
            logger.info(f"Unhandled PayPal event type: {event_type}")
            return {'status': 'ignored', 'message': f'Unhandled event type: {event_type}'}

    # =============================================================================
    # SUBSCRIPTION EVENTS
    # =============================================================================

    def _handle_subscription_activated(self, event):
        """
        BILLING.SUBSCRIPTION.ACTIVATED: entitle until the next billing time

        Uses resource.billing_info.next_billing_time when it lies in the
        future, otherwise now + renewal_window_days.
        """
        expires_at = parse_paypal_datetime(event.next_billing_time)
        if expires_at is None or expires_at <= self.now():
            expires_at = self._renewal_expiry()
        return self._activate(event.resource_id, expires_at)

    def _handle_subscription_cancelled(self, event):
        """BILLING.SUBSCRIPTION.CANCELLED / EXPIRED: no longer entitled"""
        paypal_subscription_id = event.resource_id
        if not paypal_subscription_id:
            return {'status': 'ignored', 'reason': 'missing_subscription_id'}

        if self.store.get_by_subscription_id(paypal_subscription_id) is None:
            logger.warning(f"Subscription not found for PayPal ID: {paypal_subscription_id}")
            return {'status': 'ignored', 'reason': 'record_not_found'}

        self.store.update_status_by_subscription_id(paypal_subscription_id, STATUS_CANCELLED)
        logger.info(f"PayPal subscription cancelled: {paypal_subscription_id}")
        return {'status': 'success', 'subscription_id': paypal_subscription_id, 'new_status': STATUS_CANCELLED}

    def _activate(self, paypal_subscription_id, expires_at):
        if not paypal_subscription_id:
            return {'status': 'ignored', 'reason': 'missing_subscription_id'}

        if self.store.get_by_subscription_id(paypal_subscription_id) is None:
            logger.warning(f"Subscription not found for PayPal ID: {paypal_subscription_id}")
            return {'status': 'ignored', 'reason': 'record_not_found'}

        self.store.update_status_by_subscription_id(paypal_subscription_id, STATUS_ACTIVE, expires_at=expires_at)
        logger.info(f"PayPal subscription activated: {paypal_subscription_id} until {expires_at.isoformat()}")
        return {
            'status': 'success',
            'subscription_id': paypal_subscription_id,
            'new_status': STATUS_ACTIVE,
            'expires_at': expires_at.isoformat(),
        }

    # =============================================================================
    # PAYMENT EVENTS
    # =============================================================================

    def _handle_payment_capture_completed(self, event):
        """
        PAYMENT.CAPTURE.COMPLETED: a renewal when the capture carries a
        billing agreement, otherwise a finished one-time order
        """
        if event.billing_agreement_id:
            logger.info(f"Renewal payment for PayPal subscription {event.billing_agreement_id}")
            return self._activate(event.billing_agreement_id, self._renewal_expiry())

        order_id = event.order_id
        if not order_id:
            logger.warning(f"No order id in payment capture {event.resource_id}")
            return {'status': 'ignored', 'reason': 'no_order_id'}

        if self.store.get_by_order_id(order_id) is None:
            logger.warning(f"No payment record for PayPal order {order_id}")
            return {'status': 'ignored', 'reason': 'record_not_found'}

        self.store.update_status_by_order_id(order_id, STATUS_COMPLETED)
        logger.info(f"PayPal order completed: {order_id}")
        return {'status': 'success', 'order_id': order_id, 'new_status': STATUS_COMPLETED}

    def _handle_order_approved(self, event):
        """CHECKOUT.ORDER.APPROVED: capture our pending orders so the capture event follows"""
        order_id = event.resource_id
        record = self.store.get_by_order_id(order_id) if order_id else None
        if record is None or record.status != STATUS_PENDING:
            return {'status': 'ignored', 'reason': 'no_pending_order'}

        try:
            access_token = self.paypal.get_access_token()
            capture = self.paypal.capture_order(access_token, order_id)
        except (ConfigurationError, UpstreamError) as e:
            # The delivery is still acknowledged with a 200
            logger.error(f"Error capturing approved PayPal order {order_id}: {e.message}")
            return {'status': 'capture_failed', 'order_id': order_id, 'error': e.message}

        logger.info(f"Captured approved PayPal order {order_id}: {capture.status}")
        return {'status': 'success', 'order_id': order_id, 'capture_status': capture.status}

    # =============================================================================
    # HELPERS
    # =============================================================================

    def _renewal_expiry(self):
        return self.now() + timedelta(days=self.config.renewal_window_days)

    @staticmethod
    def _extract_user_id(event):
        # custom_id carries the user id on subscriptions we create
        if event.event_type.startswith('BILLING.SUBSCRIPTION.'):
            return event.resource.get('custom_id') or None
        return None


def handle_paypal_webhook(handler, headers, body):
    """
    Verify and process one PayPal webhook delivery

    Args:
        handler: PayPalWebhookHandler
        headers: request headers
        body: raw request body (bytes or str)

    Returns:
        tuple: response dict and status code
    """
    try:
        if isinstance(body, bytes):
            body = body.decode('utf-8')
        webhook_data = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error(f"Invalid JSON in PayPal webhook: {str(e)}")
        return {'success': False, 'error': 'Invalid JSON payload'}, 400

    if not verify_paypal_webhook_signature(headers, webhook_data, handler.paypal, handler.config):
        logger.error("Invalid PayPal webhook signature")
        return {'success': False, 'error': 'Invalid signature'}, 401

    try:
        event = WebhookEvent.from_json(webhook_data)
    except ValueError as e:
        logger.warning(f"Ignoring malformed PayPal webhook: {str(e)}")
        return {'success': True}, 200

    try:
        handler.process_event(event)
    except Exception as e:
        logger.error(f"Error handling PayPal webhook {event.event_type}: {str(e)}")
        logger.error(traceback.format_exc())
        return {'success': False, 'error': str(e)}, 500

    return {'success': True}, 200
