"""
PayPal REST API provider
"""
import base64
import json
import logging

import requests

from ..errors import (
    ConfigurationError, UpstreamError, UpstreamAuthError, UpstreamProvisioningError
)
from ..schemas import AccessToken, PayPalResource, WebhookVerification, describe_paypal_error
from ..utils.helpers import format_amount

logger = logging.getLogger('pickup_payments')

WEBHOOK_SIGNATURE_HEADERS = (
    'PAYPAL-TRANSMISSION-ID',
    'PAYPAL-TRANSMISSION-TIME',
    'PAYPAL-CERT-URL',
    'PAYPAL-AUTH-ALGO',
    'PAYPAL-TRANSMISSION-SIG',
)


class PayPalProvider:
    """
    Thin client over the PayPal REST endpoints the service uses.

    No token is cached: callers ask for a fresh one per orchestration.
    """

    def __init__(self, config, session=None):
        """
        Args:
            config: PaymentConfig
            session: requests.Session (or compatible) used for every call
        """
        self.config = config
        self.base_url = config.paypal_base_url
        self.timeout = config.paypal_timeout_seconds
        self.session = session or requests.Session()

    # =============================================================================
    # TRANSPORT
    # =============================================================================

    def _post(self, endpoint, headers, **kwargs):
        url = f"{self.base_url}{endpoint}"
        try:
            return self.session.post(url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.Timeout:
            logger.error(f"PayPal request timed out: POST {endpoint}")
            raise UpstreamError(f"PayPal request timed out ({endpoint})")
        except requests.RequestException as e:
            logger.error(f"PayPal request failed: POST {endpoint}: {str(e)}")
            raise UpstreamError(f"PayPal request failed: {str(e)}")

    def _json_headers(self, access_token):
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

    @staticmethod
    def _decode(response, what):
        try:
            return response.json()
        except ValueError:
            raise UpstreamError(f"PayPal {what} response is not JSON", details=response.text)

    @staticmethod
    def _ok(response):
        return 200 <= response.status_code < 300

    # =============================================================================
    # ACCESS TOKEN
    # =============================================================================

    def get_access_token(self):
        """
        Client-credentials OAuth grant

        Returns:
            str: bearer token

        Raises:
            ConfigurationError: client id or secret not configured
            UpstreamAuthError: PayPal refused the grant
        """
        if not self.config.has_paypal_credentials:
            raise ConfigurationError('PayPal credentials not configured')

        auth = base64.b64encode(
            f"{self.config.paypal_client_id}:{self.config.paypal_client_secret}".encode()
        ).decode()

        headers = {
            "Accept": "application/json",
            "Accept-Language": "en_US",
            "Authorization": f"Basic {auth}",
            "Content-Type": "application/x-www-form-urlencoded",
        }

        response = self._post("/v1/oauth2/token", headers, data="grant_type=client_credentials")

        if not self._ok(response):
            logger.error(f"Failed to get PayPal access token: {response.status_code} {response.text}")
            raise UpstreamAuthError(f"PayPal OAuth failed: {response.text}", details=response.text)

        token = AccessToken.from_json(self._decode(response, 'OAuth token'))
        logger.debug("PayPal access token obtained")
        return token.access_token

    # =============================================================================
    # CATALOG / BILLING PLANS
    # =============================================================================

    def create_product(self, access_token, plan_config):
        """Create the catalog product backing a plan; returns the product id"""
        response = self._post(
            "/v1/catalogs/products",
            self._json_headers(access_token),
            data=json.dumps({
                "name": plan_config.name,
                "description": plan_config.description,
                "type": "SERVICE",
                "category": "SOFTWARE",
            }),
        )
        if not self._ok(response):
            logger.error(f"PayPal product creation failed: {response.status_code} {response.text}")
            raise UpstreamProvisioningError(
                f"Failed to create PayPal product: {response.text}", details=response.text
            )
        return PayPalResource.from_json(self._decode(response, 'product'), 'product').id

    def create_billing_plan(self, access_token, product_id, plan_config):
        """Create a fixed-price, never-ending billing plan; returns the plan id"""
        plan_data = {
            "product_id": product_id,
            "name": plan_config.billing_plan_name,
            "description": plan_config.description,
            "billing_cycles": [
                {
                    "frequency": {
                        "interval_unit": plan_config.interval,
                        "interval_count": 1,
                    },
                    "tenure_type": "REGULAR",
                    "sequence": 1,
                    "total_cycles": 0,
                    "pricing_scheme": {
                        "fixed_price": {
                            "value": format_amount(plan_config.amount),
                            "currency_code": plan_config.currency,
                        },
                    },
                },
            ],
            "payment_preferences": {
                "auto_bill_outstanding": True,
                "payment_failure_threshold": 3,
            },
        }
        response = self._post("/v1/billing/plans", self._json_headers(access_token), data=json.dumps(plan_data))
        if not self._ok(response):
            logger.error(f"PayPal billing plan creation failed: {response.status_code} {response.text}")
            raise UpstreamProvisioningError(
                f"Failed to create PayPal billing plan: {response.text}", details=response.text
            )
        return PayPalResource.from_json(self._decode(response, 'billing plan'), 'billing plan').id

    # =============================================================================
    # ORDERS
    # =============================================================================

    def create_order(self, access_token, amount, currency, description, custom_id=None):
        """
        Create a CAPTURE-intent order for a one-time payment

        Returns:
            PayPalResource: order with its approval link
        """
        purchase_unit = {
            "description": description,
            "amount": {
                "currency_code": currency,
                "value": format_amount(amount),
            },
        }
        if custom_id:
            purchase_unit["custom_id"] = custom_id

        order_data = {
            "intent": "CAPTURE",
            "purchase_units": [purchase_unit],
            "application_context": {
                "brand_name": self.config.paypal_brand_name,
                "locale": "en-US",
                "landing_page": "NO_PREFERENCE",
                "shipping_preference": "NO_SHIPPING",
                "user_action": "PAY_NOW",
                "return_url": self.config.get_paypal_return_url(),
                "cancel_url": self.config.get_paypal_cancel_url(),
            },
        }

        logger.info(f"Creating PayPal order for {format_amount(amount)} {currency}")
        response = self._post("/v2/checkout/orders", self._json_headers(access_token), data=json.dumps(order_data))

        if not self._ok(response):
            logger.error(f"PayPal order creation failed: {response.status_code} {response.text}")
            raise UpstreamError(describe_paypal_error(response.text), details=response.text)

        order = PayPalResource.from_json(self._decode(response, 'order'), 'order')
        if not order.approval_url:
            raise UpstreamError('No approval URL returned from PayPal', details=order.raw)
        return order

    def capture_order(self, access_token, order_id):
        """Capture an approved order"""
        logger.info(f"Capturing PayPal order: {order_id}")
        response = self._post(f"/v2/checkout/orders/{order_id}/capture", self._json_headers(access_token))
        if not self._ok(response):
            logger.error(f"PayPal order capture failed: {response.status_code} {response.text}")
            raise UpstreamError(describe_paypal_error(response.text), details=response.text)
        return PayPalResource.from_json(self._decode(response, 'capture'), 'capture')

    # =============================================================================
    # SUBSCRIPTIONS
    # =============================================================================

    def create_subscription(self, access_token, paypal_plan_id, custom_id=None):
        """
        Create a subscription the payer must approve ("SUBSCRIBE_NOW")

        Returns:
            PayPalResource: subscription with its approval link
        """
        subscription_data = {
            "plan_id": paypal_plan_id,
            "application_context": {
                "brand_name": self.config.paypal_brand_name,
                "locale": "en-US",
                "shipping_preference": "NO_SHIPPING",
                "user_action": "SUBSCRIBE_NOW",
                "return_url": self.config.get_paypal_return_url(),
                "cancel_url": self.config.get_paypal_cancel_url(),
            },
        }
        if custom_id:
            subscription_data["custom_id"] = custom_id

        logger.info(f"Creating PayPal subscription with plan {paypal_plan_id}")
        response = self._post(
            "/v1/billing/subscriptions", self._json_headers(access_token), data=json.dumps(subscription_data)
        )

        if not self._ok(response):
            logger.error(f"PayPal subscription creation failed: {response.status_code} {response.text}")
            raise UpstreamError(describe_paypal_error(response.text), details=response.text)

        subscription = PayPalResource.from_json(self._decode(response, 'subscription'), 'subscription')
        if not subscription.approval_url:
            raise UpstreamError('No approval URL returned from PayPal', details=subscription.raw)

        logger.info(f"PayPal subscription created: {subscription.id}")
        return subscription

    # =============================================================================
    # WEBHOOKS
    # =============================================================================

    def verify_webhook_signature(self, access_token, webhook_id, transmission, webhook_event):
        """
        Ask PayPal whether a webhook delivery is authentic

        Args:
            access_token: fresh bearer token
            webhook_id: id of the webhook registered in the PayPal dashboard
            transmission: dict of the five PAYPAL-* transmission headers
            webhook_event: parsed event body

        Returns:
            bool: True only for verification_status == SUCCESS
        """
        verify_data = {
            "transmission_id": transmission['PAYPAL-TRANSMISSION-ID'],
            "transmission_time": transmission['PAYPAL-TRANSMISSION-TIME'],
            "cert_url": transmission['PAYPAL-CERT-URL'],
            "auth_algo": transmission['PAYPAL-AUTH-ALGO'],
            "transmission_sig": transmission['PAYPAL-TRANSMISSION-SIG'],
            "webhook_id": webhook_id,
            "webhook_event": webhook_event,
        }
        response = self._post(
            "/v1/notifications/verify-webhook-signature",
            self._json_headers(access_token),
            data=json.dumps(verify_data),
        )
        if not self._ok(response):
            logger.error(f"PayPal webhook verification call failed: {response.status_code} {response.text}")
            return False

        verification = WebhookVerification.from_json(self._decode(response, 'webhook verification'))
        if not verification.is_success:
            logger.warning(f"PayPal webhook verification status: {verification.verification_status}")
        return verification.is_success

    # =============================================================================
    # DIAGNOSTICS
    # =============================================================================

    def check_setup(self):
        """
        Report whether PayPal is usable with the current configuration

        Returns:
            dict: success flag, message and details
        """
        details = {
            'base_url': self.base_url,
            'credentials_configured': self.config.has_paypal_credentials,
            'webhook_id_configured': bool(self.config.paypal_webhook_id),
            'webhook_verification_skipped': (
                not self.config.paypal_webhook_id and self.config.paypal_webhook_skip_verification
            ),
        }
        try:
            self.get_access_token()
        except (ConfigurationError, UpstreamError) as e:
            return {'success': False, 'message': e.message, 'details': details}

        return {'success': True, 'message': 'PayPal is configured correctly!', 'details': details}
