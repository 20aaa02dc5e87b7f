import base64
import unittest
from decimal import Decimal

import requests

from pickup_payments.errors import (
    ConfigurationError, UpstreamAuthError, UpstreamError, UpstreamProvisioningError
)
from pickup_payments.plans import PLAN_CONFIGS
from pickup_payments.providers.paypal_provider import PayPalProvider
from tests.fakes import FakeResponse, FakeSession, TOKEN, make_config, paypal_session


class AccessTokenTests(unittest.TestCase):
    def test_client_credentials_grant(self):
        session = paypal_session()
        provider = PayPalProvider(make_config(), session=session)

        self.assertEqual(provider.get_access_token(), TOKEN)

        call = session.calls[0]
        self.assertEqual(call.url, 'https://api-m.sandbox.paypal.com/v1/oauth2/token')
        expected = base64.b64encode(b'client-id:client-secret').decode()
        self.assertEqual(call.headers['Authorization'], f'Basic {expected}')
        self.assertEqual(call.kwargs['data'], 'grant_type=client_credentials')

    def test_missing_credentials_makes_no_call(self):
        session = paypal_session()
        provider = PayPalProvider(make_config(paypal_client_secret=''), session=session)

        with self.assertRaises(ConfigurationError):
            provider.get_access_token()
        self.assertEqual(session.calls, [])

    def test_rejected_grant(self):
        session = FakeSession().add('/v1/oauth2/token', FakeResponse(401, {'error': 'invalid_client'}))
        provider = PayPalProvider(make_config(), session=session)

        with self.assertRaises(UpstreamAuthError) as ctx:
            provider.get_access_token()
        self.assertIn('invalid_client', ctx.exception.message)

    def test_timeout_becomes_upstream_error(self):
        session = FakeSession().add('/v1/oauth2/token', requests.Timeout('read timed out'))
        provider = PayPalProvider(make_config(), session=session)

        with self.assertRaises(UpstreamError):
            provider.get_access_token()

    def test_token_response_without_access_token(self):
        session = FakeSession().add('/v1/oauth2/token', FakeResponse(200, {'token_type': 'Bearer'}))
        provider = PayPalProvider(make_config(), session=session)

        with self.assertRaises(UpstreamError):
            provider.get_access_token()


class OrderTests(unittest.TestCase):
    def test_order_body(self):
        session = paypal_session()
        provider = PayPalProvider(make_config(), session=session)

        order = provider.create_order(TOKEN, Decimal('4.9'), 'USD', 'Boost Game', custom_id='game-7')

        self.assertEqual(order.id, 'ORDER-1')
        self.assertEqual(order.approval_url, 'https://www.sandbox.paypal.com/checkoutnow?token=ORDER-1')
        body = session.calls[0].json()
        self.assertEqual(body['intent'], 'CAPTURE')
        unit = body['purchase_units'][0]
        self.assertEqual(unit['amount'], {'currency_code': 'USD', 'value': '4.90'})
        self.assertEqual(unit['custom_id'], 'game-7')
        self.assertEqual(body['application_context']['return_url'], 'pickupgames://app/payment-success')
        self.assertEqual(body['application_context']['cancel_url'], 'pickupgames://app/payment-cancelled')

    def test_order_without_approve_link(self):
        session = FakeSession().add('/v2/checkout/orders', FakeResponse(201, {
            'id': 'ORDER-2', 'links': [{'href': 'https://example.test/self', 'rel': 'self'}],
        }))
        provider = PayPalProvider(make_config(), session=session)

        with self.assertRaises(UpstreamError) as ctx:
            provider.create_order(TOKEN, Decimal('4.99'), 'USD', 'Boost Game')
        self.assertEqual(ctx.exception.message, 'No approval URL returned from PayPal')


class SubscriptionErrorMessageTests(unittest.TestCase):
    def _create_with_error(self, response):
        session = FakeSession().add('/v1/billing/subscriptions', response)
        provider = PayPalProvider(make_config(), session=session)
        with self.assertRaises(UpstreamError) as ctx:
            provider.create_subscription(TOKEN, 'P-PLAN-1')
        return ctx.exception.message

    def test_first_detail_is_used(self):
        message = self._create_with_error(FakeResponse(422, {
            'name': 'UNPROCESSABLE_ENTITY',
            'message': 'The requested action could not be performed.',
            'details': [{'issue': 'SUBSCRIPTION_STATUS_INVALID', 'description': 'Plan is inactive.'}],
        }))
        self.assertEqual(message, 'PayPal Error: SUBSCRIPTION_STATUS_INVALID. Plan is inactive.')

    def test_message_without_details(self):
        message = self._create_with_error(FakeResponse(400, {'message': 'Request is not well-formed.'}))
        self.assertEqual(message, 'PayPal Error: Request is not well-formed.')

    def test_non_json_body(self):
        message = self._create_with_error(FakeResponse(502, text='<html>Bad Gateway</html>'))
        self.assertEqual(message, 'PayPal Error: <html>Bad Gateway</html>')


class ProvisioningCallTests(unittest.TestCase):
    def test_billing_plan_pricing_scheme(self):
        session = paypal_session()
        provider = PayPalProvider(make_config(), session=session)

        provider.create_billing_plan(TOKEN, 'PROD-1', PLAN_CONFIGS['organizer_pro'])

        body = session.calls[0].json()
        self.assertEqual(body['name'], 'Organizer Pro Monthly')
        cycle = body['billing_cycles'][0]
        self.assertEqual(cycle['frequency'], {'interval_unit': 'MONTH', 'interval_count': 1})
        self.assertEqual(cycle['total_cycles'], 0)
        self.assertEqual(cycle['pricing_scheme']['fixed_price'], {'value': '19.99', 'currency_code': 'USD'})
        self.assertEqual(body['payment_preferences'], {'auto_bill_outstanding': True, 'payment_failure_threshold': 3})

    def test_product_failure_keeps_body(self):
        session = FakeSession().add('/v1/catalogs/products', FakeResponse(500, text='{"name":"INTERNAL_SERVER_ERROR"}'))
        provider = PayPalProvider(make_config(), session=session)

        with self.assertRaises(UpstreamProvisioningError) as ctx:
            provider.create_product(TOKEN, PLAN_CONFIGS['pro_player'])
        self.assertIn('INTERNAL_SERVER_ERROR', ctx.exception.details)


class CheckSetupTests(unittest.TestCase):
    def test_reports_missing_credentials(self):
        provider = PayPalProvider(make_config(paypal_client_id=''), session=FakeSession())

        result = provider.check_setup()

        self.assertFalse(result['success'])
        self.assertFalse(result['details']['credentials_configured'])

    def test_success(self):
        provider = PayPalProvider(make_config(), session=paypal_session())
        self.assertTrue(provider.check_setup()['success'])


if __name__ == '__main__':
    unittest.main()
