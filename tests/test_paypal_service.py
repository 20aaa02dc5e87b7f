import unittest
from decimal import Decimal

from pickup_payments.errors import InvalidArgument, PersistenceError, UpstreamError
from pickup_payments.models import OrderRef, SubscriptionRef
from pickup_payments.paypal_service import PayPalService
from pickup_payments.providers.paypal_provider import PayPalProvider
from tests.fakes import FakeResponse, InMemoryStore, USER_ID, make_config, paypal_session


class PayPalServiceTestCase(unittest.TestCase):
    def setUp(self):
        self.config = make_config()
        self.session = paypal_session()
        self.store = InMemoryStore()
        self.service = PayPalService(self.config, PayPalProvider(self.config, session=self.session), self.store)


class OneTimePaymentTests(PayPalServiceTestCase):
    def test_non_positive_amounts_make_no_calls(self):
        for amount in (0, -1, -4.99, '0.00', '-3', None, 'abc', True, float('nan')):
            with self.subTest(amount=amount):
                with self.assertRaises(InvalidArgument):
                    self.service.create_one_time_payment(USER_ID, amount)
        self.assertEqual(self.session.calls, [])
        self.assertEqual(self.store.records, [])

    def test_sub_cent_amounts_are_invalid(self):
        for amount in (0.004, '0.0049', Decimal('0.001')):
            with self.subTest(amount=amount):
                with self.assertRaises(InvalidArgument):
                    self.service.create_one_time_payment(USER_ID, amount)
        self.assertEqual(self.session.calls, [])

    def test_amount_is_rounded_to_cents(self):
        self.service.create_one_time_payment(USER_ID, '4.995')

        order = [c for c in self.session.calls if c.path == '/v2/checkout/orders'][0].json()
        self.assertEqual(order['purchase_units'][0]['amount']['value'], '5.00')
        self.assertEqual(self.store.records[0].amount, Decimal('5.00'))

    def test_boost_payment_is_recorded_pending(self):
        result = self.service.create_one_time_payment(USER_ID, 4.99, game_id='game-7')

        self.assertEqual(result['order_id'], 'ORDER-1')
        self.assertTrue(result['approval_url'].endswith('token=ORDER-1'))

        record = self.store.records[0]
        self.assertEqual(record.plan, 'boost_game')
        self.assertEqual(record.status, 'pending')
        self.assertEqual(record.external, OrderRef('ORDER-1'))
        self.assertIsNone(record.paypal_subscription_id)
        self.assertEqual(record.amount, Decimal('4.99'))
        self.assertEqual(record.currency, 'USD')
        self.assertEqual(record.description, 'Boost Game')
        self.assertEqual(record.game_id, 'game-7')

    def test_persistence_failure_is_surfaced(self):
        self.store.fail_inserts = True

        with self.assertRaises(PersistenceError) as ctx:
            self.service.create_one_time_payment(USER_ID, '4.99')
        self.assertEqual(ctx.exception.message, 'Failed to save payment record')
        self.assertIn('/v2/checkout/orders', self.session.paths)

    def test_upstream_failure_records_nothing(self):
        self.session.add('/v2/checkout/orders', FakeResponse(500, {'message': 'Internal error'}))

        with self.assertRaises(UpstreamError):
            self.service.create_one_time_payment(USER_ID, 4.99)
        self.assertEqual(self.store.records, [])


class SubscriptionTests(PayPalServiceTestCase):
    def test_organizer_pro_subscription(self):
        result = self.service.create_subscription(USER_ID, 'organizer_pro')

        self.assertEqual(result['subscription_id'], 'I-SUB-1')
        self.assertTrue(result['approval_url'].endswith('token=I-SUB-1'))

        record = self.store.records[0]
        self.assertEqual(record.plan, 'organizer_pro')
        self.assertEqual(record.status, 'pending')
        self.assertEqual(record.external, SubscriptionRef('I-SUB-1'))
        self.assertIsNone(record.paypal_order_id)
        self.assertEqual(record.amount, Decimal('19.99'))
        self.assertEqual(record.currency, 'USD')
        self.assertIsNone(record.expires_at)

        body = self.session.calls[-1].json()
        self.assertEqual(body['plan_id'], 'P-PLAN-1')
        self.assertEqual(body['custom_id'], USER_ID)
        self.assertEqual(body['application_context']['user_action'], 'SUBSCRIBE_NOW')

    def test_one_token_per_request(self):
        self.service.create_subscription(USER_ID, 'pro_player')
        self.assertEqual(self.session.paths.count('/v1/oauth2/token'), 1)

        self.service.create_subscription(USER_ID, 'pro_player')
        self.assertEqual(self.session.paths.count('/v1/oauth2/token'), 2)
        self.assertEqual(self.session.paths.count('/v1/catalogs/products'), 1)

    def test_invalid_plan(self):
        for plan in ('boost_game', 'gold', None, ''):
            with self.subTest(plan=plan):
                with self.assertRaises(InvalidArgument):
                    self.service.create_subscription(USER_ID, plan)
        self.assertEqual(self.session.calls, [])

    def test_provisioning_failure_creates_no_record(self):
        self.session.add('/v1/catalogs/products', FakeResponse(403, {'name': 'NOT_AUTHORIZED'}))

        with self.assertRaises(UpstreamError):
            self.service.create_subscription(USER_ID, 'pro_player')
        self.assertEqual(self.store.records, [])
        self.assertNotIn('/v1/billing/subscriptions', self.session.paths)


class SetupCheckTests(PayPalServiceTestCase):
    def test_reports_token_grant(self):
        result = self.service.check_setup()

        self.assertTrue(result['success'])
        self.assertEqual(self.session.paths, ['/v1/oauth2/token'])

    def test_rejected_credentials(self):
        self.session.add('/v1/oauth2/token', FakeResponse(401, {'error': 'invalid_client'}))

        result = self.service.check_setup()

        self.assertFalse(result['success'])
        self.assertTrue(result['details']['credentials_configured'])


if __name__ == '__main__':
    unittest.main()
