import unittest

from pickup_payments.errors import InvalidArgument, UpstreamProvisioningError
from pickup_payments.models import ProvisionedPlan
from pickup_payments.plans import PLAN_CONFIGS, PlanProvisioner
from pickup_payments.providers.paypal_provider import PayPalProvider
from tests.fakes import FakeResponse, InMemoryStore, make_config, paypal_session


class PlanProvisionerTests(unittest.TestCase):
    def setUp(self):
        self.session = paypal_session()
        self.store = InMemoryStore()
        self.provisioner = PlanProvisioner(PayPalProvider(make_config(), session=self.session), self.store)

    def test_second_call_is_served_from_the_table(self):
        for plan_key in PLAN_CONFIGS:
            with self.subTest(plan_key=plan_key):
                first = self.provisioner.ensure_plan_provisioned(plan_key)
                calls_after_first = len(self.session.calls)

                second = self.provisioner.ensure_plan_provisioned(plan_key)

                self.assertEqual(first, second)
                self.assertEqual(len(self.session.calls), calls_after_first)

    def test_cold_start_creates_product_then_plan(self):
        plan_id = self.provisioner.ensure_plan_provisioned('pro_player')

        self.assertEqual(plan_id, 'P-PLAN-1')
        self.assertEqual(self.session.paths, ['/v1/oauth2/token', '/v1/catalogs/products', '/v1/billing/plans'])
        self.assertEqual(self.session.calls[2].json()['product_id'], 'PROD-1')
        stored = self.store.plans['pro_player']
        self.assertEqual((stored.paypal_product_id, stored.paypal_plan_id), ('PROD-1', 'P-PLAN-1'))

    def test_supplied_token_is_reused(self):
        self.provisioner.ensure_plan_provisioned('organizer_pro', access_token='already-have-one')

        self.assertNotIn('/v1/oauth2/token', self.session.paths)
        self.assertEqual(self.session.calls[0].headers['Authorization'], 'Bearer already-have-one')

    def test_unknown_plan(self):
        with self.assertRaises(InvalidArgument):
            self.provisioner.ensure_plan_provisioned('platinum')
        self.assertEqual(self.session.calls, [])

    def test_plan_creation_failure_stores_nothing(self):
        self.session.add('/v1/billing/plans', FakeResponse(400, {'name': 'INVALID_REQUEST'}))

        with self.assertRaises(UpstreamProvisioningError):
            self.provisioner.ensure_plan_provisioned('pro_player')
        self.assertEqual(self.store.plans, {})

    def test_concurrent_winner_is_returned(self):
        store = self.store

        class RacingStore(InMemoryStore):
            def get_provisioned_plan(self, plan_key):
                return None

            def save_provisioned_plan(self, plan):
                store.plans.setdefault(plan.plan_key, ProvisionedPlan('pro_player', 'PROD-0', 'P-WINNER'))
                return store.plans[plan.plan_key]

        provisioner = PlanProvisioner(PayPalProvider(make_config(), session=self.session), RacingStore())

        self.assertEqual(provisioner.ensure_plan_provisioned('pro_player'), 'P-WINNER')


if __name__ == '__main__':
    unittest.main()
