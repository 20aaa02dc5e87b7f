"""
Pickup Games Payments

PayPal checkout, subscription provisioning and webhook reconciliation for
the pickup games app, served as a Flask application.
"""

__version__ = '1.0.0'

from dotenv import load_dotenv
from flask import Flask

from .config import PaymentConfig, setup_logging
from .db import DatabaseManager, SubscriptionStore
from .auth import AuthClient
from .providers.paypal_provider import PayPalProvider
from .plans import PlanProvisioner
from .paypal_service import PayPalService
from .status import SubscriptionStatusService
from .webhooks.paypal_handler import PayPalWebhookHandler
from .routes import init_payment_routes


def init_payment_gateway(app, config=None, store=None, provider=None, auth_client=None,
                         init_tables=False):
    """
    Build every component once and register the routes on a Flask app

    Args:
        app: Flask application
        config: PaymentConfig (read from the environment when omitted)
        store: SubscriptionStore (MySQL-backed when omitted)
        provider: PayPalProvider
        auth_client: AuthClient
        init_tables: create the database tables on startup

    Returns:
        dict of the constructed services
    """
    config = config or PaymentConfig.from_env()

    if store is None:
        db = DatabaseManager(config.db_config)
        if init_tables:
            db.init_tables()
        store = SubscriptionStore(db)

    provider = provider or PayPalProvider(config)
    auth_client = auth_client or AuthClient(config)

    provisioner = PlanProvisioner(provider, store)
    paypal_service = PayPalService(config, provider, store, provisioner)
    webhook_handler = PayPalWebhookHandler(config, provider, store)
    status_service = SubscriptionStatusService(store)

    init_payment_routes(app, paypal_service, webhook_handler, status_service, auth_client)

    services = {
        'config': config,
        'store': store,
        'paypal_service': paypal_service,
        'webhook_handler': webhook_handler,
        'status_service': status_service,
    }
    app.extensions['pickup_payments'] = services
    return services


def create_app(config=None, **components):
    """Flask application factory"""
    load_dotenv()
    setup_logging()

    app = Flask(__name__)
    init_payment_gateway(app, config=config, **components)
    return app


__all__ = [
    'PaymentConfig',
    'DatabaseManager',
    'SubscriptionStore',
    'AuthClient',
    'PayPalProvider',
    'PlanProvisioner',
    'PayPalService',
    'SubscriptionStatusService',
    'PayPalWebhookHandler',
    'init_payment_routes',
    'init_payment_gateway',
    'create_app',
]
