"""
Configuration for the pickup payments package.
"""
import os
import logging
from dataclasses import dataclass, field

from .errors import ConfigurationError


def setup_logging(name='pickup_payments'):
    """Set up logging for the payments service"""
    # Get log level from environment variable
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, None)
    if not isinstance(log_level, int):
        log_level = logging.INFO  # Fallback if invalid level provided

    logger = logging.getLogger(name)

    # Check if logger already has handlers to avoid duplicates
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(log_level)
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(log_level)

    return logger

logger = setup_logging('pickup_payments')

PAYPAL_SANDBOX_URL = 'https://api-m.sandbox.paypal.com'
PAYPAL_LIVE_URL = 'https://api-m.paypal.com'

# Database table names
DB_TABLE_PAYPAL_PLANS = 'paypal_plans'
DB_TABLE_SUBSCRIPTIONS = 'subscriptions'
DB_TABLE_SUBSCRIPTION_EVENTS = 'subscription_events_log'
DB_TABLE_WEBHOOK_EVENTS = 'webhook_events_processed'

DEFAULT_RENEWAL_WINDOW_DAYS = 30
DEFAULT_TIMEOUT_SECONDS = 10


def _env_flag(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_number(name, default, cast=int):
    value = os.getenv(name)
    if value in (None, ''):
        return default
    try:
        return cast(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}")


@dataclass
class PaymentConfig:
    """
    Settings shared by every component of the service.

    Built once at process start (see ``from_env``) and handed to each
    component explicitly.
    """
    flask_env: str = 'development'
    paypal_client_id: str = ''
    paypal_client_secret: str = ''
    paypal_base_url: str = PAYPAL_SANDBOX_URL
    paypal_webhook_id: str = ''
    paypal_webhook_skip_verification: bool = False
    paypal_brand_name: str = 'Pickup Games'
    paypal_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    app_url: str = 'exp://localhost:8081'
    supabase_url: str = ''
    supabase_anon_key: str = ''
    renewal_window_days: int = DEFAULT_RENEWAL_WINDOW_DAYS
    db_config: dict = field(default_factory=dict)

    @classmethod
    def from_env(cls):
        """Read configuration from environment variables"""
        flask_env = os.getenv('FLASK_ENV', 'development')

        # PayPal environment based on FLASK_ENV unless overridden
        default_base_url = PAYPAL_SANDBOX_URL if flask_env == 'development' else PAYPAL_LIVE_URL

        db_config = {
            'host': os.getenv('DB_HOST', 'localhost'),
            'port': _env_number('DB_PORT', 3306),
            'user': os.getenv('DB_USER', 'root'),
            'password': os.getenv('DB_PASSWORD', ''),
            'database': os.getenv('DB_NAME', 'pickup_games'),
        }

        config = cls(
            flask_env=flask_env,
            paypal_client_id=os.getenv('PAYPAL_CLIENT_ID', ''),
            paypal_client_secret=os.getenv('PAYPAL_CLIENT_SECRET') or os.getenv('PAYPAL_SECRET', ''),
            paypal_base_url=(os.getenv('PAYPAL_BASE_URL') or default_base_url).rstrip('/'),
            paypal_webhook_id=os.getenv('PAYPAL_WEBHOOK_ID', ''),
            paypal_webhook_skip_verification=_env_flag('PAYPAL_WEBHOOK_SKIP_VERIFICATION'),
            paypal_brand_name=os.getenv('PAYPAL_BRAND_NAME', 'Pickup Games'),
            paypal_timeout_seconds=_env_number('PAYPAL_TIMEOUT_SECONDS', DEFAULT_TIMEOUT_SECONDS, float),
            app_url=(os.getenv('APP_URL') or 'exp://localhost:8081').rstrip('/'),
            supabase_url=(os.getenv('SUPABASE_URL') or '').rstrip('/'),
            supabase_anon_key=os.getenv('SUPABASE_ANON_KEY', ''),
            renewal_window_days=_env_number('RENEWAL_WINDOW_DAYS', DEFAULT_RENEWAL_WINDOW_DAYS),
            db_config=db_config,
        )
        config.validate()
        return config

    def validate(self):
        """Reject settings that can never work; PayPal credentials are checked on use"""
        if not self.paypal_base_url.startswith('https://') and self.flask_env != 'development':
            raise ConfigurationError("PAYPAL_BASE_URL must use https outside development")
        if self.renewal_window_days <= 0:
            raise ConfigurationError("RENEWAL_WINDOW_DAYS must be positive")
        if self.paypal_timeout_seconds <= 0:
            raise ConfigurationError("PAYPAL_TIMEOUT_SECONDS must be positive")
        if self.paypal_webhook_skip_verification and not self.paypal_webhook_id:
            logger.warning(
                "PAYPAL_WEBHOOK_SKIP_VERIFICATION is set: webhook signatures will NOT be verified"
            )
        return self

    @property
    def has_paypal_credentials(self):
        return bool(self.paypal_client_id and self.paypal_client_secret)

    def get_paypal_return_url(self):
        """URL PayPal sends the payer back to after approval"""
        return f"{self.app_url}/payment-success"

    def get_paypal_cancel_url(self):
        """URL PayPal sends the payer back to after cancelling"""
        return f"{self.app_url}/payment-cancelled"
