"""
Resolve the calling user from the app's bearer token
"""
import logging

import requests

from .errors import ConfigurationError, Unauthorized

logger = logging.getLogger('pickup_payments')


class AuthClient:
    """
    Validates access tokens against the auth provider's user endpoint
    (GoTrue-compatible ``/auth/v1/user``).
    """

    def __init__(self, config, session=None):
        self.config = config
        self.session = session or requests.Session()

    def get_user_id(self, authorization_header):
        """
        Args:
            authorization_header: raw ``Authorization`` header value

        Returns:
            str: id of the authenticated user

        Raises:
            Unauthorized: header missing or token rejected
            ConfigurationError: auth provider not configured
        """
        if not authorization_header:
            raise Unauthorized('No authorization header')

        scheme, _, token = authorization_header.partition(' ')
        if scheme.lower() != 'bearer' or not token.strip():
            raise Unauthorized('Unauthorized')

        if not self.config.supabase_url or not self.config.supabase_anon_key:
            raise ConfigurationError('Auth provider not configured')

        try:
            response = self.session.get(
                f"{self.config.supabase_url}/auth/v1/user",
                headers={
                    'Authorization': f"Bearer {token.strip()}",
                    'apikey': self.config.supabase_anon_key,
                },
                timeout=self.config.paypal_timeout_seconds,
            )
        except requests.RequestException as e:
            logger.error(f"Auth provider request failed: {str(e)}")
            raise Unauthorized('Unauthorized')

        if response.status_code != 200:
            logger.warning(f"Auth provider rejected token: {response.status_code}")
            raise Unauthorized('Unauthorized')

        try:
            user = response.json()
        except ValueError:
            raise Unauthorized('Unauthorized')

        user_id = user.get('id') if isinstance(user, dict) else None
        if not user_id:
            raise Unauthorized('Unauthorized')
        return user_id
