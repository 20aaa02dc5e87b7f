"""
Error types raised by the payments service.

Each error carries the HTTP status the routes answer with when it escapes
a handler.
"""


class PaymentGatewayError(Exception):
    """Base class for every error the service reports to callers"""
    status_code = 400

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class ConfigurationError(PaymentGatewayError):
    """Required settings (PayPal credentials, auth provider) are missing"""


class Unauthorized(PaymentGatewayError):
    """Caller identity missing or rejected by the auth provider"""
    status_code = 401


class InvalidArgument(PaymentGatewayError):
    """Bad amount, unknown plan or malformed request body"""


class UpstreamError(PaymentGatewayError):
    """PayPal answered with a non-2xx status, timed out, or sent an unexpected body"""


class UpstreamAuthError(UpstreamError):
    """OAuth client-credentials grant failed"""


class UpstreamProvisioningError(UpstreamError):
    """Creating the PayPal product or billing plan failed"""


class PersistenceError(PaymentGatewayError):
    """Local storage read or write failed"""
    status_code = 500
