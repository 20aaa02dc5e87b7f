"""
Flask routes for the PayPal payment endpoints
"""
import logging
import traceback
from dataclasses import asdict

from flask import Blueprint, request, jsonify

from .errors import PaymentGatewayError, InvalidArgument
from .webhooks.paypal_handler import handle_paypal_webhook

logger = logging.getLogger('pickup_payments')

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, POST, PUT, DELETE, OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type, Authorization, X-Client-Info, Apikey',
}


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidArgument('Request body must be a JSON object')
    return data


def _error_response(e, status_code=400):
    message = e.message if isinstance(e, PaymentGatewayError) else (str(e) or 'Internal server error')
    return jsonify({'success': False, 'error': message}), status_code


def init_payment_routes(app, paypal_service, webhook_handler, status_service, auth_client):
    """
    Register the payment endpoints on a Flask app

    Args:
        app: Flask application
        paypal_service: PayPalService creating orders and subscriptions
        webhook_handler: PayPalWebhookHandler reconciling webhook events
        status_service: SubscriptionStatusService answering entitlement queries
        auth_client: AuthClient resolving the caller from the bearer token
    """
    payment_bp = Blueprint('pickup_payments', __name__)

    @payment_bp.after_app_request
    def add_cors_headers(response):
        for header, value in CORS_HEADERS.items():
            response.headers[header] = value
        return response

    def current_user_id():
        return auth_client.get_user_id(request.headers.get('Authorization'))

    @payment_bp.route('/create-paypal-payment', methods=['POST', 'OPTIONS'])
    def create_paypal_payment():
        """Create a one-time PayPal order (boost game)"""
        if request.method == 'OPTIONS':
            return '', 200
        try:
            user_id = current_user_id()
            data = _json_body()
            result = paypal_service.create_one_time_payment(
                user_id,
                data.get('amount'),
                game_id=data.get('gameId'),
                description=data.get('description'),
            )
            return jsonify({
                'success': True,
                'orderId': result['order_id'],
                'approvalUrl': result['approval_url'],
            })
        except Exception as e:
            logger.error(f"Error creating PayPal payment: {str(e)}")
            logger.error(traceback.format_exc())
            return _error_response(e)

    @payment_bp.route('/create-paypal-subscription', methods=['POST', 'OPTIONS'])
    def create_paypal_subscription():
        """Create a recurring PayPal subscription"""
        if request.method == 'OPTIONS':
            return '', 200
        try:
            user_id = current_user_id()
            data = _json_body()
            result = paypal_service.create_subscription(user_id, data.get('plan'))
            return jsonify({
                'success': True,
                'subscriptionId': result['subscription_id'],
                'approvalUrl': result['approval_url'],
            })
        except Exception as e:
            logger.error(f"Error creating PayPal subscription: {str(e)}")
            logger.error(traceback.format_exc())
            return _error_response(e)

    @payment_bp.route('/paypal-webhook', methods=['POST', 'OPTIONS'])
    def paypal_webhook():
        """Handle PayPal webhook events"""
        if request.method == 'OPTIONS':
            return '', 200
        logger.info("Received PayPal webhook")
        result, status_code = handle_paypal_webhook(webhook_handler, request.headers, request.get_data())
        return jsonify(result), status_code

    @payment_bp.route('/subscription-status', methods=['GET', 'OPTIONS'])
    def subscription_status():
        """Whether the caller holds a plan right now"""
        if request.method == 'OPTIONS':
            return '', 200
        try:
            user_id = current_user_id()
            plan = request.args.get('plan')
            active = status_service.has_active_subscription(user_id, plan)
            return jsonify({'success': True, 'plan': plan, 'active': active})
        except PaymentGatewayError as e:
            logger.error(f"Error getting subscription status: {e.message}")
            return _error_response(e, e.status_code)

    @payment_bp.route('/subscriptions', methods=['GET', 'OPTIONS'])
    def list_subscriptions():
        """The caller's subscription and payment records"""
        if request.method == 'OPTIONS':
            return '', 200
        try:
            user_id = current_user_id()
            records = status_service.list_subscriptions(user_id)
            return jsonify({'success': True, 'subscriptions': [record.to_dict() for record in records]})
        except PaymentGatewayError as e:
            logger.error(f"Error listing subscriptions: {e.message}")
            return _error_response(e, e.status_code)

    @payment_bp.route('/feature-access', methods=['GET', 'OPTIONS'])
    def feature_access():
        """Feature flags derived from the caller's entitlements"""
        if request.method == 'OPTIONS':
            return '', 200
        try:
            user_id = current_user_id()
            features = status_service.get_feature_access(user_id)
            return jsonify({'success': True, 'features': asdict(features)})
        except PaymentGatewayError as e:
            logger.error(f"Error getting feature access: {e.message}")
            return _error_response(e, e.status_code)

    @payment_bp.route('/paypal-setup', methods=['GET'])
    def paypal_setup():
        """Check that PayPal credentials work"""
        try:
            current_user_id()
        except PaymentGatewayError as e:
            return _error_response(e, e.status_code)
        result = paypal_service.check_setup()
        return jsonify(result), 200 if result['success'] else 503

    app.register_blueprint(payment_bp)
    return payment_bp
