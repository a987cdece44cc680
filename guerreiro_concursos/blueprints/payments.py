from flask import Blueprint, request

from guerreiro_concursos.extensions import get_app_context
from guerreiro_concursos.services import payments_api_service

payments_bp = Blueprint('payments_api', __name__)


@payments_bp.route('/api/config', methods=['GET'])
def get_config():
    return payments_api_service.get_config(get_app_context())


@payments_bp.route('/api/create-checkout-session', methods=['POST'])
def create_checkout_session():
    return payments_api_service.create_checkout_session(get_app_context(), request)


@payments_bp.route('/api/create-billing-portal-session', methods=['POST'])
def create_billing_portal_session():
    return payments_api_service.create_billing_portal_session(get_app_context(), request)


@payments_bp.route('/api/stripe-webhook', methods=['POST'])
def stripe_webhook():
    return payments_api_service.stripe_webhook(get_app_context(), request)
