import os
import uuid

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request

from .config import load_config
from .errors import BillingError
from .extensions import get_app_context, init_extensions
from .logging_config import configure_logging


def create_app(config=None, *, db=None, stripe_module=None, auth_module=None, time_module=None):
    """App factory entrypoint.

    Clients (Firestore, Stripe, Firebase Auth) are built here and owned by
    the app; the keyword arguments replace them, which is what the tests do.
    """
    if config is None:
        load_dotenv()
        config = load_config()
    configure_logging(config.log_level)

    app = Flask(__name__)
    app.secret_key = config.flask_secret_key or os.urandom(32).hex()
    init_extensions(
        app,
        config,
        db=db,
        stripe_module=stripe_module,
        auth_module=auth_module,
        time_module=time_module,
    )
    register_request_hooks(app)

    from .blueprints import account_bp, core_bp, payments_bp

    app.register_blueprint(core_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(account_bp)
    return app


def apply_cors_headers(response):
    origin = str(request.headers.get('Origin', '') or '').strip()
    if not origin or not request.path.startswith('/api/'):
        return response
    if origin.rstrip('/').lower() not in get_app_context().config.cors_allowed_origins:
        return response
    response.headers['Access-Control-Allow-Origin'] = origin
    response.headers['Vary'] = 'Origin'
    response.headers['Access-Control-Allow-Headers'] = 'Authorization, Content-Type'
    response.headers['Access-Control-Allow-Methods'] = 'GET, POST, OPTIONS'
    return response


def register_request_hooks(app):
    @app.before_request
    def handle_api_options_preflight():
        if request.method == 'OPTIONS' and request.path.startswith('/api/'):
            return apply_cors_headers(app.make_default_options_response())

    @app.before_request
    def attach_request_context():
        request_id = str(request.headers.get('X-Request-ID', '') or '').strip()[:120] or uuid.uuid4().hex
        g.request_id = request_id
        sentry = get_app_context().sentry_sdk
        if sentry is None:
            return
        sentry.set_tag('request.id', request_id)
        sentry.set_tag('route.path', request.path)
        sentry.set_tag('route.method', request.method)

    @app.after_request
    def attach_response_context(response):
        request_id = str(getattr(g, 'request_id', '') or '').strip()
        if request_id:
            response.headers['X-Request-ID'] = request_id
        return apply_cors_headers(response)

    @app.errorhandler(BillingError)
    def handle_billing_error(error):
        return jsonify(error.to_dict()), error.status_code
