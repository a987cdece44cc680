"""Business logic handlers for payment APIs."""

from flask import jsonify

from guerreiro_concursos.errors import AuthenticationFailure, ProcessingFailure, ValidationFailure
from guerreiro_concursos.repositories import users_repo
from guerreiro_concursos.services import auth_service, stripe_events, webhook_service
from guerreiro_concursos.services.entitlement_service import utc_now


def request_payload(request):
    """JSON body, unwrapping the ``{"data": {...}}`` envelope the web app sends."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return {}
    if isinstance(data.get('data'), dict):
        return data['data']
    return data


def _field(data, name):
    return str(data.get(name) or '').strip()


def infer_stripe_key_mode(key_value):
    key = str(key_value or '').strip()
    if not key:
        return 'missing'
    if key.startswith('sk_live_') or key.startswith('pk_live_'):
        return 'live'
    if key.startswith('sk_test_') or key.startswith('pk_test_'):
        return 'test'
    return 'unknown'


def get_config(app_ctx):
    return jsonify({
        'stripe_publishable_key': app_ctx.config.stripe_publishable_key,
        'price_ids': list(app_ctx.config.stripe_price_ids),
    })


def get_runtime_checks(app_ctx):
    config = app_ctx.config
    return jsonify({
        'ok': True,
        'firebase_ready': app_ctx.db is not None,
        'stripe_configured': bool(config.stripe_secret_key),
        'stripe_secret_mode': infer_stripe_key_mode(config.stripe_secret_key),
        'webhook_configured': bool(config.stripe_webhook_secret),
    })


def create_checkout_session(app_ctx, request):
    logger = app_ctx.logger
    data = request_payload(request)
    user_id = _field(data, 'userId')
    price_id = _field(data, 'priceId')

    if not user_id:
        logger.warning("Checkout rejected: missing userId")
        return jsonify({'error': 'userId é obrigatório'}), 400
    if not price_id:
        logger.warning("Checkout rejected: missing priceId")
        return jsonify({'error': 'priceId é obrigatório'}), 400
    allowed_prices = app_ctx.config.stripe_price_ids
    if allowed_prices and price_id not in allowed_prices:
        logger.warning(f"Checkout rejected: unknown priceId {price_id}")
        return jsonify({'error': 'priceId inválido'}), 400
    if not app_ctx.config.stripe_secret_key:
        logger.error("Checkout unavailable: STRIPE_SECRET_KEY is not configured")
        return jsonify({'error': 'Stripe não configurado'}), 500

    user_metadata = {'uid': user_id, 'userId': user_id}
    try:
        checkout_session = app_ctx.stripe.checkout.Session.create(
            mode='subscription',
            payment_method_types=['card'],
            success_url=app_ctx.config.checkout_success_url,
            cancel_url=app_ctx.config.checkout_cancel_url,
            line_items=[{'price': price_id, 'quantity': 1}],
            client_reference_id=user_id,
            metadata=user_metadata,
            subscription_data={'metadata': dict(user_metadata)},
        )
    except Exception as e:
        logger.error(f"Stripe checkout error for user {user_id}: {e}")
        return jsonify({'error': 'Erro ao criar checkout', 'details': str(e)}), 500

    logger.info(f"Checkout session created for user {user_id} (price {price_id})")
    return jsonify({'url': checkout_session.url})


def portal_return_origin(app_ctx, request):
    origin = str(request.headers.get('Origin', '') or '').strip().rstrip('/')
    if origin and origin.lower() in app_ctx.config.cors_allowed_origins:
        return origin
    return app_ctx.config.portal_default_origin


def create_billing_portal_session(app_ctx, request):
    logger = app_ctx.logger
    user_id = _field(request_payload(request), 'userId')
    if not user_id:
        return jsonify({'error': 'userId é obrigatório'}), 400

    try:
        if not auth_service.firebase_user_exists(app_ctx.auth, user_id, logger):
            return jsonify({'error': 'Usuário não encontrado'}), 404
        if not app_ctx.config.stripe_secret_key:
            logger.error("Billing portal unavailable: STRIPE_SECRET_KEY is not configured")
            return jsonify({'error': 'Configuração do Stripe não encontrada'}), 500
        if app_ctx.db is None:
            return jsonify({'error': 'Banco de dados não configurado'}), 500

        user_data = users_repo.get_data(app_ctx.db, user_id) or {}
        customer_id = str(user_data.get('stripeCustomerId') or '').strip()
        if not customer_id:
            return jsonify({'error': 'Usuário não possui assinatura Stripe'}), 400

        session = app_ctx.stripe.billing_portal.Session.create(
            customer=customer_id,
            return_url=f"{portal_return_origin(app_ctx, request)}/planos",
        )
    except Exception as e:
        logger.error(f"Error creating billing portal session for {user_id}: {e}")
        return jsonify({'error': f'Erro ao criar sessão do portal: {e}'}), 500

    logger.info(f"Billing portal session created for {user_id}: {getattr(session, 'id', '')}")
    return jsonify({'url': session.url})


def stripe_webhook(app_ctx, request):
    logger = app_ctx.logger
    received_at = utc_now(app_ctx.time_module)
    sig_header = request.headers.get('Stripe-Signature', '')

    if not sig_header:
        logger.error("[Stripe] webhook without signature")
        return 'Webhook sem assinatura', 400

    secret = app_ctx.config.stripe_webhook_secret
    if not secret:
        logger.warning("⚠️ Stripe webhook rejected: STRIPE_WEBHOOK_SECRET is not configured")
        return jsonify({'error': 'Webhook not configured'}), 500

    try:
        event = stripe_events.construct_event(
            request.get_data(), sig_header, secret, stripe_module=app_ctx.stripe
        )
    except (AuthenticationFailure, ValidationFailure) as e:
        logger.warning(f"[Stripe] webhook verification failed: {e.message}")
        return f'Webhook Error: {e.message}', 400

    if app_ctx.db is None:
        logger.error(f"[Stripe] cannot process {event.type} ({event.id}): database not configured")
        return jsonify({'error': 'Erro ao processar webhook: banco de dados não configurado'}), 500

    try:
        outcome = webhook_service.process_event(event, ctx=app_ctx, received_at=received_at)
    except ProcessingFailure as e:
        return jsonify({'error': f'Erro ao processar webhook: {e.message}'}), 500

    logger.info(f"[Stripe] {event.type} ({event.id}) acknowledged with outcome {outcome.status}")
    return jsonify({'received': True})
