"""Handlers for the signed-in user's own billing state."""

from datetime import datetime

from flask import jsonify

from guerreiro_concursos.repositories import users_repo
from guerreiro_concursos.services import auth_service
from guerreiro_concursos.services.entitlement_service import PLAN_FREE, PLAN_PREMIUM, utc_now
from guerreiro_concursos.services.rewards_service import calculate_level


def is_premium_active(user_data, now):
    if user_data.get('plan') != PLAN_PREMIUM:
        return False
    if user_data.get('subscriptionStatus') != 'active':
        return False
    premium_until = user_data.get('premiumUntil')
    if isinstance(premium_until, datetime):
        return premium_until > now
    return True


def build_plan_payload(user_data, now):
    premium_until = user_data.get('premiumUntil')
    points = int(user_data.get('pontos') or 0)
    level, progress = calculate_level(points)
    return {
        'plan': user_data.get('plan') or PLAN_FREE,
        'subscriptionStatus': user_data.get('subscriptionStatus') or 'unknown',
        'premiumUntil': premium_until.isoformat() if isinstance(premium_until, datetime) else None,
        'isPremiumActive': is_premium_active(user_data, now),
        'pontos': points,
        'nivel': int(user_data.get('nivel') or level),
        'progressaoNivel': user_data.get('progressaoNivel', progress),
        'medalhas': list(user_data.get('medalhas') or []),
    }


def get_plan_status(app_ctx, request):
    decoded_token = auth_service.verify_firebase_token(request, app_ctx.auth, app_ctx.logger)
    if not decoded_token:
        return jsonify({'error': 'Unauthorized'}), 401
    if app_ctx.db is None:
        return jsonify({'error': 'Banco de dados não configurado'}), 500

    uid = decoded_token['uid']
    user_data = users_repo.get_data(app_ctx.db, uid)
    if user_data is None:
        return jsonify({'error': 'Usuário não encontrado'}), 404
    return jsonify(build_plan_payload(user_data, utc_now(app_ctx.time_module)))
