from flask import Blueprint, request

from guerreiro_concursos.extensions import get_app_context
from guerreiro_concursos.services import account_api_service

account_bp = Blueprint('account_api', __name__)


@account_bp.route('/api/account/plan', methods=['GET'])
def get_plan_status():
    return account_api_service.get_plan_status(get_app_context(), request)
