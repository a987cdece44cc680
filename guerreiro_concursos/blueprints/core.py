from flask import Blueprint

from guerreiro_concursos.extensions import get_app_context
from guerreiro_concursos.services import payments_api_service

core_bp = Blueprint('core', __name__)


@core_bp.route('/healthz', methods=['GET'])
def healthz():
    return payments_api_service.get_runtime_checks(get_app_context())
