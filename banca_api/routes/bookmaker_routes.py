from flask import Blueprint, request, jsonify, g
import logging
from ..services import bookmaker_service, currency_service
from ..services.auth_service import require_role
from ..middleware.rate_limiter import rate_limit
from ..utils.route_helpers import service_response
from ..utils.validators import parse_date

logger = logging.getLogger(__name__)

bookmaker_bp = Blueprint('bookmakers', __name__)
cotacao_bp = Blueprint('cotacoes', __name__)


@bookmaker_bp.route('/', methods=['GET'])
@require_role('admin', 'operador')
@rate_limit(max_requests=100, window_seconds=60)
def list_bookmakers_route():
    """Casas com saldos canônicos (real, em aposta, disponível, freebet, bônus, operável)"""
    status = request.args.get('status')
    return jsonify(bookmaker_service.list_bookmakers(status)), 200


@bookmaker_bp.route('/saldos', methods=['GET'])
@require_role('admin', 'operador')
def get_saldos_route():
    """Saldos de um conjunto de casas: ?ids=1,2,3"""
    ids = None
    if request.args.get('ids'):
        try:
            ids = [int(i) for i in request.args.get('ids').split(',') if i.strip()]
        except ValueError:
            return jsonify({"error": "ids deve ser uma lista de números separados por vírgula"}), 400
    saldos = bookmaker_service.get_saldos_canonicos(ids)
    return jsonify({str(k): v for k, v in saldos.items()}), 200


@bookmaker_bp.route('/<int:bookmaker_id>', methods=['GET'])
@require_role('admin', 'operador')
def get_bookmaker_route(bookmaker_id):
    casa = bookmaker_service.get_bookmaker(bookmaker_id)
    if casa:
        return jsonify(casa), 200
    return jsonify({"error": "Casa não encontrada"}), 404


@bookmaker_bp.route('/freebets', methods=['GET'])
@require_role('admin', 'operador')
def list_freebets_route():
    status = request.args.get('status')
    if status and status.upper() not in bookmaker_service.FREEBET_STATUSES:
        return jsonify({"error": f"Status inválido. Deve ser um de: {', '.join(bookmaker_service.FREEBET_STATUSES)}"}), 400
    bookmaker_id = request.args.get('bookmaker_id')
    if bookmaker_id:
        try:
            bookmaker_id = int(bookmaker_id)
        except ValueError:
            return jsonify({"error": "bookmaker_id deve ser um número"}), 400
    freebets = bookmaker_service.listar_freebets(bookmaker_id, status.upper() if status else None)
    return jsonify(freebets), 200


@bookmaker_bp.route('/<int:bookmaker_id>/freebets', methods=['POST'])
@require_role('admin', 'operador')
def registrar_freebet_route(bookmaker_id):
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "Corpo da requisição não pode ser vazio"}), 400

    data_validade = None
    if data.get('data_validade'):
        data_validade = parse_date(data['data_validade'])
        if data_validade is None:
            return jsonify({"error": "Data de validade inválida. Use DD-MM-AAAA."}), 400

    success, error_code, result = bookmaker_service.registrar_freebet(
        bookmaker_id, data.get('valor'), data.get('motivo'), data_validade, g.current_user_id
    )
    return service_response(success, error_code, result, success_status=201)


@bookmaker_bp.route('/freebets/<int:freebet_id>', methods=['PATCH'])
@require_role('admin', 'operador')
def atualizar_freebet_route(freebet_id):
    data = request.get_json(silent=True) or {}
    status = (data.get('status') or '').upper()
    success, error_code, result = bookmaker_service.atualizar_status_freebet(
        freebet_id, status, data.get('aposta_id')
    )
    return service_response(success, error_code, result)


@cotacao_bp.route('/', methods=['GET'])
@require_role('admin', 'operador', 'investidor')
def get_cotacoes_route():
    """Cotações em BRL com a fonte de cada uma (MANUAL, PTAX ou FALLBACK)"""
    force_refresh = request.args.get('refresh', '').lower() in ('true', '1', 'yes')
    return jsonify(currency_service.get_cotacoes_detalhadas(force_refresh)), 200


@cotacao_bp.route('/<moeda>', methods=['PUT'])
@require_role('admin')
def salvar_cotacao_route(moeda):
    data = request.get_json(silent=True) or {}
    success, error_code, result = currency_service.salvar_cotacao_trabalho(
        moeda, data.get('cotacao'), g.current_user_id
    )
    return service_response(success, error_code, result)
