from flask import Blueprint, request, jsonify, g
import logging
from ..services import surebet_service
from ..services.auth_service import require_role
from ..middleware.rate_limiter import rate_limit
from ..utils.route_helpers import service_response, parse_br_date_range

logger = logging.getLogger(__name__)

surebet_bp = Blueprint('surebets', __name__)

VALID_STATUSES = [surebet_service.STATUS_PENDENTE, surebet_service.STATUS_LIQUIDADA]


@surebet_bp.route('/calcular', methods=['POST'])
@require_role('admin', 'operador')
@rate_limit(max_requests=300, window_seconds=60, per='user')
def calcular_surebet_route():
    """Calcula stakes e cenários sem gravar (avisos de saldo não bloqueiam)"""
    data = request.get_json(silent=True)
    if not data or not isinstance(data.get('pernas'), list):
        return jsonify({"error": "Informe as pernas da operação"}), 400

    success, error_code, result = surebet_service.simular_surebet(data)
    return service_response(success, error_code, result)


@surebet_bp.route('/', methods=['GET'])
@require_role('admin', 'operador', 'investidor')
@rate_limit(max_requests=100, window_seconds=60)
def list_surebets_route():
    filters = {}

    data_inicio, data_fim, erro = parse_br_date_range(request.args)
    if erro:
        return jsonify({"error": erro}), 400
    if data_inicio:
        filters['data_inicio'] = data_inicio
    if data_fim:
        filters['data_fim'] = data_fim

    if request.args.get('status'):
        status = request.args.get('status').upper()
        if status not in VALID_STATUSES:
            return jsonify({"error": f"Status inválido. Deve ser um de: {', '.join(VALID_STATUSES)}"}), 400
        filters['status'] = status

    for campo in ('estrategia', 'contexto_operacional'):
        if request.args.get(campo):
            valor = request.args.get(campo).strip().upper()
            if len(valor) > 30:
                return jsonify({"error": f"{campo} muito longo (máximo 30 caracteres)"}), 400
            filters[campo] = valor

    result = surebet_service.list_surebets(
        filters,
        page=request.args.get('page', 1),
        page_size=request.args.get('page_size', 50)
    )
    return jsonify(result), 200


@surebet_bp.route('/<int:aposta_id>', methods=['GET'])
@require_role('admin', 'operador', 'investidor')
def get_surebet_route(aposta_id):
    surebet = surebet_service.get_surebet(aposta_id)
    if surebet:
        return jsonify(surebet), 200
    return jsonify({"error": "Surebet não encontrada"}), 404


@surebet_bp.route('/', methods=['POST'])
@require_role('admin', 'operador')
def create_surebet_route():
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "Corpo da requisição não pode ser vazio"}), 400

    success, error_code, result = surebet_service.create_surebet(data, g.current_user_id)
    if not success:
        logger.info(f"Surebet não registrada: {error_code} - {result}")
    return service_response(success, error_code, result, success_status=201)


@surebet_bp.route('/<int:aposta_id>', methods=['PUT'])
@require_role('admin', 'operador')
def update_surebet_route(aposta_id):
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "Corpo da requisição não pode ser vazio"}), 400

    success, error_code, result = surebet_service.update_surebet(aposta_id, data, g.current_user_id)
    return service_response(success, error_code, result)


@surebet_bp.route('/<int:aposta_id>', methods=['DELETE'])
@require_role('admin')
def delete_surebet_route(aposta_id):
    success, error_code, result = surebet_service.delete_surebet(aposta_id, g.current_user_id)
    return service_response(success, error_code, result)


@surebet_bp.route('/<int:aposta_id>/pernas/<int:perna_index>/liquidar', methods=['POST'])
@require_role('admin', 'operador')
@rate_limit(max_requests=60, window_seconds=60, per='user')
def settle_leg_route(aposta_id, perna_index):
    """
    Liquida uma perna: {"resultado": "GREEN|RED|VOID|MEIO_GREEN|MEIO_RED", "versao": 3}
    409 se a operação mudou desde a leitura.
    """
    data = request.get_json(silent=True) or {}
    resultado = (data.get('resultado') or '').strip().upper()
    if not resultado:
        return jsonify({"error": "resultado é obrigatório"}), 400

    success, error_code, result = surebet_service.settle_leg(
        aposta_id, perna_index, resultado, g.current_user_id, versao=data.get('versao')
    )
    return service_response(success, error_code, result)
