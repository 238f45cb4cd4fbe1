from flask import Blueprint, request, jsonify, g
import logging
from ..services import caixa_service
from ..services.auth_service import require_role
from ..middleware.rate_limiter import rate_limit
from ..utils.route_helpers import service_response, parse_br_date_range

logger = logging.getLogger(__name__)

caixa_bp = Blueprint('caixa', __name__)


@caixa_bp.route('/transacoes', methods=['GET'])
@require_role('admin', 'operador')
@rate_limit(max_requests=100, window_seconds=60)
def list_transacoes_route():
    """Lista transações do caixa com filtros (datas em DD-MM-AAAA)"""
    filters = {}

    data_inicio, data_fim, erro = parse_br_date_range(request.args)
    if erro:
        return jsonify({"error": erro}), 400
    if data_inicio:
        filters['data_inicio'] = data_inicio
    if data_fim:
        filters['data_fim'] = data_fim

    if request.args.get('tipo'):
        tipo = request.args.get('tipo').upper()
        if tipo not in caixa_service.TIPOS_CAIXA:
            return jsonify({"error": f"Tipo inválido. Deve ser um de: {', '.join(caixa_service.TIPOS_CAIXA)}"}), 400
        filters['tipo'] = tipo

    if request.args.get('status'):
        status = request.args.get('status').upper()
        if status not in caixa_service.STATUSES:
            return jsonify({"error": f"Status inválido. Deve ser um de: {', '.join(caixa_service.STATUSES)}"}), 400
        filters['status'] = status

    if request.args.get('moeda'):
        filters['moeda'] = request.args.get('moeda').upper()[:5]

    if request.args.get('nome_investidor'):
        nome = request.args.get('nome_investidor').strip()
        if len(nome) > 100:
            return jsonify({"error": "Nome do investidor muito longo (máximo 100 caracteres)"}), 400
        filters['nome_investidor'] = nome

    if request.args.get('bookmaker_id'):
        try:
            filters['bookmaker_id'] = int(request.args.get('bookmaker_id'))
        except ValueError:
            return jsonify({"error": "bookmaker_id deve ser um número"}), 400

    result = caixa_service.list_transacoes(
        filters,
        page=request.args.get('page', 1),
        page_size=request.args.get('page_size', 50)
    )
    return jsonify(result), 200


@caixa_bp.route('/transacoes/<int:transacao_id>', methods=['GET'])
@require_role('admin', 'operador')
def get_transacao_route(transacao_id):
    transacao = caixa_service.get_transacao(transacao_id)
    if transacao:
        return jsonify(transacao), 200
    return jsonify({"error": "Transação não encontrada"}), 404


@caixa_bp.route('/transacoes', methods=['POST'])
@require_role('admin', 'operador')
def create_transacao_route():
    """Registra depósito, saque, transferência, aporte ou liquidação"""
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "Corpo da requisição não pode ser vazio"}), 400

    success, error_code, result = caixa_service.create_transacao(data, g.current_user_id)
    if not success:
        logger.warning(f"Transação recusada na validação: {error_code} - {result}")
    return service_response(success, error_code, result, success_status=201)


@caixa_bp.route('/transacoes/<int:transacao_id>/confirmar', methods=['POST'])
@require_role('admin', 'operador')
@rate_limit(max_requests=30, window_seconds=60, per='user')
def confirmar_transacao_route(transacao_id):
    """
    Concilia a transação com o valor efetivamente confirmado.
    409 quando outro usuário já conciliou.
    """
    data = request.get_json(silent=True) or {}
    if data.get('valor_confirmado') in (None, ''):
        return jsonify({"error": "valor_confirmado é obrigatório"}), 400

    success, error_code, result = caixa_service.confirmar_transacao(
        transacao_id, data.get('valor_confirmado'), g.current_user_id, data.get('observacoes')
    )
    return service_response(success, error_code, result)


@caixa_bp.route('/transacoes/<int:transacao_id>/recusar', methods=['POST'])
@require_role('admin', 'operador')
def recusar_transacao_route(transacao_id):
    data = request.get_json(silent=True) or {}
    success, error_code, result = caixa_service.recusar_transacao(
        transacao_id, data.get('motivo'), g.current_user_id
    )
    return service_response(success, error_code, result)


@caixa_bp.route('/transacoes/<int:transacao_id>/cancelar', methods=['POST'])
@require_role('admin', 'operador')
def cancelar_transacao_route(transacao_id):
    data = request.get_json(silent=True) or {}
    success, error_code, result = caixa_service.cancelar_transacao(
        transacao_id, data.get('motivo'), g.current_user_id
    )
    return service_response(success, error_code, result)


@caixa_bp.route('/transacoes/<int:transacao_id>', methods=['PUT'])
@require_role('admin')
def editar_transacao_confirmada_route(transacao_id):
    """Corrige data/valor de transação confirmada (fica registrado no histórico de edições)"""
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "Corpo da requisição não pode ser vazio"}), 400
    if not data.get('data_transacao') or data.get('valor') in (None, ''):
        return jsonify({"error": "data_transacao e valor são obrigatórios"}), 400

    success, error_code, result = caixa_service.editar_transacao_confirmada(
        transacao_id, data['data_transacao'], data['valor'], g.current_user_id
    )
    return service_response(success, error_code, result)
