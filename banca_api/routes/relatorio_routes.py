from flask import Blueprint, request, jsonify
import logging
from ..services import relatorio_service
from ..services.auth_service import require_role
from ..middleware.rate_limiter import rate_limit
from ..utils.route_helpers import service_response, parse_br_date_range

logger = logging.getLogger(__name__)

relatorio_bp = Blueprint('relatorios', __name__)


@relatorio_bp.route('/roi-investidores', methods=['GET'])
@require_role('admin', 'operador', 'investidor')
@rate_limit(max_requests=60, window_seconds=60)
def roi_investidores_route():
    """ROI por investidor. ?meses=1|3|6|12 (padrão 12)"""
    meses = request.args.get('meses', 12)
    success, error_code, result = relatorio_service.relatorio_roi_investidores(meses)
    return service_response(success, error_code, result)


@relatorio_bp.route('/investidores', methods=['GET'])
@require_role('admin', 'operador', 'investidor')
def listar_investidores_route():
    investidores = relatorio_service.listar_investidores()
    if investidores is None:
        return jsonify({"error": "Erro interno do servidor"}), 500
    return jsonify(investidores), 200


@relatorio_bp.route('/investidores/<path:nome>/historico', methods=['GET'])
@require_role('admin', 'operador', 'investidor')
def historico_investidor_route(nome):
    success, error_code, result = relatorio_service.historico_investidor(nome)
    return service_response(success, error_code, result)


@relatorio_bp.route('/moedas', methods=['GET'])
@require_role('admin', 'operador')
@rate_limit(max_requests=60, window_seconds=60)
def resumo_por_moeda_route():
    data_inicio, data_fim, erro = parse_br_date_range(request.args)
    if erro:
        return jsonify({"error": erro}), 400
    filters = {"data_inicio": data_inicio, "data_fim": data_fim}
    if request.args.get('tipo'):
        filters['tipo'] = request.args.get('tipo').upper()
    success, error_code, result = relatorio_service.resumo_por_moeda(filters)
    return service_response(success, error_code, result)


@relatorio_bp.route('/surebets', methods=['GET'])
@require_role('admin', 'operador', 'investidor')
@rate_limit(max_requests=60, window_seconds=60)
def resumo_surebets_route():
    data_inicio, data_fim, erro = parse_br_date_range(request.args)
    if erro:
        return jsonify({"error": erro}), 400
    success, error_code, result = relatorio_service.resumo_surebets(data_inicio, data_fim)
    return service_response(success, error_code, result)
