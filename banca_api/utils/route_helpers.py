"""
Helpers compartilhados pelas rotas: mapeamento de error_code para status HTTP
e leitura de filtros de data no formato brasileiro.
"""

from flask import jsonify
from .validators import is_valid_date_format, is_date_in_range, convert_br_date_to_iso

STATUS_POR_ERRO = {
    "VALIDATION_ERROR": 400,
    "NOT_FOUND": 404,
    "ALREADY_RECONCILED": 409,
    "CONFLICT": 409,
    "INSUFFICIENT_BALANCE": 422,
}


def error_response(error_code, message):
    status = STATUS_POR_ERRO.get(error_code, 500)
    if status == 500:
        message = message if isinstance(message, str) else "Erro interno do servidor"
    return jsonify({"error": message, "error_code": error_code}), status


def service_response(success, error_code, result, success_status=200):
    if success:
        return jsonify(result), success_status
    return error_response(error_code, result)


def parse_br_date_range(args, inicio_key='data_inicio', fim_key='data_fim'):
    """
    Lê data_inicio/data_fim (DD-MM-AAAA) da query string.

    Returns:
        (data_inicio_iso, data_fim_iso, erro)
    """
    data_inicio = args.get(inicio_key)
    data_fim = args.get(fim_key)

    if data_inicio:
        is_valid, msg = is_valid_date_format(data_inicio)
        if not is_valid:
            return (None, None, f"Data de início inválida: {msg}")
    if data_fim:
        is_valid, msg = is_valid_date_format(data_fim)
        if not is_valid:
            return (None, None, f"Data de fim inválida: {msg}")
    if data_inicio and data_fim:
        is_valid, msg = is_date_in_range(data_inicio, max_date=data_fim)
        if not is_valid:
            return (None, None, f"Intervalo de datas inválido: {msg}")

    return (convert_br_date_to_iso(data_inicio), convert_br_date_to_iso(data_fim), None)
