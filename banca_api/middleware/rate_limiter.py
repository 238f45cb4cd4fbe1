"""
Rate limiting das rotas da banca.

Janela deslizante em memória, por processo. A chave é endpoint + cliente,
onde cliente é o IP (padrão) ou o usuário do JWT (per='user'), para que
operadores atrás do mesmo NAT não disputem o limite de conciliação/liquidação.
Desligável com RATE_LIMIT_ATIVO=false.
"""
import time
import logging
import threading
from functools import wraps
from collections import defaultdict
from flask import request, jsonify, current_app

logger = logging.getLogger(__name__)

_requisicoes = defaultdict(list)
_lock = threading.Lock()


def get_client_identifier():
    """IP do cliente; atrás de proxy usa o primeiro da cadeia X-Forwarded-For"""
    encaminhado = request.headers.get('X-Forwarded-For')
    if encaminhado:
        return encaminhado.split(',')[0].strip()
    return request.headers.get('X-Real-IP') or request.remote_addr or 'unknown'


def _cliente(per):
    if per != 'user':
        return f"ip:{get_client_identifier()}"
    from flask_jwt_extended import get_jwt_identity
    try:
        user_id = get_jwt_identity()
    except RuntimeError:
        user_id = None
    return f"user:{user_id}" if user_id else f"ip:{get_client_identifier()}"


def _registrar(chave, agora, max_requests, window_seconds):
    """
    Registra a requisição na janela da chave.

    Returns:
        None se liberada, ou os segundos até a próxima vaga
    """
    with _lock:
        janela = [t for t in _requisicoes[chave] if agora - t < window_seconds]
        if len(janela) >= max_requests:
            _requisicoes[chave] = janela
            return int(window_seconds - (agora - janela[0])) + 1
        janela.append(agora)
        _requisicoes[chave] = janela
    return None


def rate_limit(max_requests: int = 5, window_seconds: int = 60, per: str = 'ip'):
    """
    Decorator de rate limiting.

    Args:
        max_requests: requisições permitidas na janela
        window_seconds: tamanho da janela em segundos
        per: 'ip' ou 'user'
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_app.config.get('RATE_LIMIT_ATIVO', True):
                return f(*args, **kwargs)

            chave = f"{request.endpoint}:{_cliente(per)}"
            retry_after = _registrar(chave, time.time(), max_requests, window_seconds)
            if retry_after is not None:
                logger.warning(f"Rate limit excedido em {chave} ({max_requests}/{window_seconds}s)")
                response = jsonify({
                    "error": "Muitas requisições. Tente novamente mais tarde.",
                    "code": "RATE_LIMIT_EXCEEDED",
                    "retry_after": retry_after,
                })
                response.headers['Retry-After'] = str(retry_after)
                return response, 429

            return f(*args, **kwargs)
        return decorated_function
    return decorator


def clear_rate_limit_cache():
    """Zera as janelas (usado pelos testes)"""
    with _lock:
        _requisicoes.clear()
