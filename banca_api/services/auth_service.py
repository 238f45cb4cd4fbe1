"""
Autorização por papel (roles) a partir do JWT.

Login e emissão de tokens ficam fora desta API: aqui apenas consumimos o
access token e conferimos a claim "roles".
"""

import logging
from functools import wraps
from flask import jsonify, g
from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity

logger = logging.getLogger(__name__)

ROLE_ADMIN = 'admin'
ROLE_OPERADOR = 'operador'
ROLE_INVESTIDOR = 'investidor'


def _user_id_from_identity(identity):
    try:
        return int(identity)
    except (ValueError, TypeError):
        return None


def require_role(*roles):
    """
    Exige JWT válido com pelo menos um dos papéis informados.
    Guarda o ID do usuário em g.current_user_id para as rotas.
    """
    def decorator(f):
        @wraps(f)
        @jwt_required()
        def decorated_function(*args, **kwargs):
            claims = get_jwt()
            user_roles = claims.get("roles", [])
            if isinstance(user_roles, str):
                user_roles = [user_roles]
            if not any(role in user_roles for role in roles):
                logger.warning(f"Acesso negado a {get_jwt_identity()} (roles {user_roles}, exige {roles})")
                return jsonify({"msg": "Acesso não autorizado para esta função."}), 403
            g.current_user_id = _user_id_from_identity(get_jwt_identity())
            return f(*args, **kwargs)
        return decorated_function
    return decorator
