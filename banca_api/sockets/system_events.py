"""
Eventos de sistema via WebSocket.

Na conexão o cliente entra nas salas:
- user_{id}: notificações pessoais
- admin_room: admins e operadores (recebem todos os eventos de caixa e surebet)
- bookmaker_{id}: eventos de uma casa específica (via 'join_bookmaker')
"""

import logging
from flask import request
from flask_jwt_extended import decode_token
from flask_socketio import join_room, leave_room, emit
from jwt.exceptions import PyJWTError
from .. import socketio

logger = logging.getLogger(__name__)

ROLES_ADMIN_ROOM = ['admin', 'operador']


def _token_from_request(auth):
    token = request.args.get('token')
    if not token:
        auth_header = request.headers.get('Authorization')
        if auth_header and auth_header.startswith('Bearer '):
            token = auth_header[7:]
    if not token and auth:
        token = auth.get('token')
    return token


def _room_bookmaker(data):
    try:
        return f"bookmaker_{int((data or {}).get('bookmaker_id'))}"
    except (ValueError, TypeError):
        return None


def _decode(token):
    try:
        return decode_token(token)
    except PyJWTError as e:
        logger.warning(f"Token de socket inválido: {e}")
        return None


@socketio.on('connect')
def handle_system_connect(auth=None):
    token = _token_from_request(auth)
    if not token:
        logger.warning(f"Tentativa de conexão sem token: {request.sid}")
        return False

    decoded_token = _decode(token)
    if not decoded_token or not decoded_token.get('sub'):
        return False

    user_id = decoded_token['sub']
    roles = decoded_token.get('roles', [])
    if isinstance(roles, str):
        roles = [roles]
    roles_lower = [str(role).lower() for role in roles]

    rooms_joined = [f"user_{user_id}"]
    join_room(rooms_joined[0])

    if any(role in roles_lower for role in ROLES_ADMIN_ROOM):
        join_room('admin_room')
        rooms_joined.append('admin_room')

    logger.info(f"Usuário {user_id} conectado e adicionado às salas: {', '.join(rooms_joined)}")
    emit('system_connected', {
        'user_id': user_id,
        'rooms': rooms_joined,
        'message': 'Conectado ao sistema de notificações'
    })
    return True


@socketio.on('join_bookmaker')
def handle_join_bookmaker(data):
    room = _room_bookmaker(data)
    if not room:
        return
    join_room(room)
    logger.info(f"Cliente {request.sid} entrou na sala {room}")


@socketio.on('leave_bookmaker')
def handle_leave_bookmaker(data):
    room = _room_bookmaker(data)
    if room:
        leave_room(room)


@socketio.on('disconnect')
def handle_system_disconnect():
    logger.info(f"Cliente desconectado do sistema: {request.sid}")
