"""
Publicador de eventos do sistema.

Entrega cada evento para listeners locais (em memória) e para os clientes
conectados via SocketIO. Operadores e admins recebem tudo em admin_room;
eventos ligados a uma casa também vão para bookmaker_{id}.
"""

import logging
from typing import Dict, Any, Callable, List

logger = logging.getLogger(__name__)

_local_listeners: Dict[str, List[Callable]] = {}


def publish_event(event_type: str, data: Dict[str, Any]) -> None:
    """
    Publica um evento para listeners locais e via SocketIO.

    Args:
        event_type: Tipo do evento (ex: 'caixa.confirmada', 'surebet.liquidada')
        data: Dados do evento
    """
    for listener in _local_listeners.get(event_type, []):
        try:
            listener(event_type, data)
        except Exception as e:
            logger.error(f"Erro ao executar listener local para {event_type}: {e}", exc_info=True)

    try:
        # Importação tardia para evitar import circular
        from .. import socketio

        socketio.emit(event_type, data, room='admin_room')

        bookmaker_ids = set()
        for key in ('bookmaker_id', 'origem_bookmaker_id', 'destino_bookmaker_id'):
            if data.get(key):
                bookmaker_ids.add(int(data[key]))
        for bookmaker_id in data.get('bookmaker_ids') or []:
            bookmaker_ids.add(int(bookmaker_id))

        for bookmaker_id in bookmaker_ids:
            socketio.emit(event_type, data, room=f"bookmaker_{bookmaker_id}")
        logger.debug(f"Evento {event_type} emitido para admin_room e {len(bookmaker_ids)} casa(s)")
    except Exception as e:
        logger.error(f"Erro ao emitir evento via SocketIO: {e}", exc_info=True)


def safe_publish(event_type: str, data: Dict[str, Any]) -> None:
    """Publicação pós-commit: falha aqui não desfaz a operação principal"""
    try:
        publish_event(event_type, data)
    except Exception as e:
        logger.warning(f"Erro ao publicar evento {event_type}: {e}")


def subscribe(event_type: str, callback: Callable) -> None:
    _local_listeners.setdefault(event_type, []).append(callback)
    logger.debug(f"Listener registrado para evento: {event_type}")


def unsubscribe(event_type: str, callback: Callable) -> None:
    if callback in _local_listeners.get(event_type, []):
        _local_listeners[event_type].remove(callback)
        logger.debug(f"Listener removido para evento: {event_type}")
