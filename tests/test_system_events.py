import pytest
from flask_jwt_extended import create_access_token

from banca_api import create_app, socketio
from banca_api.utils.event_publisher import publish_event


@pytest.fixture
def app():
    return create_app({"TESTING": True})


def _token(app, user_id, *roles):
    with app.app_context():
        return create_access_token(identity=user_id, additional_claims={"roles": list(roles)})


def _eventos(client, nome):
    return [e['args'][0] for e in client.get_received() if e['name'] == nome]


def test_conexao_sem_token_e_recusada(app):
    client = socketio.test_client(app)
    assert not client.is_connected()


def test_cada_app_criado_exige_token():
    create_app({"TESTING": True})
    segundo = create_app({"TESTING": True})

    assert not socketio.test_client(segundo).is_connected()
    cliente = socketio.test_client(segundo, auth={"token": _token(segundo, "5", "admin")})
    assert cliente.is_connected()
    cliente.disconnect()


def test_conexao_com_token_invalido_e_recusada(app):
    client = socketio.test_client(app, auth={"token": "abc.def.ghi"})
    assert not client.is_connected()


def test_operador_entra_na_sala_admin(app):
    client = socketio.test_client(app, auth={"token": _token(app, "5", "operador")})

    assert client.is_connected()
    conectado = _eventos(client, 'system_connected')[0]
    assert conectado['user_id'] == '5'
    assert conectado['rooms'] == ['user_5', 'admin_room']
    client.disconnect()


def test_investidor_fica_so_na_sala_pessoal(app):
    client = socketio.test_client(app, auth={"token": _token(app, "9", "investidor")})

    assert _eventos(client, 'system_connected')[0]['rooms'] == ['user_9']
    client.disconnect()


def test_evento_de_caixa_chega_na_sala_admin(app):
    operador = socketio.test_client(app, auth={"token": _token(app, "5", "operador")})
    investidor = socketio.test_client(app, auth={"token": _token(app, "9", "investidor")})
    operador.get_received()
    investidor.get_received()

    publish_event('caixa.confirmada', {"transacao_id": 12, "status": "CONFIRMADO"})

    assert _eventos(operador, 'caixa.confirmada') == [{"transacao_id": 12, "status": "CONFIRMADO"}]
    assert _eventos(investidor, 'caixa.confirmada') == []
    operador.disconnect()
    investidor.disconnect()


def test_sala_da_casa_recebe_eventos_da_propria_casa(app):
    client = socketio.test_client(app, auth={"token": _token(app, "9", "investidor")})
    client.get_received()
    client.emit('join_bookmaker', {"bookmaker_id": 3})

    publish_event('surebet.liquidada', {"aposta_id": 1, "bookmaker_ids": [3, 4]})
    publish_event('surebet.liquidada', {"aposta_id": 2, "bookmaker_ids": [4]})

    recebidos = _eventos(client, 'surebet.liquidada')
    assert [e['aposta_id'] for e in recebidos] == [1]

    client.emit('leave_bookmaker', {"bookmaker_id": 3})
    publish_event('surebet.liquidada', {"aposta_id": 5, "bookmaker_ids": [3]})
    assert _eventos(client, 'surebet.liquidada') == []
    client.disconnect()
