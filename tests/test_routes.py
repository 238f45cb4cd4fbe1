import pytest
from flask_jwt_extended import create_access_token

from banca_api import create_app
from banca_api.services import caixa_service, surebet_service, relatorio_service


@pytest.fixture
def app():
    return create_app({"TESTING": True})


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_header(app):
    def _header(*roles, user_id="1"):
        with app.app_context():
            token = create_access_token(identity=user_id, additional_claims={"roles": list(roles)})
        return {"Authorization": f"Bearer {token}"}
    return _header


def test_health(client):
    response = client.get('/api/health')
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok", "service": "banca-api"}


def test_security_headers(client):
    response = client.get('/api/health')
    assert response.headers['X-Content-Type-Options'] == 'nosniff'
    assert response.headers['X-Frame-Options'] == 'DENY'


def test_sem_token(client):
    response = client.get('/api/caixa/transacoes')
    assert response.status_code == 401
    assert response.get_json()['code'] == 'MISSING_TOKEN'


def test_token_invalido(client):
    response = client.get('/api/caixa/transacoes', headers={"Authorization": "Bearer abc.def.ghi"})
    assert response.status_code == 401
    assert response.get_json()['code'] == 'INVALID_TOKEN'


def test_papel_sem_permissao(client, auth_header):
    response = client.post('/api/caixa/transacoes', json={"tipo_transacao": "DEPOSITO"},
                           headers=auth_header('investidor'))
    assert response.status_code == 403


def test_rota_inexistente(client):
    response = client.get('/api/nao-existe')
    assert response.status_code == 404
    assert response.get_json()['code'] == 'NOT_FOUND'


def test_confirmacao_concorrente_vira_409(client, auth_header, monkeypatch):
    chamadas = []

    def _confirmar(transacao_id, valor, user_id, observacoes):
        chamadas.append((transacao_id, valor, user_id, observacoes))
        return (False, "ALREADY_RECONCILED", "Transação já foi conciliada por outro usuário")

    monkeypatch.setattr(caixa_service, 'confirmar_transacao', _confirmar)

    response = client.post('/api/caixa/transacoes/12/confirmar', json={"valor_confirmado": 990},
                           headers=auth_header('operador', user_id="5"))

    assert response.status_code == 409
    assert response.get_json()['error_code'] == 'ALREADY_RECONCILED'
    assert chamadas == [(12, 990, 5, None)]


def test_limite_de_conciliacoes_por_usuario(client, auth_header, monkeypatch):
    monkeypatch.setattr(caixa_service, 'confirmar_transacao',
                        lambda transacao_id, valor, user_id, observacoes: (True, None, {"id": transacao_id}))
    headers = auth_header('operador', user_id="5")

    for _ in range(30):
        assert client.post('/api/caixa/transacoes/1/confirmar', json={"valor_confirmado": 1},
                           headers=headers).status_code == 200

    bloqueada = client.post('/api/caixa/transacoes/1/confirmar', json={"valor_confirmado": 1}, headers=headers)
    outro_usuario = client.post('/api/caixa/transacoes/1/confirmar', json={"valor_confirmado": 1},
                                headers=auth_header('operador', user_id="6"))

    assert bloqueada.status_code == 429
    assert bloqueada.get_json()['code'] == 'RATE_LIMIT_EXCEEDED'
    assert int(bloqueada.headers['Retry-After']) >= 1
    assert outro_usuario.status_code == 200


def test_rate_limit_desligado(auth_header, monkeypatch):
    app = create_app({"TESTING": True, "RATE_LIMIT_ATIVO": False})
    client = app.test_client()
    monkeypatch.setattr(caixa_service, 'confirmar_transacao',
                        lambda transacao_id, valor, user_id, observacoes: (True, None, {"id": transacao_id}))
    headers = auth_header('operador')

    respostas = [
        client.post('/api/caixa/transacoes/1/confirmar', json={"valor_confirmado": 1}, headers=headers)
        for _ in range(35)
    ]

    assert all(r.status_code == 200 for r in respostas)


def test_confirmacao_exige_valor(client, auth_header):
    response = client.post('/api/caixa/transacoes/12/confirmar', json={}, headers=auth_header('admin'))
    assert response.status_code == 400


def test_edicao_de_confirmada_so_admin(client, auth_header):
    response = client.put('/api/caixa/transacoes/3', json={"data_transacao": "2024-05-10", "valor": 10},
                          headers=auth_header('operador'))
    assert response.status_code == 403


def test_filtro_de_status_invalido(client, auth_header):
    response = client.get('/api/caixa/transacoes?status=APROVADO', headers=auth_header('admin'))
    assert response.status_code == 400


def test_liquidacao_com_conflito(client, auth_header, monkeypatch):
    monkeypatch.setattr(surebet_service, 'settle_leg',
                        lambda *args, **kwargs: (False, "CONFLICT", surebet_service.MSG_CONFLITO))

    response = client.post('/api/surebets/1/pernas/0/liquidar', json={"resultado": "green", "versao": 2},
                           headers=auth_header('operador'))

    assert response.status_code == 409
    assert response.get_json()['error'] == surebet_service.MSG_CONFLITO


def test_liquidacao_normaliza_resultado(client, auth_header, monkeypatch):
    recebido = {}

    def _settle(aposta_id, perna_index, resultado, user_id, versao=None):
        recebido.update(aposta_id=aposta_id, perna_index=perna_index, resultado=resultado, versao=versao)
        return (True, None, {"id": aposta_id})

    monkeypatch.setattr(surebet_service, 'settle_leg', _settle)

    response = client.post('/api/surebets/4/pernas/1/liquidar', json={"resultado": " meio_green ", "versao": 7},
                           headers=auth_header('admin'))

    assert response.status_code == 200
    assert recebido == {"aposta_id": 4, "perna_index": 1, "resultado": "MEIO_GREEN", "versao": 7}


def test_liquidacao_com_versao_invalida_vira_400(client, auth_header, db):
    response = client.post('/api/surebets/1/pernas/0/liquidar', json={"resultado": "GREEN", "versao": "dois"},
                           headers=auth_header('operador'))

    assert response.status_code == 400
    assert response.get_json()['error_code'] == 'VALIDATION_ERROR'
    assert db.executed == []


def test_calculo_sem_solucao_direcionada_devolve_aviso(client, auth_header, saldos, cotacoes):
    payload = {"pernas": [
        {"bookmaker_id": 1, "odd": 2.2, "stake": 100, "is_directed": True},
        {"bookmaker_id": 2, "odd": 1.5},
        {"bookmaker_id": 3, "odd": 2.0},
    ]}

    response = client.post('/api/surebets/calcular', json=payload, headers=auth_header('operador'))

    assert response.status_code == 200
    body = response.get_json()
    assert body['analise']['direcionado_sem_solucao'] is True
    assert body['analise']['modo'] == 'MANUAL'
    assert len(body['avisos']) == 1


def test_calculo_equalizado(client, auth_header, saldos, cotacoes):
    payload = {"pernas": [
        {"bookmaker_id": 1, "odd": 2.0, "stake": 100, "is_reference": True},
        {"bookmaker_id": 2, "odd": 1.8},
    ]}

    response = client.post('/api/surebets/calcular', json=payload, headers=auth_header('operador'))

    assert response.status_code == 200
    body = response.get_json()
    assert body['analise']['stakes'] == [100, 111]
    assert body['analise']['classificacao'] == 'RISCO'


def test_criacao_com_saldo_insuficiente_vira_422(client, auth_header, monkeypatch):
    monkeypatch.setattr(surebet_service, 'create_surebet',
                        lambda data, user_id: (False, "INSUFFICIENT_BALANCE", "Saldo insuficiente em Casa A"))

    response = client.post('/api/surebets/', json={"pernas": []}, headers=auth_header('operador'))

    assert response.status_code == 422


def test_exclusao_so_admin(client, auth_header):
    response = client.delete('/api/surebets/1', headers=auth_header('operador'))
    assert response.status_code == 403


def test_periodo_de_roi_invalido(client, auth_header):
    response = client.get('/api/relatorios/roi-investidores?meses=5', headers=auth_header('investidor'))
    assert response.status_code == 400
    assert response.get_json()['error_code'] == 'VALIDATION_ERROR'


def test_relatorio_moedas_valida_datas(client, auth_header, monkeypatch):
    monkeypatch.setattr(relatorio_service, 'resumo_por_moeda', lambda filters: (True, None, filters))

    invalido = client.get('/api/relatorios/moedas?data_inicio=2026-10-01', headers=auth_header('admin'))
    valido = client.get('/api/relatorios/moedas?data_inicio=01-10-2026&data_fim=17-10-2026&tipo=saque',
                        headers=auth_header('admin'))

    assert invalido.status_code == 400
    assert valido.status_code == 200
    assert valido.get_json() == {"data_inicio": "2026-10-01", "data_fim": "2026-10-17", "tipo": "SAQUE"}


def test_swagger_yaml(client):
    response = client.get('/api/docs/swagger.yaml')
    assert response.status_code == 200
    body = response.get_json()
    assert body['openapi'].startswith('3.')
    assert '/surebets/{id}/pernas/{perna_index}/liquidar' in body['paths']
