import os
import json
from datetime import datetime

os.environ.setdefault('FLASK_ENV', 'test')

import pytest

from banca_api.services import (
    surebet_service, caixa_service, relatorio_service, bookmaker_service, currency_service,
)
from banca_api.utils.cache_manager import get_cache_manager
from banca_api.middleware.rate_limiter import clear_rate_limit_cache


class FakeCursor:
    """Cursor fdb em memória: cada execute pergunta ao responder (sql, params) -> (rows, rowcount)"""

    def __init__(self, db):
        self.db = db
        self._rows = []
        self.rowcount = -1

    def execute(self, sql, params=None):
        sql = " ".join(sql.split())
        params = tuple(params or ())
        self.db.executed.append((sql, params))
        resposta = self.db.responder(sql, params)
        rows, rowcount = resposta if resposta is not None else ([], 1)
        self._rows = list(rows or [])
        self.rowcount = rowcount

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    def close(self):
        pass


class FakeConnection:
    def __init__(self, db):
        self.db = db

    def cursor(self):
        return FakeCursor(self.db)

    def commit(self):
        self.db.commits += 1

    def rollback(self):
        self.db.rollbacks += 1

    def close(self):
        self.db.closed += 1


class FakeDB:
    def __init__(self):
        self.executed = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = 0
        self.responder = lambda sql, params: None

    def connect(self):
        return FakeConnection(self)

    def statements(self, prefix):
        """Comandos executados que começam com `prefix`"""
        return [(sql, params) for sql, params in self.executed if sql.startswith(prefix)]


@pytest.fixture(autouse=True)
def limpar_estado(monkeypatch):
    get_cache_manager().clear()
    clear_rate_limit_cache()
    monkeypatch.setattr(currency_service, '_fetch_ptax', lambda moeda: None)
    yield
    get_cache_manager().clear()


@pytest.fixture
def db(monkeypatch):
    fake = FakeDB()
    for module in (surebet_service, caixa_service, relatorio_service, bookmaker_service, currency_service):
        monkeypatch.setattr(module, 'get_db_connection', fake.connect)
    return fake


@pytest.fixture
def eventos(monkeypatch):
    publicados = []

    def _publish(event_type, data):
        publicados.append((event_type, data))

    monkeypatch.setattr(surebet_service, 'safe_publish', _publish)
    monkeypatch.setattr(caixa_service, 'safe_publish', _publish)
    return publicados


@pytest.fixture
def cotacoes(monkeypatch):
    taxas = {'BRL': 1.0, 'USD': 5.0, 'EUR': 6.0, 'USDT': 5.0}
    monkeypatch.setattr(surebet_service, 'get_cotacoes', lambda force_refresh=False: dict(taxas))
    monkeypatch.setattr(relatorio_service, 'get_cotacoes', lambda force_refresh=False: dict(taxas))
    return taxas


def _casa(bookmaker_id, nome, moeda='BRL', saldo_operavel=1000.0):
    return {
        "id": bookmaker_id,
        "nome": nome,
        "moeda": moeda,
        "status": "ativo",
        "parceiro_nome": None,
        "saldo_real": saldo_operavel,
        "saldo_em_aposta": 0.0,
        "saldo_disponivel": saldo_operavel,
        "saldo_freebet": 0.0,
        "saldo_bonus": 0.0,
        "saldo_operavel": saldo_operavel,
    }


@pytest.fixture
def saldos(monkeypatch):
    """Saldos canônicos configuráveis por teste: saldos[1] = casa(...)"""
    casas = {1: _casa(1, 'Casa A'), 2: _casa(2, 'Casa B'), 3: _casa(3, 'Casa C')}

    def _get(bookmaker_ids=None, use_cache=True, cur=None):
        ids = bookmaker_ids or list(casas)
        return {int(i): casas[int(i)] for i in ids if int(i) in casas}

    monkeypatch.setattr(surebet_service, 'get_saldos_canonicos', _get)
    return casas


@pytest.fixture
def casa():
    return _casa


@pytest.fixture
def surebet_row():
    def _build(aposta_id=1, pernas=None, versao=0, status='PENDENTE', stake_total=211.0, moeda='BRL'):
        return (
            aposta_id, 'ARBITRAGEM', 'SUREBET', 'NORMAL', status, None,
            'Flamengo x Palmeiras', '1X2', datetime(2026, 10, 1, 16, 0), moeda,
            stake_total, -11.2, -5.3081, None, None, json.dumps(pernas or []), versao,
            None, 1, datetime(2026, 10, 1, 15, 0), None,
        )
    return _build


@pytest.fixture
def transacao_row():
    def _build(transacao_id=1, tipo='DEPOSITO', status='PENDENTE', valor=1000.0, moeda='BRL',
               valor_usd=None, valor_confirmado=None, qtd_coin=None, origem_id=None, destino_id=None,
               nome_investidor=None, descricao=None, metadata=None):
        return (
            transacao_id, tipo, status, valor, moeda, valor_usd, None, None,
            valor_confirmado, None, qtd_coin, None, None, None,
            origem_id, destino_id, nome_investidor, descricao, datetime(2026, 9, 20, 10, 0),
            None, None, json.dumps(metadata) if metadata is not None else None, 1, None, None,
            datetime(2026, 9, 20, 10, 0),
        )
    return _build
