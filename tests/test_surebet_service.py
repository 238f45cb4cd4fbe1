import json
from datetime import datetime

import pytest

from banca_api.services.surebet_service import (
    create_surebet, get_surebet, settle_leg, delete_surebet, update_surebet, simular_surebet,
    lucro_entrada, MSG_CONFLITO,
)


def _snapshot(moeda='BRL', cotacao=1.0, valor=100.0):
    return {
        "moeda_origem": moeda, "moeda_referencia": "BRL", "cotacao": cotacao,
        "cotacao_at": "2026-10-01T15:00:00", "valor_original": valor,
        "valor_brl_referencia": round(valor * cotacao, 2),
    }


def _perna_salva(ordem, bookmaker_id, odd, stake, resultado=None, lucro=None, entries=None, moeda='BRL'):
    return {
        "ordem": ordem, "bookmaker_id": bookmaker_id, "bookmaker_nome": f"Casa {bookmaker_id}",
        "selecao": ["Casa", "Fora", "Empate"][ordem], "odd": odd, "stake": stake, "moeda": moeda,
        "is_reference": ordem == 0, "is_directed": False, "fonte": "MANUAL",
        "cotacao_snapshot": _snapshot(moeda, 1.0, stake), "entries": entries or [],
        "resultado": resultado, "lucro_prejuizo": lucro,
    }


class Responder:
    """Responde SELECT da surebet, UPDATE guardado por versão e INSERT no ledger"""

    def __init__(self, row, update_rowcount=1, delete_rowcount=1):
        self.row = row
        self.update_rowcount = update_rowcount
        self.delete_rowcount = delete_rowcount
        self.proximo_id = 500

    def __call__(self, sql, params):
        if sql.startswith("SELECT") and "FROM APOSTAS_UNIFICADA" in sql:
            return ([self.row] if self.row else [], -1)
        if sql.startswith("UPDATE APOSTAS_UNIFICADA"):
            return ([], self.update_rowcount)
        if sql.startswith("DELETE FROM APOSTAS_UNIFICADA"):
            return ([], self.delete_rowcount)
        if sql.startswith("INSERT INTO CASH_LEDGER"):
            self.proximo_id += 1
            return ([(self.proximo_id,)], 1)
        if sql.startswith("INSERT INTO APOSTAS_UNIFICADA"):
            return ([(10, datetime(2026, 10, 1, 15, 0))], 1)
        return ([], 1)


def _ledger(db):
    """(tipo, valor, origem, destino) de cada INSERT no ledger, em ordem"""
    return [(p[0], p[2], p[4], p[5]) for _, p in db.statements("INSERT INTO CASH_LEDGER")]


def _deltas_saldo(db):
    return [(p[1], p[0]) for _, p in db.statements("UPDATE BOOKMAKERS SET SALDO_ATUAL")]


class TestLucroEntrada:
    @pytest.mark.parametrize("resultado, esperado", [
        ("GREEN", 80.0),
        ("MEIO_GREEN", 40.0),
        ("RED", -100.0),
        ("MEIO_RED", -50.0),
        ("VOID", 0.0),
    ])
    def test_lucro_por_resultado(self, resultado, esperado):
        assert lucro_entrada(100, 1.8, resultado) == esperado

    @pytest.mark.parametrize("resultado, esperado", [
        ("GREEN", 80.0),
        ("MEIO_GREEN", 40.0),
        ("RED", 0.0),
        ("MEIO_RED", 0.0),
        ("VOID", 0.0),
    ])
    def test_freebet_nao_perde_dinheiro_real(self, resultado, esperado):
        assert lucro_entrada(100, 1.8, resultado, 'FREEBET') == esperado


class TestCreateSurebet:
    payload = {
        "evento": "Flamengo x Palmeiras",
        "mercado": "1X2",
        "pernas": [
            {"bookmaker_id": 1, "odd": 2.0, "stake": 100, "selecao": "Casa", "is_reference": True},
            {"bookmaker_id": 2, "odd": 1.8, "stake": 111, "selecao": "Fora"},
            {},
        ],
    }

    def test_registra_com_snapshot_e_sem_ledger(self, db, saldos, cotacoes, eventos):
        db.responder = Responder(None)

        success, error_code, result = create_surebet(self.payload, user_id=1)

        assert success, result
        assert error_code is None
        assert result['id'] == 10
        assert result['status'] == 'PENDENTE'
        assert result['stake_total'] == pytest.approx(211.0)
        assert result['lucro_esperado'] == pytest.approx(-11.2)
        assert result['classificacao'] == 'RISCO'
        assert result['moeda_operacao'] == 'BRL'
        assert len(result['pernas']) == 2
        assert result['pernas'][1]['cotacao_snapshot']['cotacao'] == 1.0
        assert result['pernas'][1]['cotacao_snapshot']['valor_original'] == 111
        assert result['pernas'][0]['bookmaker_nome'] == 'Casa A'

        assert len(db.statements("INSERT INTO APOSTAS_PERNAS")) == 2
        assert db.statements("INSERT INTO CASH_LEDGER") == []
        assert db.commits == 1
        assert eventos[0][0] == 'surebet.criada'
        assert eventos[0][1]['bookmaker_ids'] == [1, 2]

    def test_multimoeda_consolida_em_brl(self, db, saldos, cotacoes, eventos, casa):
        saldos[2] = casa(2, 'Casa USD', moeda='USD')
        db.responder = Responder(None)
        payload = {"pernas": [
            {"bookmaker_id": 1, "odd": 2.0, "stake": 100, "is_reference": True},
            {"bookmaker_id": 2, "odd": 2.0, "stake": 20},
        ]}

        success, _, result = create_surebet(payload, user_id=1)

        assert success, result
        assert result['moeda_operacao'] == 'BRL'
        assert result['stake_total'] == pytest.approx(200.0)
        usd = result['pernas'][1]
        assert usd['moeda'] == 'USD'
        assert usd['cotacao_snapshot']['cotacao'] == 5.0
        assert usd['cotacao_snapshot']['valor_brl_referencia'] == 100.0

    def test_saldo_insuficiente_nao_grava(self, db, saldos, cotacoes, eventos, casa):
        saldos[1] = casa(1, 'Casa A', saldo_operavel=50)
        db.responder = Responder(None)

        success, error_code, message = create_surebet(self.payload, user_id=1)

        assert not success
        assert error_code == 'INSUFFICIENT_BALANCE'
        assert 'Casa A' in message
        assert db.executed == []
        assert eventos == []

    def test_casa_desconhecida(self, db, saldos, cotacoes, eventos):
        payload = {"pernas": [
            {"bookmaker_id": 1, "odd": 2.0, "stake": 100},
            {"bookmaker_id": 99, "odd": 2.0, "stake": 100},
        ]}
        success, error_code, message = create_surebet(payload)
        assert not success
        assert error_code == 'VALIDATION_ERROR'
        assert '99' in message

    def test_data_invalida(self, db, saldos, cotacoes, eventos):
        payload = dict(self.payload, data_aposta='31-02-2026')
        success, error_code, _ = create_surebet(payload)
        assert not success
        assert error_code == 'VALIDATION_ERROR'


class TestFreebet:
    payload = {
        "contexto_operacional": "FREEBET",
        "pernas": [
            {"bookmaker_id": 1, "odd": 4.0, "stake": 50, "is_reference": True,
             "fonte_saldo": "FREEBET", "freebet_id": 8},
            {"bookmaker_id": 2, "odd": 1.4, "stake": 107},
        ],
    }

    def test_consome_freebet_e_nao_conta_stake_como_custo(self, db, saldos, cotacoes, eventos, casa):
        saldos[1] = dict(casa(1, 'Casa A'), saldo_freebet=50.0)
        db.responder = Responder(None)

        success, _, result = create_surebet(self.payload, user_id=1)

        assert success, result
        assert result['contexto_operacional'] == 'FREEBET'
        assert result['stake_total'] == pytest.approx(107.0)
        assert result['lucro_esperado'] == pytest.approx(42.8)
        assert result['classificacao'] == 'ARBITRAGEM'
        assert result['pernas'][0]['fonte_saldo'] == 'FREEBET'
        assert result['pernas'][0]['freebet_id'] == 8
        assert result['pernas'][1]['freebet_id'] is None

        assert [p[8] for _, p in db.statements("INSERT INTO APOSTAS_PERNAS")] == ['FREEBET', 'REAL']
        sql, params = db.statements("UPDATE FREEBETS_RECEBIDAS")[0]
        assert sql.endswith("AND BOOKMAKER_ID = ?")
        assert params == ('UTILIZADA', 10, 8, 'LIBERADA', 1)
        assert db.commits == 1

    def test_freebet_indisponivel_desfaz_o_registro(self, db, saldos, cotacoes, eventos, casa):
        saldos[1] = dict(casa(1, 'Casa A'), saldo_freebet=50.0)
        base = Responder(None)

        def _responder(sql, params):
            if sql.startswith("UPDATE FREEBETS_RECEBIDAS"):
                return ([], 0)
            return base(sql, params)

        db.responder = _responder

        success, error_code, message = create_surebet(self.payload, user_id=1)

        assert not success
        assert error_code == 'VALIDATION_ERROR'
        assert 'Freebet 8' in message
        assert db.rollbacks == 1
        assert db.commits == 0
        assert eventos == []

    def test_stake_acima_do_saldo_de_freebet(self, db, saldos, cotacoes, eventos, casa):
        saldos[1] = dict(casa(1, 'Casa A'), saldo_freebet=20.0)

        success, error_code, message = create_surebet(self.payload, user_id=1)

        assert not success
        assert error_code == 'INSUFFICIENT_BALANCE'
        assert 'freebet' in message
        assert db.executed == []

    def test_contexto_freebet_exige_perna_freebet(self, db, saldos, cotacoes, eventos):
        payload = {"contexto_operacional": "FREEBET", "pernas": [
            {"bookmaker_id": 1, "odd": 2.0, "stake": 100, "is_reference": True},
            {"bookmaker_id": 2, "odd": 2.0, "stake": 100},
        ]}

        success, error_code, message = create_surebet(payload, user_id=1)

        assert not success
        assert error_code == 'VALIDATION_ERROR'
        assert 'FREEBET' in message
        assert db.executed == []

    def test_red_em_freebet_nao_lanca_no_ledger(self, db, surebet_row, eventos):
        freebet = dict(_perna_salva(0, 1, 4.0, 50), fonte_saldo='FREEBET', freebet_id=8)
        db.responder = Responder(surebet_row(pernas=[freebet, _perna_salva(1, 2, 1.4, 107)]))

        success, _, result = settle_leg(1, 0, 'RED')

        assert success, result
        assert result['pernas'][0]['lucro_prejuizo'] == 0.0
        assert _ledger(db) == []
        assert _deltas_saldo(db) == []

    def test_green_em_freebet_paga_so_o_lucro(self, db, surebet_row, eventos):
        freebet = dict(_perna_salva(0, 1, 4.0, 50), fonte_saldo='FREEBET', freebet_id=8)
        db.responder = Responder(surebet_row(pernas=[freebet, _perna_salva(1, 2, 1.4, 107)]))

        success, _, _ = settle_leg(1, 0, 'GREEN')

        assert success
        assert _ledger(db) == [('APOSTA_GREEN', 150.0, None, 1)]

    def test_exclusao_libera_a_freebet(self, db, surebet_row, eventos):
        freebet = dict(_perna_salva(0, 1, 4.0, 50), fonte_saldo='FREEBET', freebet_id=8)
        db.responder = Responder(surebet_row(pernas=[freebet, _perna_salva(1, 2, 1.4, 107)], versao=1))

        success, _, _ = delete_surebet(1, user_id=1)

        assert success
        assert db.statements("UPDATE FREEBETS_RECEBIDAS")[0][1] == ('LIBERADA', 1, 'UTILIZADA')
        assert db.commits == 1


class TestRecarga:
    def test_pernas_relidas_iguais_as_gravadas(self, db, saldos, cotacoes, eventos, casa, surebet_row):
        saldos[2] = casa(2, 'Casa USD', moeda='USD')
        db.responder = Responder(None)
        payload = {"pernas": [
            {"bookmaker_id": 1, "odd": "2,05", "stake": 100, "selecao": "Casa", "is_reference": True},
            {"bookmaker_id": 2, "odd": 2.1, "stake": 19.5, "selecao": "Fora",
             "entries": [{"bookmaker_id": 3, "odd": 2.2, "stake": 30}]},
        ]}

        success, _, criado = create_surebet(payload, user_id=1)
        assert success, criado
        gravado = db.statements("INSERT INTO APOSTAS_UNIFICADA")[0][1][11]

        db.responder = Responder(surebet_row(aposta_id=10, pernas=json.loads(gravado)))
        relido = get_surebet(10)

        assert relido['pernas'] == criado['pernas']
        assert [p['odd'] for p in relido['pernas']] == [2.05, 2.1]
        assert [p['stake'] for p in relido['pernas']] == [100, 19.5]
        assert relido['pernas'][1]['cotacao_snapshot']['cotacao'] == 5.0
        assert relido['pernas'][1]['entries'][0]['cotacao_snapshot'] == criado['pernas'][1]['entries'][0]['cotacao_snapshot']


class TestSettleLeg:
    def test_green_lanca_lucro_da_posicao(self, db, surebet_row, eventos):
        pernas = [_perna_salva(0, 1, 2.0, 100), _perna_salva(1, 2, 1.8, 111)]
        db.responder = Responder(surebet_row(pernas=pernas, versao=3))

        success, _, result = settle_leg(1, 0, 'GREEN', user_id=7)

        assert success, result
        assert result['status'] == 'PENDENTE'
        assert result['versao'] == 4
        assert result['pernas'][0]['lucro_prejuizo'] == 100.0
        assert _ledger(db) == [('APOSTA_GREEN', 100.0, None, 1)]
        assert _deltas_saldo(db) == [(1, 100.0)]

        update_sql, update_params = db.statements("UPDATE APOSTAS_UNIFICADA")[0]
        assert "WHERE ID = ? AND VERSAO = ?" in update_sql
        assert update_params[-2:] == (1, 3)
        assert db.commits == 1
        assert eventos[0][0] == 'surebet.liquidada'

    def test_mesmo_resultado_nao_grava_nada(self, db, surebet_row, eventos):
        pernas = [_perna_salva(0, 1, 2.0, 100, resultado='GREEN', lucro=100.0), _perna_salva(1, 2, 1.8, 111)]
        db.responder = Responder(surebet_row(pernas=pernas, versao=1))

        success, _, result = settle_leg(1, 0, 'GREEN')

        assert success
        assert result['versao'] == 1
        assert [sql for sql, _ in db.executed if not sql.startswith("SELECT")] == []
        assert db.commits == 0
        assert eventos == []

    def test_reliquidar_estorna_o_lancamento_anterior(self, db, surebet_row, eventos):
        pernas = [_perna_salva(0, 1, 2.0, 100, resultado='GREEN', lucro=100.0), _perna_salva(1, 2, 1.8, 111)]
        db.responder = Responder(surebet_row(pernas=pernas, versao=1))

        success, _, result = settle_leg(1, 0, 'RED')

        assert success, result
        assert _ledger(db) == [
            ('APOSTA_REVERSAO', 100.0, 1, None),
            ('APOSTA_RED', 100.0, 1, None),
        ]
        # estorno do GREEN anterior e débito do RED
        assert sum(delta for _, delta in _deltas_saldo(db)) == -200.0
        assert result['pernas'][0]['lucro_prejuizo'] == -100.0

    def test_coberturas_lancam_cada_uma_no_ledger(self, db, surebet_row, eventos):
        cobertura = {"bookmaker_id": 3, "odd": 2.5, "stake": 40, "moeda": "BRL",
                     "cotacao_snapshot": _snapshot(valor=40), "resultado": None, "lucro_prejuizo": None}
        pernas = [_perna_salva(0, 1, 2.0, 60, entries=[cobertura]), _perna_salva(1, 2, 1.8, 111)]
        db.responder = Responder(surebet_row(pernas=pernas))

        success, _, _ = settle_leg(1, 0, 'GREEN')

        assert success
        assert _ledger(db) == [('APOSTA_GREEN', 60.0, None, 1), ('APOSTA_GREEN', 60.0, None, 3)]
        pernas_updates = db.statements("UPDATE APOSTAS_PERNAS")
        assert [p[-1] for _, p in pernas_updates] == [0, 1]

    def test_ultima_perna_consolida_resultado(self, db, surebet_row, eventos):
        pernas = [_perna_salva(0, 1, 2.0, 100), _perna_salva(1, 2, 1.8, 111, resultado='RED', lucro=-111.0)]
        db.responder = Responder(surebet_row(pernas=pernas, stake_total=211.0))

        success, _, result = settle_leg(1, 0, 'GREEN')

        assert success
        assert result['status'] == 'LIQUIDADA'
        assert result['resultado'] == 'RED'
        assert result['lucro_prejuizo'] == pytest.approx(-11.0)
        assert result['roi_real'] == pytest.approx(round(-11 / 211 * 100, 4))

    def test_conflito_de_versao_no_update(self, db, surebet_row, eventos):
        pernas = [_perna_salva(0, 1, 2.0, 100), _perna_salva(1, 2, 1.8, 111)]
        db.responder = Responder(surebet_row(pernas=pernas), update_rowcount=0)

        success, error_code, message = settle_leg(1, 0, 'GREEN')

        assert not success
        assert error_code == 'CONFLICT'
        assert message == MSG_CONFLITO
        assert db.rollbacks == 1
        assert db.statements("INSERT INTO CASH_LEDGER") == []
        assert eventos == []

    def test_versao_do_cliente_desatualizada(self, db, surebet_row, eventos):
        pernas = [_perna_salva(0, 1, 2.0, 100), _perna_salva(1, 2, 1.8, 111)]
        db.responder = Responder(surebet_row(pernas=pernas, versao=2))

        success, error_code, _ = settle_leg(1, 0, 'GREEN', versao=1)

        assert not success
        assert error_code == 'CONFLICT'
        assert db.statements("UPDATE") == []

    def test_resultado_invalido(self, db):
        success, error_code, _ = settle_leg(1, 0, 'EMPATE')
        assert not success
        assert error_code == 'VALIDATION_ERROR'
        assert db.executed == []

    @pytest.mark.parametrize("versao", ["abc", "1.5", 2.5, True])
    def test_versao_nao_inteira(self, db, versao):
        success, error_code, _ = settle_leg(1, 0, 'GREEN', versao=versao)
        assert not success
        assert error_code == 'VALIDATION_ERROR'
        assert db.executed == []

    def test_versao_numerica_em_texto(self, db, surebet_row, eventos):
        pernas = [_perna_salva(0, 1, 2.0, 100), _perna_salva(1, 2, 1.8, 111)]
        db.responder = Responder(surebet_row(pernas=pernas, versao=3))

        success, _, result = settle_leg(1, 0, 'GREEN', versao=" 3 ")

        assert success, result
        assert result['versao'] == 4

    def test_perna_inexistente(self, db, surebet_row):
        db.responder = Responder(surebet_row(pernas=[_perna_salva(0, 1, 2.0, 100), _perna_salva(1, 2, 1.8, 111)]))
        success, error_code, message = settle_leg(1, 5, 'GREEN')
        assert not success
        assert error_code == 'VALIDATION_ERROR'
        assert message == 'Perna inválida'

    def test_surebet_inexistente(self, db):
        db.responder = Responder(None)
        assert settle_leg(1, 0, 'GREEN')[1] == 'NOT_FOUND'


class TestDeleteSurebet:
    def test_estorna_pernas_liquidadas(self, db, surebet_row, eventos):
        pernas = [_perna_salva(0, 1, 2.0, 100, resultado='GREEN', lucro=100.0), _perna_salva(1, 2, 1.8, 111)]
        db.responder = Responder(surebet_row(pernas=pernas, versao=2))

        success, _, result = delete_surebet(1, user_id=1)

        assert success
        assert result == {"id": 1, "estornos": 1}
        assert _ledger(db) == [('APOSTA_REVERSAO', 100.0, 1, None)]
        assert db.statements("DELETE FROM APOSTAS_UNIFICADA")[0][1] == (1, 2)
        assert eventos[0][0] == 'surebet.excluida'

    def test_conflito(self, db, surebet_row, eventos):
        pernas = [_perna_salva(0, 1, 2.0, 100), _perna_salva(1, 2, 1.8, 111)]
        db.responder = Responder(surebet_row(pernas=pernas), delete_rowcount=0)

        success, error_code, _ = delete_surebet(1)

        assert not success
        assert error_code == 'CONFLICT'
        assert db.rollbacks == 1


class TestUpdateSurebet:
    def test_nao_edita_com_perna_liquidada(self, db, surebet_row, saldos, cotacoes):
        pernas = [_perna_salva(0, 1, 2.0, 100, resultado='GREEN', lucro=100.0), _perna_salva(1, 2, 1.8, 111)]
        db.responder = Responder(surebet_row(pernas=pernas))

        success, error_code, _ = update_surebet(1, {"pernas": []})

        assert not success
        assert error_code == 'VALIDATION_ERROR'

    def test_mantem_snapshot_das_posicoes_inalteradas(self, db, surebet_row, saldos, cotacoes, eventos):
        pernas = [_perna_salva(0, 1, 2.0, 100), _perna_salva(1, 2, 1.8, 111)]
        db.responder = Responder(surebet_row(pernas=pernas, versao=0))
        payload = {"versao": 0, "pernas": [
            {"bookmaker_id": 1, "odd": 2.0, "stake": 100, "selecao": "Casa", "is_reference": True},
            {"bookmaker_id": 2, "odd": 1.85, "stake": 108, "selecao": "Fora"},
        ]}

        success, _, result = update_surebet(1, payload, user_id=1)

        assert success, result
        assert result['versao'] == 1
        assert result['pernas'][0]['cotacao_snapshot']['cotacao_at'] == "2026-10-01T15:00:00"
        assert result['pernas'][1]['cotacao_snapshot']['cotacao_at'] != "2026-10-01T15:00:00"
        assert len(db.statements("DELETE FROM APOSTAS_PERNAS")) == 1
        assert len(db.statements("INSERT INTO APOSTAS_PERNAS")) == 2
        update_params = db.statements("UPDATE APOSTAS_UNIFICADA")[0][1]
        assert json.loads(update_params[9])[1]['odd'] == 1.85

    def test_versao_divergente(self, db, surebet_row, saldos, cotacoes):
        pernas = [_perna_salva(0, 1, 2.0, 100), _perna_salva(1, 2, 1.8, 111)]
        db.responder = Responder(surebet_row(pernas=pernas, versao=4))

        success, error_code, _ = update_surebet(1, {"versao": 3, "pernas": []})

        assert not success
        assert error_code == 'CONFLICT'

    def test_versao_invalida(self, db, saldos, cotacoes):
        success, error_code, _ = update_surebet(1, {"versao": "v3", "pernas": []})

        assert not success
        assert error_code == 'VALIDATION_ERROR'
        assert db.executed == []


class TestSimularSurebet:
    def test_equaliza_e_distribui_stakes(self, saldos, cotacoes):
        data = {"pernas": [
            {"bookmaker_id": 1, "odd": 2.0, "stake": 100, "is_reference": True},
            {"bookmaker_id": 2, "odd": 1.8},
        ]}

        success, _, result = simular_surebet(data)

        assert success
        assert result['analise']['modo'] == 'EQUALIZADO'
        assert [p['stake'] for p in result['pernas']] == [100, 111]
        assert result['avisos'] == []
        assert result['cotacoes'] == {'BRL': 1.0}

    def test_lucro_direcionado(self, saldos, cotacoes):
        data = {"pernas": [
            {"bookmaker_id": 1, "odd": 2.2, "stake": 100, "is_directed": True},
            {"bookmaker_id": 2, "odd": 3.6},
            {"bookmaker_id": 3, "odd": 4.0},
        ]}

        success, _, result = simular_surebet(data)

        assert success
        assert result['analise']['modo'] == 'DIRECIONADO'
        assert result['analise']['stakes'] == [100, 59, 53]

    def test_sem_solucao_para_direcionado_cai_no_modo_manual(self, saldos, cotacoes):
        data = {"pernas": [
            {"bookmaker_id": 1, "odd": 2.2, "stake": 100, "is_directed": True},
            {"bookmaker_id": 2, "odd": 1.5},
            {"bookmaker_id": 3, "odd": 2.0},
        ]}

        success, _, result = simular_surebet(data)

        assert success
        assert result['analise']['modo'] == 'MANUAL'
        assert result['analise']['stakes'] == [100, 0, 0]
        assert result['analise']['direcionado_sem_solucao'] is True
        assert 'lucro direcionado' in result['avisos'][0]

    def test_direcionada_sem_stake_usa_equalizacao(self, saldos, cotacoes):
        data = {"pernas": [
            {"bookmaker_id": 1, "odd": 2.0, "stake": 100, "is_reference": True},
            {"bookmaker_id": 2, "odd": 2.1, "is_directed": True},
        ]}

        success, _, result = simular_surebet(data)

        assert success
        assert result['analise']['modo'] == 'EQUALIZADO'
        assert result['analise']['stakes'] == [100, 95]
        assert result['analise']['direcionado_sem_solucao'] is True
        assert len(result['avisos']) == 1

    def test_stake_calculada_completa_a_perna(self, saldos, cotacoes):
        data = {"pernas": [
            {"bookmaker_id": 1, "odd": 2.1, "stake": 100, "is_reference": True},
            {"bookmaker_id": 2, "odd": 2.1},
        ]}

        success, _, result = simular_surebet(data)

        assert success
        assert result['analise']['pernas_completas'] == 2
        assert result['analise']['classificacao'] == 'ARBITRAGEM'
        assert result['analise']['is_valid_arbitrage'] is True
        assert result['analise']['direcionado_sem_solucao'] is False

    def test_falta_de_saldo_vira_aviso(self, saldos, cotacoes, casa):
        saldos[2] = casa(2, 'Casa B', saldo_operavel=50)
        data = {"pernas": [
            {"bookmaker_id": 1, "odd": 2.0, "stake": 100, "is_reference": True},
            {"bookmaker_id": 2, "odd": 1.8},
        ]}

        success, _, result = simular_surebet(data)

        assert success
        assert len(result['avisos']) == 1
        assert 'Casa B' in result['avisos'][0]

    def test_multimoeda_usa_cotacoes(self, saldos, cotacoes, casa):
        saldos[2] = casa(2, 'Casa USD', moeda='USD')
        data = {"pernas": [
            {"bookmaker_id": 1, "odd": 2.0, "stake": 100, "is_reference": True},
            {"bookmaker_id": 2, "odd": 2.0},
        ]}

        success, _, result = simular_surebet(data)

        assert success
        assert result['analise']['modo'] == 'EQUALIZADO'
        assert result['analise']['stakes'] == [100, 20]
        assert result['cotacoes'] == {'BRL': 1.0, 'USD': 5.0}

    def test_multimoeda_ignora_direcionado_com_aviso(self, saldos, cotacoes, casa):
        saldos[2] = casa(2, 'Casa USD', moeda='USD')
        data = {"pernas": [
            {"bookmaker_id": 1, "odd": 2.0, "stake": 100, "is_reference": True},
            {"bookmaker_id": 2, "odd": 2.0, "is_directed": True},
        ]}

        success, _, result = simular_surebet(data)

        assert success
        assert result['analise']['modo'] == 'EQUALIZADO'
        assert result['analise']['stakes'] == [100, 20]
        assert result['analise']['direcionado_sem_solucao'] is True
        assert 'moedas diferentes' in result['avisos'][0]

    def test_exige_duas_pernas(self):
        assert simular_surebet({"pernas": [{"odd": 2.0}]})[1] == 'VALIDATION_ERROR'
