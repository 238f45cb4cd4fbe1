"""
Relatórios da banca

- ROI por investidor (aportes x liquidações) em janelas de 1, 3, 6 ou 12 meses
- Histórico de um investidor
- Resumo do caixa por moeda e tipo
- Resumo das surebets (contagem por status, stake, lucro e ROI médio)
"""

import fdb
import logging
from datetime import datetime
from dateutil.relativedelta import relativedelta
from ..database import get_db_connection
from ..utils.cache_manager import get_cache_manager, build_cache_key, cache_result
from ..utils.formatters import round_money, safe_divide
from .ledger_service import TIPO_APORTE, TIPO_APORTE_FINANCEIRO, TIPO_LIQUIDACAO
from .currency_service import get_cotacoes, converter

logger = logging.getLogger(__name__)

PERIODOS_VALIDOS = [1, 3, 6, 12]
INVESTIDOR_SEM_NOME = 'Sem nome'

TIPOS_APORTE = [TIPO_APORTE, TIPO_APORTE_FINANCEIRO]
TIPOS_INVESTIDOR = TIPOS_APORTE + [TIPO_LIQUIDACAO]


def _janela_meses(meses, referencia=None):
    """Do início do mês de (hoje - N meses) até o fim do mês atual"""
    referencia = referencia or datetime.now()
    inicio = (referencia - relativedelta(months=meses)).replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    fim = (referencia + relativedelta(day=31)).replace(hour=23, minute=59, second=59, microsecond=999999)
    return inicio, fim


def _roi(aportes, liquidacoes):
    if aportes <= 0:
        return 0.0
    return round((liquidacoes / aportes) * 100 - 100, 2)


def _nome_investidor(nome):
    nome = (nome or '').strip()
    return nome or INVESTIDOR_SEM_NOME


def relatorio_roi_investidores(meses=12, referencia=None):
    """
    ROI por investidor.

    Args:
        meses: 1, 3, 6 ou 12
        referencia: data de referência (default agora)

    Returns:
        (success, error_code, result) com result:
            periodo {meses, inicio, fim}, investidores [...], totais {...}
    """
    try:
        meses = int(meses)
    except (ValueError, TypeError):
        return (False, "VALIDATION_ERROR", "Período inválido")
    if meses not in PERIODOS_VALIDOS:
        return (False, "VALIDATION_ERROR", f"Período inválido. Use um de: {', '.join(map(str, PERIODOS_VALIDOS))} meses")

    inicio, fim = _janela_meses(meses, referencia)

    cache = get_cache_manager()
    cache_key = build_cache_key('relatorios:roi', {"inicio": inicio, "fim": fim})
    cached = cache.get(cache_key)
    if cached is not None:
        return (True, None, cached)

    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()
        placeholders = ', '.join('?' for _ in TIPOS_INVESTIDOR)
        cur.execute(f"""
            SELECT TIPO_TRANSACAO, NOME_INVESTIDOR, COALESCE(VALOR_CONFIRMADO, VALOR)
            FROM CASH_LEDGER
            WHERE STATUS = 'CONFIRMADO'
              AND TIPO_TRANSACAO IN ({placeholders})
              AND DATA_TRANSACAO >= ? AND DATA_TRANSACAO <= ?
        """, (*TIPOS_INVESTIDOR, inicio, fim))
        rows = cur.fetchall()
    except fdb.Error as e:
        logger.error(f"Erro ao gerar relatório de ROI por investidor: {e}", exc_info=True)
        return (False, "DATABASE_ERROR", "Erro interno do servidor")
    finally:
        if conn:
            conn.close()

    por_investidor = {}
    for tipo, nome, valor in rows:
        nome = _nome_investidor(nome)
        item = por_investidor.setdefault(nome, {"aportes": 0.0, "liquidacoes": 0.0, "transacoes": 0})
        if tipo in TIPOS_APORTE:
            item['aportes'] += float(valor or 0)
        else:
            item['liquidacoes'] += float(valor or 0)
        item['transacoes'] += 1

    investidores = []
    for nome, item in por_investidor.items():
        investidores.append({
            "nome_investidor": nome,
            "aportes": round_money(item['aportes']),
            "liquidacoes": round_money(item['liquidacoes']),
            "saldo": round_money(item['aportes'] - item['liquidacoes']),
            "roi": _roi(item['aportes'], item['liquidacoes']),
            "transacoes": item['transacoes'],
        })
    investidores.sort(key=lambda i: (-i['aportes'], i['nome_investidor']))

    total_aportes = sum(i['aportes'] for i in investidores)
    total_liquidacoes = sum(i['liquidacoes'] for i in investidores)
    result = {
        "periodo": {"meses": meses, "inicio": inicio.isoformat(), "fim": fim.isoformat()},
        "investidores": investidores,
        "totais": {
            "aportes": round_money(total_aportes),
            "liquidacoes": round_money(total_liquidacoes),
            "saldo": round_money(total_aportes - total_liquidacoes),
            "roi_geral": _roi(total_aportes, total_liquidacoes),
            "investidores": len(investidores),
        },
    }
    cache.set(cache_key, result, ttl=120)
    return (True, None, result)


@cache_result('relatorios:investidores', ttl=300)
def listar_investidores():
    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()
        placeholders = ', '.join('?' for _ in TIPOS_INVESTIDOR)
        cur.execute(f"""
            SELECT DISTINCT NOME_INVESTIDOR
            FROM CASH_LEDGER
            WHERE TIPO_TRANSACAO IN ({placeholders}) AND NOME_INVESTIDOR IS NOT NULL
            ORDER BY NOME_INVESTIDOR
        """, TIPOS_INVESTIDOR)
        return [row[0].strip() for row in cur.fetchall() if row[0] and row[0].strip()]
    except fdb.Error as e:
        logger.error(f"Erro ao listar investidores: {e}", exc_info=True)
        return None
    finally:
        if conn:
            conn.close()


def historico_investidor(nome):
    """
    Transações de um investidor, da mais recente para a mais antiga.
    Totais consideram apenas transações confirmadas.
    """
    nome = (nome or '').strip()
    if not nome:
        return (False, "VALIDATION_ERROR", "Nome do investidor é obrigatório")

    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()
        placeholders = ', '.join('?' for _ in TIPOS_INVESTIDOR)
        cur.execute(f"""
            SELECT ID, TIPO_TRANSACAO, STATUS, VALOR, VALOR_CONFIRMADO, MOEDA, DATA_TRANSACAO, DESCRICAO
            FROM CASH_LEDGER
            WHERE NOME_INVESTIDOR = ? AND TIPO_TRANSACAO IN ({placeholders})
            ORDER BY DATA_TRANSACAO DESC, ID DESC
        """, (nome, *TIPOS_INVESTIDOR))
        rows = cur.fetchall()
    except fdb.Error as e:
        logger.error(f"Erro ao buscar histórico do investidor {nome}: {e}", exc_info=True)
        return (False, "DATABASE_ERROR", "Erro interno do servidor")
    finally:
        if conn:
            conn.close()

    transacoes = []
    aportes = liquidacoes = 0.0
    for row in rows:
        valor = float(row[4]) if row[4] is not None else float(row[3])
        transacoes.append({
            "id": row[0],
            "tipo_transacao": row[1],
            "status": row[2],
            "valor": valor,
            "moeda": row[5],
            "data_transacao": row[6].isoformat() if hasattr(row[6], 'isoformat') else row[6],
            "descricao": row[7],
        })
        if row[2] != 'CONFIRMADO':
            continue
        if row[1] in TIPOS_APORTE:
            aportes += valor
        else:
            liquidacoes += valor

    return (True, None, {
        "nome_investidor": nome,
        "transacoes": transacoes,
        "total_aportes": round_money(aportes),
        "total_liquidacoes": round_money(liquidacoes),
        "saldo": round_money(aportes - liquidacoes),
        "roi": _roi(aportes, liquidacoes),
    })


def resumo_por_moeda(filters=None):
    """
    Soma das transações confirmadas por moeda e tipo, com o volume convertido
    para BRL pela cotação atual.
    """
    filters = filters or {}
    conditions = ["STATUS = 'CONFIRMADO'"]
    params = []
    if filters.get('data_inicio'):
        conditions.append("CAST(DATA_TRANSACAO AS DATE) >= ?")
        params.append(filters['data_inicio'])
    if filters.get('data_fim'):
        conditions.append("CAST(DATA_TRANSACAO AS DATE) <= ?")
        params.append(filters['data_fim'])
    if filters.get('tipo'):
        conditions.append("TIPO_TRANSACAO = ?")
        params.append(filters['tipo'])

    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()
        cur.execute(f"""
            SELECT MOEDA, TIPO_TRANSACAO, COUNT(*), SUM(COALESCE(VALOR_CONFIRMADO, VALOR))
            FROM CASH_LEDGER
            WHERE {' AND '.join(conditions)}
            GROUP BY MOEDA, TIPO_TRANSACAO
            ORDER BY MOEDA, TIPO_TRANSACAO
        """, params)
        rows = cur.fetchall()
    except fdb.Error as e:
        logger.error(f"Erro ao gerar resumo por moeda: {e}", exc_info=True)
        return (False, "DATABASE_ERROR", "Erro interno do servidor")
    finally:
        if conn:
            conn.close()

    cotacoes = get_cotacoes()
    moedas = {}
    for moeda, tipo, quantidade, total in rows:
        moeda = (moeda or 'BRL').strip().upper()
        item = moedas.setdefault(moeda, {"moeda": moeda, "por_tipo": {}, "transacoes": 0, "volume": 0.0})
        total = float(total or 0)
        item['por_tipo'][tipo] = {"quantidade": quantidade, "total": round_money(total)}
        item['transacoes'] += quantidade
        item['volume'] += total

    resumo = []
    for item in moedas.values():
        item['volume'] = round_money(item['volume'])
        item['volume_brl'] = round_money(converter(item['volume'], item['moeda'], 'BRL', cotacoes))
        resumo.append(item)

    return (True, None, {
        "moedas": resumo,
        "volume_total_brl": round_money(sum(i['volume_brl'] for i in resumo)),
    })


def resumo_surebets(data_inicio=None, data_fim=None):
    """
    Contagem por status, stake e lucro por moeda da operação e ROI médio
    das operações liquidadas.
    """
    conditions = ["FORMA_REGISTRO = 'ARBITRAGEM'"]
    params = []
    if data_inicio:
        conditions.append("CAST(DATA_APOSTA AS DATE) >= ?")
        params.append(data_inicio)
    if data_fim:
        conditions.append("CAST(DATA_APOSTA AS DATE) <= ?")
        params.append(data_fim)

    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()
        cur.execute(f"""
            SELECT STATUS, MOEDA_OPERACAO, COUNT(*), SUM(STAKE_TOTAL), SUM(LUCRO_PREJUIZO), SUM(ROI_REAL)
            FROM APOSTAS_UNIFICADA
            WHERE {' AND '.join(conditions)}
            GROUP BY STATUS, MOEDA_OPERACAO
        """, params)
        rows = cur.fetchall()
    except fdb.Error as e:
        logger.error(f"Erro ao gerar resumo de surebets: {e}", exc_info=True)
        return (False, "DATABASE_ERROR", "Erro interno do servidor")
    finally:
        if conn:
            conn.close()

    por_status = {}
    por_moeda = {}
    liquidadas = 0
    soma_roi = 0.0
    for status, moeda, quantidade, stake, lucro, roi in rows:
        moeda = moeda or 'BRL'
        por_status[status] = por_status.get(status, 0) + quantidade
        item = por_moeda.setdefault(moeda, {"stake_total": 0.0, "lucro_total": 0.0})
        item['stake_total'] += float(stake or 0)
        item['lucro_total'] += float(lucro or 0)
        if status == 'LIQUIDADA':
            liquidadas += quantidade
            soma_roi += float(roi or 0)

    for item in por_moeda.values():
        item['stake_total'] = round_money(item['stake_total'])
        item['lucro_total'] = round_money(item['lucro_total'])

    return (True, None, {
        "total_operacoes": sum(por_status.values()),
        "por_status": por_status,
        "por_moeda": por_moeda,
        "liquidadas": liquidadas,
        "roi_medio": round(safe_divide(soma_roi, liquidadas), 2),
    })
