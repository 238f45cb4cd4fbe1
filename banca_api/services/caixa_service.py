"""
Serviço de Caixa (CASH_LEDGER)

- Depósitos, saques e transferências entram como PENDENTE e só movem o saldo
  da casa quando conciliados (confirmar_transacao).
- Aportes e liquidações de investidores entram direto como CONFIRMADO.
- A conciliação é protegida por status: o UPDATE só vale para linhas
  ainda PENDENTE. Quem perder a corrida recebe ALREADY_RECONCILED e nada é gravado.
- Diferença entre o valor nominal e o confirmado acima da tolerância gera
  um EXCHANGE_ADJUSTMENT (GANHO_CAMBIAL / PERDA_CAMBIAL) e o lançamento
  correspondente no ledger.
- Edições de transações confirmadas ficam registradas em
  AUDITORIA_METADATA.historico_edicoes.
"""

import fdb
import json
import logging
from datetime import datetime, date
from ..config import Config
from ..database import get_db_connection
from ..utils.cache_manager import get_cache_manager, build_cache_key, invalidate
from ..utils.event_publisher import safe_publish
from ..utils.validators import parse_date, is_not_future_date, normalize_pagination
from .bookmaker_service import atualizar_status_pos_saque, invalidate_saldos_cache
from .ledger_service import (
    registrar_movimento, aplicar_delta_saldo,
    TIPO_DEPOSITO, TIPO_SAQUE, TIPO_TRANSFERENCIA,
    TIPO_APORTE, TIPO_APORTE_FINANCEIRO, TIPO_LIQUIDACAO,
    TIPO_GANHO_CAMBIAL, TIPO_PERDA_CAMBIAL,
    TIPO_AJUSTE_POSITIVO, TIPO_AJUSTE_NEGATIVO,
)

logger = logging.getLogger(__name__)

STATUS_PENDENTE = 'PENDENTE'
STATUS_CONFIRMADO = 'CONFIRMADO'
STATUS_RECUSADO = 'RECUSADO'
STATUS_CANCELADO = 'CANCELADO'
STATUSES = [STATUS_PENDENTE, STATUS_CONFIRMADO, STATUS_RECUSADO, STATUS_CANCELADO]

TIPOS_INVESTIDOR = [TIPO_APORTE, TIPO_APORTE_FINANCEIRO, TIPO_LIQUIDACAO]
TIPOS_CAIXA = [TIPO_DEPOSITO, TIPO_SAQUE, TIPO_TRANSFERENCIA] + TIPOS_INVESTIDOR

EDICAO_SAQUE_CONFIRMADO = 'EDICAO_SAQUE_CONFIRMADO'
EDICAO_TRANSACAO_CONFIRMADA = 'EDICAO_TRANSACAO_CONFIRMADA'

REFERENCIA_CAIXA = 'CASH_LEDGER'

_SELECT_CAMPOS = """
    ID, TIPO_TRANSACAO, STATUS, VALOR, MOEDA, VALOR_USD, VALOR_DESTINO, MOEDA_DESTINO,
    VALOR_CONFIRMADO, COIN, QTD_COIN, COTACAO_IMPLICITA, ORIGEM_TIPO, DESTINO_TIPO,
    ORIGEM_BOOKMAKER_ID, DESTINO_BOOKMAKER_ID, NOME_INVESTIDOR, DESCRICAO, DATA_TRANSACAO,
    REFERENCIA_TIPO, REFERENCIA_ID, AUDITORIA_METADATA, CREATED_BY, CONFIRMADO_POR,
    CONFIRMADO_EM, CREATED_AT
"""


def _invalidate_caixa_cache():
    invalidate('caixa:*', 'relatorios:*')
    invalidate_saldos_cache()


def _iso(value):
    if value is None:
        return None
    return value.isoformat() if hasattr(value, 'isoformat') else str(value)


def _float_or_none(value):
    return float(value) if value is not None else None


def _carregar_metadata(raw):
    if not raw:
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    try:
        metadata = json.loads(raw)
        return metadata if isinstance(metadata, dict) else {}
    except (ValueError, TypeError):
        logger.warning("AUDITORIA_METADATA com JSON inválido, recriando")
        return {}


def _row_to_dict(row):
    return {
        "id": row[0],
        "tipo_transacao": row[1],
        "status": row[2],
        "valor": float(row[3]),
        "moeda": row[4],
        "valor_usd": _float_or_none(row[5]),
        "valor_destino": _float_or_none(row[6]),
        "moeda_destino": row[7],
        "valor_confirmado": _float_or_none(row[8]),
        "coin": row[9],
        "qtd_coin": _float_or_none(row[10]),
        "cotacao_implicita": _float_or_none(row[11]),
        "origem_tipo": row[12],
        "destino_tipo": row[13],
        "origem_bookmaker_id": row[14],
        "destino_bookmaker_id": row[15],
        "nome_investidor": row[16],
        "descricao": row[17],
        "data_transacao": _iso(row[18]),
        "referencia_tipo": row[19],
        "referencia_id": row[20],
        "auditoria_metadata": _carregar_metadata(row[21]),
        "created_by": row[22],
        "confirmado_por": row[23],
        "confirmado_em": _iso(row[24]),
        "created_at": _iso(row[25]),
    }


def _fetch_transacao(cur, transacao_id):
    cur.execute(f"SELECT {_SELECT_CAMPOS} FROM CASH_LEDGER WHERE ID = ?", (transacao_id,))
    row = cur.fetchone()
    return _row_to_dict(row) if row else None


def _to_positive_float(value, field_name):
    try:
        number = float(value)
    except (ValueError, TypeError):
        return (None, f"{field_name} deve ser um número válido")
    if number <= 0:
        return (None, f"{field_name} deve ser maior que zero")
    return (number, None)


# ============================================
# CONSULTAS
# ============================================

def list_transacoes(filters=None, page=1, page_size=50):
    """
    Lista transações do caixa.

    Args:
        filters: dict com tipo, status, moeda, nome_investidor, bookmaker_id,
            data_inicio e data_fim (AAAA-MM-DD)

    Returns:
        dict com items, total, page, page_size, total_pages
    """
    filters = filters or {}
    page, page_size = normalize_pagination(page, page_size)

    cache = get_cache_manager()
    cache_key = build_cache_key('caixa:list', dict(filters, page=page, page_size=page_size))
    cached = cache.get(cache_key)
    if cached is not None:
        logger.debug(f"Cache hit para transações do caixa: {cache_key}")
        return cached

    conditions = []
    params = []
    if filters.get('tipo'):
        conditions.append("TIPO_TRANSACAO = ?")
        params.append(filters['tipo'])
    if filters.get('status'):
        conditions.append("STATUS = ?")
        params.append(filters['status'])
    if filters.get('moeda'):
        conditions.append("MOEDA = ?")
        params.append(filters['moeda'])
    if filters.get('nome_investidor'):
        conditions.append("NOME_INVESTIDOR = ?")
        params.append(filters['nome_investidor'])
    if filters.get('bookmaker_id'):
        conditions.append("(ORIGEM_BOOKMAKER_ID = ? OR DESTINO_BOOKMAKER_ID = ?)")
        params.extend([filters['bookmaker_id'], filters['bookmaker_id']])
    if filters.get('data_inicio'):
        conditions.append("CAST(DATA_TRANSACAO AS DATE) >= ?")
        params.append(filters['data_inicio'])
    if filters.get('data_fim'):
        conditions.append("CAST(DATA_TRANSACAO AS DATE) <= ?")
        params.append(filters['data_fim'])
    where = (" WHERE " + " AND ".join(conditions)) if conditions else ""

    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) FROM CASH_LEDGER" + where, params)
        total = cur.fetchone()[0] or 0

        # Firebird não parametriza FIRST/SKIP; page e page_size já são int
        offset = (page - 1) * page_size
        select_clause = f"SELECT FIRST {int(page_size)} SKIP {int(offset)}"
        cur.execute(
            f"{select_clause} {_SELECT_CAMPOS} FROM CASH_LEDGER{where} "
            "ORDER BY DATA_TRANSACAO DESC, ID DESC",
            params
        )
        items = [_row_to_dict(row) for row in cur.fetchall()]

        result = {
            "items": items,
            "total": total,
            "page": page,
            "page_size": page_size,
            "total_pages": (total + page_size - 1) // page_size if page_size > 0 else 0,
        }
        cache.set(cache_key, result, ttl=60)
        return result
    except fdb.Error as e:
        logger.error(f"Erro ao listar transações do caixa: {e}", exc_info=True)
        return {"items": [], "total": 0, "page": page, "page_size": page_size, "total_pages": 0}
    finally:
        if conn:
            conn.close()


def get_transacao(transacao_id):
    conn = None
    try:
        conn = get_db_connection()
        return _fetch_transacao(conn.cursor(), transacao_id)
    except fdb.Error as e:
        logger.error(f"Erro ao buscar transação {transacao_id}: {e}", exc_info=True)
        return None
    finally:
        if conn:
            conn.close()


# ============================================
# CRIAÇÃO
# ============================================

def _validar_payload(payload):
    tipo = (payload.get('tipo_transacao') or '').strip().upper()
    if tipo not in TIPOS_CAIXA:
        return f"Tipo de transação inválido. Deve ser um de: {', '.join(TIPOS_CAIXA)}"

    _, erro = _to_positive_float(payload.get('valor'), "Valor")
    if erro:
        return erro

    moeda = (payload.get('moeda') or 'BRL').strip().upper()
    if moeda not in Config.MOEDAS_SUPORTADAS:
        return f"Moeda inválida. Deve ser uma de: {', '.join(Config.MOEDAS_SUPORTADAS)}"

    if tipo in (TIPO_DEPOSITO, TIPO_TRANSFERENCIA) and not payload.get('destino_bookmaker_id'):
        return "Casa de destino é obrigatória"
    if tipo in (TIPO_SAQUE, TIPO_TRANSFERENCIA) and not payload.get('origem_bookmaker_id'):
        return "Casa de origem é obrigatória"
    if tipo == TIPO_TRANSFERENCIA and payload.get('origem_bookmaker_id') == payload.get('destino_bookmaker_id'):
        return "Casa de origem e destino devem ser diferentes"

    for campo in ('valor_usd', 'valor_destino', 'qtd_coin'):
        if payload.get(campo) not in (None, ''):
            _, erro = _to_positive_float(payload[campo], campo)
            if erro:
                return erro

    if payload.get('data_transacao'):
        is_valid, msg = is_not_future_date(payload['data_transacao'])
        if not is_valid:
            return msg
    return None


def create_transacao(payload, user_id=None):
    """
    Registra uma transação no caixa.

    Fluxos de investidor (APORTE, APORTE_FINANCEIRO, LIQUIDACAO) entram confirmados;
    os demais ficam PENDENTE até a conciliação.

    Returns:
        (success: bool, error_code: str, result: dict | str)
    """
    payload = payload or {}
    erro = _validar_payload(payload)
    if erro:
        return (False, "VALIDATION_ERROR", erro)

    tipo = payload['tipo_transacao'].strip().upper()
    moeda = (payload.get('moeda') or 'BRL').strip().upper()
    valor = float(payload['valor'])
    status = STATUS_CONFIRMADO if tipo in TIPOS_INVESTIDOR else STATUS_PENDENTE
    data_transacao = parse_date(payload.get('data_transacao')) or date.today()

    nome_investidor = payload.get('nome_investidor')
    if tipo in TIPOS_INVESTIDOR:
        nome_investidor = (nome_investidor or '').strip() or None

    def _opcional(campo):
        return float(payload[campo]) if payload.get(campo) not in (None, '') else None

    valores = {
        "tipo_transacao": tipo,
        "status": status,
        "valor": valor,
        "moeda": moeda,
        "valor_usd": _opcional('valor_usd'),
        "valor_destino": _opcional('valor_destino'),
        "moeda_destino": payload.get('moeda_destino'),
        "coin": payload.get('coin'),
        "qtd_coin": _opcional('qtd_coin'),
        "origem_tipo": payload.get('origem_tipo'),
        "destino_tipo": payload.get('destino_tipo'),
        "origem_bookmaker_id": payload.get('origem_bookmaker_id'),
        "destino_bookmaker_id": payload.get('destino_bookmaker_id'),
        "nome_investidor": nome_investidor,
        "descricao": payload.get('descricao'),
    }

    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()
        cur.execute("""
            INSERT INTO CASH_LEDGER (
                TIPO_TRANSACAO, STATUS, VALOR, MOEDA, VALOR_USD, VALOR_DESTINO, MOEDA_DESTINO,
                COIN, QTD_COIN, ORIGEM_TIPO, DESTINO_TIPO, ORIGEM_BOOKMAKER_ID, DESTINO_BOOKMAKER_ID,
                NOME_INVESTIDOR, DESCRICAO, DATA_TRANSACAO, CREATED_BY,
                CONFIRMADO_POR, CONFIRMADO_EM
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING ID, CREATED_AT
        """, (
            tipo, status, valor, moeda, valores['valor_usd'], valores['valor_destino'],
            valores['moeda_destino'], valores['coin'], valores['qtd_coin'],
            valores['origem_tipo'], valores['destino_tipo'],
            valores['origem_bookmaker_id'], valores['destino_bookmaker_id'],
            nome_investidor, valores['descricao'], data_transacao, user_id,
            user_id if status == STATUS_CONFIRMADO else None,
            datetime.now() if status == STATUS_CONFIRMADO else None,
        ))
        row = cur.fetchone()
        conn.commit()
        logger.info(f"Transação {tipo} #{row[0]} registrada ({status}): {valor} {moeda}")
    except fdb.Error as e:
        logger.error(f"Erro ao registrar transação {tipo}: {e}", exc_info=True)
        if conn:
            conn.rollback()
        return (False, "DATABASE_ERROR", "Erro interno do servidor")
    finally:
        if conn:
            conn.close()

    _invalidate_caixa_cache()
    valores.update({
        "id": row[0],
        "data_transacao": data_transacao.isoformat(),
        "created_by": user_id,
        "created_at": _iso(row[1]),
    })
    return (True, None, valores)


# ============================================
# CONCILIAÇÃO
# ============================================

def confirmar_transacao(transacao_id, valor_confirmado, user_id=None, observacoes=None):
    """
    Concilia uma transação pendente com o valor efetivamente recebido/enviado.

    - Depósito: credita a casa de destino pelo valor nominal
    - Saque: debita a casa de origem e atualiza o status da casa
    - Transferência: debita a origem e credita o destino
    - |diferença| > CONCILIACAO_EPSILON: EXCHANGE_ADJUSTMENTS + GANHO/PERDA_CAMBIAL

    Returns:
        (success: bool, error_code: str, result: dict | str)
    """
    valor_confirmado, erro = _to_positive_float(valor_confirmado, "Valor confirmado")
    if erro:
        return (False, "VALIDATION_ERROR", erro)

    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()

        transacao = _fetch_transacao(cur, transacao_id)
        if not transacao:
            return (False, "NOT_FOUND", "Transação não encontrada")
        if transacao['status'] != STATUS_PENDENTE:
            return (False, "ALREADY_RECONCILED", f"Transação não está pendente (status atual: {transacao['status']})")

        tipo = transacao['tipo_transacao']
        nominal = transacao['valor_usd'] or transacao['valor']
        diferenca = round(valor_confirmado - nominal, 2)
        cotacao_implicita = None
        if transacao['qtd_coin'] and valor_confirmado:
            cotacao_implicita = round(transacao['qtd_coin'] / valor_confirmado, 8)

        descricao = transacao['descricao'] or ''
        if observacoes:
            descricao = f"{descricao} | Obs: {observacoes}" if descricao else f"Obs: {observacoes}"

        cur.execute("""
            UPDATE CASH_LEDGER
            SET STATUS = ?, VALOR_CONFIRMADO = ?, COTACAO_IMPLICITA = ?, DESCRICAO = ?,
                CONFIRMADO_POR = ?, CONFIRMADO_EM = CURRENT_TIMESTAMP, UPDATED_AT = CURRENT_TIMESTAMP
            WHERE ID = ? AND STATUS = ?
        """, (STATUS_CONFIRMADO, valor_confirmado, cotacao_implicita, descricao or None,
              user_id, transacao_id, STATUS_PENDENTE))
        if cur.rowcount == 0:
            conn.rollback()
            logger.warning(f"Transação #{transacao_id} conciliada em paralelo; confirmação de {user_id} descartada")
            return (False, "ALREADY_RECONCILED", "Transação já foi conciliada por outro usuário")

        origem_id = transacao['origem_bookmaker_id']
        destino_id = transacao['destino_bookmaker_id']
        status_casa = None

        if tipo == TIPO_DEPOSITO and destino_id:
            aplicar_delta_saldo(cur, destino_id, nominal)
        elif tipo == TIPO_SAQUE and origem_id:
            aplicar_delta_saldo(cur, origem_id, -nominal)
            status_casa = atualizar_status_pos_saque(cur, origem_id, Config.BOOKMAKER_SALDO_RESIDUAL)
        elif tipo == TIPO_TRANSFERENCIA and origem_id and destino_id:
            aplicar_delta_saldo(cur, origem_id, -nominal)
            aplicar_delta_saldo(cur, destino_id, transacao['valor_destino'] or nominal)

        ajuste = None
        if abs(diferenca) > Config.CONCILIACAO_EPSILON:
            tipo_ajuste = TIPO_GANHO_CAMBIAL if diferenca > 0 else TIPO_PERDA_CAMBIAL
            # No depósito o ajuste acompanha a casa de destino; nos demais fica só no caixa
            casa_ajuste = destino_id if tipo == TIPO_DEPOSITO else None
            cur.execute("""
                INSERT INTO EXCHANGE_ADJUSTMENTS (
                    CASH_LEDGER_ID, BOOKMAKER_ID, TIPO, VALOR_NOMINAL, VALOR_CONFIRMADO,
                    DIFERENCA, MOEDA, COTACAO_IMPLICITA, CREATED_BY
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                RETURNING ID
            """, (transacao_id, casa_ajuste, tipo_ajuste, nominal, valor_confirmado,
                  diferenca, transacao['moeda'], cotacao_implicita, user_id))
            ajuste_id = cur.fetchone()[0]
            movimento_id = registrar_movimento(
                cur, tipo_ajuste, diferenca,
                bookmaker_id=casa_ajuste, moeda=transacao['moeda'],
                descricao=f"{tipo_ajuste} na conciliação da transação #{transacao_id}",
                referencia_tipo=REFERENCIA_CAIXA, referencia_id=transacao_id, user_id=user_id
            )
            ajuste = {
                "id": ajuste_id,
                "tipo": tipo_ajuste,
                "diferenca": diferenca,
                "bookmaker_id": casa_ajuste,
                "movimento_id": movimento_id,
            }

        conn.commit()
        logger.info(f"Transação {tipo} #{transacao_id} conciliada por {user_id}: nominal {nominal}, "
                    f"confirmado {valor_confirmado}, diferença {diferenca}")
    except fdb.Error as e:
        logger.error(f"Erro ao conciliar transação {transacao_id}: {e}", exc_info=True)
        if conn:
            conn.rollback()
        return (False, "DATABASE_ERROR", "Erro interno do servidor")
    finally:
        if conn:
            conn.close()

    _invalidate_caixa_cache()
    safe_publish('caixa.confirmada', {
        "transacao_id": transacao_id,
        "tipo_transacao": tipo,
        "origem_bookmaker_id": origem_id,
        "destino_bookmaker_id": destino_id,
        "valor_confirmado": valor_confirmado,
        "diferenca": diferenca,
    })

    transacao.update({
        "status": STATUS_CONFIRMADO,
        "valor_confirmado": valor_confirmado,
        "cotacao_implicita": cotacao_implicita,
        "descricao": descricao or None,
        "confirmado_por": user_id,
        "diferenca": diferenca,
        "ajuste_cambial": ajuste,
        "status_casa": status_casa,
    })
    return (True, None, transacao)


def _encerrar_pendente(transacao_id, novo_status, texto, user_id, evento):
    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()

        transacao = _fetch_transacao(cur, transacao_id)
        if not transacao:
            return (False, "NOT_FOUND", "Transação não encontrada")
        if transacao['status'] != STATUS_PENDENTE:
            return (False, "ALREADY_RECONCILED", f"Transação não está pendente (status atual: {transacao['status']})")

        descricao = transacao['descricao'] or ''
        if texto:
            descricao = f"{descricao} | {texto}" if descricao else texto

        cur.execute("""
            UPDATE CASH_LEDGER
            SET STATUS = ?, DESCRICAO = ?, CONFIRMADO_POR = ?, CONFIRMADO_EM = CURRENT_TIMESTAMP,
                UPDATED_AT = CURRENT_TIMESTAMP
            WHERE ID = ? AND STATUS = ?
        """, (novo_status, descricao or None, user_id, transacao_id, STATUS_PENDENTE))
        if cur.rowcount == 0:
            conn.rollback()
            return (False, "ALREADY_RECONCILED", "Transação já foi conciliada por outro usuário")
        conn.commit()
        logger.info(f"Transação #{transacao_id} marcada como {novo_status} por {user_id}")
    except fdb.Error as e:
        logger.error(f"Erro ao alterar status da transação {transacao_id}: {e}", exc_info=True)
        if conn:
            conn.rollback()
        return (False, "DATABASE_ERROR", "Erro interno do servidor")
    finally:
        if conn:
            conn.close()

    _invalidate_caixa_cache()
    safe_publish(evento, {
        "transacao_id": transacao_id,
        "status": novo_status,
        "origem_bookmaker_id": transacao['origem_bookmaker_id'],
        "destino_bookmaker_id": transacao['destino_bookmaker_id'],
    })
    transacao.update({"status": novo_status, "descricao": descricao or None, "confirmado_por": user_id})
    return (True, None, transacao)


def recusar_transacao(transacao_id, motivo=None, user_id=None):
    texto = f"Recusa: {motivo}" if motivo else None
    return _encerrar_pendente(transacao_id, STATUS_RECUSADO, texto, user_id, 'caixa.recusada')


def cancelar_transacao(transacao_id, motivo=None, user_id=None):
    texto = f"Cancelamento: {motivo}" if motivo else None
    return _encerrar_pendente(transacao_id, STATUS_CANCELADO, texto, user_id, 'caixa.cancelada')


# ============================================
# EDIÇÃO COM TRILHA DE AUDITORIA
# ============================================

def editar_transacao_confirmada(transacao_id, data_nova, valor_novo, user_id=None):
    """
    Corrige data e/ou valor de uma transação já confirmada.

    Cada edição é anexada em auditoria_metadata.historico_edicoes (demais chaves
    do metadata são preservadas). Mudança de valor gera AJUSTE_POSITIVO/NEGATIVO
    no ledger pela diferença.
    """
    is_valid, msg = is_not_future_date(data_nova)
    if not is_valid:
        return (False, "VALIDATION_ERROR", msg)
    valor_novo, erro = _to_positive_float(valor_novo, "Valor")
    if erro:
        return (False, "VALIDATION_ERROR", erro)
    data_nova = parse_date(data_nova)

    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()

        transacao = _fetch_transacao(cur, transacao_id)
        if not transacao:
            return (False, "NOT_FOUND", "Transação não encontrada")
        if transacao['status'] != STATUS_CONFIRMADO:
            return (False, "VALIDATION_ERROR", "Somente transações confirmadas podem ser editadas")

        tipo = transacao['tipo_transacao']
        valor_anterior = transacao['valor_confirmado'] if transacao['valor_confirmado'] is not None \
            else transacao['valor']
        data_anterior = (transacao['data_transacao'] or '')[:10] or None

        metadata = transacao['auditoria_metadata']
        historico = list(metadata.get('historico_edicoes') or [])
        historico.append({
            "tipo": EDICAO_SAQUE_CONFIRMADO if tipo == TIPO_SAQUE else EDICAO_TRANSACAO_CONFIRMADA,
            "data_anterior": data_anterior,
            "data_nova": data_nova.isoformat(),
            "valor_anterior": valor_anterior,
            "valor_novo": valor_novo,
            "alterado_por": user_id,
            "alterado_em": datetime.now().isoformat(),
        })
        metadata['historico_edicoes'] = historico

        cur.execute("""
            UPDATE CASH_LEDGER
            SET DATA_TRANSACAO = ?, VALOR_CONFIRMADO = ?, AUDITORIA_METADATA = ?,
                UPDATED_AT = CURRENT_TIMESTAMP
            WHERE ID = ? AND STATUS = ?
        """, (data_nova, valor_novo, json.dumps(metadata), transacao_id, STATUS_CONFIRMADO))
        if cur.rowcount == 0:
            conn.rollback()
            return (False, "CONFLICT", "Transação alterada por outro usuário. Recarregue e tente novamente.")

        # Efeito no saldo da casa: depósito ou transferência maior credita o destino, saque maior debita a origem
        diferenca = round(valor_novo - valor_anterior, 2)
        movimento_id = None
        if diferenca:
            if tipo == TIPO_SAQUE:
                casa, delta = transacao['origem_bookmaker_id'], -diferenca
            elif tipo in (TIPO_DEPOSITO, TIPO_TRANSFERENCIA):
                casa, delta = transacao['destino_bookmaker_id'], diferenca
            else:
                casa, delta = None, diferenca
            movimento_id = registrar_movimento(
                cur, TIPO_AJUSTE_POSITIVO if delta > 0 else TIPO_AJUSTE_NEGATIVO, delta,
                bookmaker_id=casa, moeda=transacao['moeda'],
                descricao=f"Correção de valor da transação #{transacao_id} ({valor_anterior} -> {valor_novo})",
                referencia_tipo=REFERENCIA_CAIXA, referencia_id=transacao_id, user_id=user_id
            )

        conn.commit()
        logger.info(f"Transação confirmada #{transacao_id} editada por {user_id}: "
                    f"{data_anterior} -> {data_nova}, {valor_anterior} -> {valor_novo}")
    except fdb.Error as e:
        logger.error(f"Erro ao editar transação {transacao_id}: {e}", exc_info=True)
        if conn:
            conn.rollback()
        return (False, "DATABASE_ERROR", "Erro interno do servidor")
    finally:
        if conn:
            conn.close()

    _invalidate_caixa_cache()
    safe_publish('caixa.editada', {
        "transacao_id": transacao_id,
        "origem_bookmaker_id": transacao['origem_bookmaker_id'],
        "destino_bookmaker_id": transacao['destino_bookmaker_id'],
        "diferenca": diferenca,
    })

    transacao.update({
        "data_transacao": data_nova.isoformat(),
        "valor_confirmado": valor_novo,
        "auditoria_metadata": metadata,
        "ajuste_movimento_id": movimento_id,
    })
    return (True, None, transacao)
