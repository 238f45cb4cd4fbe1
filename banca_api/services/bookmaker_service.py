"""
Serviço de Casas (bookmakers) e Freebets

Fonte canônica dos saldos de cada casa:
- saldo_real: BOOKMAKERS.SALDO_ATUAL (movido apenas pelo ledger)
- saldo_em_aposta: stakes reais de pernas ainda pendentes (travadas);
  perna paga com freebet consome a freebet, não o saldo real
- saldo_disponivel = saldo_real - saldo_em_aposta
- saldo_freebet: freebets LIBERADAS
- saldo_bonus: BOOKMAKERS.SALDO_BONUS
- saldo_operavel = saldo_disponivel + saldo_freebet + saldo_bonus

Nenhum outro módulo recalcula saldo_operavel por conta própria.
"""

import fdb
import logging
from ..database import get_db_connection
from ..utils.cache_manager import get_cache_manager, build_cache_key, invalidate
from ..utils.formatters import round_money
from .surebet_calculator import FONTE_SALDO_REAL

logger = logging.getLogger(__name__)

FREEBET_LIBERADA = 'LIBERADA'
FREEBET_UTILIZADA = 'UTILIZADA'
FREEBET_EXPIRADA = 'EXPIRADA'
FREEBET_STATUSES = [FREEBET_LIBERADA, FREEBET_UTILIZADA, FREEBET_EXPIRADA]

STATUS_ATIVO = 'ativo'
STATUS_AGUARDANDO_SAQUE = 'AGUARDANDO_SAQUE'

SALDOS_CACHE_TTL = 30


def invalidate_saldos_cache():
    invalidate('bookmaker_saldos:*')


def _query_saldos(cur, bookmaker_ids=None):
    params = []
    where = ""
    if bookmaker_ids:
        placeholders = ', '.join('?' for _ in bookmaker_ids)
        where = f" WHERE b.ID IN ({placeholders})"
        params = list(bookmaker_ids)

    cur.execute(f"""
        SELECT b.ID, b.NOME, b.MOEDA, b.STATUS, b.SALDO_ATUAL, b.SALDO_BONUS, b.PARCEIRO_NOME
        FROM BOOKMAKERS b{where}
        ORDER BY b.NOME
    """, params)
    casas = cur.fetchall()

    # Stakes de pernas pendentes (travadas até a liquidação)
    cur.execute("""
        SELECT p.BOOKMAKER_ID, SUM(p.STAKE)
        FROM APOSTAS_PERNAS p
        JOIN APOSTAS_UNIFICADA a ON a.ID = p.APOSTA_ID
        WHERE p.RESULTADO IS NULL AND a.STATUS = 'PENDENTE' AND p.FONTE_SALDO = ?
        GROUP BY p.BOOKMAKER_ID
    """, (FONTE_SALDO_REAL,))
    em_aposta = {row[0]: float(row[1] or 0) for row in cur.fetchall()}

    cur.execute("""
        SELECT BOOKMAKER_ID, SUM(VALOR)
        FROM FREEBETS_RECEBIDAS
        WHERE STATUS = ?
        GROUP BY BOOKMAKER_ID
    """, (FREEBET_LIBERADA,))
    freebets = {row[0]: float(row[1] or 0) for row in cur.fetchall()}

    saldos = {}
    for row in casas:
        bookmaker_id = row[0]
        saldo_real = float(row[4] or 0)
        saldo_bonus = float(row[5] or 0)
        saldo_em_aposta = em_aposta.get(bookmaker_id, 0.0)
        saldo_freebet = freebets.get(bookmaker_id, 0.0)
        saldo_disponivel = saldo_real - saldo_em_aposta
        saldos[bookmaker_id] = {
            "id": bookmaker_id,
            "nome": row[1],
            "moeda": row[2],
            "status": row[3],
            "parceiro_nome": row[6],
            "saldo_real": round_money(saldo_real),
            "saldo_em_aposta": round_money(saldo_em_aposta),
            "saldo_disponivel": round_money(saldo_disponivel),
            "saldo_freebet": round_money(saldo_freebet),
            "saldo_bonus": round_money(saldo_bonus),
            "saldo_operavel": round_money(saldo_disponivel + saldo_freebet + saldo_bonus),
        }
    return saldos


def get_saldos_canonicos(bookmaker_ids=None, use_cache=True, cur=None):
    """
    Saldos canônicos por casa.

    Args:
        bookmaker_ids: lista de IDs (None = todas)
        use_cache: False força leitura do banco (ex: validação antes de salvar)
        cur: cursor opcional para ler dentro de uma transação existente

    Returns:
        dict {bookmaker_id: {...saldos...}}
    """
    ids = sorted(set(int(i) for i in bookmaker_ids)) if bookmaker_ids else None
    cache = get_cache_manager()
    cache_key = build_cache_key('bookmaker_saldos', {"ids": ids})

    if use_cache and cur is None:
        cached = cache.get(cache_key)
        if cached is not None:
            return cached

    if cur is not None:
        return _query_saldos(cur, ids)

    conn = None
    try:
        conn = get_db_connection()
        saldos = _query_saldos(conn.cursor(), ids)
        cache.set(cache_key, saldos, ttl=SALDOS_CACHE_TTL)
        return saldos
    except fdb.Error as e:
        logger.error(f"Erro ao calcular saldos das casas: {e}", exc_info=True)
        return {}
    finally:
        if conn:
            conn.close()


def list_bookmakers(status=None):
    casas = list(get_saldos_canonicos().values())
    if status:
        casas = [c for c in casas if c['status'] == status]
    return casas


def get_bookmaker(bookmaker_id):
    return get_saldos_canonicos([bookmaker_id]).get(int(bookmaker_id))


def atualizar_status_pos_saque(cur, bookmaker_id, saldo_residual):
    """
    Depois de um saque confirmado, a casa continua AGUARDANDO_SAQUE se ainda
    sobrou saldo acima do residual; caso contrário volta a ficar ativa.
    """
    cur.execute("SELECT SALDO_ATUAL FROM BOOKMAKERS WHERE ID = ?", (bookmaker_id,))
    row = cur.fetchone()
    if not row:
        return None
    novo_status = STATUS_AGUARDANDO_SAQUE if float(row[0] or 0) > saldo_residual else STATUS_ATIVO
    cur.execute(
        "UPDATE BOOKMAKERS SET STATUS = ?, UPDATED_AT = CURRENT_TIMESTAMP WHERE ID = ?",
        (novo_status, bookmaker_id)
    )
    return novo_status


# ============================================
# FREEBETS
# ============================================

def registrar_freebet(bookmaker_id, valor, motivo=None, data_validade=None, user_id=None):
    """
    Registra uma freebet recebida (entra em saldo_freebet enquanto LIBERADA).

    Returns:
        (success: bool, error_code: str, result: dict)
    """
    try:
        valor = float(valor)
    except (ValueError, TypeError):
        return (False, "VALIDATION_ERROR", "Valor deve ser um número válido")
    if valor <= 0:
        return (False, "VALIDATION_ERROR", "Valor deve ser maior que zero")

    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()

        cur.execute("SELECT MOEDA FROM BOOKMAKERS WHERE ID = ?", (bookmaker_id,))
        casa = cur.fetchone()
        if not casa:
            return (False, "NOT_FOUND", "Casa não encontrada")

        cur.execute("""
            INSERT INTO FREEBETS_RECEBIDAS (BOOKMAKER_ID, VALOR, MOEDA, MOTIVO, STATUS, DATA_VALIDADE, CREATED_BY)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING ID, DATA_RECEBIDA
        """, (bookmaker_id, valor, casa[0], motivo, FREEBET_LIBERADA, data_validade, user_id))
        row = cur.fetchone()
        conn.commit()
    except fdb.Error as e:
        logger.error(f"Erro ao registrar freebet na casa {bookmaker_id}: {e}", exc_info=True)
        if conn:
            conn.rollback()
        return (False, "DATABASE_ERROR", "Erro interno do servidor")
    finally:
        if conn:
            conn.close()

    invalidate_saldos_cache()
    return (True, None, {
        "id": row[0],
        "bookmaker_id": bookmaker_id,
        "valor": valor,
        "moeda": casa[0],
        "motivo": motivo,
        "status": FREEBET_LIBERADA,
        "data_recebida": row[1].isoformat() if row[1] else None,
    })


def listar_freebets(bookmaker_id=None, status=None):
    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()
        conditions, params = [], []
        if bookmaker_id:
            conditions.append("f.BOOKMAKER_ID = ?")
            params.append(bookmaker_id)
        if status:
            conditions.append("f.STATUS = ?")
            params.append(status)
        sql = """
            SELECT f.ID, f.BOOKMAKER_ID, b.NOME, f.VALOR, f.MOEDA, f.MOTIVO, f.STATUS,
                   f.DATA_RECEBIDA, f.DATA_VALIDADE, f.APOSTA_ID
            FROM FREEBETS_RECEBIDAS f
            JOIN BOOKMAKERS b ON b.ID = f.BOOKMAKER_ID
        """
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += " ORDER BY f.DATA_RECEBIDA DESC"
        cur.execute(sql, params)
        return [{
            "id": row[0],
            "bookmaker_id": row[1],
            "bookmaker_nome": row[2],
            "valor": float(row[3]),
            "moeda": row[4],
            "motivo": row[5],
            "status": row[6],
            "data_recebida": row[7].isoformat() if row[7] else None,
            "data_validade": row[8].isoformat() if row[8] else None,
            "aposta_id": row[9],
        } for row in cur.fetchall()]
    except fdb.Error as e:
        logger.error(f"Erro ao listar freebets: {e}", exc_info=True)
        return []
    finally:
        if conn:
            conn.close()


def marcar_freebet(cur, freebet_id, status, aposta_id=None, bookmaker_id=None):
    """
    Troca o status de uma freebet LIBERADA no cursor do chamador.

    Com bookmaker_id, só vale para freebet daquela casa.

    Returns:
        True se a freebet estava LIBERADA (e foi marcada)
    """
    sql = "UPDATE FREEBETS_RECEBIDAS SET STATUS = ?, APOSTA_ID = ? WHERE ID = ? AND STATUS = ?"
    params = [status, aposta_id, freebet_id, FREEBET_LIBERADA]
    if bookmaker_id is not None:
        sql += " AND BOOKMAKER_ID = ?"
        params.append(bookmaker_id)
    cur.execute(sql, params)
    return cur.rowcount > 0


def liberar_freebets_da_aposta(cur, aposta_id):
    """Devolve para LIBERADA as freebets consumidas pela operação (exclusão/edição)"""
    cur.execute(
        "UPDATE FREEBETS_RECEBIDAS SET STATUS = ?, APOSTA_ID = NULL WHERE APOSTA_ID = ? AND STATUS = ?",
        (FREEBET_LIBERADA, aposta_id, FREEBET_UTILIZADA)
    )
    return cur.rowcount


def atualizar_status_freebet(freebet_id, status, aposta_id=None):
    """Marca uma freebet LIBERADA como UTILIZADA ou EXPIRADA (guarda de status)"""
    if status not in (FREEBET_UTILIZADA, FREEBET_EXPIRADA):
        return (False, "VALIDATION_ERROR", "Status deve ser UTILIZADA ou EXPIRADA")

    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()
        if not marcar_freebet(cur, freebet_id, status, aposta_id):
            conn.rollback()
            return (False, "NOT_FOUND", "Freebet não encontrada ou já utilizada")
        conn.commit()
    except fdb.Error as e:
        logger.error(f"Erro ao atualizar freebet {freebet_id}: {e}", exc_info=True)
        if conn:
            conn.rollback()
        return (False, "DATABASE_ERROR", "Erro interno do servidor")
    finally:
        if conn:
            conn.close()

    invalidate_saldos_cache()
    return (True, None, {"id": freebet_id, "status": status, "aposta_id": aposta_id})
