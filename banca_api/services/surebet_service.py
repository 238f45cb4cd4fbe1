"""
Serviço de Surebets (operações de arbitragem)

Persistência das operações em APOSTAS_UNIFICADA (FORMA_REGISTRO = 'ARBITRAGEM')
com o detalhe das pernas em JSON (coluna PERNAS) e uma linha por posição
(perna principal ou cobertura) em APOSTAS_PERNAS.

- Na criação nada é lançado no ledger: as stakes ficam travadas em
  saldo_em_aposta enquanto a perna estiver pendente. Perna paga com freebet
  (fonte_saldo FREEBET) consome a freebet (UTILIZADA) na mesma transação.
- Na liquidação, cada posição lança no ledger apenas o seu lucro/prejuízo;
  re-liquidar estorna o lançamento anterior (APOSTA_REVERSAO) antes de lançar o novo.
- Liquidação, edição e exclusão usam VERSAO como compare-and-swap: quem
  gravar com uma versão desatualizada recebe CONFLICT e nada é escrito.
"""

import fdb
import json
import logging
from datetime import datetime
from ..config import Config
from ..database import get_db_connection
from ..utils.cache_manager import get_cache_manager, build_cache_key, invalidate
from ..utils.event_publisher import safe_publish
from ..utils.validators import parse_date, normalize_pagination
from .surebet_calculator import (
    MOEDA_PADRAO, MODO_DIRECIONADO, MODO_EQUALIZADO, MODO_MANUAL,
    normalizar_pernas, analisar_cenarios, analisar_cenarios_multimoeda,
    calcular_stakes_equalizadas_multimoeda, calcular_stake_total, calcular_odd_media,
    ajustar_stake_principal, detectar_moedas, to_float, is_freebet, FONTE_SALDO_REAL, FONTE_SALDO_FREEBET,
)
from .surebet_validation import validar_surebet, limpar_pernas, checar_saldo_posicao, checar_saldo_freebet
from .bookmaker_service import (
    get_saldos_canonicos, invalidate_saldos_cache, marcar_freebet, liberar_freebets_da_aposta,
    FREEBET_UTILIZADA,
)
from .currency_service import get_cotacoes, criar_snapshot
from .ledger_service import registrar_movimento, TIPO_POR_RESULTADO, TIPO_APOSTA_REVERSAO

logger = logging.getLogger(__name__)

FORMA_REGISTRO_ARBITRAGEM = 'ARBITRAGEM'

STATUS_PENDENTE = 'PENDENTE'
STATUS_LIQUIDADA = 'LIQUIDADA'

RESULTADO_GREEN = 'GREEN'
RESULTADO_RED = 'RED'
RESULTADO_VOID = 'VOID'
RESULTADO_MEIO_GREEN = 'MEIO_GREEN'
RESULTADO_MEIO_RED = 'MEIO_RED'
RESULTADO_EMPATE = 'EMPATE'

RESULTADOS_TERMINAIS = [
    RESULTADO_GREEN, RESULTADO_RED, RESULTADO_VOID,
    RESULTADO_MEIO_GREEN, RESULTADO_MEIO_RED,
]

ESTRATEGIA_PADRAO = 'SUREBET'
CONTEXTO_PADRAO = 'NORMAL'

REFERENCIA_APOSTA = 'APOSTA'

MSG_CONFLITO = "A operação foi alterada por outro usuário. Recarregue e tente novamente."
MSG_VERSAO_INVALIDA = "Versão inválida: informe o número inteiro recebido na leitura"

_SELECT_CAMPOS = """
    ID, FORMA_REGISTRO, ESTRATEGIA, CONTEXTO_OPERACIONAL, STATUS, RESULTADO,
    EVENTO, MERCADO, DATA_APOSTA, MOEDA_OPERACAO, STAKE_TOTAL, LUCRO_ESPERADO,
    ROI_ESPERADO, LUCRO_PREJUIZO, ROI_REAL, PERNAS, VERSAO, OBSERVACOES,
    CREATED_BY, CREATED_AT, UPDATED_AT
"""


def _invalidate_surebet_cache():
    invalidate('surebets:*', 'relatorios:*')
    invalidate_saldos_cache()


def _iso(value):
    if value is None:
        return None
    return value.isoformat() if hasattr(value, 'isoformat') else str(value)


def _float_or_none(value):
    return float(value) if value is not None else None


def _carregar_pernas(raw):
    if not raw:
        return []
    if isinstance(raw, (list, tuple)):
        return list(raw)
    try:
        return json.loads(raw)
    except (ValueError, TypeError):
        logger.error("PERNAS com JSON inválido")
        return []


def _row_to_dict(row):
    return {
        "id": row[0],
        "forma_registro": row[1],
        "estrategia": row[2],
        "contexto_operacional": row[3],
        "status": row[4],
        "resultado": row[5],
        "evento": row[6],
        "mercado": row[7],
        "data_aposta": _iso(row[8]),
        "moeda_operacao": row[9],
        "stake_total": _float_or_none(row[10]),
        "lucro_esperado": _float_or_none(row[11]),
        "roi_esperado": _float_or_none(row[12]),
        "lucro_prejuizo": _float_or_none(row[13]),
        "roi_real": _float_or_none(row[14]),
        "pernas": _carregar_pernas(row[15]),
        "versao": row[16],
        "observacoes": row[17],
        "created_by": row[18],
        "created_at": _iso(row[19]),
        "updated_at": _iso(row[20]),
    }


def _parse_versao(valor):
    """Versão enviada pelo cliente como int; None quando não é um inteiro"""
    if isinstance(valor, bool):
        return None
    if isinstance(valor, float):
        return int(valor) if valor.is_integer() else None
    try:
        return int(str(valor).strip())
    except (ValueError, TypeError):
        return None


def _fetch_surebet(cur, aposta_id):
    cur.execute(
        f"SELECT {_SELECT_CAMPOS} FROM APOSTAS_UNIFICADA WHERE ID = ? AND FORMA_REGISTRO = ?",
        (aposta_id, FORMA_REGISTRO_ARBITRAGEM)
    )
    row = cur.fetchone()
    return _row_to_dict(row) if row else None


# ============================================
# CÁLCULOS AUXILIARES
# ============================================

def lucro_entrada(stake, odd, resultado, fonte_saldo=FONTE_SALDO_REAL):
    """
    Lucro/prejuízo de uma posição para o resultado informado.
    GREEN: stake*(odd-1) | MEIO_GREEN: metade disso | RED: -stake
    MEIO_RED: -stake/2 | VOID: 0
    Com freebet a stake não é dinheiro real: RED, MEIO_RED e VOID dão 0.
    """
    stake = to_float(stake)
    odd = to_float(odd)
    if resultado == RESULTADO_GREEN:
        valor = stake * (odd - 1)
    elif resultado == RESULTADO_MEIO_GREEN:
        valor = stake * (odd - 1) / 2
    elif fonte_saldo == FONTE_SALDO_FREEBET:
        valor = 0.0
    elif resultado == RESULTADO_RED:
        valor = -stake
    elif resultado == RESULTADO_MEIO_RED:
        valor = -stake / 2
    else:
        valor = 0.0
    return round(valor, 2)


def _posicoes(perna):
    """(entrada, posição) da perna: 0 é a principal, 1..n as coberturas"""
    yield 0, perna
    for j, entrada in enumerate(perna.get('entries') or []):
        yield j + 1, entrada


def _ids_casas(pernas):
    ids = set()
    for perna in pernas:
        for _, posicao in _posicoes(perna):
            if posicao.get('bookmaker_id'):
                ids.add(posicao['bookmaker_id'])
    return sorted(ids)


def _aplicar_moeda_das_casas(pernas, saldos):
    """A moeda de cada posição é sempre a moeda da casa"""
    for perna in pernas:
        for _, posicao in _posicoes(perna):
            casa = saldos.get(posicao.get('bookmaker_id'))
            if casa and casa.get('moeda'):
                posicao['moeda'] = casa['moeda'].strip().upper()
    return pernas


def _na_moeda_operacao(valor, snapshot, moeda_operacao):
    """Converte um valor da moeda da posição para a moeda da operação usando o snapshot"""
    if not snapshot or snapshot.get('moeda_origem') == moeda_operacao:
        return valor
    # Operações multi-moeda são consolidadas em BRL
    return valor * to_float(snapshot.get('cotacao'), 1.0)


def _analisar_operacao(pernas, cotacoes, num_pernas=None):
    """Valores esperados com as stakes efetivamente informadas"""
    moedas = detectar_moedas(pernas)
    stakes = [calcular_stake_total(p) for p in pernas]
    if len(moedas) > 1:
        analise = analisar_cenarios_multimoeda(pernas, stakes, cotacoes, MOEDA_PADRAO, num_pernas)
        moeda_operacao = MOEDA_PADRAO
    else:
        analise = analisar_cenarios(pernas, stakes=stakes, num_pernas=num_pernas)
        moeda_operacao = moedas[0] if moedas else MOEDA_PADRAO
    return analise, moeda_operacao


def _snapshot_mantido(anterior, posicao):
    """Reaproveita o snapshot quando a posição não mudou (casa, moeda, odd e stake)"""
    if not anterior or not anterior.get('cotacao_snapshot'):
        return None
    mesma = (
        anterior.get('bookmaker_id') == posicao.get('bookmaker_id')
        and (anterior.get('moeda') or MOEDA_PADRAO) == posicao.get('moeda')
        and abs(to_float(anterior.get('odd')) - to_float(posicao.get('odd'))) < 1e-9
        and abs(to_float(anterior.get('stake')) - to_float(posicao.get('stake'))) < 1e-9
    )
    return anterior['cotacao_snapshot'] if mesma else None


def _montar_pernas_json(pernas, saldos, cotacoes, anteriores=None):
    """Formato persistido em APOSTAS_UNIFICADA.PERNAS"""
    anteriores = anteriores or []
    resultado = []
    for i, perna in enumerate(pernas):
        anterior = anteriores[i] if i < len(anteriores) else None
        entradas_anteriores = (anterior or {}).get('entries') or []

        entries = []
        for j, entrada in enumerate(perna.get('entries') or []):
            entrada_anterior = entradas_anteriores[j] if j < len(entradas_anteriores) else None
            snapshot = _snapshot_mantido(entrada_anterior, entrada) or \
                criar_snapshot(entrada['moeda'], entrada['stake'], cotacoes)
            entries.append({
                "bookmaker_id": entrada['bookmaker_id'],
                "bookmaker_nome": (saldos.get(entrada['bookmaker_id']) or {}).get('nome'),
                "odd": entrada['odd'],
                "stake": entrada['stake'],
                "moeda": entrada['moeda'],
                "fonte_saldo": FONTE_SALDO_REAL,
                "cotacao_snapshot": snapshot,
                "resultado": None,
                "lucro_prejuizo": None,
            })

        snapshot = _snapshot_mantido(anterior, perna) or criar_snapshot(perna['moeda'], perna['stake'], cotacoes)
        resultado.append({
            "ordem": i,
            "bookmaker_id": perna['bookmaker_id'],
            "bookmaker_nome": (saldos.get(perna['bookmaker_id']) or {}).get('nome'),
            "selecao": perna.get('selecao'),
            "odd": perna['odd'],
            "stake": perna['stake'],
            "moeda": perna['moeda'],
            "is_reference": perna.get('is_reference', False),
            "is_directed": perna.get('is_directed', False),
            "fonte": perna.get('fonte'),
            "fonte_saldo": perna.get('fonte_saldo') or FONTE_SALDO_REAL,
            "freebet_id": perna.get('freebet_id') if is_freebet(perna) else None,
            "cotacao_snapshot": snapshot,
            "entries": entries,
            "resultado": None,
            "lucro_prejuizo": None,
        })
    return resultado


def _inserir_pernas(cur, aposta_id, pernas_json):
    for perna in pernas_json:
        for entrada_idx, posicao in _posicoes(perna):
            cur.execute("""
                INSERT INTO APOSTAS_PERNAS (
                    APOSTA_ID, ORDEM, ENTRADA, BOOKMAKER_ID, SELECAO, ODD, STAKE, MOEDA, FONTE_SALDO,
                    COTACAO_SNAPSHOT, RESULTADO, LUCRO_PREJUIZO
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                aposta_id, perna['ordem'], entrada_idx, posicao['bookmaker_id'], perna.get('selecao'),
                posicao['odd'], posicao['stake'], posicao['moeda'],
                posicao.get('fonte_saldo') or FONTE_SALDO_REAL,
                json.dumps(posicao.get('cotacao_snapshot')),
                posicao.get('resultado'), posicao.get('lucro_prejuizo'),
            ))


def _consumir_freebets(cur, aposta_id, pernas_json):
    """
    Marca como UTILIZADA a freebet de cada perna FREEBET.

    Returns:
        None, ou a mensagem de erro quando alguma freebet não está liberada na casa
    """
    for perna in pernas_json:
        if not is_freebet(perna):
            continue
        if not marcar_freebet(cur, perna['freebet_id'], FREEBET_UTILIZADA, aposta_id, perna['bookmaker_id']):
            return f"Freebet {perna['freebet_id']} não está liberada em {perna.get('bookmaker_nome') or perna['bookmaker_id']}"
    return None


def _usa_freebet(pernas):
    return any(is_freebet(p) for p in pernas or [])


def _preparar_pernas(payload, is_editing=False, contexto=None):
    """
    Normaliza, valida e limpa as pernas do payload.

    Returns:
        (pernas, saldos, error_code, message)
    """
    pernas = normalizar_pernas(payload.get('pernas'))
    ids = _ids_casas(pernas)
    saldos = get_saldos_canonicos(ids, use_cache=False) if ids else {}

    desconhecidas = [str(i) for i in ids if i not in saldos]
    if desconhecidas:
        return (None, None, "VALIDATION_ERROR", f"Casa não encontrada: {', '.join(desconhecidas)}")

    _aplicar_moeda_das_casas(pernas, saldos)

    is_valid, error_code, message = validar_surebet(pernas, saldos, is_editing=is_editing, contexto=contexto)
    if not is_valid:
        return (None, None, error_code, message)

    return (limpar_pernas(pernas), saldos, None, None)


def _data_aposta(payload):
    valor = payload.get('data_aposta')
    if not valor:
        return datetime.now()
    parsed = parse_date(valor)
    return datetime.combine(parsed, datetime.now().time()) if parsed else None


# ============================================
# CRUD
# ============================================

def create_surebet(payload, user_id=None):
    """
    Registra uma surebet.

    Args:
        payload: dict com pernas (obrigatório), evento, mercado, estrategia,
            contexto_operacional, data_aposta, observacoes, num_pernas
        user_id: usuário que registrou

    Returns:
        (success: bool, error_code: str, result: dict | str)
    """
    payload = payload or {}
    contexto = payload.get('contexto_operacional') or CONTEXTO_PADRAO
    pernas, saldos, error_code, message = _preparar_pernas(payload, contexto=contexto)
    if error_code:
        return (False, error_code, message)

    data_aposta = _data_aposta(payload)
    if data_aposta is None:
        return (False, "VALIDATION_ERROR", "Data da aposta inválida. Use DD-MM-AAAA.")

    cotacoes = get_cotacoes()
    analise, moeda_operacao = _analisar_operacao(pernas, cotacoes, payload.get('num_pernas'))
    pernas_json = _montar_pernas_json(pernas, saldos, cotacoes)

    stake_total = round(analise['stake_total'], 2)
    lucro_esperado = round(analise['min_lucro'], 2)
    roi_esperado = round(analise['min_roi'], 4)
    estrategia = payload.get('estrategia') or ESTRATEGIA_PADRAO

    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()
        cur.execute("""
            INSERT INTO APOSTAS_UNIFICADA (
                FORMA_REGISTRO, ESTRATEGIA, CONTEXTO_OPERACIONAL, STATUS, EVENTO, MERCADO,
                DATA_APOSTA, MOEDA_OPERACAO, STAKE_TOTAL, LUCRO_ESPERADO, ROI_ESPERADO,
                PERNAS, VERSAO, OBSERVACOES, CREATED_BY
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
            RETURNING ID, CREATED_AT
        """, (
            FORMA_REGISTRO_ARBITRAGEM, estrategia, contexto, STATUS_PENDENTE,
            payload.get('evento'), payload.get('mercado'), data_aposta, moeda_operacao,
            stake_total, lucro_esperado, roi_esperado,
            json.dumps(pernas_json), payload.get('observacoes'), user_id
        ))
        row = cur.fetchone()
        aposta_id = row[0]
        _inserir_pernas(cur, aposta_id, pernas_json)
        erro_freebet = _consumir_freebets(cur, aposta_id, pernas_json)
        if erro_freebet:
            conn.rollback()
            return (False, "VALIDATION_ERROR", erro_freebet)
        conn.commit()
        logger.info(f"Surebet #{aposta_id} registrada: stake {stake_total} {moeda_operacao}, "
                    f"lucro esperado {lucro_esperado} ({analise['classificacao']})")
    except fdb.Error as e:
        logger.error(f"Erro ao registrar surebet: {e}", exc_info=True)
        if conn:
            conn.rollback()
        return (False, "DATABASE_ERROR", "Erro interno do servidor")
    finally:
        if conn:
            conn.close()

    _invalidate_surebet_cache()
    safe_publish('surebet.criada', {
        "aposta_id": aposta_id,
        "bookmaker_ids": _ids_casas(pernas_json),
        "stake_total": stake_total,
        "moeda": moeda_operacao,
    })

    return (True, None, {
        "id": aposta_id,
        "forma_registro": FORMA_REGISTRO_ARBITRAGEM,
        "estrategia": estrategia,
        "contexto_operacional": contexto,
        "status": STATUS_PENDENTE,
        "resultado": None,
        "evento": payload.get('evento'),
        "mercado": payload.get('mercado'),
        "data_aposta": data_aposta.isoformat(),
        "moeda_operacao": moeda_operacao,
        "stake_total": stake_total,
        "lucro_esperado": lucro_esperado,
        "roi_esperado": roi_esperado,
        "lucro_prejuizo": None,
        "roi_real": None,
        "pernas": pernas_json,
        "versao": 0,
        "observacoes": payload.get('observacoes'),
        "created_by": user_id,
        "created_at": _iso(row[1]),
        "updated_at": None,
        "classificacao": analise['classificacao'],
    })


def get_surebet(aposta_id):
    conn = None
    try:
        conn = get_db_connection()
        return _fetch_surebet(conn.cursor(), aposta_id)
    except fdb.Error as e:
        logger.error(f"Erro ao buscar surebet {aposta_id}: {e}", exc_info=True)
        return None
    finally:
        if conn:
            conn.close()


def list_surebets(filters=None, page=1, page_size=50):
    """
    Lista surebets com filtros e paginação.

    Args:
        filters: dict com status, estrategia, contexto_operacional,
            data_inicio e data_fim (AAAA-MM-DD)

    Returns:
        dict com items, total, page, page_size, total_pages
    """
    filters = filters or {}
    page, page_size = normalize_pagination(page, page_size)

    cache = get_cache_manager()
    cache_key = build_cache_key('surebets:list', dict(filters, page=page, page_size=page_size))
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    conditions = ["FORMA_REGISTRO = ?"]
    params = [FORMA_REGISTRO_ARBITRAGEM]
    if filters.get('status'):
        conditions.append("STATUS = ?")
        params.append(filters['status'])
    if filters.get('estrategia'):
        conditions.append("ESTRATEGIA = ?")
        params.append(filters['estrategia'])
    if filters.get('contexto_operacional'):
        conditions.append("CONTEXTO_OPERACIONAL = ?")
        params.append(filters['contexto_operacional'])
    if filters.get('data_inicio'):
        conditions.append("CAST(DATA_APOSTA AS DATE) >= ?")
        params.append(filters['data_inicio'])
    if filters.get('data_fim'):
        conditions.append("CAST(DATA_APOSTA AS DATE) <= ?")
        params.append(filters['data_fim'])
    where = " WHERE " + " AND ".join(conditions)

    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) FROM APOSTAS_UNIFICADA" + where, params)
        total = cur.fetchone()[0] or 0

        # Firebird não parametriza FIRST/SKIP; page e page_size já são int
        offset = (page - 1) * page_size
        select_clause = f"SELECT FIRST {int(page_size)} SKIP {int(offset)}"
        cur.execute(
            f"{select_clause} {_SELECT_CAMPOS} FROM APOSTAS_UNIFICADA{where} "
            "ORDER BY DATA_APOSTA DESC, ID DESC",
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
        logger.error(f"Erro ao listar surebets: {e}", exc_info=True)
        return {"items": [], "total": 0, "page": page, "page_size": page_size, "total_pages": 0}
    finally:
        if conn:
            conn.close()


def update_surebet(aposta_id, payload, user_id=None):
    """
    Edita uma surebet ainda pendente e sem pernas liquidadas.
    Posições inalteradas mantêm o snapshot de cotação original.
    """
    payload = payload or {}
    versao_cliente = _parse_versao(payload['versao']) if payload.get('versao') is not None else None
    if payload.get('versao') is not None and versao_cliente is None:
        return (False, "VALIDATION_ERROR", MSG_VERSAO_INVALIDA)

    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()

        atual = _fetch_surebet(cur, aposta_id)
        if not atual:
            return (False, "NOT_FOUND", "Surebet não encontrada")
        if atual['status'] != STATUS_PENDENTE or any(p.get('resultado') for p in atual['pernas']):
            return (False, "VALIDATION_ERROR", "Só é possível editar operações pendentes sem pernas liquidadas")
        if versao_cliente is not None and versao_cliente != atual['versao']:
            return (False, "CONFLICT", MSG_CONFLITO)

        contexto = payload.get('contexto_operacional') or atual['contexto_operacional']
        pernas, saldos, error_code, message = _preparar_pernas(payload, is_editing=True, contexto=contexto)
        if error_code:
            return (False, error_code, message)

        cotacoes = get_cotacoes()
        analise, moeda_operacao = _analisar_operacao(pernas, cotacoes, payload.get('num_pernas'))
        pernas_json = _montar_pernas_json(pernas, saldos, cotacoes, anteriores=atual['pernas'])

        campos = {
            "evento": payload.get('evento', atual['evento']),
            "mercado": payload.get('mercado', atual['mercado']),
            "estrategia": payload.get('estrategia') or atual['estrategia'],
            "contexto_operacional": contexto,
            "observacoes": payload.get('observacoes', atual['observacoes']),
            "moeda_operacao": moeda_operacao,
            "stake_total": round(analise['stake_total'], 2),
            "lucro_esperado": round(analise['min_lucro'], 2),
            "roi_esperado": round(analise['min_roi'], 4),
        }

        cur.execute("""
            UPDATE APOSTAS_UNIFICADA
            SET EVENTO = ?, MERCADO = ?, ESTRATEGIA = ?, CONTEXTO_OPERACIONAL = ?, OBSERVACOES = ?,
                MOEDA_OPERACAO = ?, STAKE_TOTAL = ?, LUCRO_ESPERADO = ?, ROI_ESPERADO = ?,
                PERNAS = ?, VERSAO = VERSAO + 1, UPDATED_AT = CURRENT_TIMESTAMP
            WHERE ID = ? AND VERSAO = ? AND STATUS = ?
        """, (
            campos['evento'], campos['mercado'], campos['estrategia'], campos['contexto_operacional'],
            campos['observacoes'], campos['moeda_operacao'], campos['stake_total'],
            campos['lucro_esperado'], campos['roi_esperado'], json.dumps(pernas_json),
            aposta_id, atual['versao'], STATUS_PENDENTE
        ))
        if cur.rowcount == 0:
            conn.rollback()
            return (False, "CONFLICT", MSG_CONFLITO)

        cur.execute("DELETE FROM APOSTAS_PERNAS WHERE APOSTA_ID = ?", (aposta_id,))
        _inserir_pernas(cur, aposta_id, pernas_json)
        if _usa_freebet(atual['pernas']) or _usa_freebet(pernas_json):
            liberar_freebets_da_aposta(cur, aposta_id)
            erro_freebet = _consumir_freebets(cur, aposta_id, pernas_json)
            if erro_freebet:
                conn.rollback()
                return (False, "VALIDATION_ERROR", erro_freebet)
        conn.commit()
        logger.info(f"Surebet #{aposta_id} editada por {user_id} (versão {atual['versao'] + 1})")
    except fdb.Error as e:
        logger.error(f"Erro ao editar surebet {aposta_id}: {e}", exc_info=True)
        if conn:
            conn.rollback()
        return (False, "DATABASE_ERROR", "Erro interno do servidor")
    finally:
        if conn:
            conn.close()

    _invalidate_surebet_cache()
    safe_publish('surebet.atualizada', {
        "aposta_id": aposta_id,
        "bookmaker_ids": _ids_casas(pernas_json + atual['pernas']),
    })

    atual.update(campos)
    atual.update({"pernas": pernas_json, "versao": atual['versao'] + 1, "classificacao": analise['classificacao']})
    return (True, None, atual)


def _consolidar(aposta):
    """
    Recalcula status, resultado, lucro e ROI a partir das pernas.
    O lucro é somado na moeda da operação usando o snapshot de cada posição.
    """
    pernas = aposta['pernas']
    moeda_operacao = aposta.get('moeda_operacao') or MOEDA_PADRAO
    lucro = 0.0
    for perna in pernas:
        for _, posicao in _posicoes(perna):
            if posicao.get('lucro_prejuizo') is not None:
                lucro += _na_moeda_operacao(posicao['lucro_prejuizo'], posicao.get('cotacao_snapshot'), moeda_operacao)
    lucro = round(lucro, 2)

    liquidada = bool(pernas) and all(p.get('resultado') in RESULTADOS_TERMINAIS for p in pernas)
    if not liquidada:
        return (STATUS_PENDENTE, None, lucro, None)

    if lucro > 0.005:
        resultado = RESULTADO_GREEN
    elif lucro < -0.005:
        resultado = RESULTADO_RED
    else:
        resultado = RESULTADO_EMPATE

    stake_total = aposta.get('stake_total') or 0
    roi = round((lucro / stake_total) * 100, 4) if stake_total > 0 else 0.0
    return (STATUS_LIQUIDADA, resultado, lucro, roi)


def settle_leg(aposta_id, perna_index, resultado, user_id=None, versao=None):
    """
    Liquida (ou re-liquida) uma perna.

    Args:
        aposta_id: ID da operação
        perna_index: índice da perna (0-based)
        resultado: GREEN, RED, VOID, MEIO_GREEN ou MEIO_RED
        versao: versão lida pelo cliente (opcional); divergente = CONFLICT

    Returns:
        (success: bool, error_code: str, result: dict | str)
    """
    if resultado not in RESULTADOS_TERMINAIS:
        return (False, "VALIDATION_ERROR", f"Resultado inválido. Deve ser um de: {', '.join(RESULTADOS_TERMINAIS)}")

    versao_cliente = _parse_versao(versao) if versao is not None else None
    if versao is not None and versao_cliente is None:
        return (False, "VALIDATION_ERROR", MSG_VERSAO_INVALIDA)

    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()

        aposta = _fetch_surebet(cur, aposta_id)
        if not aposta:
            return (False, "NOT_FOUND", "Surebet não encontrada")
        if versao_cliente is not None and versao_cliente != aposta['versao']:
            return (False, "CONFLICT", MSG_CONFLITO)

        pernas = aposta['pernas']
        try:
            perna_index = int(perna_index)
        except (ValueError, TypeError):
            return (False, "VALIDATION_ERROR", "Perna inválida")
        if perna_index < 0 or perna_index >= len(pernas):
            return (False, "VALIDATION_ERROR", "Perna inválida")

        perna = pernas[perna_index]
        resultado_anterior = perna.get('resultado')
        if resultado_anterior == resultado:
            # Mesmo resultado: delta zero, nada a gravar
            return (True, None, aposta)

        movimentos = []
        for entrada_idx, posicao in _posicoes(perna):
            anterior = posicao.get('lucro_prejuizo') if resultado_anterior else None
            novo = lucro_entrada(posicao.get('stake'), posicao.get('odd'), resultado,
                                 posicao.get('fonte_saldo') or FONTE_SALDO_REAL)
            movimentos.append((entrada_idx, posicao, anterior, novo))
            posicao['resultado'] = resultado
            posicao['lucro_prejuizo'] = novo
        perna['resultado'] = resultado

        status, resultado_final, lucro, roi = _consolidar(aposta)

        cur.execute("""
            UPDATE APOSTAS_UNIFICADA
            SET PERNAS = ?, STATUS = ?, RESULTADO = ?, LUCRO_PREJUIZO = ?, ROI_REAL = ?,
                VERSAO = VERSAO + 1, UPDATED_AT = CURRENT_TIMESTAMP
            WHERE ID = ? AND VERSAO = ?
        """, (json.dumps(pernas), status, resultado_final, lucro, roi, aposta_id, aposta['versao']))
        if cur.rowcount == 0:
            conn.rollback()
            logger.warning(f"Conflito de versão ao liquidar surebet #{aposta_id} (versão {aposta['versao']})")
            return (False, "CONFLICT", MSG_CONFLITO)

        selecao = perna.get('selecao') or f"Perna {perna_index + 1}"
        for entrada_idx, posicao, anterior, novo in movimentos:
            cur.execute("""
                UPDATE APOSTAS_PERNAS SET RESULTADO = ?, LUCRO_PREJUIZO = ?
                WHERE APOSTA_ID = ? AND ORDEM = ? AND ENTRADA = ?
            """, (resultado, novo, aposta_id, perna_index, entrada_idx))

            if anterior:
                registrar_movimento(
                    cur, TIPO_APOSTA_REVERSAO, -anterior,
                    bookmaker_id=posicao.get('bookmaker_id'), moeda=posicao.get('moeda') or MOEDA_PADRAO,
                    descricao=f"Reversão {resultado_anterior} de {selecao} (surebet #{aposta_id})",
                    referencia_tipo=REFERENCIA_APOSTA, referencia_id=aposta_id, user_id=user_id
                )
            registrar_movimento(
                cur, TIPO_POR_RESULTADO[resultado], novo,
                bookmaker_id=posicao.get('bookmaker_id'), moeda=posicao.get('moeda') or MOEDA_PADRAO,
                descricao=f"{resultado} em {selecao} (surebet #{aposta_id})",
                referencia_tipo=REFERENCIA_APOSTA, referencia_id=aposta_id, user_id=user_id
            )

        conn.commit()
        logger.info(f"Surebet #{aposta_id} perna {perna_index} liquidada como {resultado} "
                    f"(anterior: {resultado_anterior}); status {status}, lucro {lucro}")
    except fdb.Error as e:
        logger.error(f"Erro ao liquidar perna {perna_index} da surebet {aposta_id}: {e}", exc_info=True)
        if conn:
            conn.rollback()
        return (False, "DATABASE_ERROR", "Erro interno do servidor")
    finally:
        if conn:
            conn.close()

    _invalidate_surebet_cache()
    safe_publish('surebet.liquidada', {
        "aposta_id": aposta_id,
        "perna_index": perna_index,
        "resultado": resultado,
        "status": status,
        "lucro_prejuizo": lucro,
        "bookmaker_ids": _ids_casas([perna]),
    })

    aposta.update({
        "status": status,
        "resultado": resultado_final,
        "lucro_prejuizo": lucro,
        "roi_real": roi,
        "versao": aposta['versao'] + 1,
    })
    return (True, None, aposta)


def delete_surebet(aposta_id, user_id=None):
    """
    Exclui a operação. Lucros/prejuízos já lançados de pernas liquidadas
    são estornados no ledger na mesma transação, e as freebets usadas voltam
    a ficar LIBERADAS.
    """
    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()

        aposta = _fetch_surebet(cur, aposta_id)
        if not aposta:
            return (False, "NOT_FOUND", "Surebet não encontrada")

        # APOSTAS_PERNAS sai junto (ON DELETE CASCADE)
        cur.execute("DELETE FROM APOSTAS_UNIFICADA WHERE ID = ? AND VERSAO = ?", (aposta_id, aposta['versao']))
        if cur.rowcount == 0:
            conn.rollback()
            return (False, "CONFLICT", MSG_CONFLITO)

        estornos = 0
        for perna in aposta['pernas']:
            if not perna.get('resultado'):
                continue
            for _, posicao in _posicoes(perna):
                if registrar_movimento(
                    cur, TIPO_APOSTA_REVERSAO, -to_float(posicao.get('lucro_prejuizo')),
                    bookmaker_id=posicao.get('bookmaker_id'), moeda=posicao.get('moeda') or MOEDA_PADRAO,
                    descricao=f"Exclusão da surebet #{aposta_id}",
                    referencia_tipo=REFERENCIA_APOSTA, referencia_id=aposta_id, user_id=user_id
                ):
                    estornos += 1

        if _usa_freebet(aposta['pernas']):
            liberar_freebets_da_aposta(cur, aposta_id)

        conn.commit()
        logger.info(f"Surebet #{aposta_id} excluída por {user_id} ({estornos} estornos)")
    except fdb.Error as e:
        logger.error(f"Erro ao excluir surebet {aposta_id}: {e}", exc_info=True)
        if conn:
            conn.rollback()
        return (False, "DATABASE_ERROR", "Erro interno do servidor")
    finally:
        if conn:
            conn.close()

    _invalidate_surebet_cache()
    safe_publish('surebet.excluida', {
        "aposta_id": aposta_id,
        "bookmaker_ids": _ids_casas(aposta['pernas']),
    })
    return (True, None, {"id": aposta_id, "estornos": estornos})


# ============================================
# SIMULAÇÃO (endpoint de cálculo)
# ============================================

def _distribuir_stakes(pernas, stakes, fator, ativo, cotacoes):
    """
    Aplica as stakes calculadas nas pernas. Em pernas com coberturas, as
    coberturas mantêm a stake e só a entrada principal é recalculada.
    """
    resultado = []
    for perna, stake_total in zip(pernas, stakes):
        perna = dict(perna, entries=[dict(e) for e in perna.get('entries') or []])
        if perna['entries']:
            perna['stake'] = ajustar_stake_principal(
                stake_total, to_float(perna.get('odd')), calcular_odd_media(perna), perna['entries'],
                fator, ativo, cotacoes=cotacoes, moeda_perna=perna.get('moeda')
            )
        else:
            perna['stake'] = stake_total
        resultado.append(perna)
    return resultado


def _avisos_de_saldo(pernas, saldos):
    avisos = []
    for i, perna in enumerate(pernas):
        label = f'"{perna["selecao"]}"' if perna.get('selecao') else f"Perna {i + 1}"
        if perna.get('bookmaker_id') and to_float(perna.get('stake')) > 0:
            if is_freebet(perna):
                aviso = checar_saldo_freebet(saldos, perna['bookmaker_id'], to_float(perna['stake']), label)
            else:
                aviso = checar_saldo_posicao(pernas, saldos, perna['bookmaker_id'], to_float(perna['stake']), label, i)
            if aviso:
                avisos.append(aviso)
        for j, entrada in enumerate(perna.get('entries') or []):
            if entrada.get('bookmaker_id') and to_float(entrada.get('stake')) > 0:
                aviso = checar_saldo_posicao(pernas, saldos, entrada['bookmaker_id'], to_float(entrada['stake']),
                                             f"cobertura {j + 1} de {label}", i, j)
                if aviso:
                    avisos.append(aviso)
    return avisos


def simular_surebet(data):
    """
    Calcula stakes e cenários sem gravar nada.

    Args:
        data: dict com pernas, num_pernas, arredondamento_fator,
            arredondamento_ativo, moeda_consolidacao e cotacoes (opcional)

    Returns:
        (success, error_code, {"analise", "pernas", "avisos", "cotacoes"})
        Falta de saldo vira aviso; não bloqueia o cálculo. Lucro direcionado sem
        solução também: a análise sai no modo equalizado/manual com
        direcionado_sem_solucao=True.
    """
    data = data or {}
    pernas = normalizar_pernas(data.get('pernas'))
    if len(pernas) < 2:
        return (False, "VALIDATION_ERROR", "Informe pelo menos 2 pernas")

    fator = to_float(data.get('arredondamento_fator'), Config.ARREDONDAMENTO_FATOR) or 1.0
    ativo = data.get('arredondamento_ativo', Config.ARREDONDAMENTO_ATIVO)
    if isinstance(ativo, str):
        ativo = ativo.strip().lower() in ('1', 'true', 'sim', 'yes')
    num_pernas = data.get('num_pernas')

    ids = _ids_casas(pernas)
    saldos = get_saldos_canonicos(ids) if ids else {}
    _aplicar_moeda_das_casas(pernas, saldos)

    cotacoes = data.get('cotacoes') or get_cotacoes()
    moedas = detectar_moedas(pernas)

    direcionadas = [p for p in pernas if p.get('is_directed')]
    avisos_calculo = []

    if len(moedas) > 1:
        moeda_consolidacao = (data.get('moeda_consolidacao') or MOEDA_PADRAO).upper()
        equalizado = calcular_stakes_equalizadas_multimoeda(pernas, cotacoes, moeda_consolidacao, fator, ativo)
        analise = analisar_cenarios_multimoeda(
            pernas, equalizado['stakes_local'], cotacoes, moeda_consolidacao, num_pernas
        )
        analise['modo'] = MODO_EQUALIZADO if equalizado['is_valid'] else MODO_MANUAL
        if direcionadas:
            analise['direcionado_sem_solucao'] = True
            avisos_calculo.append(
                "Lucro direcionado não se aplica a pernas em moedas diferentes; "
                f"stakes calculadas no modo {analise['modo']}"
            )
    else:
        analise = analisar_cenarios(pernas, None, num_pernas, fator, ativo)
        if direcionadas and analise['modo'] != MODO_DIRECIONADO:
            # segue com o modo equalizado/manual e avisa
            analise['direcionado_sem_solucao'] = True
            avisos_calculo.append(
                "Sem solução para lucro direcionado com essas odds "
                "(informe a stake da perna direcionada ou revise as odds); "
                f"stakes calculadas no modo {analise['modo']}"
            )
    analise.setdefault('direcionado_sem_solucao', False)

    pernas_calculadas = _distribuir_stakes(pernas, analise['stakes'], fator, ativo, cotacoes)
    avisos = avisos_calculo + (_avisos_de_saldo(pernas_calculadas, saldos) if saldos else [])

    return (True, None, {
        "analise": analise,
        "pernas": pernas_calculadas,
        "avisos": avisos,
        "cotacoes": {m: cotacoes.get(m, 1.0) for m in moedas},
    })
