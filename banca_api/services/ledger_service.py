"""
Serviço de Ledger (CASH_LEDGER)

Ponto único de escrita de movimentos que alteram saldo de casa.
Sempre roda no cursor do chamador: a linha do ledger e o ajuste em
BOOKMAKERS.SALDO_ATUAL entram na mesma transação da operação que os originou.
"""

import logging

logger = logging.getLogger(__name__)

STATUS_CONFIRMADO = 'CONFIRMADO'

# Tipos de movimento
TIPO_DEPOSITO = 'DEPOSITO'
TIPO_SAQUE = 'SAQUE'
TIPO_TRANSFERENCIA = 'TRANSFERENCIA'
TIPO_APORTE = 'APORTE'
TIPO_APORTE_FINANCEIRO = 'APORTE_FINANCEIRO'
TIPO_LIQUIDACAO = 'LIQUIDACAO'
TIPO_APOSTA_GREEN = 'APOSTA_GREEN'
TIPO_APOSTA_RED = 'APOSTA_RED'
TIPO_APOSTA_VOID = 'APOSTA_VOID'
TIPO_APOSTA_MEIO_GREEN = 'APOSTA_MEIO_GREEN'
TIPO_APOSTA_MEIO_RED = 'APOSTA_MEIO_RED'
TIPO_APOSTA_REVERSAO = 'APOSTA_REVERSAO'
TIPO_GANHO_CAMBIAL = 'GANHO_CAMBIAL'
TIPO_PERDA_CAMBIAL = 'PERDA_CAMBIAL'
TIPO_AJUSTE_POSITIVO = 'AJUSTE_POSITIVO'
TIPO_AJUSTE_NEGATIVO = 'AJUSTE_NEGATIVO'

TIPOS_MOVIMENTO = [
    TIPO_DEPOSITO, TIPO_SAQUE, TIPO_TRANSFERENCIA,
    TIPO_APORTE, TIPO_APORTE_FINANCEIRO, TIPO_LIQUIDACAO,
    TIPO_APOSTA_GREEN, TIPO_APOSTA_RED, TIPO_APOSTA_VOID,
    TIPO_APOSTA_MEIO_GREEN, TIPO_APOSTA_MEIO_RED, TIPO_APOSTA_REVERSAO,
    TIPO_GANHO_CAMBIAL, TIPO_PERDA_CAMBIAL,
    TIPO_AJUSTE_POSITIVO, TIPO_AJUSTE_NEGATIVO,
]

TIPO_POR_RESULTADO = {
    'GREEN': TIPO_APOSTA_GREEN,
    'RED': TIPO_APOSTA_RED,
    'VOID': TIPO_APOSTA_VOID,
    'MEIO_GREEN': TIPO_APOSTA_MEIO_GREEN,
    'MEIO_RED': TIPO_APOSTA_MEIO_RED,
}


def registrar_movimento(cur, tipo, valor, bookmaker_id=None, moeda='BRL', descricao=None,
                        referencia_tipo=None, referencia_id=None, user_id=None):
    """
    Insere um movimento confirmado no ledger e aplica o delta no saldo da casa.

    Args:
        cur: cursor da transação em andamento (obrigatório)
        tipo: um dos TIPOS_MOVIMENTO
        valor: valor com sinal; positivo credita a casa, negativo debita
        bookmaker_id: casa afetada (None = movimento só de caixa)
        referencia_tipo / referencia_id: origem do movimento (ex: 'APOSTA', 12)

    Returns:
        ID do movimento criado, ou None se o valor for zero
    """
    if tipo not in TIPOS_MOVIMENTO:
        raise ValueError(f"Tipo de movimento inválido: {tipo}")

    valor = round(float(valor or 0), 2)
    if valor == 0:
        return None

    # Crédito usa destino, débito usa origem
    origem_id = bookmaker_id if valor < 0 else None
    destino_id = bookmaker_id if valor > 0 else None

    cur.execute("""
        INSERT INTO CASH_LEDGER (
            TIPO_TRANSACAO, STATUS, VALOR, MOEDA,
            ORIGEM_BOOKMAKER_ID, DESTINO_BOOKMAKER_ID,
            DESCRICAO, REFERENCIA_TIPO, REFERENCIA_ID,
            CREATED_BY, CONFIRMADO_POR, CONFIRMADO_EM, DATA_TRANSACAO
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)
        RETURNING ID
    """, (
        tipo, STATUS_CONFIRMADO, abs(valor), moeda,
        origem_id, destino_id,
        descricao, referencia_tipo, referencia_id,
        user_id, user_id
    ))
    movimento_id = cur.fetchone()[0]

    if bookmaker_id:
        aplicar_delta_saldo(cur, bookmaker_id, valor)

    logger.info(f"Ledger {tipo} #{movimento_id}: {valor:+.2f} {moeda} (casa {bookmaker_id})")
    return movimento_id


def aplicar_delta_saldo(cur, bookmaker_id, delta):
    """Soma `delta` ao saldo real da casa (sem criar linha no ledger)"""
    cur.execute(
        "UPDATE BOOKMAKERS SET SALDO_ATUAL = SALDO_ATUAL + ?, UPDATED_AT = CURRENT_TIMESTAMP WHERE ID = ?",
        (round(float(delta), 2), bookmaker_id)
    )
