"""
Serviço de Cotações

Taxas no formato "1 unidade da moeda = X BRL". Ordem de prioridade:
1. Cotação de trabalho cadastrada na tabela COTACOES (manual)
2. PTAX do Banco Central (olinda.bcb.gov.br), cacheada por COTACOES_TTL_SECONDS
3. Fallback configurado (Config.COTACOES_FALLBACK)

USDT acompanha o USD quando não há cotação de trabalho própria.
"""

import fdb
import logging
import requests
from datetime import datetime, date, timedelta
from ..config import Config
from ..database import get_db_connection
from ..utils.cache_manager import get_cache_manager, invalidate
from .surebet_calculator import get_brl_rate, converter_via_brl, MOEDA_PADRAO

logger = logging.getLogger(__name__)

CACHE_KEY_COTACOES = 'cotacoes:atual'

FONTE_MANUAL = 'MANUAL'
FONTE_PTAX = 'PTAX'
FONTE_FALLBACK = 'FALLBACK'

MOEDAS_PTAX = ['USD', 'EUR', 'GBP']


def _fetch_ptax(moeda):
    """
    Busca a última cotação de venda PTAX dos últimos 7 dias (cobre fins de semana e feriados).
    Retorna None em qualquer falha.
    """
    hoje = date.today()
    inicio = hoje - timedelta(days=7)
    url = (
        f"{Config.COTACOES_PTAX_URL}/CotacaoMoedaPeriodo("
        "moeda=@moeda,dataInicial=@dataInicial,dataFinalCotacao=@dataFinalCotacao)"
    )
    params = {
        '@moeda': f"'{moeda}'",
        '@dataInicial': f"'{inicio.strftime('%m-%d-%Y')}'",
        '@dataFinalCotacao': f"'{hoje.strftime('%m-%d-%Y')}'",
        '$format': 'json',
    }
    try:
        response = requests.get(url, params=params, timeout=Config.COTACOES_TIMEOUT_SEC)
        if response.status_code != 200:
            logger.warning(f"PTAX {moeda} retornou status {response.status_code}")
            return None
        valores = response.json().get('value') or []
        if not valores:
            logger.warning(f"PTAX sem cotação para {moeda} nos últimos 7 dias")
            return None
        return float(valores[-1]['cotacaoVenda'])
    except requests.exceptions.Timeout:
        logger.error(f"Timeout ao buscar PTAX de {moeda}")
    except requests.exceptions.RequestException as e:
        logger.error(f"Erro de requisição ao buscar PTAX de {moeda}: {e}")
    except (ValueError, KeyError, TypeError) as e:
        logger.error(f"Resposta PTAX inválida para {moeda}: {e}")
    return None


def _load_cotacoes_trabalho():
    """Cotações manuais da tabela COTACOES. Falha de banco não impede o uso das demais fontes."""
    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()
        cur.execute("SELECT MOEDA, COTACAO, ATUALIZADO_EM FROM COTACOES")
        return {
            row[0].strip().upper(): {
                "cotacao": float(row[1]),
                "atualizado_em": row[2].isoformat() if row[2] else None,
            }
            for row in cur.fetchall() if row[1] and float(row[1]) > 0
        }
    except fdb.Error as e:
        logger.error(f"Erro ao carregar cotações de trabalho: {e}", exc_info=True)
        return {}
    finally:
        if conn:
            conn.close()


def get_cotacoes_detalhadas(force_refresh=False):
    """
    Returns:
        dict com:
            - cotacoes: {moeda: taxa_brl}
            - fontes: {moeda: 'MANUAL' | 'PTAX' | 'FALLBACK'}
            - atualizado_em: ISO da montagem
    """
    cache = get_cache_manager()
    if not force_refresh:
        cached = cache.get(CACHE_KEY_COTACOES)
        if cached is not None:
            return cached

    cotacoes = dict(Config.COTACOES_FALLBACK)
    fontes = {moeda: FONTE_FALLBACK for moeda in cotacoes}

    if Config.COTACOES_PTAX_ATIVO:
        for moeda in MOEDAS_PTAX:
            taxa = _fetch_ptax(moeda)
            if taxa:
                cotacoes[moeda] = taxa
                fontes[moeda] = FONTE_PTAX

    cotacoes['USDT'] = cotacoes['USD']
    fontes['USDT'] = fontes['USD']

    for moeda, info in _load_cotacoes_trabalho().items():
        cotacoes[moeda] = info['cotacao']
        fontes[moeda] = FONTE_MANUAL

    cotacoes[MOEDA_PADRAO] = 1.0
    fontes[MOEDA_PADRAO] = FONTE_MANUAL

    resultado = {
        "cotacoes": cotacoes,
        "fontes": fontes,
        "atualizado_em": datetime.now().isoformat(),
    }
    cache.set(CACHE_KEY_COTACOES, resultado, ttl=Config.COTACOES_TTL_SECONDS)
    return resultado


def get_cotacoes(force_refresh=False):
    """{moeda: quantos BRL vale 1 unidade}"""
    return get_cotacoes_detalhadas(force_refresh)['cotacoes']


def salvar_cotacao_trabalho(moeda, cotacao, user_id=None):
    """
    Cadastra/atualiza a cotação de trabalho de uma moeda.

    Returns:
        (success: bool, error_code: str, result: dict)
    """
    moeda = (moeda or '').strip().upper()
    if moeda not in Config.MOEDAS_SUPORTADAS or moeda == MOEDA_PADRAO:
        return (False, "VALIDATION_ERROR", f"Moeda inválida: {moeda}")
    try:
        cotacao = float(cotacao)
    except (ValueError, TypeError):
        return (False, "VALIDATION_ERROR", "Cotação deve ser um número válido")
    if cotacao <= 0:
        return (False, "VALIDATION_ERROR", "Cotação deve ser maior que zero")

    conn = None
    try:
        conn = get_db_connection()
        cur = conn.cursor()
        cur.execute("""
            UPDATE OR INSERT INTO COTACOES (MOEDA, COTACAO, FONTE, ATUALIZADO_EM)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
            MATCHING (MOEDA)
        """, (moeda, cotacao, FONTE_MANUAL))
        conn.commit()
        logger.info(f"Cotação de trabalho {moeda} = {cotacao} (usuário {user_id})")
    except fdb.Error as e:
        logger.error(f"Erro ao salvar cotação de {moeda}: {e}", exc_info=True)
        if conn:
            conn.rollback()
        return (False, "DATABASE_ERROR", "Erro interno do servidor")
    finally:
        if conn:
            conn.close()

    invalidate('cotacoes:*')
    return (True, None, {"moeda": moeda, "cotacao": cotacao, "fonte": FONTE_MANUAL})


def converter(valor, de, para, cotacoes=None):
    """Converte valor entre moedas usando BRL como pivô"""
    if cotacoes is None:
        cotacoes = get_cotacoes()
    return converter_via_brl(valor, de, para, cotacoes)


def criar_snapshot(moeda, valor, cotacoes=None):
    """
    Snapshot imutável de conversão gravado junto de cada perna/entrada.
    Relatórios posteriores usam este snapshot, não a cotação do dia.
    """
    moeda = (moeda or MOEDA_PADRAO).upper()
    if cotacoes is None:
        cotacoes = get_cotacoes()
    cotacao = get_brl_rate(moeda, cotacoes)
    valor = float(valor or 0)
    return {
        "moeda_origem": moeda,
        "moeda_referencia": MOEDA_PADRAO,
        "cotacao": cotacao,
        "cotacao_at": datetime.now().isoformat(),
        "valor_original": valor,
        "valor_brl_referencia": round(valor * cotacao, 2),
    }
