"""
Calculadora de Surebet (arbitragem)

Funções puras, sem acesso a banco ou a Flask, usadas tanto pelo endpoint de
cálculo quanto pelo serviço de persistência:
- Odd média e stake total de pernas com múltiplas entradas
- Stakes equalizadas a partir de uma perna de referência
- Lucro direcionado (checkbox D): pernas marcadas recebem o lucro,
  as demais ficam no zero a zero
- Análise de cenários (retorno, lucro e ROI caso cada perna ganhe)
- Variante multi-moeda usando BRL como pivô

Formato de uma perna (dict):
    {
        "bookmaker_id": int | None,
        "odd": float,
        "stake": float,
        "moeda": "BRL",
        "selecao": "Casa",
        "is_reference": bool,
        "is_directed": bool,
        "is_manually_edited": bool,
        "fonte": "MANUAL" | "PRINT",
        "fonte_saldo": "REAL" | "FREEBET",
        "freebet_id": int | None,
        "entries": [{"bookmaker_id", "odd", "stake", "moeda"}, ...]
    }
"entries" são as entradas adicionais (cobertura em outras casas) da mesma seleção.
Perna FREEBET não devolve a stake: o retorno é stake * (odd - 1) e a stake
não entra no custo real da operação.
"""

import math
import logging

logger = logging.getLogger(__name__)

MOEDA_PADRAO = 'BRL'

CLASSIFICACAO_ARBITRAGEM = 'ARBITRAGEM'
CLASSIFICACAO_HEDGE_PARCIAL = 'HEDGE_PARCIAL'
CLASSIFICACAO_RISCO = 'RISCO'

MODO_EQUALIZADO = 'EQUALIZADO'
MODO_DIRECIONADO = 'DIRECIONADO'
MODO_MANUAL = 'MANUAL'

FONTE_PRINT = 'PRINT'

FONTE_SALDO_REAL = 'REAL'
FONTE_SALDO_FREEBET = 'FREEBET'
FONTES_SALDO = [FONTE_SALDO_REAL, FONTE_SALDO_FREEBET]


def to_float(value, default=0.0):
    """Converte valores vindos do formulário ("1,85", "", None) para float"""
    if value is None or value == '':
        return default
    try:
        if isinstance(value, str):
            value = value.strip().replace(',', '.')
        result = float(value)
    except (ValueError, TypeError):
        return default
    if math.isnan(result):
        return default
    return result


def _to_id(value):
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        return None


def normalizar_entrada(entrada):
    entrada = entrada or {}
    return {
        "bookmaker_id": _to_id(entrada.get('bookmaker_id')),
        "odd": to_float(entrada.get('odd')),
        "stake": to_float(entrada.get('stake')),
        "moeda": (entrada.get('moeda') or MOEDA_PADRAO).upper(),
    }


def normalizar_perna(perna):
    """
    Normaliza uma perna recebida do cliente para o formato interno.
    Campos ausentes recebem valores neutros (odd 0, stake 0, moeda BRL).
    """
    perna = perna or {}
    normalizada = normalizar_entrada(perna)
    normalizada.update({
        "selecao": perna.get('selecao'),
        "is_reference": bool(perna.get('is_reference', False)),
        "is_directed": bool(perna.get('is_directed', False)),
        "is_manually_edited": bool(perna.get('is_manually_edited', False)),
        "fonte": perna.get('fonte') or 'MANUAL',
        "fonte_saldo": str(perna.get('fonte_saldo') or FONTE_SALDO_REAL).strip().upper(),
        "freebet_id": _to_id(perna.get('freebet_id')),
        "entries": [normalizar_entrada(e) for e in (perna.get('entries') or [])],
    })
    return normalizada


def normalizar_pernas(pernas):
    return [normalizar_perna(p) for p in (pernas or [])]


def arredondar(valor, fator=1.0, ativo=True):
    """
    Arredonda a stake para o múltiplo mais próximo de `fator`.
    Meio arredonda para cima (2.5 -> 3), como na planilha de operação.
    """
    if not ativo or not valor:
        return valor
    fator = to_float(fator, 1.0) or 1.0
    return round(math.floor(valor / fator + 0.5) * fator, 8)


def calcular_odd_media(perna):
    """
    Odd efetiva de uma perna: média das odds ponderada pela stake de cada entrada.

    Considera apenas entradas com odd > 1. Se nenhuma entrada válida tiver stake,
    retorna a odd principal (ou a primeira odd válida). Sem odds válidas retorna 0.
    """
    todas = [{"odd": perna.get('odd', 0), "stake": perna.get('stake', 0), "is_main": True}]
    todas += [{"odd": e.get('odd', 0), "stake": e.get('stake', 0), "is_main": False}
              for e in (perna.get('entries') or [])]

    validas = [e for e in todas if to_float(e['odd']) > 1]
    if not validas:
        return 0.0

    com_stake = [e for e in validas if to_float(e['stake']) > 0]
    soma_stake = sum(to_float(e['stake']) for e in com_stake)

    if soma_stake > 0:
        soma_stake_odd = sum(to_float(e['stake']) * to_float(e['odd']) for e in com_stake)
        return soma_stake_odd / soma_stake

    principal = next((e for e in validas if e['is_main']), None)
    if principal:
        return to_float(principal['odd'])
    return to_float(validas[0]['odd'])


def calcular_stake_total(perna):
    """Stake principal somada às stakes das entradas adicionais"""
    total = to_float(perna.get('stake'))
    for entrada in perna.get('entries') or []:
        total += to_float(entrada.get('stake'))
    return total


def is_freebet(perna):
    return (perna or {}).get('fonte_saldo') == FONTE_SALDO_FREEBET


def fator_retorno(perna, odd):
    """Quanto volta por unidade apostada se a perna vencer (freebet não devolve a stake)"""
    if odd <= 1:
        return 0.0
    return odd - 1 if is_freebet(perna) else odd


def calcular_stakes_equalizadas(pernas, fator=1.0, ativo=True):
    """
    Calcula stakes para que o retorno seja o mesmo qualquer que seja a perna vencedora.

    A perna de referência mantém sua stake; as demais recebem
    round(retorno_alvo / odd_media), com retorno_alvo = stake_ref * odd_ref.
    Em perna freebet a odd vira (odd - 1), dos dois lados da conta.

    Returns:
        (stakes: list, is_valid: bool, lucro_igualado: float)
        Quando inválido, devolve as stakes atuais sem alteração.
    """
    odds = [calcular_odd_media(p) for p in pernas]
    stakes_atuais = [calcular_stake_total(p) for p in pernas]

    if len(pernas) < 2:
        return (stakes_atuais, False, 0.0)

    if not all(o > 1 for o in odds):
        return (stakes_atuais, False, 0.0)

    ref_index = next((i for i, p in enumerate(pernas) if p.get('is_reference')), None)
    if ref_index is None:
        return (stakes_atuais, False, 0.0)

    ref_odd = odds[ref_index]
    ref_stake = stakes_atuais[ref_index]
    if ref_stake <= 0 or ref_odd <= 1:
        return (stakes_atuais, False, 0.0)

    retorno_alvo = ref_stake * fator_retorno(pernas[ref_index], ref_odd)

    stakes = []
    for i, odd in enumerate(odds):
        if i == ref_index:
            stakes.append(ref_stake)
        else:
            stakes.append(arredondar(retorno_alvo / fator_retorno(pernas[i], odd), fator, ativo))

    lucro_igualado = retorno_alvo - sum(s for s, p in zip(stakes, pernas) if not is_freebet(p))
    return (stakes, True, lucro_igualado)


def calcular_stakes_direcionadas(pernas, fator=1.0, ativo=True):
    """
    Lucro direcionado: pernas marcadas (is_directed) recebem o lucro e as demais
    são resolvidas para empatar (lucro zero caso vençam).

    Pernas direcionadas: stake = retorno_alvo / odd, com retorno_alvo definido pela
    primeira perna direcionada que tenha stake.
    Pernas não direcionadas: resolvidas em conjunto pela forma fechada
        S = soma_direcionadas * soma_inv / (1 - soma_inv)
        stake_i = (soma_direcionadas + S) / odd_i

    Returns:
        Lista de stakes ou None quando não há solução (todas/nenhuma marcada,
        odd inválida, sem stake de referência ou soma_inv >= 1).
    """
    odds = [calcular_odd_media(p) for p in pernas]
    direcionadas = [i for i, p in enumerate(pernas) if p.get('is_directed')]

    if len(direcionadas) == len(pernas) or not direcionadas:
        return None

    if not all(o > 1 for o in odds):
        return None

    ref_index = next(
        (i for i in direcionadas if to_float(pernas[i].get('stake')) > 0),
        None
    )
    if ref_index is None:
        return None

    ref_stake = to_float(pernas[ref_index].get('stake'))
    ref_odd = odds[ref_index]
    if ref_stake <= 0 or ref_odd <= 1:
        return None

    retorno_alvo = ref_stake * ref_odd

    stakes_direcionadas = {i: retorno_alvo / odds[i] for i in direcionadas}
    soma_direcionadas = sum(stakes_direcionadas.values())

    nao_direcionadas = [i for i in range(len(pernas)) if i not in stakes_direcionadas]
    soma_inv = sum(1 / odds[i] for i in nao_direcionadas)

    if soma_inv >= 1:
        logger.debug(f"Sem solução para lucro direcionado: soma de 1/odd = {soma_inv:.4f}")
        return None

    s = (soma_direcionadas * soma_inv) / (1 - soma_inv)
    stake_total = soma_direcionadas + s

    stakes = []
    for i, odd in enumerate(odds):
        if odd <= 1:
            stakes.append(0.0)
        elif i in stakes_direcionadas:
            stakes.append(arredondar(stakes_direcionadas[i], fator, ativo))
        else:
            stakes.append(arredondar(stake_total / odd, fator, ativo))
    return stakes


def calcular_stakes(pernas, fator=1.0, ativo=True):
    """
    Escolhe o modo de cálculo: direcionado (se houver solução), equalizado
    (se houver referência válida) ou as stakes informadas.

    Returns:
        (stakes: list, modo: str)
    """
    direcionadas = calcular_stakes_direcionadas(pernas, fator, ativo)
    if direcionadas is not None:
        return (direcionadas, MODO_DIRECIONADO)

    stakes, is_valid, _ = calcular_stakes_equalizadas(pernas, fator, ativo)
    if is_valid:
        return (stakes, MODO_EQUALIZADO)
    return ([calcular_stake_total(p) for p in pernas], MODO_MANUAL)


def detectar_moedas(pernas):
    """Moedas distintas usadas nas pernas e entradas, na ordem em que aparecem"""
    moedas = []
    for perna in pernas:
        for moeda in [perna.get('moeda')] + [e.get('moeda') for e in perna.get('entries') or []]:
            if moeda and moeda not in moedas:
                moedas.append(moeda)
    return moedas


def is_perna_completa(perna, stake=None):
    """Casa, odd > 1 e stake > 0. `stake` substitui a informada (ex: stake calculada)"""
    if stake is None:
        stake = perna.get('stake')
    return (
        to_float(perna.get('odd')) > 1
        and to_float(stake) > 0
        and bool(perna.get('bookmaker_id'))
    )


def classificar(lucros):
    if not lucros:
        return CLASSIFICACAO_RISCO
    if min(lucros) >= 0:
        return CLASSIFICACAO_ARBITRAGEM
    if max(lucros) < 0:
        return CLASSIFICACAO_RISCO
    return CLASSIFICACAO_HEDGE_PARCIAL


def _agregar(cenarios, stake_total, pernas_completas, num_pernas):
    lucros = [c['lucro'] for c in cenarios]
    min_lucro = min(lucros) if lucros else 0.0
    max_lucro = max(lucros) if lucros else 0.0
    return {
        "stake_total": stake_total,
        "cenarios": cenarios,
        "min_lucro": min_lucro,
        "max_lucro": max_lucro,
        "min_roi": (min_lucro / stake_total) * 100 if stake_total > 0 else 0.0,
        "max_roi": (max_lucro / stake_total) * 100 if stake_total > 0 else 0.0,
        "classificacao": classificar(lucros),
        "pernas_completas": pernas_completas,
        "is_valid_arbitrage": pernas_completas >= num_pernas and min_lucro >= 0,
        "is_operacao_parcial": 2 <= pernas_completas < num_pernas,
    }


def analisar_cenarios(pernas, stakes=None, num_pernas=None, fator=1.0, ativo=True):
    """
    Monta a tabela de cenários: para cada perna, o retorno, lucro e ROI caso ela vença.

    Args:
        pernas: lista de pernas normalizadas
        stakes: stakes efetivas (None = calcula via calcular_stakes)
        num_pernas: número esperado de pernas (2 ou 3); default len(pernas)

    Returns:
        dict com stake_total, cenarios, min/max de lucro e ROI, classificacao,
        moedas, is_multi_currency, pernas_completas, is_valid_arbitrage e
        is_operacao_parcial.
        Com moedas diferentes a stake total não é somada (fica 0) e os
        valores devem ser lidos por moeda. stake_total é o custo real:
        stakes de perna freebet ficam em stake_freebet.
    """
    modo = None
    if stakes is None:
        stakes, modo = calcular_stakes(pernas, fator, ativo)
    num_pernas = num_pernas or len(pernas)

    moedas = detectar_moedas(pernas)
    is_multi_currency = len(moedas) > 1
    stakes = list(stakes) + [0.0] * (len(pernas) - len(stakes))
    stake_freebet = sum(s for s, p in zip(stakes, pernas) if is_freebet(p))
    stake_total = 0.0 if is_multi_currency else sum(stakes) - stake_freebet

    cenarios = []
    for i, perna in enumerate(pernas):
        odd = calcular_odd_media(perna)
        stake = stakes[i]
        retorno = stake * fator_retorno(perna, odd)
        lucro = retorno - stake_total
        cenarios.append({
            "index": i,
            "selecao": perna.get('selecao'),
            "moeda": perna.get('moeda'),
            "stake": stake,
            "odd_media": odd,
            "retorno": retorno,
            "lucro": lucro,
            "roi": (lucro / stake_total) * 100 if stake_total > 0 else 0.0,
            "is_positive": lucro >= 0,
            "is_directed": bool(perna.get('is_directed')),
            "is_freebet": is_freebet(perna),
        })

    completas = len([p for i, p in enumerate(pernas) if is_perna_completa(p, stakes[i])])
    analise = _agregar(cenarios, stake_total, completas, num_pernas)
    analise.update({
        "modo": modo,
        "stakes": stakes,
        "stake_freebet": 0.0 if is_multi_currency else stake_freebet,
        "moedas": moedas,
        "is_multi_currency": is_multi_currency,
        "moeda_dominante": moedas[0] if len(moedas) == 1 else MOEDA_PADRAO,
    })
    return analise


# ============================================
# MULTI-MOEDA (pivô em BRL)
# ============================================

def get_brl_rate(moeda, cotacoes):
    """
    Quantos BRL vale 1 unidade da moeda. BRL é sempre 1.
    Moeda sem cotação usa 1.0 (com aviso no log).
    """
    chave = (moeda or MOEDA_PADRAO).upper()
    if chave == MOEDA_PADRAO:
        return 1.0
    taxa = to_float((cotacoes or {}).get(chave))
    if taxa <= 0:
        logger.warning(f"Cotação BRL não encontrada para {moeda}, usando 1.0")
        return 1.0
    return taxa


def converter_via_brl(valor, de, para, cotacoes):
    """valor * taxa_origem / taxa_destino"""
    if (de or MOEDA_PADRAO).upper() == (para or MOEDA_PADRAO).upper():
        return valor
    if not valor:
        return 0.0
    taxa_de = get_brl_rate(de, cotacoes)
    taxa_para = get_brl_rate(para, cotacoes)
    return (valor * taxa_de) / taxa_para


def calcular_stakes_equalizadas_multimoeda(pernas, cotacoes, moeda_consolidacao=MOEDA_PADRAO,
                                           fator=1.0, ativo=True):
    """
    Equalização com pernas em moedas diferentes.

    O retorno-alvo (moeda da referência) é convertido para a moeda de consolidação e,
    de lá, para a moeda de cada perna antes de dividir pela odd. Pernas editadas
    manualmente ou importadas de print mantêm a stake informada. O arredondamento
    acontece só no final, na moeda da perna.
    """
    stakes_atuais = [calcular_stake_total(p) for p in pernas]
    fallback = {
        "stakes_local": stakes_atuais,
        "stakes_consolidadas": [
            converter_via_brl(s, p.get('moeda'), moeda_consolidacao, cotacoes)
            for s, p in zip(stakes_atuais, pernas)
        ],
        "stake_total": 0.0,
        "is_valid": False,
    }

    if len(pernas) < 2:
        return fallback

    odds = [calcular_odd_media(p) for p in pernas]
    if not all(o > 1 for o in odds):
        return fallback

    ref_index = next((i for i, p in enumerate(pernas) if p.get('is_reference')), None)
    if ref_index is None or stakes_atuais[ref_index] <= 0:
        return fallback

    ref = pernas[ref_index]
    retorno_ref = stakes_atuais[ref_index] * fator_retorno(ref, odds[ref_index])
    retorno_consolidado = converter_via_brl(retorno_ref, ref.get('moeda'), moeda_consolidacao, cotacoes)

    stakes_local = []
    for i, perna in enumerate(pernas):
        if i == ref_index or perna.get('is_manually_edited') or perna.get('fonte') == FONTE_PRINT:
            stakes_local.append(stakes_atuais[i])
            continue
        retorno_na_moeda = converter_via_brl(retorno_consolidado, moeda_consolidacao, perna.get('moeda'), cotacoes)
        stakes_local.append(arredondar(retorno_na_moeda / fator_retorno(perna, odds[i]), fator, ativo))

    stakes_consolidadas = [
        converter_via_brl(s, p.get('moeda'), moeda_consolidacao, cotacoes)
        for s, p in zip(stakes_local, pernas)
    ]
    return {
        "stakes_local": stakes_local,
        "stakes_consolidadas": stakes_consolidadas,
        "stake_total": sum(s for s, p in zip(stakes_consolidadas, pernas) if not is_freebet(p)),
        "is_valid": True,
    }


def analisar_cenarios_multimoeda(pernas, stakes_local, cotacoes, moeda_consolidacao=MOEDA_PADRAO,
                                 num_pernas=None):
    """
    Análise de cenários com valores convertidos para a moeda de consolidação.
    Diferente da análise simples, a stake total é sempre somada (já convertida),
    sem as stakes de freebet.
    """
    num_pernas = num_pernas or len(pernas)
    moedas = detectar_moedas(pernas)

    stakes_consolidadas = [
        converter_via_brl(stakes_local[i] if i < len(stakes_local) else 0.0,
                          p.get('moeda'), moeda_consolidacao, cotacoes)
        for i, p in enumerate(pernas)
    ]
    stake_freebet = sum(s for s, p in zip(stakes_consolidadas, pernas) if is_freebet(p))
    stake_total = sum(stakes_consolidadas) - stake_freebet

    cenarios = []
    completas = 0
    for i, perna in enumerate(pernas):
        odd = calcular_odd_media(perna)
        stake_local = stakes_local[i] if i < len(stakes_local) else 0.0
        if is_perna_completa(perna, stake_local):
            completas += 1
        if odd > 1 and stake_local > 0:
            payout_local = stake_local * fator_retorno(perna, odd)
            payout_consolidado = converter_via_brl(payout_local, perna.get('moeda'), moeda_consolidacao, cotacoes)
        else:
            payout_local = 0.0
            payout_consolidado = 0.0
        lucro = payout_consolidado - stake_total
        cenarios.append({
            "index": i,
            "selecao": perna.get('selecao'),
            "moeda": perna.get('moeda'),
            "stake": stake_local,
            "stake_consolidada": stakes_consolidadas[i],
            "odd_media": odd,
            "retorno": payout_local,
            "retorno_consolidado": payout_consolidado,
            "lucro": lucro,
            "roi": (lucro / stake_total) * 100 if stake_total > 0 else 0.0,
            "is_positive": lucro >= 0,
            "is_directed": bool(perna.get('is_directed')),
            "is_freebet": is_freebet(perna),
        })

    analise = _agregar(cenarios, stake_total, completas, num_pernas)
    analise.update({
        "stakes": stakes_local,
        "stakes_consolidadas": stakes_consolidadas,
        "stake_freebet": stake_freebet,
        "moedas": moedas,
        "is_multi_currency": len(moedas) > 1,
        "moeda_consolidacao": moeda_consolidacao,
    })
    return analise


def ajustar_stake_principal(stake_total, odd_principal, odd_media, entries, fator=1.0, ativo=True,
                            cotacoes=None, moeda_perna=None):
    """
    Quando a perna tem sub-entradas com stakes fixas, recalcula só a entrada principal
    para manter o retorno-alvo:
        principal = (stake_total * odd_media - payout_subentradas) / odd_principal
    Nunca retorna valor negativo.
    """
    if not entries or odd_principal <= 1 or odd_media <= 0:
        return stake_total

    payout_sub = 0.0
    for entrada in entries:
        stake = to_float(entrada.get('stake'))
        odd = to_float(entrada.get('odd'))
        if stake <= 0 or odd <= 0:
            continue
        payout = stake * odd
        if cotacoes and moeda_perna and entrada.get('moeda') and entrada.get('moeda') != moeda_perna:
            payout = converter_via_brl(payout, entrada.get('moeda'), moeda_perna, cotacoes)
        payout_sub += payout

    if payout_sub <= 0:
        return stake_total

    principal = (stake_total * odd_media - payout_sub) / odd_principal
    return arredondar(max(0.0, principal), fator, ativo)
