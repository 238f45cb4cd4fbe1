"""
Validação de Surebet antes de salvar

Regras:
- Perna totalmente vazia é permitida (ignorada); parcialmente preenchida é erro
- Perna/entrada preenchida precisa de casa, odd > 1 e stake > 0
- Na criação, a stake não pode passar do saldo operável da casa descontadas as
  stakes que a mesma operação já aloca nessa casa em outras posições
- Pelo menos 2 pernas completas
- Perna FREEBET: informa a freebet usada, não tem coberturas e, na criação,
  a stake cabe no saldo de freebet da casa
- Operação no contexto FREEBET precisa de pelo menos uma perna FREEBET
"""

from ..utils.formatters import format_currency
from .surebet_calculator import to_float, is_freebet, FONTES_SALDO, FONTE_SALDO_REAL

TOLERANCIA_SALDO = 0.01

CONTEXTO_FREEBET = 'FREEBET'


def _label_perna(perna, index):
    selecao = perna.get('selecao')
    return f'"{selecao}"' if selecao else f"Perna {index + 1}"


def _estado(item):
    odd = to_float(item.get('odd'))
    stake = to_float(item.get('stake'))
    return (odd > 1, stake > 0, bool(item.get('bookmaker_id')), odd)


def is_perna_vazia(perna):
    has_odd, has_stake, has_bookmaker, odd = _estado(perna)
    return not has_odd and not has_stake and not has_bookmaker and odd == 0


def is_entrada_vazia(entrada):
    return is_perna_vazia(entrada)


def saldo_disponivel_para_posicao(pernas, saldos, bookmaker_id, perna_index, entrada_index=None):
    """
    Saldo operável da casa menos as stakes que outras posições desta mesma operação
    já usam na casa (perna freebet não conta). entrada_index None = entrada principal da perna.
    Retorna None quando a casa não tem saldo canônico conhecido.
    """
    info = (saldos or {}).get(bookmaker_id)
    if info is None:
        return None

    usadas = 0.0
    for i, perna in enumerate(pernas):
        if perna.get('bookmaker_id') == bookmaker_id and not is_freebet(perna):
            if i != perna_index or entrada_index is not None:
                usadas += to_float(perna.get('stake'))
        for j, entrada in enumerate(perna.get('entries') or []):
            if entrada.get('bookmaker_id') == bookmaker_id:
                if not (i == perna_index and entrada_index == j):
                    usadas += to_float(entrada.get('stake'))
    return info['saldo_operavel'] - usadas


def checar_saldo_posicao(pernas, saldos, bookmaker_id, stake, label, perna_index, entrada_index=None):
    disponivel = saldo_disponivel_para_posicao(pernas, saldos, bookmaker_id, perna_index, entrada_index)
    if disponivel is not None and stake > disponivel + TOLERANCIA_SALDO:
        casa = saldos[bookmaker_id]
        return (
            f"Saldo insuficiente em {casa['nome']} para {label}: "
            f"{format_currency(disponivel, casa['moeda'])} disponível nesta operação, "
            f"{format_currency(stake, casa['moeda'])} necessário"
        )
    return None


def checar_saldo_freebet(saldos, bookmaker_id, stake, label):
    info = (saldos or {}).get(bookmaker_id)
    if info is not None and stake > info.get('saldo_freebet', 0.0) + TOLERANCIA_SALDO:
        return (
            f"Saldo de freebet insuficiente em {info['nome']} para {label}: "
            f"{format_currency(info.get('saldo_freebet', 0.0), info['moeda'])} liberado, "
            f"{format_currency(stake, info['moeda'])} necessário"
        )
    return None


def _validar_freebet(perna, label):
    if (perna.get('fonte_saldo') or FONTE_SALDO_REAL) not in FONTES_SALDO:
        return f"Fonte de saldo inválida para {label}. Deve ser uma de: {', '.join(FONTES_SALDO)}"
    if not is_freebet(perna):
        return None
    if not perna.get('freebet_id'):
        return f"Informe a freebet usada em {label}"
    if any(not is_entrada_vazia(e) for e in perna.get('entries') or []):
        return f"Perna com freebet não aceita coberturas ({label})"
    return None


def validar_surebet(pernas, saldos=None, is_editing=False, contexto=None):
    """
    Valida as pernas normalizadas de uma surebet.

    Args:
        pernas: lista de pernas (normalizar_pernas)
        saldos: saldos canônicos {bookmaker_id: {...}} usados na checagem de saldo
        is_editing: True em edição (não checa saldo)
        contexto: contexto_operacional da operação (FREEBET exige perna freebet)

    Returns:
        (is_valid: bool, error_code: str, message: str)
        error_code é VALIDATION_ERROR ou INSUFFICIENT_BALANCE
    """
    completas = 0
    for i, perna in enumerate(pernas):
        label = _label_perna(perna, i)
        has_odd, has_stake, has_bookmaker, odd = _estado(perna)

        if is_perna_vazia(perna):
            continue

        if not has_bookmaker:
            return (False, "VALIDATION_ERROR", f"Selecione a casa para {label} ou deixe a perna vazia")
        if odd and odd <= 1:
            return (False, "VALIDATION_ERROR", f"Odd inválida para {label} (deve ser > 1.00)")
        if not has_odd and has_stake:
            return (False, "VALIDATION_ERROR",
                    f"Informe a odd para {label} (odd e stake devem estar ambos preenchidos ou vazios)")
        if has_odd and not has_stake:
            return (False, "VALIDATION_ERROR",
                    f"Informe a stake para {label} (odd e stake devem estar ambos preenchidos ou vazios)")
        if not has_odd and not has_stake:
            return (False, "VALIDATION_ERROR", f"Informe odd e stake para {label} ou remova a casa selecionada")

        erro = _validar_freebet(perna, label)
        if erro:
            return (False, "VALIDATION_ERROR", erro)

        completas += 1

        if not is_editing:
            if is_freebet(perna):
                erro = checar_saldo_freebet(saldos, perna['bookmaker_id'], to_float(perna.get('stake')), label)
            else:
                erro = checar_saldo_posicao(pernas, saldos, perna['bookmaker_id'], to_float(perna.get('stake')), label, i)
            if erro:
                return (False, "INSUFFICIENT_BALANCE", erro)

        for j, entrada in enumerate(perna.get('entries') or []):
            if is_entrada_vazia(entrada):
                continue
            entrada_label = f"cobertura {j + 1} de {label}"
            e_has_odd, e_has_stake, e_has_bookmaker, _ = _estado(entrada)
            if not e_has_bookmaker:
                return (False, "VALIDATION_ERROR", f"Selecione a casa para {entrada_label}")
            if not e_has_odd:
                return (False, "VALIDATION_ERROR", f"Odd inválida para {entrada_label} (deve ser > 1.00)")
            if not e_has_stake:
                return (False, "VALIDATION_ERROR", f"Stake obrigatória para {entrada_label}")
            if not is_editing:
                erro = checar_saldo_posicao(pernas, saldos, entrada['bookmaker_id'], to_float(entrada.get('stake')),
                                     entrada_label, i, j)
                if erro:
                    return (False, "INSUFFICIENT_BALANCE", erro)

    if completas < 2:
        return (False, "VALIDATION_ERROR", "Surebet requer pelo menos 2 pernas completas")

    if contexto == CONTEXTO_FREEBET and not any(is_freebet(p) for p in pernas if not is_perna_vazia(p)):
        return (False, "VALIDATION_ERROR", "Operação no contexto FREEBET precisa de pelo menos uma perna com freebet")

    return (True, None, None)


def limpar_pernas(pernas):
    """Remove pernas e coberturas vazias antes de persistir"""
    resultado = []
    for perna in pernas:
        if is_perna_vazia(perna):
            continue
        perna = dict(perna)
        perna['entries'] = [e for e in perna.get('entries') or [] if not is_entrada_vazia(e)]
        resultado.append(perna)
    return resultado
