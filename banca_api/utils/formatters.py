"""
Formatadores de valores para relatórios (padrão brasileiro)
"""
from decimal import Decimal

SIMBOLOS_MOEDA = {
    'BRL': 'R$',
    'USD': 'US$',
    'EUR': '€',
    'GBP': '£',
    'USDT': 'USDT',
}


def format_currency(value, moeda='BRL', show_symbol=True):
    """
    Formata valor monetário: 1234.5 -> "R$ 1.234,50"
    """
    if value is None:
        value = 0
    if isinstance(value, Decimal):
        value = float(value)
    formatted = f"{abs(float(value)):,.2f}".replace(',', 'X').replace('.', ',').replace('X', '.')
    sign = '-' if float(value) < 0 else ''
    if not show_symbol:
        return f"{sign}{formatted}"
    simbolo = SIMBOLOS_MOEDA.get((moeda or 'BRL').upper(), moeda)
    return f"{sign}{simbolo} {formatted}"


def safe_divide(numerator, denominator, default=0.0):
    try:
        if not denominator:
            return default
        return float(numerator) / float(denominator)
    except (TypeError, ValueError):
        return default


def round_money(value):
    return round(float(value or 0), 2)
