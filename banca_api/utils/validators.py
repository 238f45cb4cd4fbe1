from datetime import datetime, date


def is_valid_date_format(date_string: str) -> (bool, str):
    """
    Valida se a string de data está em formato válido (DD-MM-AAAA)
    """
    if not date_string or not isinstance(date_string, str):
        return (False, "Data não pode estar em branco.")
    try:
        datetime.strptime(date_string, '%d-%m-%Y')
        return (True, "Formato de data válido.")
    except ValueError:
        return (False, "Formato de data inválido. Use DD-MM-AAAA.")


def is_date_in_range(date_string: str, min_date: str = None, max_date: str = None) -> (bool, str):
    """
    Valida se a data (DD-MM-AAAA) está dentro de um intervalo
    """
    is_valid, msg = is_valid_date_format(date_string)
    if not is_valid:
        return (False, msg)

    parsed_date = datetime.strptime(date_string, '%d-%m-%Y').date()
    try:
        if min_date and parsed_date < datetime.strptime(min_date, '%d-%m-%Y').date():
            return (False, f"Data deve ser posterior ou igual a {min_date}.")
        if max_date and parsed_date > datetime.strptime(max_date, '%d-%m-%Y').date():
            return (False, f"Data deve ser anterior ou igual a {max_date}.")
    except ValueError:
        return (False, "Data limite inválida.")
    return (True, "Data dentro do intervalo válido.")


def convert_br_date_to_iso(date_string: str) -> str:
    """
    Converte data do formato brasileiro (DD-MM-AAAA) para ISO (AAAA-MM-DD)
    """
    if not date_string:
        return None
    try:
        return datetime.strptime(date_string, '%d-%m-%Y').date().strftime('%Y-%m-%d')
    except ValueError:
        return None


def parse_date(value):
    """
    Aceita DD-MM-AAAA, AAAA-MM-DD ou ISO com horário. Retorna date ou None.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    date_str = value.strip().split('T')[0].split(' ')[0]
    for fmt in ('%d-%m-%Y', '%Y-%m-%d', '%d/%m/%Y'):
        try:
            return datetime.strptime(date_str, fmt).date()
        except ValueError:
            continue
    return None


def is_not_future_date(value) -> (bool, str):
    parsed = parse_date(value)
    if parsed is None:
        return (False, "Data inválida. Use DD-MM-AAAA ou AAAA-MM-DD.")
    if parsed > date.today():
        return (False, "A data não pode ser futura.")
    return (True, "Data válida.")


def normalize_pagination(page, page_size, default_size: int = 50, max_size: int = 1000):
    """
    Normaliza page/page_size vindos da query string.
    Valores inválidos voltam ao padrão; page_size é limitado a max_size.
    """
    try:
        page = int(page)
        page_size = int(page_size)
    except (ValueError, TypeError):
        return (1, default_size)
    if page < 1:
        page = 1
    if page_size < 1:
        page_size = default_size
    if page_size > max_size:
        page_size = max_size
    return (page, page_size)
