import os

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _env_bool(name, default):
    return os.environ.get(name, default).lower() in ('true', '1', 'yes', 't')


class Config:
    # SECRET_KEY deve vir de variável de ambiente em produção
    # Em desenvolvimento gera chave temporária
    _secret_key = os.environ.get('SECRET_KEY')
    if not _secret_key:
        import secrets
        _secret_key = secrets.token_urlsafe(32)
        flask_env = os.environ.get('FLASK_ENV', 'development')
        if flask_env not in ('development', 'dev', 'test'):
            import warnings
            warnings.warn("SECRET_KEY não definida via variável de ambiente! Use apenas em desenvolvimento.", UserWarning)
    SECRET_KEY = _secret_key

    DEBUG = _env_bool('FLASK_DEBUG', 'False')

    _jwt_secret_key = os.environ.get('JWT_SECRET_KEY')
    if not _jwt_secret_key:
        import secrets
        _jwt_secret_key = secrets.token_urlsafe(32)
        flask_env = os.environ.get('FLASK_ENV', 'development')
        if flask_env not in ('development', 'dev', 'test'):
            import warnings
            warnings.warn("JWT_SECRET_KEY não definida via variável de ambiente! Use apenas em desenvolvimento.", UserWarning)
    JWT_SECRET_KEY = _jwt_secret_key
    JWT_ACCESS_TOKEN_EXPIRES = int(os.environ.get('JWT_ACCESS_TOKEN_EXPIRES', 14400))

    # --- Banco de dados (Firebird) ---
    DATABASE_PATH = os.environ.get('FIREBIRD_DATABASE', os.path.join(PROJECT_ROOT, 'database', 'banca.fdb'))
    FIREBIRD_HOST = os.environ.get('FIREBIRD_HOST', 'localhost')
    FIREBIRD_PORT = int(os.environ.get('FIREBIRD_PORT', 3050))
    FIREBIRD_USER = os.environ.get('FIREBIRD_USER', 'SYSDBA')
    # Senha do banco nunca hardcoded em produção
    _firebird_password = os.environ.get('FIREBIRD_PASSWORD')
    if not _firebird_password:
        flask_env = os.environ.get('FLASK_ENV', 'development')
        if flask_env not in ('development', 'dev', 'test'):
            raise ValueError("FIREBIRD_PASSWORD deve ser definida via variável de ambiente em produção!")
        import warnings
        warnings.warn(
            "FIREBIRD_PASSWORD não definida via variável de ambiente! "
            "Usando valor padrão apenas para desenvolvimento.",
            UserWarning
        )
        _firebird_password = 'masterkey'
    FIREBIRD_PASSWORD = _firebird_password
    DB_POOL_MIN = int(os.environ.get('DB_POOL_MIN', 2))
    DB_POOL_MAX = int(os.environ.get('DB_POOL_MAX', 20))

    # --- Calculadora de Surebet ---
    # Stakes calculadas são arredondadas para múltiplos deste fator (1 = unidade inteira)
    ARREDONDAMENTO_FATOR = float(os.environ.get('ARREDONDAMENTO_FATOR', 1.0))
    ARREDONDAMENTO_ATIVO = _env_bool('ARREDONDAMENTO_ATIVO', 'true')

    # --- Conciliação de saldos ---
    # Diferenças abaixo deste valor não geram ajuste cambial
    CONCILIACAO_EPSILON = float(os.environ.get('CONCILIACAO_EPSILON', 0.01))
    # Saldo que ainda mantém a casa como AGUARDANDO_SAQUE após um saque confirmado
    BOOKMAKER_SALDO_RESIDUAL = float(os.environ.get('BOOKMAKER_SALDO_RESIDUAL', 0.5))

    # --- Cotações (1 unidade da moeda = X BRL) ---
    COTACOES_TTL_SECONDS = int(os.environ.get('COTACOES_TTL_SECONDS', 1800))
    COTACOES_PTAX_URL = os.environ.get(
        'COTACOES_PTAX_URL',
        'https://olinda.bcb.gov.br/olinda/servico/PTAX/versao/v1/odata'
    )
    COTACOES_PTAX_ATIVO = _env_bool('COTACOES_PTAX_ATIVO', 'true')
    COTACOES_TIMEOUT_SEC = int(os.environ.get('COTACOES_TIMEOUT_SEC', 10))
    COTACOES_FALLBACK = {
        'USD': float(os.environ.get('COTACAO_FALLBACK_USD', 5.31)),
        'EUR': float(os.environ.get('COTACAO_FALLBACK_EUR', 5.75)),
        'GBP': float(os.environ.get('COTACAO_FALLBACK_GBP', 6.70)),
    }
    MOEDAS_SUPORTADAS = ['BRL', 'USD', 'EUR', 'GBP', 'USDT']

    # --- Rate limiting (janela em memória, por processo) ---
    RATE_LIMIT_ATIVO = _env_bool('RATE_LIMIT_ATIVO', 'true')
