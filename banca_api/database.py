import fdb
import logging
import threading
import queue
from .config import Config

logger = logging.getLogger(__name__)

PING_SQL = "SELECT 1 FROM RDB$DATABASE"


class FirebirdConnectionPool:
    """Pool de conexões Firebird (fila thread-safe da biblioteca padrão)"""

    def __init__(self, min_connections=None, max_connections=None, timeout=30):
        self.min_connections = min_connections if min_connections is not None else Config.DB_POOL_MIN
        self.max_connections = max_connections if max_connections is not None else Config.DB_POOL_MAX
        self.timeout = timeout
        self._pool = queue.Queue(maxsize=self.max_connections)
        self._created = 0
        self._lock = threading.Lock()
        self._connection_params = {
            'host': Config.FIREBIRD_HOST,
            'port': Config.FIREBIRD_PORT,
            'database': Config.DATABASE_PATH,
            'user': Config.FIREBIRD_USER,
            'password': Config.FIREBIRD_PASSWORD,
            'charset': 'UTF8'
        }
        self._initialize_pool()

    def _create_connection(self):
        try:
            return fdb.connect(**self._connection_params)
        except fdb.Error as e:
            logger.error(f"Erro ao criar conexão com o Firebird: {e}")
            return None

    def _initialize_pool(self):
        for _ in range(self.min_connections):
            conn = self._create_connection()
            if not conn:
                continue
            try:
                self._pool.put_nowait(conn)
                with self._lock:
                    self._created += 1
            except queue.Full:
                self._discard(conn)

    @staticmethod
    def _is_alive(conn):
        try:
            cur = conn.cursor()
            cur.execute(PING_SQL)
            cur.fetchone()
            cur.close()
            return True
        except fdb.Error:
            return False

    @staticmethod
    def _discard(conn):
        try:
            conn.close()
        except fdb.Error as e:
            logger.debug(f"Falha ao fechar conexão descartada: {e}")

    def get_connection(self):
        """Obtém uma conexão do pool, recriando-a se estiver inválida"""
        try:
            conn = self._pool.get(timeout=self.timeout)
        except queue.Empty:
            with self._lock:
                if self._created >= self.max_connections:
                    # Pool cheio: conexão temporária, fechada de fato no return_connection
                    return self._create_connection()
                self._created += 1
            conn = self._create_connection()
            if not conn:
                with self._lock:
                    self._created -= 1
            return conn

        if not self._is_alive(conn):
            self._discard(conn)
            conn = self._create_connection()
            if not conn:
                with self._lock:
                    self._created -= 1
        return conn

    def return_connection(self, conn):
        if not conn:
            return
        # Transação pendente não pode voltar ao pool
        try:
            conn.rollback()
        except fdb.Error as e:
            logger.debug(f"Rollback ao devolver conexão falhou: {e}")
        if self._is_alive(conn):
            try:
                self._pool.put_nowait(conn)
                return
            except queue.Full:
                pass
        self._discard(conn)
        with self._lock:
            if self._created > 0:
                self._created -= 1

    def close_all(self):
        while not self._pool.empty():
            try:
                self._discard(self._pool.get_nowait())
            except queue.Empty:
                break
        with self._lock:
            self._created = 0


_pool = None
_pool_lock = threading.Lock()


def get_pool():
    """Obtém ou cria a instância global do pool"""
    global _pool
    if _pool is None:
        with _pool_lock:
            if _pool is None:
                _pool = FirebirdConnectionPool()
    return _pool


def close_pool():
    """Fecha o pool se ele já tiver sido criado (não abre conexões novas)"""
    if _pool is not None:
        _pool.close_all()
        logger.info("Pool de conexões fechado com sucesso.")


class PooledConnection:
    """Wrapper de conexão que devolve ao pool quando fechada"""

    def __init__(self, connection, pool):
        self._conn = connection
        self._pool = pool
        self._closed = False

    def __getattr__(self, name):
        return getattr(self._conn, name)

    def close(self):
        if not self._closed:
            self._closed = True
            self._pool.return_connection(self._conn)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def get_db_connection():
    """
    Obtém uma conexão do pool.
    O chamador deve chamar close() (no finally) para devolvê-la ao pool.
    Levanta fdb.Error se não for possível conectar.
    """
    pool = get_pool()
    conn = pool.get_connection()
    if conn is None:
        raise fdb.DatabaseError("Não foi possível obter conexão com o banco de dados")
    return PooledConnection(conn, pool)
