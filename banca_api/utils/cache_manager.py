"""
Gerenciador de Cache em Memória

Usado para listagens, saldos canônicos das casas e cotações.
Cada chave tem TTL próprio; escritas invalidam por prefixo (clear_pattern).
"""
import json
import hashlib
import logging
import time
import threading
from typing import Any, Optional, Dict
from functools import wraps

logger = logging.getLogger(__name__)


class CacheManager:
    """Cache chave/valor em memória com expiração e métricas simples"""

    def __init__(self, default_ttl: int = 300):
        self.default_ttl = default_ttl
        self._data: Dict[str, Any] = {}
        self._expires_at: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._metrics = {'hits': 0, 'misses': 0, 'sets': 0, 'deletes': 0}

    def get(self, key: str) -> Optional[Any]:
        """Retorna o valor ou None se não existir/expirado"""
        with self._lock:
            if key in self._data and time.time() < self._expires_at.get(key, 0):
                self._metrics['hits'] += 1
                return self._data[key]
            # Expirado ou inexistente
            self._data.pop(key, None)
            self._expires_at.pop(key, None)
            self._metrics['misses'] += 1
            return None

    def set(self, key: str, value: Any, ttl: int = None) -> bool:
        ttl = ttl or self.default_ttl
        with self._lock:
            self._data[key] = value
            self._expires_at[key] = time.time() + ttl
            self._metrics['sets'] += 1
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            existed = self._data.pop(key, None) is not None
            self._expires_at.pop(key, None)
            if existed:
                self._metrics['deletes'] += 1
        return existed

    def clear_pattern(self, pattern: str) -> int:
        """
        Remove todas as chaves que começam com o prefixo do padrão.

        Args:
            pattern: Padrão de chaves (ex: 'caixa:*')

        Returns:
            Número de chaves removidas
        """
        prefix = pattern.rstrip('*')
        with self._lock:
            keys = [k for k in self._data if k.startswith(prefix)]
            for key in keys:
                del self._data[key]
                self._expires_at.pop(key, None)
            self._metrics['deletes'] += len(keys)
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self._expires_at.clear()

    def get_metrics(self) -> Dict[str, Any]:
        with self._lock:
            total_gets = self._metrics['hits'] + self._metrics['misses']
            hit_rate = (self._metrics['hits'] / total_gets) * 100 if total_gets else 0.0
            return dict(self._metrics, keys=len(self._data), hit_rate=round(hit_rate, 2))


_cache_manager = None
_cache_manager_lock = threading.Lock()


def get_cache_manager() -> CacheManager:
    """Instância global (singleton) do cache"""
    global _cache_manager
    if _cache_manager is None:
        with _cache_manager_lock:
            if _cache_manager is None:
                _cache_manager = CacheManager()
    return _cache_manager


def build_cache_key(prefix: str, params: Optional[Dict[str, Any]] = None) -> str:
    """Monta chave 'prefixo:md5(params)' estável para o mesmo conjunto de filtros"""
    if not params:
        return prefix
    params_str = json.dumps(sorted(params.items()), default=str, sort_keys=True)
    return f"{prefix}:{hashlib.md5(params_str.encode()).hexdigest()}"


def cache_result(key_prefix: str, ttl: int = 300):
    """
    Decorator para cachear o retorno de funções de leitura.

    Exemplo:
        @cache_result('relatorio_roi', ttl=120)
        def relatorio_roi_investidores(meses):
            ...
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            cache = get_cache_manager()
            params = {f"arg{i}": a for i, a in enumerate(args)}
            params.update(kwargs)
            key = build_cache_key(key_prefix, params)
            cached = cache.get(key)
            if cached is not None:
                return cached
            result = func(*args, **kwargs)
            if result is not None:
                cache.set(key, result, ttl=ttl)
            return result
        return wrapper
    return decorator


def invalidate(*patterns: str) -> None:
    """Invalida um ou mais prefixos. Falhas são apenas logadas."""
    try:
        cache = get_cache_manager()
        for pattern in patterns:
            cache.clear_pattern(pattern)
        logger.debug(f"Cache invalidado: {patterns}")
    except Exception as e:
        logger.warning(f"Erro ao invalidar cache {patterns}: {e}")
