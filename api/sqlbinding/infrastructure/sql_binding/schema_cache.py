"""
Cache de esquemas por tabla (compartido por todos los collectors del proceso).

Caracteristicas:
- Clave: (tabla, tipo de fila); valor: TableSchema + instante de creacion
- TTL fijo: una entrada expirada se trata como ausente y se redescubre
- Los fallos de descubrimiento NO se cachean (el siguiente flush reintenta)
- Lock por clave: tablas distintas no se bloquean entre si
"""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Awaitable, Callable, Dict, Hashable, Optional, Tuple

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncConnection

from sqlbinding.shared.constants.sql_constants import DEFAULT_SCHEMA_CACHE_TTL_MINUTES

from .schema_discovery import discover_table_schema
from .types import CacheEntry, RowTypeDescriptor, TableIdentifier, TableSchema


DEFAULT_SCHEMA_CACHE_TTL_SECONDS = DEFAULT_SCHEMA_CACHE_TTL_MINUTES * 60.0

SchemaDiscoverer = Callable[[AsyncConnection, TableIdentifier, RowTypeDescriptor], Awaitable[TableSchema]]
CacheKey = Tuple[str, Hashable]


class SchemaCache:
    """
    Cache get-or-discover de TableSchema con expiracion.

    Implementacion:
    - `_meta_lock` (threading.Lock) protege los diccionarios; nunca se mantiene
      tomado durante I/O.
    - Un `asyncio.Lock` por clave serializa el descubrimiento de esa clave, de
      modo que collectors concurrentes sobre la misma tabla esperan el mismo
      resultado en vez de consultar el catalogo N veces.
    - Los `asyncio.Lock` quedan ligados al event loop que los usa primero: una
      instancia de cache sirve a un solo event loop (el de la app o el del CLI).
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_SCHEMA_CACHE_TTL_SECONDS,
        *,
        discoverer: SchemaDiscoverer = discover_table_schema,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds debe ser positivo")
        self._ttl_seconds = ttl_seconds
        self._discoverer = discoverer
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._locks: Dict[CacheKey, asyncio.Lock] = {}
        self._meta_lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    @staticmethod
    def _key(table: TableIdentifier, row_type: RowTypeDescriptor) -> CacheKey:
        return (table.cache_key, row_type)

    def _get_or_create_lock(self, key: CacheKey) -> asyncio.Lock:
        with self._meta_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[key] = lock
            return lock

    def _lookup(self, key: CacheKey) -> Optional[TableSchema]:
        """Retorna el esquema vigente o None (las entradas expiradas se descartan)."""
        with self._meta_lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock(), self._ttl_seconds):
                del self._entries[key]
                return None
            return entry.schema

    def get(self, table: TableIdentifier, row_type: RowTypeDescriptor) -> Optional[TableSchema]:
        """Consulta el cache sin descubrir."""
        return self._lookup(self._key(table, row_type))

    async def get_or_discover(
        self,
        conn: AsyncConnection,
        table: TableIdentifier,
        row_type: RowTypeDescriptor,
    ) -> TableSchema:
        """
        Retorna el esquema cacheado o lo descubre usando `conn`.

        Raises:
            Las excepciones del descubridor se propagan sin cachearse.
        """
        key = self._key(table, row_type)
        schema = self._lookup(key)
        if schema is not None:
            logger.debug(f"Esquema de '{table}' servido desde cache")
            return schema

        async with self._get_or_create_lock(key):
            # Otro collector pudo haberlo descubierto mientras esperabamos
            schema = self._lookup(key)
            if schema is not None:
                return schema

            logger.debug(f"Cache miss para '{table}' ({row_type.name}), descubriendo esquema")
            schema = await self._discoverer(conn, table, row_type)
            with self._meta_lock:
                self._entries[key] = CacheEntry(schema=schema, created_at=self._clock())
            return schema

    def invalidate(self, table: TableIdentifier) -> int:
        """Elimina todas las entradas de una tabla. Retorna cuantas se eliminaron."""
        with self._meta_lock:
            keys = [k for k in self._entries if k[0] == table.cache_key]
            for k in keys:
                del self._entries[k]
            # Un waiter en curso conserva su referencia; la proxima llamada crea otro lock
            for k in [k for k in self._locks if k[0] == table.cache_key]:
                del self._locks[k]
        if keys:
            logger.debug(f"Cache de esquema invalidado para '{table}' ({len(keys)} entradas)")
        return len(keys)

    def clear(self) -> None:
        with self._meta_lock:
            self._entries.clear()
            self._locks.clear()

    def __len__(self) -> int:
        with self._meta_lock:
            return len(self._entries)


# Instancia del proceso (ciclo de vida explicito: init -> get -> close)
_schema_cache: Optional[SchemaCache] = None
_schema_cache_lock = threading.Lock()


def init_schema_cache(ttl_seconds: float = DEFAULT_SCHEMA_CACHE_TTL_SECONDS) -> SchemaCache:
    """Crea (o reemplaza) el cache de esquemas del proceso."""
    global _schema_cache
    with _schema_cache_lock:
        _schema_cache = SchemaCache(ttl_seconds=ttl_seconds)
        logger.info(f"Cache de esquemas inicializado (ttl={ttl_seconds:.0f}s)")
        return _schema_cache


def get_schema_cache() -> SchemaCache:
    """
    Retorna el cache del proceso.
    Si no se inicializo en el startup, se crea con el TTL por defecto.
    """
    global _schema_cache
    with _schema_cache_lock:
        if _schema_cache is None:
            _schema_cache = SchemaCache()
        return _schema_cache


def close_schema_cache() -> None:
    """Vacia y descarta el cache del proceso."""
    global _schema_cache
    with _schema_cache_lock:
        if _schema_cache is not None:
            _schema_cache.clear()
            _schema_cache = None
