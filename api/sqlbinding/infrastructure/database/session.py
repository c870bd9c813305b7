"""
Gestion de conexiones a SQL Server (SQLAlchemy async sobre aioodbc).

El engine se crea en el primer uso: importar este modulo no carga el driver ODBC.
"""
from typing import Optional

from loguru import logger
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from sqlbinding.core.config import settings


_engine: Optional[AsyncEngine] = None


def _create_engine_args() -> dict:
    """
    Construye los argumentos del engine segun el tipo de base de datos.
    SQL Server usa pool de conexiones; SQLite (solo desarrollo) no lo soporta.
    """
    args = {
        "echo": settings.DEBUG,
    }
    
    if "mssql" in settings.effective_database_url:
        args.update({
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_pre_ping": True,  # Verifica conexion antes de usar
        })
    
    return args


def get_engine() -> AsyncEngine:
    """Retorna el engine del proceso, creandolo si no existe."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(settings.effective_database_url, **_create_engine_args())
        logger.info(f"Engine creado para {make_url(settings.effective_database_url).render_as_string(hide_password=True)}")
    return _engine


def connect() -> AsyncConnection:
    """
    Abre una conexion nueva del pool.
    Para usar como context manager: `async with connect() as conn: ...`
    """
    return get_engine().connect()


def get_database_name() -> str:
    """Nombre de la base de datos destino (forma parte de la clave del cache de esquemas)."""
    return make_url(settings.effective_database_url).database or ""


async def close_db() -> None:
    """Cierra las conexiones de la base de datos."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
