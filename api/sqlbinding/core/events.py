"""
Manejadores de eventos de inicio y cierre de la aplicacion.
"""
import sys
from typing import Callable
from fastapi import FastAPI
from loguru import logger

from sqlbinding.core.config import settings
from sqlbinding.infrastructure.database.session import close_db
from sqlbinding.infrastructure.sql_binding.binding_config import SqlBindingConfig
from sqlbinding.infrastructure.sql_binding.schema_cache import close_schema_cache, init_schema_cache


def configure_logging() -> None:
    """Configura los sinks de loguru (consola + archivo con rotacion)."""
    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL)
    logger.add(
        settings.LOG_FILE,
        rotation="500 MB",
        retention="10 days",
        level=settings.LOG_LEVEL
    )


def startup_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de inicio de la aplicacion.
    
    Args:
        app: Instancia de FastAPI
        
    Returns:
        Callable: Funcion asincrona de inicio
    """
    async def startup() -> None:
        """Inicializa recursos al inicio de la aplicacion."""
        try:
            configure_logging()
            logger.info(f"Iniciando {settings.APP_NAME} v{settings.APP_VERSION}")
            logger.info(f"Entorno: {settings.ENVIRONMENT}")
            
            # Valida batch size / TTL antes de aceptar requests
            config = SqlBindingConfig.from_settings(settings)
            init_schema_cache(ttl_seconds=config.schema_cache_ttl_seconds)
            logger.info(
                f"Motor de upsert listo (batch_size={config.batch_size}, "
                f"transaccional={config.transactional})"
            )
            
            logger.success("Aplicacion iniciada correctamente")
            
            # Mostrar URLs disponibles
            _print_available_urls()
            
        except Exception as e:
            logger.error(f"Error durante startup: {e}")
            logger.exception("Detalle del error:")
            raise
    
    return startup


def _print_available_urls() -> None:
    """Imprime las URLs disponibles de la aplicacion."""
    access_host = "localhost" if settings.HOST == "0.0.0.0" else settings.HOST
    base_url = f"http://{access_host}:{settings.PORT}"
    
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")
    logger.opt(colors=True).info(f"<cyan>  Swagger UI:  {base_url}/docs</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Upsert:      POST {base_url}/api/v1/tables/{{table}}/rows</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Health:      {base_url}/health</cyan>")
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")


def shutdown_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de cierre de la aplicacion.
    
    Args:
        app: Instancia de FastAPI
        
    Returns:
        Callable: Funcion asincrona de cierre
    """
    async def shutdown() -> None:
        """Libera recursos al cerrar la aplicacion."""
        logger.info("Cerrando aplicacion...")
        close_schema_cache()
        await close_db()
        logger.info("Conexiones de base de datos cerradas")
    
    return shutdown
