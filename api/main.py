"""
Punto de entrada principal de la aplicación FastAPI.
Configura la aplicación, middlewares, rutas y eventos.
"""
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from loguru import logger

from sqlbinding.core.config import settings
from sqlbinding.core.events import startup_handler, shutdown_handler
from sqlbinding.api.v1.router import api_router
from sqlbinding.api.middlewares.error_handler import ErrorHandlerMiddleware
from sqlbinding.infrastructure.database.session import get_database_name
from sqlbinding.infrastructure.sql_binding.schema_cache import get_schema_cache
from sqlbinding.shared.exceptions.base import AppException


def create_application() -> FastAPI:
    """
    Factory para crear y configurar la aplicación FastAPI.
    
    Returns:
        FastAPI: Instancia configurada de la aplicación
    """
    application = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Upsert de filas tipadas en tablas SQL Server",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware personalizado para manejo de errores
    application.add_middleware(ErrorHandlerMiddleware)

    # Registrar eventos de inicio y cierre
    application.add_event_handler("startup", startup_handler(application))
    application.add_event_handler("shutdown", shutdown_handler(application))

    # Incluir routers de la API
    application.include_router(api_router, prefix="/api")

    # Manejador global de excepciones personalizadas
    @application.exception_handler(AppException)
    async def app_exception_handler(request, exc: AppException):
        logger.warning(f"{request.method} {request.url.path} -> {exc.status_code} {exc.error_code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # Health check endpoint
    @application.get("/health", tags=["Health"])
    async def health_check():
        """Estado de la aplicación y del cache de esquemas."""
        return {
            "status": "healthy",
            "app_name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "database": get_database_name(),
            "cached_schemas": len(get_schema_cache()),
            "batch_size": settings.SQL_BATCH_SIZE
        }

    return application


# Crear instancia de la aplicación
app = create_application()
