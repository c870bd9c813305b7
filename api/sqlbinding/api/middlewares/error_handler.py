"""
Middleware de errores y tiempos por request.

Los `AppException` los resuelve el exception handler de la app; aquí solo
llegan los errores no previstos, que se loguean y se devuelven como 500.
"""
import time

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from loguru import logger


PROCESS_TIME_HEADER = "X-Process-Time-Ms"


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Captura errores no manejados y mide la duración de cada request."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            # Escapar llaves para evitar error de formato en loguru
            error_msg = str(exc).replace("{", "{{").replace("}", "}}")
            logger.opt(exception=exc).error(
                f"Error no manejado en {request.method} {request.url.path}: {error_msg}"
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": "INTERNAL_SERVER_ERROR",
                    "message": "Ha ocurrido un error interno del servidor",
                    "details": {"path": request.url.path}
                }
            )

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers[PROCESS_TIME_HEADER] = f"{elapsed_ms:.0f}"
        logger.debug(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.0f} ms)")
        return response
