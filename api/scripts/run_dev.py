"""
Servidor de desarrollo (uvicorn con reload).

Valida la configuracion del motor de upsert antes de levantar el servidor:
un SQL_BATCH_SIZE o TTL invalido falla aqui y no en el primer request.

Ejecución:
  python scripts/run_dev.py
  python scripts/run_dev.py --port 8080 --no-reload
"""
import argparse
import sys
from pathlib import Path

import uvicorn
from dotenv import load_dotenv
from loguru import logger

_API_ROOT = Path(__file__).resolve().parents[1]
if str(_API_ROOT) not in sys.path:
    sys.path.insert(0, str(_API_ROOT))
load_dotenv(_API_ROOT / ".env", override=False)

from sqlbinding.core.config import settings
from sqlbinding.infrastructure.sql_binding.binding_config import SqlBindingConfig


def main() -> None:
    parser = argparse.ArgumentParser(description="Servidor de desarrollo del servicio de upsert")
    parser.add_argument("--host", default=settings.HOST)
    parser.add_argument("--port", type=int, default=settings.PORT)
    parser.add_argument("--no-reload", action="store_true", help="Desactiva el autoreload")
    args = parser.parse_args()

    config = SqlBindingConfig.from_settings(settings)
    logger.info(
        f"Motor de upsert: batch_size={config.batch_size}, "
        f"ttl={config.schema_cache_ttl_seconds:.0f}s, transaccional={config.transactional}"
    )

    uvicorn.run(
        "main:app",
        app_dir=str(_API_ROOT),
        host=args.host,
        port=args.port,
        reload=not args.no_reload,
        log_level=settings.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    main()
