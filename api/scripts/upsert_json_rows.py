"""
CLI: upsert de filas desde un archivo JSON.

El archivo tiene la misma forma que el body del endpoint HTTP:
  {
    "columns": [{"name": "ProductID", "type": "integer"},
                {"name": "Name", "type": "text"},
                {"name": "Cost", "type": "decimal"}],
    "rows": [{"ProductID": 1, "Name": "Widget", "Cost": 10}, ...]
  }

Variables de entorno:
  - DATABASE_URL (mssql+aioodbc://...) o DATABASE_HOST/DATABASE_NAME/...
  - SQL_BATCH_SIZE, SQL_TRANSACTIONAL_FLUSH (opcionales)

Ejecución:
  python scripts/upsert_json_rows.py dbo.Products rows.json
  python scripts/upsert_json_rows.py dbo.Products rows.json --batch-size 500
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from loguru import logger
from dotenv import load_dotenv

# Permite ejecutar este script desde cualquier cwd sin configurar PYTHONPATH.
# La carpeta "api" contiene el paquete raíz `sqlbinding/`.
_API_ROOT = Path(__file__).resolve().parents[1]
if str(_API_ROOT) not in sys.path:
    sys.path.insert(0, str(_API_ROOT))

# Cargar variables desde .env si existe (api/.env o repo_root/.env)
_REPO_ROOT = _API_ROOT.parent
load_dotenv(_API_ROOT / ".env", override=False)
load_dotenv(_REPO_ROOT / ".env", override=False)

from sqlbinding.application.dto.upsert_dto import UpsertRequestDTO
from sqlbinding.application.use_cases.upsert_use_cases import UpsertUseCases
from sqlbinding.infrastructure.database.session import close_db
from sqlbinding.infrastructure.sql_binding.binding_config import SqlBindingConfig
from sqlbinding.shared.exceptions.base import AppException


def _load_request(path: Path) -> UpsertRequestDTO:
    payload = json.loads(path.read_text(encoding="utf-8"))
    return UpsertRequestDTO.model_validate(payload)


async def _run(table_name: str, request: UpsertRequestDTO, config: SqlBindingConfig) -> int:
    try:
        use_cases = UpsertUseCases(config=config)
        result = await use_cases.upsert_rows(table_name, request)
        logger.info(f"Upsert OK: {result.message}")
        return 0
    except AppException as e:
        logger.error(f"Upsert fallido ({e.error_code}): {e.message}")
        return 1
    finally:
        await close_db()


def main() -> int:
    parser = argparse.ArgumentParser(description="Upsert de filas JSON en una tabla SQL Server")
    parser.add_argument("table", help="Tabla destino: 'tabla' o 'schema.tabla'")
    parser.add_argument("file", type=Path, help="Archivo JSON con columns + rows")
    parser.add_argument("--batch-size", type=int, default=None, help="Filas por MERGE")
    parser.add_argument(
        "--no-transaction",
        action="store_true",
        help="Confirma cada lote por separado (un fallo puede dejar lotes aplicados).",
    )
    args = parser.parse_args()

    if not args.file.exists():
        raise SystemExit(f"No existe el archivo: {args.file}")

    defaults = SqlBindingConfig.from_settings()
    config = SqlBindingConfig(
        batch_size=args.batch_size or defaults.batch_size,
        schema_cache_ttl_seconds=defaults.schema_cache_ttl_seconds,
        transactional=defaults.transactional and not args.no_transaction,
    )

    request = _load_request(args.file)
    logger.info(f"Iniciando upsert de {len(request.rows)} fila(s) en '{args.table}'...")
    return asyncio.run(_run(args.table, request, config))


if __name__ == "__main__":
    raise SystemExit(main())
