"""
DTOs para operaciones de upsert de filas.
Define la forma del request (columnas tipadas + filas) y del resultado.
"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from sqlbinding.shared.constants.sql_constants import SemanticType


class ColumnDTO(BaseModel):
    """Columna del tipo de fila: nombre + tipo semantico."""
    
    name: str = Field(..., min_length=1, description="Nombre de la columna")
    type: SemanticType = Field(
        default=SemanticType.OTHER,
        description="Tipo semantico: integer, boolean, float, decimal, text, datetime, other"
    )


class UpsertRequestDTO(BaseModel):
    """
    DTO para upsertear filas en una tabla.
    Las columnas se declaran una vez; cada fila es un objeto columna -> valor.
    """
    
    columns: List[ColumnDTO] = Field(..., min_length=1, description="Columnas en orden")
    rows: List[Optional[Dict[str, Any]]] = Field(
        default_factory=list,
        description="Filas a upsertear (las nulas se ignoran)"
    )
    row_type_name: Optional[str] = Field(
        default=None,
        description="Nombre del tipo de fila (default: nombre de la tabla)"
    )


class UpsertResultDTO(BaseModel):
    """Resultado del upsert."""
    
    success: bool
    table: str
    rows_received: int
    rows_upserted: int
    batches: int
    message: str
