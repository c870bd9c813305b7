"""
Endpoints para upsert de filas.
Equivalente HTTP del output binding: recibe filas tipadas y las reconcilia con la tabla.
"""
from fastapi import APIRouter, Depends, status

from sqlbinding.application.dto.upsert_dto import UpsertRequestDTO, UpsertResultDTO
from sqlbinding.application.use_cases.upsert_use_cases import UpsertUseCases
from sqlbinding.api.v1.dependencies.use_case_deps import get_upsert_use_cases


router = APIRouter(prefix="/tables", tags=["Rows"])


@router.post(
    "/{table_name}/rows",
    response_model=UpsertResultDTO,
    status_code=status.HTTP_200_OK,
    summary="Upsertear filas en una tabla"
)
async def upsert_rows(
    table_name: str,
    dto: UpsertRequestDTO,
    use_cases: UpsertUseCases = Depends(get_upsert_use_cases)
) -> UpsertResultDTO:
    """
    Inserta o actualiza filas en la tabla indicada segun su primary key.
    
    - Las filas con PK repetida se colapsan (gana la ultima)
    - Se ejecuta un MERGE por lote, todos en una transaccion
    - Nunca se borran filas
    
    Args:
        table_name: `tabla` o `schema.tabla`
        dto: Columnas tipadas y filas
        use_cases: Casos de uso de upsert (inyectado)
        
    Returns:
        UpsertResultDTO: Conteo de filas y lotes aplicados
    """
    return await use_cases.upsert_rows(table_name, dto)
