"""
Data Transfer Objects de la aplicacion.
"""
from .upsert_dto import ColumnDTO, UpsertRequestDTO, UpsertResultDTO

__all__ = ["ColumnDTO", "UpsertRequestDTO", "UpsertResultDTO"]
