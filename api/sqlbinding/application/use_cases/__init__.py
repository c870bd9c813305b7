"""
Casos de uso de la aplicacion.
"""
from .upsert_use_cases import UpsertUseCases

__all__ = ["UpsertUseCases"]
