"""
Dependencias para inyeccion de casos de uso.
"""
from sqlbinding.application.use_cases.upsert_use_cases import UpsertUseCases


def get_upsert_use_cases() -> UpsertUseCases:
    """
    Dependencia para obtener los casos de uso de upsert.
    Usa el engine, el cache de esquemas y la configuracion del proceso.
    
    Returns:
        UpsertUseCases: Instancia de casos de uso de upsert
    """
    return UpsertUseCases()
