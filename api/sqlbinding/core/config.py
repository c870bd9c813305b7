"""
Configuracion central de la aplicacion.
Gestiona variables de entorno y configuraciones globales.
Soporta configuracion dinamica para desarrollo (ENVIRONMENT=development)
y produccion (ENVIRONMENT=production).
"""
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings
from pydantic import Field, computed_field

from sqlbinding.shared.constants.sql_constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_SCHEMA_CACHE_TTL_MINUTES,
)


class Settings(BaseSettings):
    """
    Clase de configuracion de la aplicacion.
    Lee variables de entorno y proporciona valores por defecto.
    
    - DATABASE_URL se puede especificar completa o por componentes
    - SQL_BATCH_SIZE y SQL_SCHEMA_CACHE_TTL_MINUTES ajustan el motor de upsert
    - SQL_TRANSACTIONAL_FLUSH=false reproduce el commit por lote (no atomico)
    """
    
    # Configuracion de la aplicacion
    APP_NAME: str = Field(default="SQL Binding Upsert Service")
    APP_VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="production")
    
    # Configuracion del servidor
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)
    
    # Base de datos - Componentes separados (recomendado para flexibilidad)
    DATABASE_HOST: str = Field(default="localhost")
    DATABASE_PORT: int = Field(default=1433)
    DATABASE_USER: str = Field(default="sa")
    DATABASE_PASSWORD: str = Field(default="")
    DATABASE_NAME: str = Field(default="master")
    DATABASE_DRIVER: str = Field(default="ODBC Driver 18 for SQL Server")
    DATABASE_TRUST_SERVER_CERTIFICATE: bool = Field(default=False)
    
    # Base de datos - URL completa (override de componentes si se proporciona)
    DATABASE_URL: str = Field(default="")
    DB_POOL_SIZE: int = Field(default=5)
    DB_MAX_OVERFLOW: int = Field(default=10)
    
    # Motor de upsert
    SQL_BATCH_SIZE: int = Field(default=DEFAULT_BATCH_SIZE)
    SQL_SCHEMA_CACHE_TTL_MINUTES: float = Field(default=DEFAULT_SCHEMA_CACHE_TTL_MINUTES)
    SQL_TRANSACTIONAL_FLUSH: bool = Field(default=True)
    
    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="logs/app.log")
    
    @computed_field
    @property
    def effective_database_url(self) -> str:
        """
        Retorna la URL de base de datos efectiva.
        Si DATABASE_URL esta definida, la usa directamente.
        Si no, construye la URL mssql+aioodbc desde los componentes individuales.
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL
        url = (
            f"mssql+aioodbc://{quote_plus(self.DATABASE_USER)}:{quote_plus(self.DATABASE_PASSWORD)}"
            f"@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"
            f"?driver={quote_plus(self.DATABASE_DRIVER)}"
        )
        if self.DATABASE_TRUST_SERVER_CERTIFICATE:
            url += "&TrustServerCertificate=yes"
        return url
    
    @computed_field
    @property
    def is_development(self) -> bool:
        """Indica si el entorno es de desarrollo."""
        return self.ENVIRONMENT.lower() == "development"
    
    class Config:
        """Configuracion de Pydantic."""
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignorar campos extra del .env


# Instancia global de configuracion
settings = Settings()
