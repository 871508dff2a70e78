"""
Configuración central de la aplicación.
Gestiona variables de entorno y configuraciones globales.
Soporta configuración dinámica para desarrollo (ENVIRONMENT=development)
y producción (ENVIRONMENT=production).
"""
import json
from typing import List
from pydantic_settings import BaseSettings
from pydantic import Field, computed_field


class Settings(BaseSettings):
    """
    Clase de configuración de la aplicación.
    Lee variables de entorno y proporciona valores por defecto.

    Grupos de configuración:
    - Aplicación y servidor (APP_*, HOST, PORT, CORS_ORIGINS)
    - Base de datos (DATABASE_URL completa o por componentes)
    - Cliente GeoGuessr (GEOGUESSR_*): timeout y reintentos por llamada
    - Sync (SYNC_*): heurísticas de paginación y ritmo de requests
    """

    # Configuración de la aplicación
    APP_NAME: str = Field(default="GeoStats API")
    APP_VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="production")

    # Configuración del servidor
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)

    # Base de datos - Componentes separados (recomendado para flexibilidad)
    DATABASE_HOST: str = Field(default="localhost")
    DATABASE_PORT: int = Field(default=5432)
    DATABASE_USER: str = Field(default="geostats_user")
    DATABASE_PASSWORD: str = Field(default="geostats_pass")
    DATABASE_NAME: str = Field(default="geostats_db")

    # Base de datos - URL completa (override de componentes si se proporciona)
    DATABASE_URL: str = Field(default="")
    DB_POOL_SIZE: int = Field(default=5)
    DB_MAX_OVERFLOW: int = Field(default=10)

    # CORS (acepta lista JSON o "*" para todos los orígenes)
    CORS_ORIGINS: str = Field(default="*")

    # Cliente GeoGuessr
    GEOGUESSR_BASE_URL: str = Field(default="https://www.geoguessr.com")
    GEOGUESSR_TIMEOUT_S: float = Field(default=30.0)
    # 1 intento inicial + GEOGUESSR_MAX_RETRIES reintentos ante fallos transitorios
    GEOGUESSR_MAX_RETRIES: int = Field(default=2)
    GEOGUESSR_MIN_BACKOFF_S: float = Field(default=1.0)
    GEOGUESSR_MAX_BACKOFF_S: float = Field(default=8.0)

    # Sync - heurísticas ajustables (no se asumen óptimas)
    SYNC_EMPTY_PAGE_THRESHOLD: int = Field(default=3)
    SYNC_PAGE_FAILURE_LIMIT: int = Field(default=2)
    SYNC_MAX_PAGE_ERRORS: int = Field(default=5)
    SYNC_FAILED_PAGE_COOLDOWN_S: float = Field(default=2.0)
    SYNC_PAGE_INTERVAL_S: float = Field(default=0.8)
    SYNC_ITEM_INTERVAL_S: float = Field(default=0.5)
    # Tiempo que se conserva el estado de un run terminado antes de volver a "idle"
    SYNC_STATUS_TTL_S: int = Field(default=3600)

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="logs/app.log")

    @computed_field
    @property
    def effective_database_url(self) -> str:
        """
        Retorna la URL de base de datos efectiva.
        Si DATABASE_URL está definida, la usa directamente.
        Si no, construye la URL desde los componentes individuales.
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}"
            f"@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"
        )

    @computed_field
    @property
    def is_development(self) -> bool:
        """Indica si el entorno es de desarrollo."""
        return self.ENVIRONMENT.lower() == "development"

    class Config:
        """Configuración de Pydantic."""
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignorar campos extra del .env


def get_cors_origins(cors_string: str) -> List[str]:
    """
    Parsea la configuración de CORS.
    Acepta "*" para todos los orígenes o una lista JSON.
    """
    if cors_string == "*":
        return ["*"]
    try:
        return json.loads(cors_string)
    except json.JSONDecodeError:
        # Si no es JSON válido, retornar como lista simple
        return [origin.strip() for origin in cors_string.split(",")]


# Instancia global de configuración
settings = Settings()
