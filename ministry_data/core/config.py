import json
import logging
from typing import Literal, TypeAlias

from pydantic import field_validator
from pydantic_settings import BaseSettings

# Type personnalisé pour les listes configurables depuis l'environnement
ConfigurableList: TypeAlias = str | list[str]

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [%(filename)s:%(lineno)d] - %(message)s"


def parse_list_from_env(value: ConfigurableList, field_name: str = "field") -> list[str]:
    """
    Fonction utilitaire pour parser une liste depuis une variable d'environnement.

    Supporte les formats suivants:
    - Liste Python directe: ['val1', 'val2']
    - Format JSON: '["val1", "val2"]'
    - Format virgules: "val1,val2,val3"
    - Chaîne vide: "" → []

    Args:
        value: La valeur à parser (chaîne ou liste)
        field_name: Nom du champ pour les messages d'erreur

    Returns:
        Liste de chaînes parsée

    Raises:
        ValueError: Si le format n'est pas valide
    """
    if isinstance(value, list):
        return value
    elif isinstance(value, str):
        value = value.strip()
        if value.startswith("[") and value.endswith("]"):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                raise ValueError(f"Format JSON invalide pour {field_name}: {value}")
        elif value:
            return [item.strip() for item in value.split(",") if item.strip()]
        else:
            return []
    raise ValueError(f"Valeur invalide pour {field_name}: {value}")


class Settings(BaseSettings):
    try:
        from ministry_data import __version__
    except ImportError:
        __version__ = "0.1.0"

    PROJECT_NAME: str = "ministry-data"
    VERSION: str = __version__

    # Environnement
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Sélection du backend de persistance (une seule fois par processus)
    # local: SQLite embarqué (démo / hors ligne), remote: store relationnel hébergé
    DATABASE_MODE: Literal["local", "remote"] = "local"

    # Store local
    LOCAL_DATABASE_URL: str = "sqlite+aiosqlite:///./ministry_data.db"

    # Store distant (API REST compatible PostgREST)
    REMOTE_REST_URL: str | None = None
    REMOTE_API_KEY: str | None = None
    REMOTE_TIMEOUT: float = 10.0

    # Tables distantes sans colonne updated_at
    # Définir dans .env, ex: REMOTE_TABLES_WITHOUT_UPDATED_AT="registrations,attendance"
    REMOTE_TABLES_WITHOUT_UPDATED_AT: ConfigurableList = [
        "registrations",
        "ministry_enrollments",
        "attendance",
    ]

    @field_validator("REMOTE_TABLES_WITHOUT_UPDATED_AT", mode="before")
    @classmethod
    def assemble_tables_without_updated_at(cls, v: ConfigurableList) -> list[str]:
        """Parse REMOTE_TABLES_WITHOUT_UPDATED_AT depuis une variable d'environnement."""
        return parse_list_from_env(v, "REMOTE_TABLES_WITHOUT_UPDATED_AT")

    # Flux de changements temps réel (Redis Pub/Sub)
    REDIS_URL: str = "redis://localhost:6379"
    REDIS_DB: int = 0
    REALTIME_CHANNEL_PREFIX: str = "realtime:public:"

    @property
    def remote_configured(self) -> bool:
        """Indique si l'URL et la clé du store distant sont renseignées."""
        return bool(self.REMOTE_REST_URL and self.REMOTE_API_KEY)

    class Config:
        case_sensitive = True
        env_file = ".env"
        extra = "ignore"


def configure_logging(level: str | None = None) -> None:
    """Configure le logging racine au format du service."""
    logging.basicConfig(level=(level or settings.LOG_LEVEL).upper(), format=LOG_FORMAT)


# Instance unique des paramètres chargée depuis .env
settings = Settings()
