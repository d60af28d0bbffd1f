"""Sélection de l'adaptateur de persistance, une fois par processus, depuis la configuration."""

import logging

from ministry_data.adapters.base import DatabaseAdapter
from ministry_data.adapters.local import LocalAdapter
from ministry_data.adapters.realtime import RedisChangeStream
from ministry_data.adapters.remote import RemoteAdapter
from ministry_data.core.config import Settings, settings

logger = logging.getLogger(__name__)


def create_database_adapter(config: Settings | None = None) -> DatabaseAdapter:
    """
    Crée l'adaptateur correspondant à DATABASE_MODE.

    Le mode "remote" sans URL ou clé d'API retombe sur le store local
    (une erreur est journalisée).

    Args:
        config: Paramètres à utiliser (défaut: paramètres globaux)

    Returns:
        LocalAdapter ou RemoteAdapter (non ouvert)
    """
    config = config or settings

    if config.DATABASE_MODE == "remote":
        if config.remote_configured:
            logger.info(f"Adaptateur distant sélectionné: {config.REMOTE_REST_URL}")
            return RemoteAdapter(
                base_url=config.REMOTE_REST_URL,
                api_key=config.REMOTE_API_KEY,
                timeout=config.REMOTE_TIMEOUT,
                tables_without_updated_at=config.REMOTE_TABLES_WITHOUT_UPDATED_AT,
                change_stream=RedisChangeStream(
                    redis_url=config.REDIS_URL,
                    db=config.REDIS_DB,
                    channel_prefix=config.REALTIME_CHANNEL_PREFIX,
                ),
            )
        logger.error(
            "DATABASE_MODE=remote mais REMOTE_REST_URL ou REMOTE_API_KEY manquant, "
            "utilisation du store local"
        )

    logger.info(f"Adaptateur local sélectionné: {config.LOCAL_DATABASE_URL}")
    return LocalAdapter(url=config.LOCAL_DATABASE_URL, echo=config.DEBUG)
