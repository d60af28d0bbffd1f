"""Dependances FastAPI pour l'injection de la façade de persistance."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from ministry_data.adapters.factory import create_database_adapter
from ministry_data.core.config import configure_logging
from ministry_data.services.data_access import CanonicalDataAccess

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Gestionnaire de cycle de vie FastAPI: ouvre l'adaptateur configuré et expose la façade."""
    configure_logging()
    adapter = create_database_adapter()
    await adapter.open()
    app.state.data_access = CanonicalDataAccess(adapter)
    logger.info(f"Persistance initialisée ({type(adapter).__name__})")

    yield

    await adapter.close()
    logger.info("Persistance arrêtée proprement")


def get_data_access(request: Request) -> CanonicalDataAccess:
    """
    Recupere la façade de persistance depuis l'etat de l'application.

    Raises:
        RuntimeError: Si la façade n'est pas initialisee par le lifespan
    """
    data_access = getattr(request.app.state, "data_access", None)
    if data_access is None:
        raise RuntimeError(
            "Data access not initialized. "
            "Ensure the application lifespan sets app.state.data_access"
        )
    return data_access
