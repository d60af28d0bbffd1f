"""
Schéma SQLAlchemy du store local (SQLite embarqué via aiosqlite).

Stockage orienté document: une table par entité avec la clé primaire,
une colonne par champ indexé (ou unique) et une colonne JSON `data`
contenant l'enregistrement complet.
"""

import json
import logging
from typing import Any

from pydantic import TypeAdapter
from sqlalchemy import JSON, Boolean, Column, MetaData, String, Table
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from ministry_data.canonical.entities import ENTITY_SPECS, EntityKind, EntitySpec

logger = logging.getLogger(__name__)

DATA_COLUMN = "data"

_BOOLEAN = TypeAdapter(bool)


def _json_serializer(value: Any) -> str:
    return json.dumps(value, default=str)


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Crée le moteur async; une base en mémoire partage une connexion unique."""
    kwargs: dict[str, Any] = {"echo": echo, "json_serializer": _json_serializer}
    if ":memory:" in url:
        kwargs["poolclass"] = StaticPool
    return create_async_engine(url, **kwargs)


def indexed_columns(spec: EntitySpec) -> tuple[str, ...]:
    """Champs projetés en colonnes SQL (index et contraintes d'unicité)."""
    return tuple(dict.fromkeys(spec.indexes + spec.unique_fields))


def column_value(name: str, value: Any) -> Any:
    """Convertit une valeur d'enregistrement vers le type de sa colonne indexée."""
    if value is None:
        return None
    if name.startswith("is_"):
        # "false", "0", "no" sont faux, comme côté PostgREST
        return _BOOLEAN.validate_python(value)
    return value if isinstance(value, str) else str(value)


def build_table(metadata: MetaData, spec: EntitySpec) -> Table:
    columns = [Column(spec.id_field, String, primary_key=True)]
    for name in indexed_columns(spec):
        columns.append(
            Column(
                name,
                Boolean if name.startswith("is_") else String,
                nullable=True,
                index=True,
                unique=name in spec.unique_fields,
            )
        )
    columns.append(Column(DATA_COLUMN, JSON, nullable=False))
    return Table(spec.table, metadata, *columns)


def build_tables(metadata: MetaData) -> dict[EntityKind, Table]:
    """Déclare une table par entité du registre."""
    return {kind: build_table(metadata, spec) for kind, spec in ENTITY_SPECS.items()}


async def create_tables(engine: AsyncEngine, metadata: MetaData) -> None:
    """Crée toutes les tables."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    logger.info(f"Schéma local prêt ({len(metadata.tables)} tables)")
