"""
Contrat abstrait des adaptateurs de persistance.

Ce module définit le contrat que tout backend de stockage (SQLite embarqué,
store relationnel distant) doit implémenter pour assurer l'interchangeabilité
sans modifier le code appelant. La façade canonique ne dépend que de ce
contrat.

Le comportement commun (génération d'identifiant, contrôle des champs requis,
horodatage selon la capacité updated_at de chaque table, filtrage des listes
et brouillons de formulaire) est implémenté ici une seule fois.
"""

import uuid
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable, Mapping
from datetime import UTC, datetime
from typing import Any, TypeVar

from ministry_data.canonical.entities import ENTITY_SPECS, EntityKind, EntitySpec
from ministry_data.core.exceptions import MissingFieldsError
from ministry_data.schemas.changes import ChangeHandler, Unsubscribe
from ministry_data.schemas.draft import draft_id

T = TypeVar("T")

# Tables dont le schéma ne porte pas de colonne updated_at
DEFAULT_TABLES_WITHOUT_UPDATED_AT = frozenset(
    spec.table for spec in ENTITY_SPECS.values() if not spec.has_updated_at
)

PAGINATION_KEYS = ("limit", "offset", "search")


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def split_filters(filters: Mapping[str, Any] | None) -> tuple[dict[str, Any], int | None, int, str | None]:
    """Sépare les filtres d'égalité des paramètres limit, offset et search."""
    equality = dict(filters or {})
    limit = equality.pop("limit", None)
    offset = equality.pop("offset", None) or 0
    search = equality.pop("search", None) or None
    return equality, (int(limit) if limit is not None else None), int(offset), search


def matches_filters(record: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    """
    Teste un enregistrement contre des filtres d'égalité.

    Une valeur liste signifie "appartient à", None signifie "est nul".
    """
    for key, expected in filters.items():
        value = record.get(key)
        if isinstance(expected, list | tuple | set | frozenset):
            if value not in expected:
                return False
        elif expected is None:
            if value is not None:
                return False
        elif value != expected:
            return False
    return True


def matches_search(record: Mapping[str, Any], term: str, fields: Iterable[str]) -> bool:
    """Recherche textuelle insensible à la casse sur les champs donnés."""
    needle = term.lower()
    return any(needle in str(record.get(name) or "").lower() for name in fields)


class DatabaseAdapter(ABC):
    """
    Interface abstraite d'un store de persistance.

    Tout backend doit implémenter les opérations CRUD paramétrées par type
    d'entité, l'abonnement aux changements d'une table et l'exécution
    transactionnelle d'une unité de travail.

    Exemple d'utilisation:
        adapter = LocalAdapter("sqlite+aiosqlite:///:memory:")
        await adapter.open()
        household = await adapter.create(EntityKind.HOUSEHOLD, {"address_line1": "1 Main St"})
        await adapter.close()
    """

    def __init__(self, tables_without_updated_at: Iterable[str] | None = None):
        if tables_without_updated_at is None:
            self.tables_without_updated_at = DEFAULT_TABLES_WITHOUT_UPDATED_AT
        else:
            self.tables_without_updated_at = frozenset(tables_without_updated_at)

    # ------------------------------------------------------------------
    # Cycle de vie
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Prépare le store (création de schéma, connexions)."""

    async def close(self) -> None:
        """Libère les ressources du store."""

    # ------------------------------------------------------------------
    # Contrat
    # ------------------------------------------------------------------

    @abstractmethod
    async def get(self, kind: EntityKind | str, record_id: str) -> dict[str, Any] | None:
        """
        Lit un enregistrement par identifiant.

        Returns:
            L'enregistrement, ou None s'il n'existe pas (jamais d'exception)
        """

    @abstractmethod
    async def create(self, kind: EntityKind | str, data: Mapping[str, Any]) -> dict[str, Any]:
        """
        Crée un enregistrement.

        L'identifiant fourni est conservé, sinon un uuid est généré.

        Raises:
            MissingFieldsError: Si des champs requis de l'entité manquent
            ConstraintViolationError: Sur clé dupliquée ou clé étrangère invalide
        """

    @abstractmethod
    async def update(
        self, kind: EntityKind | str, record_id: str, patch: Mapping[str, Any]
    ) -> dict[str, Any]:
        """
        Fusionne une mise à jour partielle dans l'enregistrement existant.

        Raises:
            RecordNotFoundError: Si l'identifiant n'existe pas
        """

    @abstractmethod
    async def list(
        self, kind: EntityKind | str, filters: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """
        Liste les enregistrements d'une entité.

        Filtres: égalité par champ (liste = appartenance, None = nul),
        "search" (sous-chaîne insensible à la casse sur les champs de
        recherche de l'entité), "limit" et "offset". Résultats triés par
        clé primaire.
        """

    @abstractmethod
    async def delete(self, kind: EntityKind | str, record_id: str) -> None:
        """Supprime un enregistrement (sans effet s'il n'existe pas)."""

    @abstractmethod
    async def subscribe_to_table(self, table: str, handler: ChangeHandler) -> Unsubscribe:
        """
        Abonne un handler aux changements d'une table.

        Returns:
            Fonction de désabonnement synchrone et idempotente
        """

    @abstractmethod
    async def transaction(self, work: Callable[[], Awaitable[T]]) -> T:
        """
        Exécute une unité de travail dans une transaction.

        Les garanties d'atomicité dépendent du backend.
        """

    # ------------------------------------------------------------------
    # Comportement commun
    # ------------------------------------------------------------------

    def supports_updated_at(self, spec: EntitySpec) -> bool:
        return spec.table not in self.tables_without_updated_at

    def prepare_create(self, spec: EntitySpec, data: Mapping[str, Any]) -> dict[str, Any]:
        """Complète un enregistrement à créer: identifiant, champs requis, horodatage."""
        record = dict(data)
        if not record.get(spec.id_field):
            record[spec.id_field] = str(uuid.uuid4())

        missing = [name for name in spec.required_fields if record.get(name) in (None, "")]
        if missing:
            raise MissingFieldsError(spec.table, missing)

        now = utc_now_iso()
        record.setdefault("created_at", now)
        if self.supports_updated_at(spec):
            record["updated_at"] = now
        else:
            record.pop("updated_at", None)
        return record

    def prepare_update(self, spec: EntitySpec, patch: Mapping[str, Any]) -> dict[str, Any]:
        """Prépare une mise à jour partielle (identifiant et created_at immuables)."""
        changes = {
            key: value
            for key, value in patch.items()
            if key not in (spec.id_field, "created_at", "updated_at")
        }
        if self.supports_updated_at(spec):
            changes["updated_at"] = utc_now_iso()
        return changes

    # ------------------------------------------------------------------
    # Brouillons de formulaire
    # ------------------------------------------------------------------

    async def get_draft(self, form_name: str, user_id: str) -> dict[str, Any] | None:
        """Retourne le brouillon d'un formulaire pour un utilisateur."""
        return await self.get(EntityKind.FORM_DRAFT, draft_id(form_name, user_id))

    async def save_draft(
        self, form_name: str, user_id: str, payload: Any, version: int = 1
    ) -> dict[str, Any]:
        """Crée ou remplace le brouillon d'un formulaire pour un utilisateur."""
        key = draft_id(form_name, user_id)
        if await self.get(EntityKind.FORM_DRAFT, key) is None:
            return await self.create(
                EntityKind.FORM_DRAFT,
                {
                    "draft_id": key,
                    "form_name": form_name,
                    "user_id": user_id,
                    "payload": payload,
                    "version": version,
                },
            )
        return await self.update(
            EntityKind.FORM_DRAFT, key, {"payload": payload, "version": version}
        )

    async def clear_draft(self, form_name: str, user_id: str) -> None:
        """Supprime le brouillon d'un formulaire pour un utilisateur."""
        await self.delete(EntityKind.FORM_DRAFT, draft_id(form_name, user_id))
