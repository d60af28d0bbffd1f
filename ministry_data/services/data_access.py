"""Façade canonique d'accès aux données.

Seul point d'entrée des appelants: chaque écriture suit le pipeline
normalisation → validation → adaptateur. L'adaptateur est injecté
(aucun singleton global), ce qui rend la façade testable avec un
adaptateur factice.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from opentelemetry import trace

from ministry_data.adapters.base import DatabaseAdapter
from ministry_data.canonical.entities import EntityKind, get_spec, get_table_spec
from ministry_data.canonical.normalizer import normalize, normalize_filters
from ministry_data.canonical.validator import validate
from ministry_data.schemas.changes import ChangeHandler, Unsubscribe
from ministry_data.schemas.results import RegistrationResult, ValidationResult, ValidationSuccess
from ministry_data.services import registration_service

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")


class CanonicalDataAccess:
    """
    Façade de persistance canonique.

    Les erreurs de saisie sont retournées (ValidationFailure), jamais levées;
    les erreurs du store et du transport sont propagées sans conversion.

    Example:
        ```python
        data_access = CanonicalDataAccess(LocalAdapter())
        result = await data_access.create("guardian", {"householdId": "h1", ...})
        if not result.ok:
            print(result.violations)
        ```
    """

    def __init__(self, adapter: DatabaseAdapter):
        self.adapter = adapter

    async def get(self, kind: EntityKind | str, record_id: str) -> dict[str, Any] | None:
        return await self.adapter.get(get_spec(kind).kind, record_id)

    async def create(self, kind: EntityKind | str, raw: Mapping[str, Any]) -> ValidationResult:
        """
        Normalise, valide puis crée un enregistrement.

        Returns:
            ValidationSuccess avec l'enregistrement persisté, ou ValidationFailure
            (l'adaptateur n'est alors pas appelé)
        """
        spec = get_spec(kind)
        with tracer.start_as_current_span("canonical_create") as span:
            span.set_attribute("db.table", spec.table)

            result = validate(spec.kind, normalize(spec.kind, raw))
            if not result.ok:
                span.add_event("Validation échouée", {"violations": len(result.violations)})
                return result

            persisted = await self.adapter.create(spec.kind, result.record)
            span.set_attribute("entity.id", persisted[spec.id_field])
            return ValidationSuccess(record=persisted)

    async def update(
        self, kind: EntityKind | str, record_id: str, raw_patch: Mapping[str, Any]
    ) -> ValidationResult:
        """
        Normalise, valide partiellement puis fusionne une mise à jour.

        Un champ requis ne peut pas être effacé, et l'enregistrement fusionné
        doit rester valide (bornes d'âge, de dates et d'horaires).

        Raises:
            RecordNotFoundError: Si l'identifiant n'existe pas
        """
        spec = get_spec(kind)
        with tracer.start_as_current_span("canonical_update") as span:
            span.set_attribute("db.table", spec.table)
            span.set_attribute("entity.id", record_id)

            result = validate(spec.kind, normalize(spec.kind, raw_patch), partial=True)
            if not result.ok:
                span.add_event("Validation échouée", {"violations": len(result.violations)})
                return result

            # Les contraintes inter-champs portent sur l'enregistrement fusionné
            current = await self.adapter.get(spec.kind, record_id)
            if current is not None:
                merged = validate(spec.kind, {**current, **result.record})
                if not merged.ok:
                    span.add_event("Validation échouée", {"violations": len(merged.violations)})
                    return merged

            persisted = await self.adapter.update(spec.kind, record_id, result.record)
            return ValidationSuccess(record=persisted)

    async def delete(self, kind: EntityKind | str, record_id: str) -> None:
        await self.adapter.delete(get_spec(kind).kind, record_id)

    async def subscribe(self, target: EntityKind | str, handler: ChangeHandler) -> Unsubscribe:
        """Abonne un handler aux changements d'une table (nom de table ou type d'entité)."""
        try:
            table = get_table_spec(target).table
        except ValueError:
            table = get_spec(target).table
        return await self.adapter.subscribe_to_table(table, handler)

    async def transaction(self, work: Callable[[], Awaitable[T]]) -> T:
        return await self.adapter.transaction(work)

    async def submit_registration(
        self, raw_bundle: dict[str, Any], cycle_id: str
    ) -> RegistrationResult:
        """Valide et enregistre un formulaire d'inscription de foyer en une transaction."""
        return await registration_service.submit_registration(self.adapter, raw_bundle, cycle_id)

    async def get_draft(self, form_name: str, user_id: str) -> dict[str, Any] | None:
        return await self.adapter.get_draft(form_name, user_id)

    async def save_draft(
        self, form_name: str, user_id: str, payload: Any, version: int = 1
    ) -> dict[str, Any]:
        return await self.adapter.save_draft(form_name, user_id, payload, version)

    async def clear_draft(self, form_name: str, user_id: str) -> None:
        await self.adapter.clear_draft(form_name, user_id)

    async def list(
        self, kind: EntityKind | str, filters: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Liste les enregistrements; les clés de filtre sont normalisées comme les champs."""
        spec = get_spec(kind)
        return await self.adapter.list(spec.kind, normalize_filters(spec.kind, filters))
