"""Service metier pour l'inscription d'un foyer.

Orchestration d'une soumission de formulaire d'inscription:
1. Validation du lot (foyer, tuteurs, contact d'urgence, enfants, consentements)
2. Dans une transaction de l'adaptateur, dans l'ordre:
   foyer → tuteurs → contact d'urgence → enfants → inscriptions au cycle
   → inscriptions aux ministères

Un lot invalide ne déclenche aucun appel à l'adaptateur.
"""

import logging
from typing import Any

from opentelemetry import trace

from ministry_data.adapters.base import DatabaseAdapter, utc_now_iso
from ministry_data.canonical.entities import EntityKind, get_spec
from ministry_data.canonical.validator import validate_registration_bundle
from ministry_data.schemas.ministry import MinistryEnrollmentCreate
from ministry_data.schemas.registration import Consent, RegistrationCreate
from ministry_data.schemas.results import RegistrationBundle, RegistrationResult

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


async def upsert(adapter: DatabaseAdapter, kind: EntityKind, record: dict[str, Any]) -> dict[str, Any]:
    """Crée l'enregistrement, ou le met à jour si son identifiant existe déjà."""
    spec = get_spec(kind)
    record_id = record[spec.id_field]
    if await adapter.get(kind, record_id) is None:
        return await adapter.create(kind, record)
    return await adapter.update(kind, record_id, record)


def build_consents(bundle: RegistrationBundle) -> list[dict[str, Any]]:
    """
    Construit les consentements signés par le tuteur principal.

    Le signataire est le premier tuteur marqué principal, à défaut le premier tuteur.
    """
    signer = next((g for g in bundle.guardians if g.get("is_primary")), bundle.guardians[0])
    signer_name = f"{signer['first_name']} {signer['last_name']}"
    accepted_at = utc_now_iso()

    consents = [
        Consent(
            type=name,
            accepted_at=accepted_at if bundle.consents.get(name) else None,
            signer_id=signer["guardian_id"],
            signer_name=signer_name,
        )
        for name in ("liability", "photo_release")
    ]
    for text, accepted in bundle.consents.get("custom_consents", {}).items():
        if accepted:
            consents.append(
                Consent(
                    type="custom",
                    text=text,
                    accepted_at=accepted_at,
                    signer_id=signer["guardian_id"],
                    signer_name=signer_name,
                )
            )
    return [consent.model_dump(mode="json") for consent in consents]


async def _replace_registration(
    adapter: DatabaseAdapter, child_id: str, cycle_id: str, consents: list[dict[str, Any]]
) -> dict[str, Any]:
    """Remplace l'inscription existante d'un enfant pour un cycle."""
    existing = await adapter.list(
        EntityKind.REGISTRATION, {"child_id": child_id, "cycle_id": cycle_id}
    )
    for registration in existing:
        await adapter.delete(EntityKind.REGISTRATION, registration["registration_id"])

    record = RegistrationCreate(
        child_id=child_id,
        cycle_id=cycle_id,
        status="active",
        pre_registered_sunday_school=True,
        consents=consents,
        submitted_via="web",
        submitted_at=utc_now_iso(),
    ).model_dump(mode="json")
    return await adapter.create(EntityKind.REGISTRATION, record)


async def _enroll_child(
    adapter: DatabaseAdapter,
    child_id: str,
    cycle_id: str,
    selections: dict[str, bool],
    custom_data: dict[str, Any],
) -> list[str]:
    """Inscrit un enfant aux ministères sélectionnés; retourne les identifiants d'inscription."""
    enrollment_ids = []
    for ministry_id, selected in selections.items():
        if not selected:
            continue

        ministry = await adapter.get(EntityKind.MINISTRY, ministry_id)
        if ministry and ministry.get("enrollment_type") == "expressed_interest":
            status = "expressed_interest"
        else:
            status = "enrolled"
        custom_fields = custom_data.get(ministry_id)

        existing = await adapter.list(
            EntityKind.MINISTRY_ENROLLMENT,
            {"child_id": child_id, "cycle_id": cycle_id, "ministry_id": ministry_id},
        )
        if existing:
            enrollment = await adapter.update(
                EntityKind.MINISTRY_ENROLLMENT,
                existing[0]["enrollment_id"],
                {"status": status, "custom_fields": custom_fields},
            )
        else:
            enrollment = await adapter.create(
                EntityKind.MINISTRY_ENROLLMENT,
                MinistryEnrollmentCreate(
                    child_id=child_id,
                    cycle_id=cycle_id,
                    ministry_id=ministry_id,
                    status=status,
                    custom_fields=custom_fields,
                ).model_dump(mode="json"),
            )
        enrollment_ids.append(enrollment["enrollment_id"])
    return enrollment_ids


async def persist_bundle(
    adapter: DatabaseAdapter, bundle: RegistrationBundle, cycle_id: str
) -> RegistrationResult:
    """Écrit un lot validé, dans l'ordre foyer → tuteurs → contact → enfants → inscriptions."""
    household = await upsert(adapter, EntityKind.HOUSEHOLD, bundle.household)
    guardians = [await upsert(adapter, EntityKind.GUARDIAN, g) for g in bundle.guardians]
    contact = await upsert(adapter, EntityKind.EMERGENCY_CONTACT, bundle.emergency_contact)
    children = [await upsert(adapter, EntityKind.CHILD, c) for c in bundle.children]

    consents = build_consents(bundle)
    registration_ids = []
    enrollment_ids = []
    for child in children:
        child_id = child["child_id"]
        registration = await _replace_registration(adapter, child_id, cycle_id, consents)
        registration_ids.append(registration["registration_id"])
        enrollment_ids.extend(
            await _enroll_child(
                adapter,
                child_id,
                cycle_id,
                bundle.ministry_selections.get(child_id, {}),
                bundle.custom_data.get(child_id, {}),
            )
        )

    return RegistrationResult(
        ok=True,
        household_id=household["household_id"],
        guardian_ids=[g["guardian_id"] for g in guardians],
        contact_id=contact["contact_id"],
        child_ids=[c["child_id"] for c in children],
        registration_ids=registration_ids,
        enrollment_ids=enrollment_ids,
    )


async def submit_registration(
    adapter: DatabaseAdapter, raw_bundle: dict[str, Any], cycle_id: str
) -> RegistrationResult:
    """
    Valide puis enregistre un formulaire d'inscription de foyer.

    Args:
        adapter: Adaptateur de persistance
        raw_bundle: Formulaire brut (camelCase ou snake_case)
        cycle_id: Cycle d'inscription cible

    Returns:
        RegistrationResult avec les identifiants créés, ou ok=False et les
        violations si le lot est invalide

    Raises:
        PartialTransactionError: Store distant, échec après écritures validées
        ConstraintViolationError, TransportFailureError: Erreurs du store, non converties
    """
    with tracer.start_as_current_span("submit_registration") as span:
        span.set_attribute("registration.cycle_id", cycle_id)

        validation = validate_registration_bundle(raw_bundle)
        if not validation.ok:
            span.add_event("Lot invalide", {"violations": len(validation.violations)})
            return RegistrationResult(ok=False, violations=validation.violations)

        bundle = validation.bundle

        async def work() -> RegistrationResult:
            return await persist_bundle(adapter, bundle, cycle_id)

        result = await adapter.transaction(work)
        span.set_attribute("household.id", result.household_id)
        span.add_event("Inscription enregistrée")
        logger.info(
            f"Foyer {result.household_id} inscrit au cycle {cycle_id}: "
            f"{len(result.child_ids)} enfant(s), {len(result.enrollment_ids)} ministère(s)"
        )
        return result
