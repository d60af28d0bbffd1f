"""Validateur canonique.

Valide un enregistrement déjà normalisé contre le schéma de son entité et
retourne un résultat étiqueté (ValidationSuccess | ValidationFailure).
Aucune exception n'est levée pour une saisie invalide; seul un type
d'entité inconnu lève UnknownEntityKindError.

Le mode lot (validate_registration_bundle) valide ensemble le foyer, les
tuteurs, le contact d'urgence, les enfants et les consentements d'un
formulaire d'inscription, et vérifie la cohérence des clés étrangères.
"""

import logging
import uuid
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from ministry_data.canonical.entities import EntityKind, get_spec
from ministry_data.canonical.normalizer import (
    BUNDLE_CHILD_EXTRA_OVERRIDES,
    BUNDLE_CONSENT_OVERRIDES,
    BUNDLE_OVERRIDES,
    normalize,
    rename_keys,
)
from ministry_data.schemas.registration import BundleChildExtras, RegistrationConsents
from ministry_data.schemas.results import (
    BundleValidationResult,
    BundleValidationSuccess,
    RegistrationBundle,
    ValidationFailure,
    ValidationResult,
    ValidationSuccess,
    Violation,
)

logger = logging.getLogger(__name__)

BUNDLE_ENTITY = "registration_bundle"
REQUIRED_CONSENTS = ("liability", "photo_release")


def _violations_from_error(entity: str, exc: ValidationError, prefix: str = "") -> list[Violation]:
    violations = []
    for error in exc.errors():
        path = ".".join(str(part) for part in error["loc"])
        field = f"{prefix}.{path}" if prefix and path else (prefix or path)
        violations.append(
            Violation(
                entity=entity,
                field=field or "__root__",
                code=error["type"],
                message=error["msg"],
            )
        )
    return violations


def validate(
    entity_kind: Any,
    normalized_record: Mapping[str, Any],
    partial: bool = False,
) -> ValidationResult:
    """
    Valide un enregistrement canonique.

    Args:
        entity_kind: Type d'entité (EntityKind ou son nom)
        normalized_record: Enregistrement déjà normalisé (clés snake_case)
        partial: True pour une mise à jour partielle (aucun champ requis,
            seuls les champs fournis sont retournés; un champ requis fourni
            à null est refusé)

    Returns:
        ValidationSuccess avec l'enregistrement prêt à persister (dates ISO),
        ou ValidationFailure avec la liste des violations

    Raises:
        UnknownEntityKindError: Si le type d'entité est inconnu

    Example:
        >>> result = validate("guardian", {"household_id": "h1", "first_name": "Ann"})
        >>> result.ok
        False
    """
    spec = get_spec(entity_kind)
    schema = spec.update_schema if partial else spec.create_schema
    try:
        model = schema.model_validate(dict(normalized_record))
    except ValidationError as e:
        violations = _violations_from_error(spec.kind.value, e)
        logger.debug(f"Validation '{spec.kind.value}' échouée: {[v.field for v in violations]}")
        return ValidationFailure(violations=violations)

    record = model.model_dump(mode="json", exclude_unset=partial)
    if partial:
        cleared = [
            name for name in spec.required_fields if name in record and record[name] in (None, "")
        ]
        if cleared:
            return ValidationFailure(
                violations=[
                    Violation(
                        entity=spec.kind.value,
                        field=name,
                        code="missing",
                        message="Champ requis: la valeur ne peut pas être effacée",
                    )
                    for name in cleared
                ]
            )
    return ValidationSuccess(record=record)


def _prefixed(result: ValidationFailure, prefix: str) -> list[Violation]:
    return [
        violation.model_copy(update={"field": f"{prefix}.{violation.field}"})
        for violation in result.violations
    ]


def _link_household(
    entity: str,
    record: dict[str, Any],
    household_id: str,
    path: str,
    violations: list[Violation],
) -> None:
    """Renseigne household_id ou signale une incohérence avec le foyer du lot."""
    current = record.get("household_id")
    if current in (None, ""):
        record["household_id"] = household_id
    elif current != household_id:
        violations.append(
            Violation(
                entity=BUNDLE_ENTITY,
                field=f"{path}.household_id",
                code="household_mismatch",
                message=(
                    f"{entity} household_id '{current}' ne correspond pas "
                    f"au foyer '{household_id}'"
                ),
            )
        )


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _ensure_id(record: dict[str, Any], id_field: str) -> str:
    """Génère l'identifiant s'il est absent, nul ou vide."""
    record[id_field] = record.get(id_field) or str(uuid.uuid4())
    return record[id_field]


def validate_registration_bundle(raw_bundle: Mapping[str, Any]) -> BundleValidationResult:
    """
    Normalise et valide un formulaire d'inscription de foyer complet.

    Vérifie:
    - au moins un tuteur et au moins un enfant;
    - chaque entité selon son schéma canonique;
    - household_id des tuteurs, du contact d'urgence et des enfants égal
      à l'identifiant du foyer (renseigné s'il est absent);
    - consentements liability et photo_release acceptés.

    Les identifiants absents, nuls ou vides (foyer, tuteurs, contact, enfants)
    sont générés.

    Args:
        raw_bundle: Formulaire brut {household, guardians, emergency_contact,
            children, consents}

    Returns:
        BundleValidationSuccess avec le lot canonique, ou ValidationFailure
        avec l'ensemble des violations (préfixées par leur chemin dans le lot)
    """
    bundle = rename_keys(_as_mapping(raw_bundle), BUNDLE_OVERRIDES)
    violations: list[Violation] = []

    household_raw = normalize(EntityKind.HOUSEHOLD, _as_mapping(bundle.get("household")))
    household_id = _ensure_id(household_raw, "household_id")

    result = validate(EntityKind.HOUSEHOLD, household_raw)
    household = result.record if result.ok else {}
    if not result.ok:
        violations.extend(_prefixed(result, "household"))

    guardians_raw = _as_list(bundle.get("guardians"))
    if not guardians_raw:
        violations.append(
            Violation(
                entity=BUNDLE_ENTITY,
                field="guardians",
                code="too_short",
                message="Au moins un tuteur est requis",
            )
        )
    guardians = []
    for index, raw in enumerate(guardians_raw):
        path = f"guardians.{index}"
        record = normalize(EntityKind.GUARDIAN, _as_mapping(raw))
        _ensure_id(record, "guardian_id")
        _link_household("guardian", record, household_id, path, violations)
        result = validate(EntityKind.GUARDIAN, record)
        if result.ok:
            guardians.append(result.record)
        else:
            violations.extend(_prefixed(result, path))

    emergency_contact = {}
    contact_raw = bundle.get("emergency_contact")
    if contact_raw is None:
        violations.append(
            Violation(
                entity=BUNDLE_ENTITY,
                field="emergency_contact",
                code="missing",
                message="Un contact d'urgence est requis",
            )
        )
    else:
        record = normalize(EntityKind.EMERGENCY_CONTACT, _as_mapping(contact_raw))
        _ensure_id(record, "contact_id")
        _link_household("emergency_contact", record, household_id, "emergency_contact", violations)
        result = validate(EntityKind.EMERGENCY_CONTACT, record)
        if result.ok:
            emergency_contact = result.record
        else:
            violations.extend(_prefixed(result, "emergency_contact"))

    children_raw = _as_list(bundle.get("children"))
    if not children_raw:
        violations.append(
            Violation(
                entity=BUNDLE_ENTITY,
                field="children",
                code="too_short",
                message="Au moins un enfant est requis",
            )
        )
    children = []
    ministry_selections: dict[str, dict[str, bool]] = {}
    custom_data: dict[str, dict[str, Any]] = {}
    for index, raw in enumerate(children_raw):
        path = f"children.{index}"
        record = rename_keys(_as_mapping(raw), BUNDLE_CHILD_EXTRA_OVERRIDES)
        extras_raw = {
            key: record.pop(key) for key in ("ministry_selections", "custom_data") if key in record
        }
        record = normalize(EntityKind.CHILD, record)
        _ensure_id(record, "child_id")
        _link_household("child", record, household_id, path, violations)
        result = validate(EntityKind.CHILD, record)
        if result.ok:
            children.append(result.record)
        else:
            violations.extend(_prefixed(result, path))
        try:
            extras = BundleChildExtras.model_validate(extras_raw)
        except ValidationError as e:
            violations.extend(_violations_from_error(BUNDLE_ENTITY, e, path))
        else:
            ministry_selections[record["child_id"]] = extras.ministry_selections
            custom_data[record["child_id"]] = extras.custom_data

    consents = {}
    consents_raw = rename_keys(_as_mapping(bundle.get("consents")), BUNDLE_CONSENT_OVERRIDES)
    try:
        consents = RegistrationConsents.model_validate(consents_raw).model_dump(mode="json")
    except ValidationError as e:
        violations.extend(_violations_from_error(BUNDLE_ENTITY, e, "consents"))
    else:
        for name in REQUIRED_CONSENTS:
            if not consents[name]:
                violations.append(
                    Violation(
                        entity=BUNDLE_ENTITY,
                        field=f"consents.{name}",
                        code="consent_required",
                        message=f"Le consentement '{name}' doit être accepté",
                    )
                )

    if violations:
        logger.info(f"Lot d'inscription invalide: {len(violations)} violation(s)")
        return ValidationFailure(violations=violations)

    return BundleValidationSuccess(
        bundle=RegistrationBundle(
            household=household,
            guardians=guardians,
            emergency_contact=emergency_contact,
            children=children,
            consents=consents,
            ministry_selections=ministry_selections,
            custom_data=custom_data,
        )
    )


__all__ = ["validate", "validate_registration_bundle"]
