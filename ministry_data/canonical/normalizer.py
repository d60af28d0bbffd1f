"""Normaliseur de champs: clés clientes hétérogènes vers clés canoniques snake_case.

Règles appliquées à chaque clé, dans l'ordre:
1. recherche exacte de la clé source dans la table de renommage de l'entité;
2. recherche de la forme snake_case de la clé dans cette même table
   (ainsi "birthDate" et "birth_date" aboutissent tous deux à "dob");
3. conversion générique camelCase → snake_case.

Les valeurs sont recopiées sans conversion; les objets et listes imbriqués
sont opaques. La fonction est pure et idempotente.
"""

import logging
import re
from collections.abc import Mapping
from typing import Any

from ministry_data.canonical.entities import get_spec

logger = logging.getLogger(__name__)

_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")

# Clés de filtrage réservées (non renommées)
RESERVED_FILTER_KEYS = frozenset({"limit", "offset", "search"})


def to_snake_case(key: str) -> str:
    """
    Convertit une clé camelCase en snake_case.

    Les acronymes restent groupés et une clé déjà en snake_case est inchangée.

    Example:
        >>> to_snake_case("addressLine1")
        'address_line1'
        >>> to_snake_case("photoURL")
        'photo_url'
    """
    key = _ACRONYM_BOUNDARY.sub(r"\1_\2", key)
    return _CAMEL_BOUNDARY.sub(r"\1_\2", key).lower()


def canonical_key(key: str, overrides: Mapping[str, str]) -> str:
    """Retourne la clé canonique d'une clé source selon la table de renommage."""
    if key in overrides:
        return overrides[key]
    snake = to_snake_case(key)
    return overrides.get(snake, snake)


def rename_keys(raw: Mapping[str, Any], overrides: Mapping[str, str]) -> dict[str, Any]:
    """
    Renomme les clés d'un dictionnaire selon les règles canoniques.

    En cas de collision (deux clés sources vers une même clé canonique),
    la clé source déjà canonique l'emporte, sinon le premier alias rencontré.

    Args:
        raw: Enregistrement brut (non modifié)
        overrides: Table de renommage (source → canonique)

    Returns:
        Nouveau dictionnaire à clés canoniques
    """
    result: dict[str, Any] = {}
    exact: set[str] = set()
    for key, value in raw.items():
        target = canonical_key(key, overrides)
        if target in result:
            if target in exact or key != target:
                logger.debug(f"Alias '{key}' ignoré: '{target}' déjà renseigné")
                continue
        result[target] = value
        if key == target:
            exact.add(target)
    return result


def normalize(entity_kind: Any, raw_record: Mapping[str, Any]) -> dict[str, Any]:
    """
    Normalise un enregistrement brut vers la forme canonique de son entité.

    Args:
        entity_kind: Type d'entité (EntityKind ou son nom)
        raw_record: Enregistrement brut (camelCase, snake_case ou mélange)

    Returns:
        Enregistrement à clés canoniques snake_case

    Raises:
        UnknownEntityKindError: Si le type d'entité est inconnu

    Example:
        >>> normalize("household", {"householdId": "h1", "addressLine1": "123 Main St"})
        {'household_id': 'h1', 'address_line1': '123 Main St'}
    """
    return rename_keys(raw_record, get_spec(entity_kind).overrides)


def normalize_filters(entity_kind: Any, filters: Mapping[str, Any] | None) -> dict[str, Any]:
    """Normalise les clés d'un filtre de liste (limit, offset et search sont conservées)."""
    if not filters:
        return {}
    overrides = get_spec(entity_kind).overrides
    return {
        key if key in RESERVED_FILTER_KEYS else canonical_key(key, overrides): value
        for key, value in filters.items()
    }


# Renommages propres au formulaire d'inscription d'un foyer
BUNDLE_OVERRIDES = {
    "emergencyContact": "emergency_contact",
    "emergency": "emergency_contact",
}
BUNDLE_CONSENT_OVERRIDES = {
    "photoRelease": "photo_release",
    "customConsents": "custom_consents",
}
BUNDLE_CHILD_EXTRA_OVERRIDES = {
    "ministrySelections": "ministry_selections",
    "customData": "custom_data",
}
