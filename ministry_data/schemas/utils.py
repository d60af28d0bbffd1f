"""Annotations Pydantic réutilisables pour validation.

Ce module centralise les types annotés pour assurer la cohérence
de la validation à travers tous les schémas canoniques.
"""

import re
from typing import Annotated, Any

from pydantic import AfterValidator, BeforeValidator, EmailStr, Field, StringConstraints

MIN_PHONE_DIGITS = 10


def blank_to_none(value: Any) -> Any:
    """Traite une chaîne vide (ou blanche) comme une valeur absente."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _require_phone_digits(value: str) -> str:
    if len(re.sub(r"\D", "", value)) < MIN_PHONE_DIGITS:
        raise ValueError(f"Le numéro doit contenir au moins {MIN_PHONE_DIGITS} chiffres")
    return value


def _lowercase(value: str) -> str:
    return value.lower()


# Chaînes avec contraintes
NonEmptyStr = Annotated[str, StringConstraints(min_length=1, strip_whitespace=True)]

# Identifiants opaques (uuid ou clé métier)
RecordId = Annotated[
    str,
    StringConstraints(min_length=1, strip_whitespace=True),
    Field(description="Identifiant opaque d'un enregistrement"),
]

# Téléphones: chiffres avec séparateurs usuels, au moins 10 chiffres
PhoneNumber = Annotated[
    str,
    StringConstraints(pattern=r"^\+?[0-9\s().-]+$", strip_whitespace=True),
    AfterValidator(_require_phone_digits),
    Field(
        description="Numéro de téléphone (séparateurs +, espace, -, ., () autorisés)",
        examples=["(555) 123-4567", "+1 555 123 4567"],
    ),
]

Email = Annotated[EmailStr, Field(description="Adresse email valide")]
LowercaseEmail = Annotated[EmailStr, AfterValidator(_lowercase)]

# Champs de contact optionnels: "" équivaut à absent
OptionalPhone = Annotated[PhoneNumber | None, BeforeValidator(blank_to_none)]
OptionalEmail = Annotated[Email | None, BeforeValidator(blank_to_none)]

AgeYears = Annotated[int, Field(ge=0, le=150, description="Âge en années")]

# Heure locale HH:MM
LocalTime = Annotated[str, StringConstraints(pattern=r"^([01]\d|2[0-3]):[0-5]\d$")]
