"""Résultats étiquetés de la validation canonique et de l'inscription d'un foyer.

Les erreurs de saisie ne sont jamais levées: elles sont retournées sous forme
de ValidationFailure. Le discriminant `ok` permet un traitement exhaustif.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field


class Violation(BaseModel):
    """Violation d'une règle de validation sur un champ précis."""

    entity: str = Field(..., examples=["guardian"])
    field: str = Field(..., description="Chemin pointé du champ", examples=["guardians.0.mobile_phone"])
    code: str = Field(..., examples=["missing", "household_mismatch"])
    message: str


class ValidationSuccess(BaseModel):
    ok: Literal[True] = True
    record: dict[str, Any]


class ValidationFailure(BaseModel):
    ok: Literal[False] = False
    violations: list[Violation]

    def violated_fields(self) -> list[str]:
        """Retourne la liste des champs en violation."""
        return [v.field for v in self.violations]


ValidationResult = ValidationSuccess | ValidationFailure


class RegistrationBundle(BaseModel):
    """Lot d'inscription d'un foyer, normalisé et validé.

    Tous les identifiants sont renseignés (générés si absents) et les clés
    étrangères vers le foyer sont cohérentes.
    """

    household: dict[str, Any]
    guardians: list[dict[str, Any]]
    emergency_contact: dict[str, Any]
    children: list[dict[str, Any]]
    consents: dict[str, Any]
    # Par enfant (child_id): sélections de ministères et réponses personnalisées
    ministry_selections: dict[str, dict[str, bool]] = Field(default_factory=dict)
    custom_data: dict[str, dict[str, Any]] = Field(default_factory=dict)


class BundleValidationSuccess(BaseModel):
    ok: Literal[True] = True
    bundle: RegistrationBundle


BundleValidationResult = BundleValidationSuccess | ValidationFailure


class RegistrationResult(BaseModel):
    """Résultat de la soumission d'une inscription de foyer."""

    ok: bool
    household_id: str | None = None
    guardian_ids: list[str] = Field(default_factory=list)
    contact_id: str | None = None
    child_ids: list[str] = Field(default_factory=list)
    registration_ids: list[str] = Field(default_factory=list)
    enrollment_ids: list[str] = Field(default_factory=list)
    violations: list[Violation] = Field(default_factory=list)
