"""Schémas Pydantic pour les cycles d'inscription, inscriptions et consentements."""

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ministry_data.schemas.utils import NonEmptyStr, RecordId

ConsentType = Literal["liability", "photo_release", "custom"]
RegistrationStatus = Literal["active", "pending", "inactive"]

# Valeurs historiques encore présentes dans certaines données clientes
LEGACY_CONSENT_TYPES = {"photoRelease": "photo_release"}


class RegistrationCycleCreate(BaseModel):
    """Schéma pour créer un cycle d'inscription."""

    model_config = ConfigDict(extra="allow")

    name: str | None = Field(None, max_length=255, examples=["Fall 2025"])
    start_date: date
    end_date: date
    is_active: bool = False

    @model_validator(mode="after")
    def validate_range(self) -> "RegistrationCycleCreate":
        """Valide que la date de fin n'est pas antérieure à la date de début."""
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date doit être postérieure ou égale à start_date")
        return self


class RegistrationCycleUpdate(RegistrationCycleCreate):
    start_date: date | None = None
    end_date: date | None = None


class Consent(BaseModel):
    """Consentement signé lors d'une inscription."""

    model_config = ConfigDict(extra="allow")

    type: ConsentType
    text: str | None = None
    accepted_at: datetime | None = None
    signer_id: str | None = None
    signer_name: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def canonical_type(cls, v: Any) -> Any:
        """Convertit les anciens types de consentement vers leur forme canonique."""
        return LEGACY_CONSENT_TYPES.get(v, v) if isinstance(v, str) else v


class RegistrationCreate(BaseModel):
    """Schéma pour créer l'inscription d'un enfant à un cycle."""

    model_config = ConfigDict(extra="allow")

    child_id: RecordId
    cycle_id: RecordId
    status: RegistrationStatus = "active"
    pre_registered_sunday_school: bool = True
    consents: list[Consent] = Field(default_factory=list)
    submitted_via: Literal["web", "import"] = "web"
    submitted_at: datetime | None = None


class RegistrationUpdate(RegistrationCreate):
    child_id: RecordId | None = None
    cycle_id: RecordId | None = None


class RegistrationConsents(BaseModel):
    """Consentements saisis dans un formulaire d'inscription de foyer.

    Les consentements liability et photo_release doivent être acceptés;
    cette règle est vérifiée par le validateur de lot.
    """

    model_config = ConfigDict(extra="allow")

    liability: bool = False
    photo_release: bool = False
    custom_consents: dict[str, bool] = Field(default_factory=dict)


class BundleChildExtras(BaseModel):
    """Sélections de ministères propres à un enfant du formulaire (valeurs opaques)."""

    ministry_selections: dict[str, bool] = Field(default_factory=dict)
    custom_data: dict[str, Any] = Field(default_factory=dict)
