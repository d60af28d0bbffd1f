"""Schémas Pydantic pour le foyer et ses membres.

Ce module définit les schémas canoniques (snake_case) du foyer,
des tuteurs, du contact d'urgence et des enfants. Chaque entité expose
un schéma de création (champs requis) et un schéma de mise à jour
partielle (tous les champs optionnels).

Les clés inconnues sont conservées telles quelles (extra="allow").
"""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ministry_data.schemas.utils import (
    NonEmptyStr,
    OptionalEmail,
    OptionalPhone,
    PhoneNumber,
    RecordId,
)


class HouseholdCreate(BaseModel):
    """Schéma pour créer un foyer."""

    model_config = ConfigDict(extra="allow")

    name: str | None = Field(None, max_length=255, description="Nom du foyer")
    address_line1: NonEmptyStr = Field(..., description="Adresse principale")
    address_line2: str | None = Field(None, max_length=255)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=100)
    zip: str | None = Field(None, max_length=20, description="Code postal")
    preferred_scripture_translation: str | None = Field(None, max_length=50)
    primary_email: OptionalEmail = None
    primary_phone: OptionalPhone = None
    photo_url: str | None = None


class HouseholdUpdate(HouseholdCreate):
    """Schéma de mise à jour partielle d'un foyer."""

    address_line1: NonEmptyStr | None = None


class GuardianCreate(BaseModel):
    """Schéma pour créer un tuteur.

    Un seul tuteur principal par foyer est attendu, mais cette règle
    n'est pas vérifiée à l'écriture.
    """

    model_config = ConfigDict(extra="allow")

    household_id: RecordId
    first_name: NonEmptyStr
    last_name: NonEmptyStr
    mobile_phone: PhoneNumber
    email: OptionalEmail = None
    relationship: NonEmptyStr = Field(..., examples=["Mother", "Father", "Grandparent"])
    is_primary: bool = False


class GuardianUpdate(GuardianCreate):
    household_id: RecordId | None = None
    first_name: NonEmptyStr | None = None
    last_name: NonEmptyStr | None = None
    mobile_phone: PhoneNumber | None = None
    relationship: NonEmptyStr | None = None


class EmergencyContactCreate(BaseModel):
    """Schéma pour créer le contact d'urgence d'un foyer."""

    model_config = ConfigDict(extra="allow")

    household_id: RecordId
    first_name: NonEmptyStr
    last_name: NonEmptyStr
    mobile_phone: PhoneNumber
    relationship: NonEmptyStr


class EmergencyContactUpdate(EmergencyContactCreate):
    household_id: RecordId | None = None
    first_name: NonEmptyStr | None = None
    last_name: NonEmptyStr | None = None
    mobile_phone: PhoneNumber | None = None
    relationship: NonEmptyStr | None = None


class ChildCreate(BaseModel):
    """Schéma pour créer un enfant."""

    model_config = ConfigDict(extra="allow")

    household_id: RecordId
    first_name: NonEmptyStr
    last_name: NonEmptyStr
    dob: date | None = Field(None, description="Date de naissance", examples=["2016-04-12"])
    grade: str | None = Field(None, max_length=20)
    child_mobile: OptionalPhone = None
    allergies: str | None = None
    medical_notes: str | None = None
    special_needs: bool | None = None
    special_needs_notes: str | None = None
    is_active: bool = True
    photo_url: str | None = None

    @field_validator("dob")
    @classmethod
    def validate_dob(cls, v: date | None) -> date | None:
        """Valide que la date de naissance n'est pas dans le futur."""
        if v is not None and v > date.today():
            raise ValueError("La date de naissance ne peut pas être dans le futur")
        return v


class ChildUpdate(ChildCreate):
    household_id: RecordId | None = None
    first_name: NonEmptyStr | None = None
    last_name: NonEmptyStr | None = None
