"""Schémas Pydantic pour les ministères, les responsables et les inscriptions aux ministères."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ministry_data.schemas.utils import (
    AgeYears,
    LowercaseEmail,
    NonEmptyStr,
    OptionalPhone,
    RecordId,
)

EnrollmentType = Literal["enrolled", "expressed_interest"]
EnrollmentStatus = Literal["enrolled", "withdrawn", "expressed_interest"]
RoleType = Literal["PRIMARY", "VOLUNTEER"]


class CustomQuestion(BaseModel):
    """Question personnalisée posée lors de l'inscription à un ministère."""

    id: NonEmptyStr
    text: NonEmptyStr
    type: Literal["radio", "checkbox", "text"]
    options: list[str] | None = None


class MinistryCreate(BaseModel):
    """Schéma pour créer un ministère (programme ou activité)."""

    model_config = ConfigDict(extra="allow")

    name: NonEmptyStr
    code: str | None = Field(None, max_length=50)
    enrollment_type: EnrollmentType = "enrolled"
    min_age: AgeYears | None = None
    max_age: AgeYears | None = None
    min_grade: str | None = None
    max_grade: str | None = None
    open_at: datetime | None = None
    close_at: datetime | None = None
    data_profile: Literal["Basic", "SafetyAware"] = "Basic"
    description: str | None = None
    details: str | None = None
    custom_questions: list[CustomQuestion] = Field(default_factory=list)
    optional_consent_text: str | None = None
    communicate_later: bool = False
    is_active: bool = True

    @model_validator(mode="after")
    def validate_ranges(self) -> "MinistryCreate":
        """Valide la cohérence des bornes d'âge et de la fenêtre d'inscription."""
        if self.min_age is not None and self.max_age is not None and self.min_age > self.max_age:
            raise ValueError("min_age doit être inférieur ou égal à max_age")
        if self.open_at and self.close_at and self.open_at > self.close_at:
            raise ValueError("open_at doit précéder close_at")
        return self


class MinistryUpdate(MinistryCreate):
    name: NonEmptyStr | None = None


class MinistryEnrollmentCreate(BaseModel):
    """Schéma pour inscrire un enfant à un ministère pour un cycle."""

    model_config = ConfigDict(extra="allow")

    child_id: RecordId
    cycle_id: RecordId
    ministry_id: RecordId
    status: EnrollmentStatus = "enrolled"
    custom_fields: dict[str, Any] | None = None
    notes: str | None = None


class MinistryEnrollmentUpdate(MinistryEnrollmentCreate):
    child_id: RecordId | None = None
    cycle_id: RecordId | None = None
    ministry_id: RecordId | None = None


class LeaderProfileCreate(BaseModel):
    """Schéma pour créer un profil de responsable (indépendant des comptes utilisateurs)."""

    model_config = ConfigDict(extra="allow")

    first_name: NonEmptyStr
    last_name: NonEmptyStr
    email: LowercaseEmail | None = None
    phone: OptionalPhone = None
    notes: str | None = None
    background_check_complete: bool = False
    is_active: bool = True

    @field_validator("email", mode="before")
    @classmethod
    def blank_email(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class LeaderProfileUpdate(LeaderProfileCreate):
    first_name: NonEmptyStr | None = None
    last_name: NonEmptyStr | None = None


class MinistryLeaderMembershipCreate(BaseModel):
    """Schéma pour rattacher un responsable à un ministère."""

    model_config = ConfigDict(extra="allow")

    ministry_id: RecordId
    leader_id: RecordId
    role_type: RoleType = "VOLUNTEER"
    is_active: bool = True
    notes: str | None = None

    @field_validator("role_type", mode="before")
    @classmethod
    def uppercase_role(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class MinistryLeaderMembershipUpdate(MinistryLeaderMembershipCreate):
    ministry_id: RecordId | None = None
    leader_id: RecordId | None = None
