"""Registre des entités canoniques.

Chaque type d'entité (EntityKind) est décrit par un EntitySpec: table,
clé primaire, schémas de création et de mise à jour, champs requis,
index locaux, champs uniques, champs de recherche textuelle, capacité
updated_at et table de renommage consommée par le normaliseur.

Les adaptateurs et le normaliseur ne connaissent les entités qu'au
travers de ce registre.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel

from ministry_data.core.exceptions import UnknownEntityKindError
from ministry_data.schemas.attendance import (
    AttendanceCreate,
    AttendanceUpdate,
    EventCreate,
    EventUpdate,
    IncidentCreate,
    IncidentUpdate,
)
from ministry_data.schemas.draft import FormDraftCreate, FormDraftUpdate
from ministry_data.schemas.household import (
    ChildCreate,
    ChildUpdate,
    EmergencyContactCreate,
    EmergencyContactUpdate,
    GuardianCreate,
    GuardianUpdate,
    HouseholdCreate,
    HouseholdUpdate,
)
from ministry_data.schemas.ministry import (
    LeaderProfileCreate,
    LeaderProfileUpdate,
    MinistryCreate,
    MinistryEnrollmentCreate,
    MinistryEnrollmentUpdate,
    MinistryLeaderMembershipCreate,
    MinistryLeaderMembershipUpdate,
    MinistryUpdate,
)
from ministry_data.schemas.registration import (
    RegistrationCreate,
    RegistrationCycleCreate,
    RegistrationCycleUpdate,
    RegistrationUpdate,
)


class EntityKind(str, Enum):
    HOUSEHOLD = "household"
    GUARDIAN = "guardian"
    EMERGENCY_CONTACT = "emergency_contact"
    CHILD = "child"
    REGISTRATION_CYCLE = "registration_cycle"
    REGISTRATION = "registration"
    MINISTRY = "ministry"
    MINISTRY_ENROLLMENT = "ministry_enrollment"
    LEADER_PROFILE = "leader_profile"
    MINISTRY_LEADER_MEMBERSHIP = "ministry_leader_membership"
    EVENT = "event"
    ATTENDANCE = "attendance"
    INCIDENT = "incident"
    FORM_DRAFT = "form_draft"


@dataclass(frozen=True)
class EntitySpec:
    kind: EntityKind
    table: str
    id_field: str
    create_schema: type[BaseModel]
    update_schema: type[BaseModel]
    required_fields: tuple[str, ...] = ()
    indexes: tuple[str, ...] = ()
    unique_fields: tuple[str, ...] = ()
    search_fields: tuple[str, ...] = ()
    has_updated_at: bool = True
    overrides: dict[str, str] = field(default_factory=dict)


ENTITY_SPECS: dict[EntityKind, EntitySpec] = {
    spec.kind: spec
    for spec in (
        EntitySpec(
            kind=EntityKind.HOUSEHOLD,
            table="households",
            id_field="household_id",
            create_schema=HouseholdCreate,
            update_schema=HouseholdUpdate,
            required_fields=("address_line1",),
            indexes=("name", "city"),
            search_fields=("name", "address_line1", "city"),
            overrides={
                "householdName": "name",
                "household_name": "name",
                "preferredTranslation": "preferred_scripture_translation",
                "scriptureTranslation": "preferred_scripture_translation",
                "zipCode": "zip",
                "postalCode": "zip",
                "email": "primary_email",
                "phone": "primary_phone",
            },
        ),
        EntitySpec(
            kind=EntityKind.GUARDIAN,
            table="guardians",
            id_field="guardian_id",
            create_schema=GuardianCreate,
            update_schema=GuardianUpdate,
            required_fields=("household_id", "first_name", "last_name", "mobile_phone", "relationship"),
            indexes=("household_id", "is_primary"),
            search_fields=("first_name", "last_name", "email"),
            overrides={
                "phone": "mobile_phone",
                "phoneNumber": "mobile_phone",
                "mobile": "mobile_phone",
                "primary": "is_primary",
            },
        ),
        EntitySpec(
            kind=EntityKind.EMERGENCY_CONTACT,
            table="emergency_contacts",
            id_field="contact_id",
            create_schema=EmergencyContactCreate,
            update_schema=EmergencyContactUpdate,
            required_fields=("household_id", "first_name", "last_name", "mobile_phone", "relationship"),
            indexes=("household_id",),
            search_fields=("first_name", "last_name"),
            overrides={
                "phone": "mobile_phone",
                "phoneNumber": "mobile_phone",
                "mobile": "mobile_phone",
            },
        ),
        EntitySpec(
            kind=EntityKind.CHILD,
            table="children",
            id_field="child_id",
            create_schema=ChildCreate,
            update_schema=ChildUpdate,
            required_fields=("household_id", "first_name", "last_name"),
            indexes=("household_id", "is_active"),
            search_fields=("first_name", "last_name"),
            overrides={
                "birthDate": "dob",
                "dateOfBirth": "dob",
                "birth_date": "dob",
                "date_of_birth": "dob",
                "mobilePhone": "child_mobile",
                "mobile_phone": "child_mobile",
                "notes": "medical_notes",
            },
        ),
        EntitySpec(
            kind=EntityKind.REGISTRATION_CYCLE,
            table="registration_cycles",
            id_field="cycle_id",
            create_schema=RegistrationCycleCreate,
            update_schema=RegistrationCycleUpdate,
            required_fields=("start_date", "end_date"),
            indexes=("is_active",),
            search_fields=("name",),
        ),
        EntitySpec(
            kind=EntityKind.REGISTRATION,
            table="registrations",
            id_field="registration_id",
            create_schema=RegistrationCreate,
            update_schema=RegistrationUpdate,
            required_fields=("child_id", "cycle_id"),
            indexes=("child_id", "cycle_id", "status"),
            has_updated_at=False,
        ),
        EntitySpec(
            kind=EntityKind.MINISTRY,
            table="ministries",
            id_field="ministry_id",
            create_schema=MinistryCreate,
            update_schema=MinistryUpdate,
            required_fields=("name",),
            indexes=("code", "is_active"),
            search_fields=("name", "code"),
            overrides={
                "type": "enrollment_type",
                "openAt": "open_at",
                "opensAt": "open_at",
                "closeAt": "close_at",
                "closesAt": "close_at",
                "consentText": "optional_consent_text",
            },
        ),
        EntitySpec(
            kind=EntityKind.MINISTRY_ENROLLMENT,
            table="ministry_enrollments",
            id_field="enrollment_id",
            create_schema=MinistryEnrollmentCreate,
            update_schema=MinistryEnrollmentUpdate,
            required_fields=("child_id", "cycle_id", "ministry_id"),
            indexes=("child_id", "cycle_id", "ministry_id", "status"),
            has_updated_at=False,
            overrides={
                "customData": "custom_fields",
                "custom_data": "custom_fields",
            },
        ),
        EntitySpec(
            kind=EntityKind.LEADER_PROFILE,
            table="leader_profiles",
            id_field="leader_id",
            create_schema=LeaderProfileCreate,
            update_schema=LeaderProfileUpdate,
            required_fields=("first_name", "last_name"),
            indexes=("is_active",),
            unique_fields=("email",),
            search_fields=("first_name", "last_name", "email"),
            overrides={
                "phoneNumber": "phone",
                "mobilePhone": "phone",
            },
        ),
        EntitySpec(
            kind=EntityKind.MINISTRY_LEADER_MEMBERSHIP,
            table="ministry_leader_memberships",
            id_field="membership_id",
            create_schema=MinistryLeaderMembershipCreate,
            update_schema=MinistryLeaderMembershipUpdate,
            required_fields=("ministry_id", "leader_id"),
            indexes=("ministry_id", "leader_id", "is_active"),
            overrides={"role": "role_type"},
        ),
        EntitySpec(
            kind=EntityKind.EVENT,
            table="events",
            id_field="event_id",
            create_schema=EventCreate,
            update_schema=EventUpdate,
            required_fields=("name",),
            search_fields=("name", "location_label"),
        ),
        EntitySpec(
            kind=EntityKind.ATTENDANCE,
            table="attendance",
            id_field="attendance_id",
            create_schema=AttendanceCreate,
            update_schema=AttendanceUpdate,
            required_fields=("event_id", "child_id", "date"),
            indexes=("event_id", "child_id", "date"),
            has_updated_at=False,
            overrides={"firstTime": "first_time_flag"},
        ),
        EntitySpec(
            kind=EntityKind.INCIDENT,
            table="incidents",
            id_field="incident_id",
            create_schema=IncidentCreate,
            update_schema=IncidentUpdate,
            required_fields=("child_id", "description", "severity", "leader_id"),
            indexes=("child_id", "event_id", "severity"),
            search_fields=("child_name", "description"),
            overrides={"acknowledgedAt": "admin_acknowledged_at"},
        ),
        EntitySpec(
            kind=EntityKind.FORM_DRAFT,
            table="form_drafts",
            id_field="draft_id",
            create_schema=FormDraftCreate,
            update_schema=FormDraftUpdate,
            required_fields=("form_name", "user_id"),
            indexes=("form_name", "user_id"),
        ),
    )
}

TABLE_SPECS: dict[str, EntitySpec] = {spec.table: spec for spec in ENTITY_SPECS.values()}


def resolve_kind(kind: Any) -> EntityKind:
    """Convertit une valeur (enum, nom d'entité) en EntityKind.

    Raises:
        UnknownEntityKindError: Si la valeur ne désigne aucune entité connue
    """
    if isinstance(kind, EntityKind):
        return kind
    try:
        return EntityKind(kind)
    except ValueError:
        raise UnknownEntityKindError(kind) from None


def get_spec(kind: Any) -> EntitySpec:
    """Retourne la description d'une entité."""
    return ENTITY_SPECS[resolve_kind(kind)]


def get_table_spec(table: str) -> EntitySpec:
    """Retourne la description d'une entité à partir du nom de sa table."""
    try:
        return TABLE_SPECS[table]
    except KeyError:
        raise UnknownEntityKindError(table) from None
