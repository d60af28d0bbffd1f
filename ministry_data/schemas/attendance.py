"""Schémas Pydantic pour les événements, le pointage (check-in/out) et les incidents."""

import datetime as dt
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from ministry_data.schemas.utils import LocalTime, NonEmptyStr, RecordId


class Timeslot(BaseModel):
    id: NonEmptyStr
    start_local: LocalTime
    end_local: LocalTime


class EventCreate(BaseModel):
    """Schéma pour créer un événement (ex: culte du dimanche) et ses créneaux."""

    model_config = ConfigDict(extra="allow")

    name: NonEmptyStr
    location_label: str | None = None
    timeslots: list[Timeslot] = Field(default_factory=list)


class EventUpdate(EventCreate):
    name: NonEmptyStr | None = None


class AttendanceCreate(BaseModel):
    """Schéma pour enregistrer la présence d'un enfant à un événement."""

    model_config = ConfigDict(extra="allow")

    event_id: RecordId
    child_id: RecordId
    date: dt.date
    timeslot_id: str | None = None
    check_in_at: dt.datetime | None = None
    checked_in_by: str | None = None
    check_out_at: dt.datetime | None = None
    checked_out_by: str | None = None
    picked_up_by: str | None = None
    pickup_method: Literal["name_last4", "PIN", "other"] | None = None
    notes: str | None = None
    first_time_flag: bool = False


class AttendanceUpdate(AttendanceCreate):
    event_id: RecordId | None = None
    child_id: RecordId | None = None
    date: dt.date | None = None


class IncidentCreate(BaseModel):
    """Schéma pour déclarer un incident concernant un enfant."""

    model_config = ConfigDict(extra="allow")

    child_id: RecordId
    child_name: str | None = None
    event_id: str | None = None
    description: NonEmptyStr
    severity: Literal["low", "medium", "high"]
    leader_id: RecordId
    timestamp: dt.datetime | None = None
    admin_acknowledged_at: dt.datetime | None = None


class IncidentUpdate(IncidentCreate):
    child_id: RecordId | None = None
    description: NonEmptyStr | None = None
    severity: Literal["low", "medium", "high"] | None = None
    leader_id: RecordId | None = None
