"""Schéma des brouillons de formulaire (sauvegarde automatique côté client)."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ministry_data.schemas.utils import NonEmptyStr


def draft_id(form_name: str, user_id: str) -> str:
    """Construit l'identifiant d'un brouillon: "<form_name>::<user_id>"."""
    return f"{form_name}::{user_id}"


class FormDraftCreate(BaseModel):
    model_config = ConfigDict(extra="allow")

    form_name: NonEmptyStr
    user_id: NonEmptyStr
    payload: Any = None
    version: int = Field(default=1, ge=1)


class FormDraftUpdate(FormDraftCreate):
    form_name: NonEmptyStr | None = None
    user_id: NonEmptyStr | None = None
