"""Schémas Pydantic canoniques (snake_case) et résultats de validation."""

from ministry_data.schemas.changes import ChangeHandler, TableChange, Unsubscribe
from ministry_data.schemas.results import (
    BundleValidationResult,
    BundleValidationSuccess,
    RegistrationBundle,
    RegistrationResult,
    ValidationFailure,
    ValidationResult,
    ValidationSuccess,
    Violation,
)

__all__ = [
    "BundleValidationResult",
    "BundleValidationSuccess",
    "ChangeHandler",
    "RegistrationBundle",
    "RegistrationResult",
    "TableChange",
    "Unsubscribe",
    "ValidationFailure",
    "ValidationResult",
    "ValidationSuccess",
    "Violation",
]
