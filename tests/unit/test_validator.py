"""Tests unitaires pour le validateur canonique et la validation de lot d'inscription."""

from datetime import date, timedelta

import pytest

from ministry_data.canonical.validator import validate, validate_registration_bundle
from ministry_data.core.exceptions import UnknownEntityKindError
from ministry_data.schemas.results import ValidationFailure, ValidationSuccess


def guardian(**overrides) -> dict:
    record = {
        "household_id": "h1",
        "first_name": "Jane",
        "last_name": "Smith",
        "mobile_phone": "(555) 123-4567",
        "relationship": "Mother",
    }
    record.update(overrides)
    return record


class TestValidate:
    """Tests pour validate()."""

    def test_valid_guardian(self):
        """Test qu'un tuteur complet est valide avec les valeurs par défaut."""
        result = validate("guardian", guardian())

        assert isinstance(result, ValidationSuccess)
        assert result.ok is True
        assert result.record["is_primary"] is False
        assert result.record["email"] is None

    def test_missing_mobile_phone(self):
        """Test qu'un tuteur sans mobile_phone produit une violation sur ce champ."""
        record = guardian()
        del record["mobile_phone"]

        result = validate("guardian", record)

        assert isinstance(result, ValidationFailure)
        assert result.ok is False
        assert result.violated_fields() == ["mobile_phone"]
        assert result.violations[0].code == "missing"
        assert result.violations[0].entity == "guardian"

    @pytest.mark.parametrize("phone", ["12345", "555-123-456a", "call me"])
    def test_invalid_phone(self, phone):
        """Test les numéros invalides (moins de 10 chiffres, caractères interdits)."""
        result = validate("guardian", guardian(mobile_phone=phone))
        assert result.ok is False
        assert "mobile_phone" in result.violated_fields()

    @pytest.mark.parametrize("phone", ["5551234567", "+1 (555) 123-4567", "555.123.4567"])
    def test_valid_phone_formats(self, phone):
        assert validate("guardian", guardian(mobile_phone=phone)).ok is True

    def test_invalid_email(self):
        result = validate("guardian", guardian(email="not-an-email"))
        assert result.ok is False
        assert result.violated_fields() == ["email"]

    def test_blank_optional_email_is_absent(self):
        """Test qu'une chaîne vide sur un email optionnel équivaut à absent."""
        result = validate("guardian", guardian(email=""))
        assert result.ok is True
        assert result.record["email"] is None

    def test_dob_in_future_rejected(self):
        tomorrow = (date.today() + timedelta(days=1)).isoformat()
        result = validate(
            "child",
            {"household_id": "h1", "first_name": "Sam", "last_name": "Lee", "dob": tomorrow},
        )
        assert result.ok is False
        assert result.violated_fields() == ["dob"]

    def test_invalid_calendar_date_rejected(self):
        result = validate(
            "child",
            {"household_id": "h1", "first_name": "Sam", "last_name": "Lee", "dob": "2016-02-30"},
        )
        assert result.ok is False

    def test_dates_serialized_as_iso_strings(self):
        result = validate(
            "registration_cycle", {"start_date": "2025-08-01", "end_date": "2026-05-31"}
        )
        assert result.ok is True
        assert result.record["start_date"] == "2025-08-01"

    def test_cycle_range_rejected(self):
        """Test qu'un cycle dont la fin précède le début est rejeté."""
        result = validate(
            "registration_cycle", {"start_date": "2025-08-01", "end_date": "2025-01-01"}
        )
        assert result.ok is False

    def test_unknown_keys_pass_through(self):
        """Test que les clés inconnues sont conservées sans validation."""
        result = validate("household", {"household_id": "h1", "address_line1": "1 Main", "legacy_code": 42})
        assert result.ok is True
        assert result.record["household_id"] == "h1"
        assert result.record["legacy_code"] == 42

    def test_legacy_consent_type_canonicalized(self):
        result = validate(
            "registration",
            {"child_id": "c1", "cycle_id": "y1", "consents": [{"type": "photoRelease"}]},
        )
        assert result.ok is True
        assert result.record["consents"][0]["type"] == "photo_release"
        assert result.record["status"] == "active"

    def test_leader_email_lowercased_and_role_uppercased(self):
        leader = validate("leader_profile", {"first_name": "A", "last_name": "B", "email": "A.B@Example.COM"})
        membership = validate("ministry_leader_membership", {"ministry_id": "m1", "leader_id": "l1", "role_type": "primary"})

        assert leader.record["email"] == "a.b@example.com"
        assert membership.record["role_type"] == "PRIMARY"

    def test_partial_returns_only_provided_fields(self):
        """Test qu'une validation partielle n'exige aucun champ et ne renvoie que les champs fournis."""
        result = validate("guardian", {"email": "new@example.com"}, partial=True)

        assert result.ok is True
        assert result.record == {"email": "new@example.com"}

    def test_partial_still_checks_formats(self):
        result = validate("guardian", {"mobile_phone": "123"}, partial=True)
        assert result.ok is False

    def test_partial_rejects_cleared_required_fields(self):
        """Test qu'un champ requis fourni à null est refusé en mode partiel."""
        result = validate("guardian", {"mobile_phone": None, "email": None}, partial=True)

        assert result.ok is False
        assert result.violated_fields() == ["mobile_phone"]
        assert result.violations[0].code == "missing"

    def test_unknown_entity_kind_raises(self):
        with pytest.raises(UnknownEntityKindError):
            validate("spaceship", {})

    def test_malformed_input_never_raises(self):
        """Test que des types inattendus produisent des violations, pas des exceptions."""
        result = validate("ministry", {"name": ["not", "a", "string"], "min_age": "old"})
        assert result.ok is False
        assert set(result.violated_fields()) == {"name", "min_age"}


class TestValidateRegistrationBundle:
    """Tests pour validate_registration_bundle()."""

    def test_valid_form(self, registration_form):
        """Test qu'un formulaire complet produit un lot canonique cohérent."""
        result = validate_registration_bundle(registration_form)

        assert result.ok is True
        bundle = result.bundle
        assert bundle.household["household_id"] == "h1"
        assert bundle.household["name"] == "Smith Family"
        assert all(g["household_id"] == "h1" for g in bundle.guardians)
        assert all(g["guardian_id"] for g in bundle.guardians)
        assert bundle.guardians[1]["mobile_phone"] == "555-987-6543"
        assert bundle.emergency_contact["household_id"] == "h1"
        assert bundle.children[0]["child_id"] == "c1"
        assert bundle.children[0]["dob"] == "2016-04-12"
        assert "ministry_selections" not in bundle.children[0]
        assert bundle.ministry_selections["c1"] == {"m-choir": True, "m-bible": True, "m-art": False}
        assert bundle.custom_data["c1"] == {"m-choir": {"shirt_size": "M"}}
        assert bundle.consents["photo_release"] is True
        assert bundle.consents["custom_consents"] == {"Field trips": True, "Newsletter": False}

    def test_household_id_generated_when_absent(self, registration_form):
        del registration_form["household"]["householdId"]

        result = validate_registration_bundle(registration_form)

        assert result.ok is True
        household_id = result.bundle.household["household_id"]
        assert household_id
        assert result.bundle.children[0]["household_id"] == household_id

    def test_household_mismatch(self, registration_form):
        """Test qu'un tuteur rattaché à un autre foyer invalide le lot."""
        registration_form["guardians"][0]["householdId"] = "h2"

        result = validate_registration_bundle(registration_form)

        assert result.ok is False
        mismatch = [v for v in result.violations if v.code == "household_mismatch"]
        assert len(mismatch) == 1
        assert mismatch[0].field == "guardians.0.household_id"
        assert mismatch[0].entity == "registration_bundle"

    def test_child_mismatch(self, registration_form):
        registration_form["children"][0]["household_id"] = "other"

        result = validate_registration_bundle(registration_form)

        assert result.ok is False
        assert "children.0.household_id" in result.violated_fields()

    def test_nested_violation_paths(self, registration_form):
        """Test que les violations des entités du lot sont préfixées par leur chemin."""
        del registration_form["guardians"][1]["phone"]

        result = validate_registration_bundle(registration_form)

        assert result.ok is False
        assert "guardians.1.mobile_phone" in result.violated_fields()

    def test_requires_guardian_and_child(self, registration_form):
        registration_form["guardians"] = []
        registration_form["children"] = []

        result = validate_registration_bundle(registration_form)

        assert result.ok is False
        assert {"guardians", "children"} <= set(result.violated_fields())

    @pytest.mark.parametrize("consent", ["liability", "photoRelease"])
    def test_required_consents(self, registration_form, consent):
        registration_form["consents"][consent] = False

        result = validate_registration_bundle(registration_form)

        assert result.ok is False
        codes = {v.code for v in result.violations}
        assert codes == {"consent_required"}

    def test_missing_emergency_contact(self, registration_form):
        del registration_form["emergencyContact"]

        result = validate_registration_bundle(registration_form)

        assert result.ok is False
        assert "emergency_contact" in result.violated_fields()

    def test_household_requires_address(self, registration_form):
        del registration_form["household"]["addressLine1"]

        result = validate_registration_bundle(registration_form)

        assert result.ok is False
        assert "household.address_line1" in result.violated_fields()

    def test_malformed_sections_are_reported_not_raised(self, registration_form):
        registration_form["guardians"] = ["not-a-guardian"]
        registration_form["consents"] = "yes"

        result = validate_registration_bundle(registration_form)

        assert result.ok is False
        fields = result.violated_fields()
        assert "guardians.0.first_name" in fields
        assert "consents.liability" in fields or "consents" in fields

    def test_non_mapping_bundle(self):
        result = validate_registration_bundle(None)

        assert result.ok is False
        assert "guardians" in result.violated_fields()
        assert "children" in result.violated_fields()

    @pytest.mark.parametrize("child_id", [None, ""])
    def test_blank_child_id_generated(self, registration_form, child_id):
        """Test qu'un identifiant d'enfant nul ou vide est généré et porte ses sélections."""
        registration_form["children"][0]["childId"] = child_id

        result = validate_registration_bundle(registration_form)

        assert result.ok is True
        generated = result.bundle.children[0]["child_id"]
        assert generated
        assert result.bundle.ministry_selections[generated]["m-choir"] is True
        assert result.bundle.custom_data[generated] == {"m-choir": {"shirt_size": "M"}}

    def test_blank_member_ids_generated(self, registration_form):
        registration_form["guardians"][0]["guardianId"] = ""
        registration_form["emergencyContact"]["contactId"] = None

        result = validate_registration_bundle(registration_form)

        assert result.ok is True
        assert result.bundle.guardians[0]["guardian_id"]
        assert result.bundle.emergency_contact["contact_id"]
