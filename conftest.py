"""
Configuration pytest pour les tests de la couche de persistance.

Le store local utilise SQLite en mémoire (une base par test). Le store
distant est émulé par FakePostgrest, un serveur PostgREST en mémoire
branché sur httpx.MockTransport: aucun service externe n'est requis.

Usage:
    pip install -e ".[test]"
    pytest
"""

import json
import os
from typing import Any

import httpx
import pytest

# Variables d'environnement pour les tests
# Respecte les variables déjà définies (ex: dans la CI)
TEST_ENV = {
    "ENVIRONMENT": "test",
    "DEBUG": "false",
    "DATABASE_MODE": "local",
    "LOCAL_DATABASE_URL": "sqlite+aiosqlite:///:memory:",
    "REDIS_URL": "redis://localhost:6380/0",
}

# Appliquer les variables d'environnement de test (ne remplace pas si déjà définies)
for key, value in TEST_ENV.items():
    if key not in os.environ:
        os.environ[key] = value

from ministry_data.adapters.local import LocalAdapter  # noqa: E402
from ministry_data.adapters.remote import RemoteAdapter  # noqa: E402
from ministry_data.canonical.entities import TABLE_SPECS  # noqa: E402
from ministry_data.services.data_access import CanonicalDataAccess  # noqa: E402

REMOTE_BASE_URL = "http://remote.test/rest/v1"
REMOTE_TABLES_WITHOUT_UPDATED_AT = ["registrations", "ministry_enrollments", "attendance"]
CONTROL_PARAMS = {"select", "order", "limit", "offset", "or"}


def _fmt(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


class FakePostgrest:
    """
    Émulateur PostgREST en mémoire.

    Rejette (400, PGRST204) toute colonne updated_at envoyée à une table qui
    n'en possède pas, applique l'unicité de la clé primaire et des champs
    uniques (409, 23505) et conserve la liste des requêtes reçues.
    """

    def __init__(self, tables_without_updated_at: list[str] | None = None):
        self.tables: dict[str, dict[str, dict]] = {}
        self.tables_without_updated_at = set(
            REMOTE_TABLES_WITHOUT_UPDATED_AT
            if tables_without_updated_at is None
            else tables_without_updated_at
        )
        self.requests: list[httpx.Request] = []
        # (méthode, table) -> exception ou code HTTP à renvoyer
        self.failures: dict[tuple[str, str], Exception | int] = {}

    def rows(self, table: str) -> dict[str, dict]:
        return self.tables.setdefault(table, {})

    def _matches(self, row: dict, params: list[tuple[str, str]]) -> bool:
        for key, expression in params:
            if key in CONTROL_PARAMS:
                if key == "or":
                    clauses = expression.strip("()").split(",")
                    found = False
                    for clause in clauses:
                        column, _, pattern = clause.partition(".ilike.")
                        needle = pattern.strip("*").lower()
                        if needle in str(row.get(column) or "").lower():
                            found = True
                    if not found:
                        return False
                continue
            op, _, arg = expression.partition(".")
            value = row.get(key)
            if op == "eq" and _fmt(value) != arg:
                return False
            if op == "is" and arg == "null" and value is not None:
                return False
            if op == "in":
                items = [item.strip('"') for item in arg.strip("()").split(",")]
                if _fmt(value) not in items:
                    return False
        return True

    def _select(self, table: str, params: list[tuple[str, str]]) -> list[dict]:
        spec = TABLE_SPECS[table]
        rows = sorted(self.rows(table).values(), key=lambda r: r[spec.id_field])
        return [row for row in rows if self._matches(row, params)]

    def _error(self, status: int, code: str, message: str) -> httpx.Response:
        return httpx.Response(status, json={"code": code, "message": message})

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        table = request.url.path.rstrip("/").split("/")[-1]
        spec = TABLE_SPECS[table]
        params = list(request.url.params.multi_items())

        failure = self.failures.get((request.method, table))
        if isinstance(failure, Exception):
            raise failure
        if isinstance(failure, int):
            return self._error(failure, "XX000", "injected failure")

        body = json.loads(request.content) if request.content else None
        if isinstance(body, dict) and "updated_at" in body and table in self.tables_without_updated_at:
            return self._error(
                400, "PGRST204", f"Could not find the 'updated_at' column of '{table}'"
            )

        if request.method == "GET":
            rows = self._select(table, params)
            options = dict(params)
            offset = int(options.get("offset", 0))
            limit = options.get("limit")
            end = offset + int(limit) if limit is not None else None
            return httpx.Response(200, json=rows[offset:end])

        if request.method == "POST":
            store = self.rows(table)
            if body[spec.id_field] in store:
                return self._error(409, "23505", "duplicate key value violates unique constraint")
            for name in spec.unique_fields:
                if body.get(name) is not None and any(
                    row.get(name) == body[name] for row in store.values()
                ):
                    return self._error(409, "23505", f"duplicate key value for {name}")
            store[body[spec.id_field]] = dict(body)
            return httpx.Response(201, json=[dict(body)])

        if request.method == "PATCH":
            updated = []
            for row in self._select(table, params):
                row.update(body or {})
                updated.append(dict(row))
            return httpx.Response(200, json=updated)

        if request.method == "DELETE":
            for row in self._select(table, params):
                del self.rows(table)[row[spec.id_field]]
            return httpx.Response(204)

        return self._error(405, "PGRST000", "method not allowed")


# ============================================================================
# Fixtures adaptateurs
# ============================================================================


@pytest.fixture
async def local_adapter():
    """Adaptateur local sur une base SQLite en mémoire, isolée par test."""
    adapter = LocalAdapter("sqlite+aiosqlite:///:memory:")
    await adapter.open()
    yield adapter
    await adapter.close()


@pytest.fixture
def fake_postgrest() -> FakePostgrest:
    return FakePostgrest()


@pytest.fixture
async def remote_adapter(fake_postgrest):
    """Adaptateur distant branché sur l'émulateur PostgREST."""
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(fake_postgrest.handle),
        base_url=REMOTE_BASE_URL,
    )
    adapter = RemoteAdapter(
        base_url=REMOTE_BASE_URL,
        api_key="test-key",
        tables_without_updated_at=REMOTE_TABLES_WITHOUT_UPDATED_AT,
        client=client,
    )
    yield adapter
    await adapter.close()


@pytest.fixture(params=["local", "remote"])
async def any_adapter(request, local_adapter, remote_adapter):
    """Adaptateur paramétré: chaque test s'exécute sur les deux backends."""
    return local_adapter if request.param == "local" else remote_adapter


@pytest.fixture
def data_access(local_adapter) -> CanonicalDataAccess:
    return CanonicalDataAccess(local_adapter)


# ============================================================================
# Données de test
# ============================================================================


@pytest.fixture
def registration_form() -> dict:
    """Formulaire d'inscription d'un foyer tel qu'envoyé par le client (camelCase)."""
    return {
        "household": {
            "householdId": "h1",
            "householdName": "Smith Family",
            "addressLine1": "123 Main St",
            "city": "Springfield",
            "preferredScriptureTranslation": "NIV",
        },
        "guardians": [
            {
                "firstName": "Jane",
                "lastName": "Smith",
                "mobilePhone": "(555) 123-4567",
                "email": "jane@example.com",
                "relationship": "Mother",
                "isPrimary": True,
            },
            {
                "firstName": "John",
                "lastName": "Smith",
                "phone": "555-987-6543",
                "relationship": "Father",
            },
        ],
        "emergencyContact": {
            "firstName": "Ann",
            "lastName": "Jones",
            "mobilePhone": "555.222.3333",
            "relationship": "Aunt",
        },
        "children": [
            {
                "childId": "c1",
                "firstName": "Sam",
                "lastName": "Smith",
                "birthDate": "2016-04-12",
                "grade": "3",
                "allergies": "Peanuts",
                "ministrySelections": {"m-choir": True, "m-bible": True, "m-art": False},
                "customData": {"m-choir": {"shirt_size": "M"}},
            }
        ],
        "consents": {
            "liability": True,
            "photoRelease": True,
            "customConsents": {"Field trips": True, "Newsletter": False},
        },
    }
