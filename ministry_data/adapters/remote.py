"""Adaptateur distant: store relationnel hébergé exposé par une API REST compatible PostgREST.

Une requête HTTP par opération CRUD. Le store n'offre pas de transaction
multi-requêtes: `transaction` exécute l'unité de travail séquentiellement et
signale un échec partiel (PartialTransactionError) sans rien annuler.
Aucune nouvelle tentative automatique n'est effectuée.
"""

import logging
import re
from collections.abc import Awaitable, Callable, Iterable, Mapping
from contextvars import ContextVar
from typing import Any, TypeVar

import httpx
from opentelemetry import trace

from ministry_data.adapters.base import DatabaseAdapter, split_filters
from ministry_data.adapters.realtime import RedisChangeStream
from ministry_data.canonical.entities import EntityKind, EntitySpec, get_spec, get_table_spec
from ministry_data.core.config import settings
from ministry_data.core.exceptions import (
    ConstraintViolationError,
    PartialTransactionError,
    RecordNotFoundError,
    RemoteStoreError,
    TransportFailureError,
)
from ministry_data.schemas.changes import ChangeHandler, Unsubscribe

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")

# Codes PostgreSQL relayés par PostgREST: unicité, clé étrangère
CONSTRAINT_CODES = {"23505", "23503"}

# Caractères réservés de la syntaxe de filtre PostgREST
_RESERVED_SEARCH_CHARS = re.compile(r"[,()*\\:\"]")


def format_filter_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_query(spec: EntitySpec, filters: Mapping[str, Any] | None) -> list[tuple[str, str]]:
    """
    Construit les paramètres de requête PostgREST d'une liste.

    Example:
        >>> build_query(get_spec("child"), {"household_id": "h1", "limit": 10})
        [('household_id', 'eq.h1'), ('order', 'child_id.asc'), ('limit', '10')]
    """
    equality, limit, offset, search = split_filters(filters)
    params: list[tuple[str, str]] = []
    for key, value in equality.items():
        if value is None:
            params.append((key, "is.null"))
        elif isinstance(value, list | tuple | set | frozenset):
            items = ",".join(f'"{format_filter_value(v)}"' for v in value)
            params.append((key, f"in.({items})"))
        else:
            params.append((key, f"eq.{format_filter_value(value)}"))

    if search and spec.search_fields:
        term = _RESERVED_SEARCH_CHARS.sub(" ", str(search)).strip()
        if term:
            clauses = ",".join(f"{name}.ilike.*{term}*" for name in spec.search_fields)
            params.append(("or", f"({clauses})"))

    params.append(("order", f"{spec.id_field}.asc"))
    if limit is not None:
        params.append(("limit", str(limit)))
    if offset:
        params.append(("offset", str(offset)))
    return params


class RemoteAdapter(DatabaseAdapter):
    """
    Store distant PostgREST (httpx async) avec flux de changements Redis.

    Example:
        ```python
        adapter = RemoteAdapter("https://db.example.org/rest/v1", api_key="...")
        household = await adapter.get(EntityKind.HOUSEHOLD, "h1")
        await adapter.close()
        ```
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        tables_without_updated_at: Iterable[str] | None = None,
        change_stream: RedisChangeStream | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(
            settings.REMOTE_TABLES_WITHOUT_UPDATED_AT
            if tables_without_updated_at is None
            else tables_without_updated_at
        )
        self.base_url = (base_url or settings.REMOTE_REST_URL or "").rstrip("/")
        self.api_key = api_key or settings.REMOTE_API_KEY or ""
        self.timeout = timeout or settings.REMOTE_TIMEOUT
        self.change_stream = change_stream
        self._client = client
        self._committed: ContextVar[list[tuple[str, str, str]] | None] = ContextVar(
            f"remote_tx_{id(self)}", default=None
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={
                    "apikey": self.api_key,
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        if self.change_stream is not None:
            await self.change_stream.close()
        logger.info("Adaptateur distant fermé")

    def _handle_error_response(self, table: str, response: httpx.Response, span) -> None:
        """Convertit une réponse non-2xx en exception du store."""
        try:
            body = response.json()
        except ValueError:
            body = response.text
        code = body.get("code") if isinstance(body, dict) else None
        message = body.get("message") if isinstance(body, dict) else body

        span.set_attribute("http.status_code", response.status_code)
        if response.status_code == 409 or code in CONSTRAINT_CODES:
            error = ConstraintViolationError(table, f"{message}", code=code)
        else:
            error = RemoteStoreError(table, response.status_code, body)
        span.record_exception(error)
        raise error

    async def _request(
        self,
        method: str,
        table: str,
        operation: str,
        record_id: str | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        with tracer.start_as_current_span(f"remote_{operation}") as span:
            span.set_attribute("db.table", table)
            span.set_attribute("db.operation", operation)
            if record_id is not None:
                span.set_attribute("entity.id", record_id)

            try:
                client = await self._get_client()
                response = await client.request(method, f"/{table}", **kwargs)
            except httpx.TransportError as e:
                span.record_exception(e)
                raise TransportFailureError(
                    detail=f"Remote store unreachable during {operation} on '{table}': {e}",
                    instance=f"/{table}",
                ) from e

            if response.is_success:
                return response
            self._handle_error_response(table, response, span)

    def _record_write(self, operation: str, table: str, record_id: str) -> None:
        committed = self._committed.get()
        if committed is not None:
            committed.append((operation, table, record_id))

    async def transaction(self, work: Callable[[], Awaitable[T]]) -> T:
        if self._committed.get() is not None:
            return await work()

        committed: list[tuple[str, str, str]] = []
        token = self._committed.set(committed)
        try:
            return await work()
        except Exception as e:
            if committed:
                logger.error(
                    f"Transaction distante interrompue après {len(committed)} écriture(s) validée(s): {e}"
                )
                raise PartialTransactionError(committed, e) from e
            raise
        finally:
            self._committed.reset(token)

    async def get(self, kind: EntityKind | str, record_id: str) -> dict[str, Any] | None:
        spec = get_spec(kind)
        response = await self._request(
            "GET",
            spec.table,
            "get",
            record_id,
            params={spec.id_field: f"eq.{record_id}", "select": "*"},
        )
        rows = response.json()
        return rows[0] if rows else None

    async def create(self, kind: EntityKind | str, data: Mapping[str, Any]) -> dict[str, Any]:
        spec = get_spec(kind)
        record = self.prepare_create(spec, data)
        record_id = record[spec.id_field]
        response = await self._request(
            "POST",
            spec.table,
            "create",
            record_id,
            json=record,
            headers={"Prefer": "return=representation"},
        )
        self._record_write("create", spec.table, record_id)
        rows = response.json() if response.content else []
        logger.debug(f"Créé {spec.table}/{record_id}")
        return rows[0] if rows else record

    async def update(
        self, kind: EntityKind | str, record_id: str, patch: Mapping[str, Any]
    ) -> dict[str, Any]:
        spec = get_spec(kind)
        response = await self._request(
            "PATCH",
            spec.table,
            "update",
            record_id,
            params={spec.id_field: f"eq.{record_id}"},
            json=self.prepare_update(spec, patch),
            headers={"Prefer": "return=representation"},
        )
        rows = response.json() if response.content else []
        if not rows:
            raise RecordNotFoundError(spec.table, record_id)
        self._record_write("update", spec.table, record_id)
        logger.debug(f"Mis à jour {spec.table}/{record_id}")
        return rows[0]

    async def delete(self, kind: EntityKind | str, record_id: str) -> None:
        spec = get_spec(kind)
        await self._request(
            "DELETE",
            spec.table,
            "delete",
            record_id,
            params={spec.id_field: f"eq.{record_id}"},
        )
        self._record_write("delete", spec.table, record_id)
        logger.debug(f"Supprimé {spec.table}/{record_id}")

    async def subscribe_to_table(self, table: str, handler: ChangeHandler) -> Unsubscribe:
        get_table_spec(table)
        if self.change_stream is None:
            self.change_stream = RedisChangeStream()
        return await self.change_stream.subscribe(table, handler)

    async def list(
        self, kind: EntityKind | str, filters: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        spec = get_spec(kind)
        response = await self._request("GET", spec.table, "list", params=build_query(spec, filters))
        return response.json()
