"""
RFC 9457 Problem Details pour la couche de persistance.

Toutes les erreurs de store levées par les adaptateurs héritent de
RFC9457Exception (fastapi-errors-rfc9457) afin qu'une couche API puisse
les rendre directement. Les erreurs de validation des entrées utilisateur
ne sont jamais levées: elles sont retournées sous forme de ValidationFailure.
"""

from typing import Any

from fastapi_errors_rfc9457 import ProblemDetail, RFC9457Exception

ERROR_TYPE_BASE = "https://ministry-data.app/errors"


class UnknownEntityKindError(ValueError):
    """Levée lorsqu'un type d'entité inconnu est passé à la couche canonique (erreur de programmation)."""

    def __init__(self, kind: Any):
        super().__init__(f"Unknown entity kind: {kind!r}")
        self.kind = kind


class RecordNotFoundError(RFC9457Exception):
    """
    Exception levée lors de la mise à jour d'un enregistrement inexistant.

    La lecture d'un identifiant absent retourne None et ne lève jamais cette exception.

    Attributes:
        status_code: Code HTTP 404 (Not Found)
        problem_detail: Détails de l'erreur au format RFC 9457
        table: Table concernée
        record_id: Identifiant introuvable

    Example:
        ```python
        try:
            await adapter.update(EntityKind.CHILD, "c-404", {"grade": "3"})
        except RecordNotFoundError as e:
            logger.warning(e.problem_detail.detail)
        ```
    """

    def __init__(self, table: str, record_id: str):
        super().__init__(
            status_code=404,
            title="Record Not Found",
            detail=f"No record '{record_id}' in table '{table}'",
            type=f"{ERROR_TYPE_BASE}/record-not-found",
            instance=f"/{table}/{record_id}",
        )
        self.table = table
        self.record_id = record_id


class MissingFieldsError(RFC9457Exception):
    """
    Exception levée par un adaptateur lorsque des champs requis manquent à la création.

    Args:
        table: Table cible
        fields: Liste des champs requis absents
    """

    def __init__(self, table: str, fields: list[str]):
        super().__init__(
            status_code=422,
            title="Missing Required Fields",
            detail=f"Missing required fields for '{table}': {', '.join(fields)}",
            type=f"{ERROR_TYPE_BASE}/missing-fields",
            instance=f"/{table}",
        )
        self.table = table
        self.fields = list(fields)


class ConstraintViolationError(RFC9457Exception):
    """
    Exception levée sur violation de contrainte du store (clé dupliquée, clé étrangère).

    Attributes:
        status_code: Code HTTP 409 (Conflict)
        table: Table concernée
        code: Code d'erreur du store (ex: "23505") si disponible
    """

    def __init__(self, table: str, detail: str, code: str | None = None):
        super().__init__(
            status_code=409,
            title="Constraint Violation",
            detail=detail,
            type=f"{ERROR_TYPE_BASE}/constraint-violation",
            instance=f"/{table}",
        )
        self.table = table
        self.code = code


class RemoteStoreError(RFC9457Exception):
    """
    Exception levée lorsque le store distant renvoie une réponse non-2xx non classée.

    Attributes:
        status_code: Code HTTP 502 (Bad Gateway)
        status_code_remote: Code HTTP renvoyé par le store distant
        body: Corps de la réponse (format PostgREST si disponible)
    """

    def __init__(self, table: str, status_code_remote: int, body: Any = None):
        message = body.get("message") if isinstance(body, dict) else body
        super().__init__(
            status_code=502,
            title="Remote Store Error",
            detail=f"Remote store returned {status_code_remote} for '{table}': {message}",
            type=f"{ERROR_TYPE_BASE}/remote-store",
            instance=f"/{table}",
        )
        self.table = table
        self.status_code_remote = status_code_remote
        self.body = body


class TransportFailureError(RFC9457Exception):
    """
    Exception levée lorsque le store distant est injoignable (réseau, timeout).

    Aucune nouvelle tentative automatique n'est effectuée.
    """

    def __init__(self, detail: str = "Remote store is unreachable", instance: str | None = None):
        super().__init__(
            status_code=503,
            title="Service Unavailable",
            detail=detail,
            type=f"{ERROR_TYPE_BASE}/transport-failure",
            instance=instance,
        )


class PartialTransactionError(RFC9457Exception):
    """
    Exception levée lorsqu'une transaction distante échoue après des écritures déjà validées.

    Le store distant n'offre pas d'atomicité multi-requêtes: les écritures
    listées dans `committed` restent visibles. L'erreur d'origine est chaînée
    dans `__cause__`.

    Attributes:
        status_code: Code HTTP 500 (Internal Server Error)
        committed: Opérations validées avant l'échec, ex: [("create", "households", "h1")]
    """

    def __init__(self, committed: list[tuple[str, str, str]], cause: Exception):
        super().__init__(
            status_code=500,
            title="Partial Transaction",
            detail=(
                f"Transaction failed after {len(committed)} committed write(s): "
                f"{type(cause).__name__}"
            ),
            type=f"{ERROR_TYPE_BASE}/partial-transaction",
            instance=None,
        )
        self.committed = list(committed)


__all__ = [
    "ConstraintViolationError",
    "MissingFieldsError",
    "PartialTransactionError",
    "ProblemDetail",
    "RFC9457Exception",
    "RecordNotFoundError",
    "RemoteStoreError",
    "TransportFailureError",
    "UnknownEntityKindError",
]
