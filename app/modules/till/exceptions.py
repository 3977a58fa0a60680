"""
Excepciones tipadas del módulo de caja.

Cada excepción tiene un ``code`` estable (vocabulario versionado por
``ERROR_VOCABULARY_VERSION``) que las interfaces usan para decidir qué
mostrar; el ``message`` es solo para humanos y puede cambiar.

    TillError
    +-- ValidationError          VALIDATION_ERROR         422
    +-- NotFoundError            NOT_FOUND                404
    +-- AlreadyOpenError         SESSION_ALREADY_OPEN     409
    +-- InvalidStateError        INVALID_SESSION_STATE    409
    |   +-- AlreadyClosedError   SESSION_ALREADY_CLOSED   409
    +-- ImmutableRecordError     IMMUTABLE_RECORD         409
    +-- TransientStoreError      STORE_UNAVAILABLE        503 (reintentable)
"""

from typing import Any, Dict, Optional
from uuid import UUID

ERROR_VOCABULARY_VERSION = "1"


class TillError(Exception):
    """Base de todos los errores del módulo de caja."""

    code: str = "TILL_ERROR"
    http_status: int = 400
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


class ValidationError(TillError):
    """Entrada mal formada: montos no positivos, descripción faltante, etc."""

    code = "VALIDATION_ERROR"
    http_status = 422

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, {"field": field} if field else None)


class NotFoundError(TillError):
    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = str(entity_id)
        super().__init__(
            f"{entity} no encontrada: {entity_id}",
            {"entity": entity, "id": self.entity_id},
        )


class AlreadyOpenError(TillError):
    """Ya existe una sesión abierta para la ubicación."""

    code = "SESSION_ALREADY_OPEN"
    http_status = 409

    def __init__(self, location_id: str, open_session_id: Optional[UUID] = None):
        self.location_id = location_id
        self.open_session_id = open_session_id
        details = {"location_id": location_id}
        if open_session_id:
            details["open_session_id"] = str(open_session_id)
        super().__init__(
            f"Ya existe una caja abierta en '{location_id}'. Ciérrela antes de abrir otra.",
            details,
        )


class InvalidStateError(TillError):
    """La sesión no está en el estado que la operación requiere."""

    code = "INVALID_SESSION_STATE"
    http_status = 409

    def __init__(self, session_id: UUID, status: str, message: Optional[str] = None):
        self.session_id = session_id
        self.status = status
        super().__init__(
            message or f"La caja {session_id} está {status.lower()} y no admite la operación",
            {"session_id": str(session_id), "status": status},
        )


class AlreadyClosedError(InvalidStateError):
    """Cierre repetido: el resultado guardado se consulta, nunca se recalcula."""

    code = "SESSION_ALREADY_CLOSED"

    def __init__(self, session_id: UUID):
        super().__init__(session_id, "CLOSED", f"La caja {session_id} ya está cerrada")


class TransientStoreError(TillError):
    """Timeout o falla de conexión con la base; seguro de reintentar."""

    code = "STORE_UNAVAILABLE"
    http_status = 503
    retryable = True

    def __init__(self, operation: str, reason: str = ""):
        self.operation = operation
        super().__init__(
            "Base de datos no disponible temporalmente, intente nuevamente",
            {"operation": operation, "reason": reason} if reason else {"operation": operation},
        )


class ImmutableRecordError(TillError):
    """Intento de editar o borrar un registro congelado (caja cerrada, movimiento, auditoría)."""

    code = "IMMUTABLE_RECORD"
    http_status = 409

    def __init__(self, entity: str, entity_id: Any, operation: str):
        super().__init__(
            f"{entity} {entity_id} es inmutable ({operation} rechazado)",
            {"entity": entity, "id": str(entity_id), "operation": operation},
        )
