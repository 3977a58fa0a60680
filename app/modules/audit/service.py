"""
Bitácora de auditoría de caja.

Las escrituras son best-effort y van en su propia sesión/transacción: se
ejecutan después del commit (o rollback) de la operación de negocio, de modo
que una falla de auditoría nunca revierte ni cambia el resultado de la caja.
Las fallas se registran como WARNING ``audit_write_failed`` en el logger
``app.modules.audit``, separado de los errores de negocio.
"""

from typing import Any, Callable, Dict, List, Optional
from uuid import UUID
import json
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from app.modules.audit.models import AuditEntry, AuditEventType
from app.modules.till.exceptions import TillError

logger = logging.getLogger("app.modules.audit")


def _to_json(payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    # UUID, datetime y Decimal se guardan como texto
    return json.loads(json.dumps(payload or {}, default=str))


class AuditRecorder:
    """Escribe y lee entradas de auditoría con un session factory propio."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    @classmethod
    def bound_to(cls, db: Session) -> "AuditRecorder":
        """Recorder sobre el mismo engine que la sesión de negocio, pero en otra conexión."""
        return cls(sessionmaker(bind=db.get_bind(), autoflush=False, expire_on_commit=False))

    def record(self, event_type: AuditEventType, session_id: Optional[UUID], actor_id: UUID,
               payload_snapshot: Optional[Dict[str, Any]] = None, location_id: Optional[str] = None) -> None:
        try:
            with self.session_factory() as audit_db:
                audit_db.add(AuditEntry(
                    session_id=session_id,
                    location_id=location_id,
                    event_type=event_type,
                    actor_id=actor_id,
                    payload_snapshot=_to_json(payload_snapshot),
                ))
                audit_db.commit()
        except Exception as exc:
            logger.warning(
                f"audit_write_failed event_type={AuditEventType(event_type).value} "
                f"session_id={session_id} actor_id={actor_id} error={type(exc).__name__}: {exc}"
            )

    def record_error(self, error: TillError, operation: str, actor_id: UUID,
                     session_id: Optional[UUID] = None, location_id: Optional[str] = None) -> None:
        payload = {"operation": operation, **error.to_dict()}
        self.record(AuditEventType.ERROR, session_id, actor_id, payload, location_id=location_id)

    def list_for_session(self, session_id: UUID) -> List[AuditEntry]:
        with self.session_factory() as audit_db:
            stmt = (
                select(AuditEntry)
                .where(AuditEntry.session_id == session_id)
                .order_by(AuditEntry.timestamp, AuditEntry.id)
            )
            entries = list(audit_db.execute(stmt).scalars())
            audit_db.commit()
            return entries
