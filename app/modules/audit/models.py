"""
Modelo de auditoría: bitácora append-only de eventos de caja.

session_id no tiene FK: los errores se auditan aunque la sesión referida
no exista (NOT_FOUND) o antes de que exista (apertura rechazada).
"""

from app.database.database import Base
from sqlalchemy import Column, String, DateTime, Enum, JSON, Uuid, Index, event
from app.common.mixins import UUIDPrimaryKeyMixin, utcnow
from app.modules.till.exceptions import ImmutableRecordError
import enum


class AuditEventType(str, enum.Enum):
    OPEN = "OPEN"
    CLOSE = "CLOSE"
    MOVEMENT = "MOVEMENT"
    ERROR = "ERROR"


class AuditEntry(Base, UUIDPrimaryKeyMixin):
    __tablename__ = "audit_entries"

    session_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    location_id = Column(String(64), nullable=True, index=True)
    event_type = Column(
        Enum(AuditEventType, name="audit_event_type", native_enum=False, length=16),
        nullable=False,
        index=True,
    )
    actor_id = Column(Uuid(as_uuid=True), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    payload_snapshot = Column(JSON, nullable=False, default=dict)  # Estado relevante al momento del evento

    __table_args__ = (
        Index("ix_audit_entries_session_timestamp", "session_id", "timestamp"),
    )


@event.listens_for(AuditEntry, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise ImmutableRecordError("AuditEntry", target.id, "UPDATE")


@event.listens_for(AuditEntry, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise ImmutableRecordError("AuditEntry", target.id, "DELETE")
