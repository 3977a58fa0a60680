"""
Tests para la bitácora de auditoría

- Apertura, movimientos y cierre dejan su entrada
- Los errores de negocio (no de validación) se auditan como ERROR
- Una falla de auditoría no afecta la operación y deja un WARNING
- Las entradas no se pueden modificar ni borrar
"""

import logging
from uuid import uuid4

import pytest

from app.conftest import LOCATION
from app.modules.audit.models import AuditEntry, AuditEventType
from app.modules.audit.service import AuditRecorder
from app.modules.till.exceptions import AlreadyClosedError, ImmutableRecordError, InvalidStateError, ValidationError
from app.modules.till.ledger import MovementLedger
from app.modules.till.models import MovementKind, SessionStatus
from app.modules.till.services import SessionManager


ACTOR = uuid4()


def _failing_factory():
    raise RuntimeError("audit store offline")


class TestAuditTrail:

    def test_lifecycle_events_are_recorded_in_order(self, db):
        manager = SessionManager(db)
        session = manager.open(LOCATION, ACTOR, 10000)
        MovementLedger(db, audit=manager.audit).record(session.id, MovementKind.DEPOSIT, 500, "troco", ACTOR)
        manager.close(session.id, ACTOR, 10500)

        entries = manager.audit.list_for_session(session.id)

        assert [e.event_type for e in entries] == [
            AuditEventType.OPEN, AuditEventType.MOVEMENT, AuditEventType.CLOSE
        ]
        assert all(e.actor_id == ACTOR for e in entries)
        assert all(e.location_id == LOCATION for e in entries)
        close_payload = entries[-1].payload_snapshot
        assert close_payload["expected_close_amount"] == 10500
        assert close_payload["variance"] == 0
        assert entries[1].payload_snapshot["kind"] == "DEPOSIT"

    def test_business_errors_are_audited(self, db):
        manager = SessionManager(db)
        session = manager.open(LOCATION, ACTOR, 10000)
        manager.close(session.id, ACTOR, 10000)

        with pytest.raises(AlreadyClosedError):
            manager.close(session.id, ACTOR, 10000)
        with pytest.raises(InvalidStateError):
            MovementLedger(db, audit=manager.audit).record(
                session.id, MovementKind.SALE_SETTLEMENT, 100, None, ACTOR
            )

        errors = [e for e in manager.audit.list_for_session(session.id) if e.event_type == AuditEventType.ERROR]
        assert [e.payload_snapshot["code"] for e in errors] == ["SESSION_ALREADY_CLOSED", "INVALID_SESSION_STATE"]
        assert errors[0].payload_snapshot["operation"] == "close_session"
        assert errors[1].payload_snapshot["operation"] == "record_movement"

    def test_validation_errors_are_not_audited(self, db):
        manager = SessionManager(db)
        session = manager.open(LOCATION, ACTOR, 10000)

        with pytest.raises(ValidationError):
            manager.close(session.id, ACTOR, -1)

        entries = manager.audit.list_for_session(session.id)
        assert [e.event_type for e in entries] == [AuditEventType.OPEN]

    def test_audit_failure_does_not_break_business(self, db, caplog):
        manager = SessionManager(db, audit=AuditRecorder(_failing_factory))

        with caplog.at_level(logging.WARNING, logger="app.modules.audit"):
            session = manager.open(LOCATION, ACTOR, 10000)
            result = manager.close(session.id, ACTOR, 9000)

        assert result.variance == -1000
        assert manager.get(session.id).status == SessionStatus.CLOSED
        warnings = [r for r in caplog.records if r.name == "app.modules.audit"]
        assert len(warnings) == 2
        assert all(r.levelno == logging.WARNING for r in warnings)
        assert all(r.getMessage().startswith("audit_write_failed") for r in warnings)
        assert db.query(AuditEntry).count() == 0
        db.commit()

    def test_entries_are_append_only(self, db):
        manager = SessionManager(db)
        session = manager.open(LOCATION, ACTOR, 10000)
        entry = db.query(AuditEntry).filter(AuditEntry.session_id == session.id).one()

        entry.payload_snapshot = {"tampered": True}
        with pytest.raises(ImmutableRecordError):
            db.flush()
        db.rollback()

        db.delete(db.get(AuditEntry, entry.id))
        with pytest.raises(ImmutableRecordError):
            db.flush()
        db.rollback()
