"""
Servicios de negocio para el módulo de caja (till)

- SessionManager: apertura, cierre con arqueo, estado e historial de cajas

Cada operación de escritura es una sola transacción (store_transaction):
commit completo o rollback completo. La auditoría se escribe después, en su
propia transacción, y nunca altera el resultado de la operación.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from app.common.mixins import utcnow
from app.common.money import fits_minor_units
from app.common.validators import clean_text, normalize_location_id
from app.core.config import settings
from app.modules.audit.models import AuditEventType
from app.modules.audit.service import AuditRecorder
from app.modules.auth.service import UserDirectory
from app.modules.till.exceptions import (
    AlreadyClosedError, NotFoundError, TillError, ValidationError
)
from app.modules.till.ledger import MovementLedger
from app.modules.till.models import CashSession, SessionStatus
from app.modules.till.reconciliation import MovementTotals, ReconciliationEngine
from app.modules.till.store import SessionStore, store_transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionSummary:
    """Totales en curso de una sesión (valor actual de la caja)"""
    session: CashSession
    totals: MovementTotals
    expected_amount: int


def _require_minor_units(value, field: str) -> int:
    if value is None:
        raise ValidationError(f"{field} es obligatorio", field=field)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} debe ser un entero en centavos", field=field)
    if value < 0:
        raise ValidationError(f"{field} no puede ser negativo", field=field)
    if not fits_minor_units(value):
        raise ValidationError(f"{field} está fuera de rango", field=field)
    return value


def _require_location(location_id: str) -> str:
    try:
        return normalize_location_id(location_id or "")
    except ValueError as exc:
        raise ValidationError(str(exc), field="location_id")


class SessionManager:
    """Ciclo de vida de la caja: OPEN -> CLOSED, sin vuelta atrás"""

    def __init__(self, db: Session, audit: Optional[AuditRecorder] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.audit = audit or AuditRecorder.bound_to(db)
        self.store = SessionStore(db)
        self.ledger = MovementLedger(db, audit=self.audit)
        self.reconciliation = ReconciliationEngine()
        self.clock = clock

    def _audit_failure(self, error: TillError, operation: str, actor_id: Optional[UUID],
                       session_id: Optional[UUID] = None, location_id: Optional[str] = None) -> None:
        if actor_id is None or isinstance(error, ValidationError):
            return
        self.audit.record_error(error, operation, actor_id, session_id=session_id, location_id=location_id)

    # ===== APERTURA =====

    def open(self, location_id: str, actor_id: UUID, opening_float: int,
             notes: Optional[str] = None) -> CashSession:
        """Abrir caja. AlreadyOpenError si la ubicación ya tiene una caja abierta."""
        location_id = _require_location(location_id)
        opening_float = _require_minor_units(opening_float, "opening_float")
        notes = clean_text(notes)

        try:
            with store_transaction(self.db, "open_session"):
                cash_session = self.store.insert_open(
                    location_id, actor_id, opening_float, opened_at=self.clock(), notes=notes
                )
        except TillError as exc:
            logger.info(f"Open rejected at {location_id}: {exc.code}")
            self._audit_failure(exc, "open_session", actor_id,
                                session_id=getattr(exc, "open_session_id", None), location_id=location_id)
            raise

        logger.info(f"Cash session {cash_session.id} opened at {location_id} by {actor_id}")
        self.audit.record(
            AuditEventType.OPEN,
            cash_session.id,
            actor_id,
            {
                "opening_float": opening_float,
                "opened_at": cash_session.opened_at,
                "notes": notes,
            },
            location_id=location_id,
        )
        return cash_session

    # ===== CIERRE =====

    def close(self, session_id: UUID, actor_id: UUID, counted_close_amount: int,
              notes: Optional[str] = None, location_id: Optional[str] = None) -> CashSession:
        """
        Cerrar caja con arqueo.

        Bloquea la sesión, la pasa a CLOSED con un UPDATE condicional, lee el
        conjunto completo de movimientos, calcula la conciliación y la
        persiste, todo en una transacción. Devuelve la sesión cerrada con el
        arqueo ya guardado. Un cierre repetido se rechaza con
        AlreadyClosedError y nunca recalcula.
        """
        counted = _require_minor_units(counted_close_amount, "counted_close_amount")
        notes = clean_text(notes)

        session_location = None
        try:
            with store_transaction(self.db, "close_session"):
                cash_session = self.store.lock_for_close(session_id)
                if cash_session is None or (location_id and cash_session.location_id != location_id):
                    raise NotFoundError("Caja", session_id)
                session_location = cash_session.location_id
                if cash_session.status == SessionStatus.CLOSED:
                    raise AlreadyClosedError(session_id)

                closed_at = self.clock()
                if not self.store.flip_to_closed(session_id, actor_id, closed_at, notes):
                    raise AlreadyClosedError(session_id)

                movements = self.ledger.list_for_session(session_id)
                result = self.reconciliation.compute(cash_session, movements, counted)
                self.store.persist_reconciliation(cash_session, result)
        except TillError as exc:
            logger.info(f"Close rejected for session {session_id}: {exc.code}")
            self._audit_failure(exc, "close_session", actor_id,
                                session_id=session_id, location_id=session_location or location_id)
            raise

        if result.variance:
            logger.warning(
                f"Cash session {session_id} closed with variance {result.variance} "
                f"(expected {result.expected_close_amount}, counted {result.counted_close_amount})"
            )
        else:
            logger.info(f"Cash session {session_id} closed balanced at {result.expected_close_amount}")

        self.audit.record(
            AuditEventType.CLOSE,
            session_id,
            actor_id,
            {**result.to_dict(), "movement_count": len(movements), "closed_at": closed_at, "notes": notes},
            location_id=session_location,
        )
        return cash_session

    # ===== CONSULTAS =====

    def status(self, location_id: str) -> Optional[CashSession]:
        """Sesión OPEN de la ubicación, o None"""
        location_id = _require_location(location_id)
        with store_transaction(self.db, "session_status"):
            return self.store.current_open(location_id)

    def get(self, session_id: UUID, location_id: Optional[str] = None,
            actor_id: Optional[UUID] = None) -> CashSession:
        try:
            with store_transaction(self.db, "session_detail"):
                cash_session = self.store.get(session_id)
                if cash_session is None or (location_id and cash_session.location_id != location_id):
                    raise NotFoundError("Caja", session_id)
        except TillError as exc:
            self._audit_failure(exc, "session_detail", actor_id, session_id=session_id, location_id=location_id)
            raise
        return cash_session

    def summary(self, session_id: UUID, location_id: Optional[str] = None,
                actor_id: Optional[UUID] = None) -> SessionSummary:
        """Totales por tipo y monto esperado actual (fondo + ventas + suministros - sangrías)"""
        try:
            with store_transaction(self.db, "session_summary"):
                cash_session = self.store.get(session_id)
                if cash_session is None or (location_id and cash_session.location_id != location_id):
                    raise NotFoundError("Caja", session_id)
                totals = self.ledger.totals(session_id)
        except TillError as exc:
            self._audit_failure(exc, "session_summary", actor_id, session_id=session_id, location_id=location_id)
            raise

        return SessionSummary(
            session=cash_session,
            totals=totals,
            expected_amount=totals.expected_from(cash_session.opening_float),
        )

    def history(self, location_id: str, date_from: Optional[date] = None, date_to: Optional[date] = None,
                status: Optional[SessionStatus] = None, limit: Optional[int] = None,
                offset: int = 0) -> Dict[str, Any]:
        """
        Historial de sesiones de la ubicación, más recientes primero, con los
        nombres de quien abrió y cerró cada caja.
        """
        location_id = _require_location(location_id)
        limit = settings.DEFAULT_PAGE_SIZE if limit is None else limit
        if limit < 1 or limit > settings.MAX_PAGE_SIZE:
            raise ValidationError(f"limit debe estar entre 1 y {settings.MAX_PAGE_SIZE}", field="limit")
        if offset < 0:
            raise ValidationError("offset no puede ser negativo", field="offset")
        if date_from and date_to and date_from > date_to:
            raise ValidationError("date_from no puede ser posterior a date_to", field="date_from")
        if status is not None:
            try:
                status = SessionStatus(status)
            except ValueError:
                raise ValidationError(f"Estado inválido: {status}", field="status")

        with store_transaction(self.db, "session_history"):
            page = self.store.history(location_id, date_from, date_to, status, limit, offset)
            actor_ids = [s.opened_by for s in page["sessions"]] + [s.closed_by for s in page["sessions"]]
            page["actor_names"] = UserDirectory(self.db).resolve_names(actor_ids)
        return page
