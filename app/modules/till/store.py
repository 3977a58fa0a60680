"""
Persistencia de sesiones de caja.

Único lugar donde se hace cumplir "una caja abierta por ubicación":

- Apertura: un solo INSERT; el índice único parcial
  ``uq_cash_sessions_location_open`` rechaza la segunda fila OPEN.
  Nunca se consulta antes de insertar.
- Cierre: ``SELECT ... FOR UPDATE`` de la fila y ``UPDATE ... WHERE
  status = 'OPEN'`` condicional.
- Movimientos: ``SELECT ... FOR SHARE`` de la fila (ver ledger), que choca
  con el bloqueo del cierre.

``store_transaction`` delimita cada unidad atómica: commit al final o
rollback completo, y traduce timeouts / fallas de conexión a
``TransientStoreError``.
"""

from contextlib import contextmanager
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID, uuid4
import logging

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from app.modules.till.exceptions import AlreadyOpenError, InvalidStateError, TillError, TransientStoreError
from app.modules.till.models import CashSession, SessionStatus
from app.modules.till.reconciliation import ReconciliationResult

logger = logging.getLogger(__name__)

OPEN_SLOT_CONSTRAINT = "uq_cash_sessions_location_open"


@contextmanager
def store_transaction(db: Session, operation: str):
    """Commit al salir sin errores; rollback completo en cualquier otro caso."""
    try:
        yield
        db.commit()
    except TillError:
        db.rollback()
        raise
    except (OperationalError, PoolTimeoutError) as exc:
        db.rollback()
        logger.warning(f"Store unavailable during {operation}: {type(exc).__name__}")
        raise TransientStoreError(operation, type(exc).__name__) from exc
    except DBAPIError as exc:
        db.rollback()
        if exc.connection_invalidated:
            logger.warning(f"Connection lost during {operation}")
            raise TransientStoreError(operation, "connection_invalidated") from exc
        raise
    except Exception:
        db.rollback()
        raise


def _is_open_slot_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    # PostgreSQL nombra el índice; SQLite nombra la columna
    return OPEN_SLOT_CONSTRAINT in message or "cash_sessions.location_id" in message


def _day_bounds(date_from: Optional[date], date_to: Optional[date]) -> Tuple[Optional[datetime], Optional[datetime]]:
    start = datetime.combine(date_from, time.min, tzinfo=timezone.utc) if date_from else None
    end = datetime.combine(date_to + timedelta(days=1), time.min, tzinfo=timezone.utc) if date_to else None
    return start, end


class SessionStore:
    """Acceso a ``cash_sessions``. No hace commit: lo hace quien abre la transacción."""

    def __init__(self, db: Session):
        self.db = db

    def insert_open(self, location_id: str, actor_id: UUID, opening_float: int,
                    opened_at: datetime, notes: Optional[str] = None) -> CashSession:
        """INSERT condicional de una sesión OPEN. AlreadyOpenError si el slot está ocupado."""
        cash_session = CashSession(
            id=uuid4(),
            location_id=location_id,
            status=SessionStatus.OPEN,
            opened_by=actor_id,
            opened_at=opened_at,
            opening_float=opening_float,
            opening_notes=notes,
            created_at=opened_at,
            updated_at=opened_at,
        )
        self.db.add(cash_session)
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            if not _is_open_slot_conflict(exc):
                raise
            raise AlreadyOpenError(location_id, self.find_open_id(location_id)) from exc
        return cash_session

    def get(self, session_id: UUID) -> Optional[CashSession]:
        return self.db.get(CashSession, session_id)

    def lock_for_close(self, session_id: UUID) -> Optional[CashSession]:
        """SELECT ... FOR UPDATE: bloquea la fila hasta el fin de la transacción."""
        stmt = (
            select(CashSession)
            .where(CashSession.id == session_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def lock_for_movement(self, session_id: UUID) -> Optional[CashSession]:
        """SELECT ... FOR SHARE: varios movimientos concurrentes, ningún cierre en paralelo."""
        stmt = (
            select(CashSession)
            .where(CashSession.id == session_id)
            .with_for_update(read=True)
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def flip_to_closed(self, session_id: UUID, actor_id: UUID, closed_at: datetime,
                       notes: Optional[str] = None) -> bool:
        """UPDATE condicional OPEN -> CLOSED. False si la sesión ya no estaba abierta."""
        result = self.db.execute(
            update(CashSession)
            .where(CashSession.id == session_id, CashSession.status == SessionStatus.OPEN)
            .values(
                status=SessionStatus.CLOSED,
                closed_by=actor_id,
                closed_at=closed_at,
                closing_notes=notes,
                updated_at=closed_at,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def persist_reconciliation(self, cash_session: CashSession, result: ReconciliationResult) -> CashSession:
        """Escribe el arqueo en la sesión recién cerrada (una sola vez)."""
        written = self.db.execute(
            update(CashSession)
            .where(
                CashSession.id == cash_session.id,
                CashSession.status == SessionStatus.CLOSED,
                CashSession.expected_close_amount.is_(None),
            )
            .values(
                sum_sales=result.sum_sales,
                sum_deposits=result.sum_deposits,
                sum_withdrawals=result.sum_withdrawals,
                expected_close_amount=result.expected_close_amount,
                counted_close_amount=result.counted_close_amount,
                variance=result.variance,
            )
            .execution_options(synchronize_session=False)
        )
        if written.rowcount != 1:
            raise InvalidStateError(cash_session.id, SessionStatus.CLOSED.value,
                                    "La conciliación de esta caja ya fue registrada")
        self.db.refresh(cash_session)
        return cash_session

    def current_open(self, location_id: str) -> Optional[CashSession]:
        stmt = select(CashSession).where(
            CashSession.location_id == location_id,
            CashSession.status == SessionStatus.OPEN,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def find_open_id(self, location_id: str) -> Optional[UUID]:
        stmt = select(CashSession.id).where(
            CashSession.location_id == location_id,
            CashSession.status == SessionStatus.OPEN,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def history(self, location_id: str, date_from: Optional[date] = None, date_to: Optional[date] = None,
                status: Optional[SessionStatus] = None, limit: int = 20, offset: int = 0) -> Dict[str, Any]:
        """Sesiones de la ubicación, más recientes primero."""
        filters = [CashSession.location_id == location_id]
        start, end = _day_bounds(date_from, date_to)
        if start:
            filters.append(CashSession.opened_at >= start)
        if end:
            filters.append(CashSession.opened_at < end)
        if status:
            filters.append(CashSession.status == status)

        total = self.db.execute(select(func.count(CashSession.id)).where(*filters)).scalar_one()
        sessions: List[CashSession] = list(
            self.db.execute(
                select(CashSession)
                .where(*filters)
                .order_by(desc(CashSession.opened_at), desc(CashSession.id))
                .offset(offset)
                .limit(limit)
            ).scalars()
        )
        return {"sessions": sessions, "total": total, "limit": limit, "offset": offset}
