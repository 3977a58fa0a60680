"""
Libro de movimientos de caja.

Un movimiento solo se inserta si la sesión está OPEN, y la verificación
ocurre en la misma transacción que el insert, con la fila de la sesión
bloqueada en modo compartido. Un cierre concurrente (que toma el bloqueo
exclusivo) queda serializado antes o después del movimiento: si el
movimiento entra, el cierre lo cuenta; si el cierre gana, el movimiento se
rechaza con InvalidStateError.
"""

from typing import List, Optional
from uuid import UUID, uuid4
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.common.mixins import utcnow
from app.common.money import fits_minor_units
from app.common.validators import clean_text
from app.modules.audit.models import AuditEventType
from app.modules.audit.service import AuditRecorder
from app.modules.till.exceptions import InvalidStateError, NotFoundError, TillError, ValidationError
from app.modules.till.models import CashMovement, MovementKind, MANUAL_KINDS, SessionStatus
from app.modules.till.reconciliation import MovementTotals, ReconciliationEngine
from app.modules.till.store import SessionStore, store_transaction

logger = logging.getLogger(__name__)


class MovementLedger:
    def __init__(self, db: Session, audit: Optional[AuditRecorder] = None):
        self.db = db
        self.store = SessionStore(db)
        self.audit = audit or AuditRecorder.bound_to(db)
        self.engine = ReconciliationEngine()

    def _validate(self, kind, amount, description: Optional[str], sale_reference: Optional[str]):
        try:
            kind = MovementKind(kind)
        except ValueError:
            raise ValidationError(f"Tipo de movimiento inválido: {kind}", field="kind")

        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError("El monto debe ser un entero en centavos", field="amount")
        if amount <= 0:
            raise ValidationError("El monto debe ser mayor a cero", field="amount")
        if not fits_minor_units(amount):
            raise ValidationError("El monto está fuera de rango", field="amount")

        description = clean_text(description)
        if kind in MANUAL_KINDS and not description:
            raise ValidationError("La descripción es obligatoria para sangrías y suministros", field="description")

        # La referencia solo aplica a ventas
        sale_reference = clean_text(sale_reference) if kind == MovementKind.SALE_SETTLEMENT else None

        return kind, description, sale_reference

    def record(self, session_id: UUID, kind: MovementKind, amount: int, description: Optional[str],
               actor_id: UUID, sale_reference: Optional[str] = None,
               location_id: Optional[str] = None) -> CashMovement:
        """
        Registra un movimiento contra una sesión abierta.

        Si se pasa ``location_id``, una sesión de otra ubicación se reporta
        como inexistente.
        """
        kind, description, sale_reference = self._validate(kind, amount, description, sale_reference)

        session_location = None
        try:
            with store_transaction(self.db, "record_movement"):
                cash_session = self.store.lock_for_movement(session_id)
                if cash_session is None or (location_id and cash_session.location_id != location_id):
                    raise NotFoundError("Caja", session_id)
                session_location = cash_session.location_id
                if cash_session.status != SessionStatus.OPEN:
                    raise InvalidStateError(
                        session_id,
                        SessionStatus(cash_session.status).value,
                        f"La caja {session_id} está cerrada y no admite movimientos",
                    )

                movement = CashMovement(
                    id=uuid4(),
                    session_id=session_id,
                    kind=kind,
                    amount=amount,
                    description=description,
                    sale_reference=sale_reference,
                    actor_id=actor_id,
                    recorded_at=utcnow(),
                )
                self.db.add(movement)
                self.db.flush()
        except TillError as exc:
            logger.info(f"Movement rejected on session {session_id}: {exc.code}")
            self.audit.record_error(exc, "record_movement", actor_id,
                                    session_id=session_id, location_id=session_location or location_id)
            raise

        logger.info(f"Movement {movement.id} {kind.value} {amount} recorded on session {session_id}")
        self.audit.record(
            AuditEventType.MOVEMENT,
            session_id,
            actor_id,
            {
                "movement_id": movement.id,
                "kind": kind.value,
                "amount": amount,
                "description": description,
                "sale_reference": sale_reference,
                "recorded_at": movement.recorded_at,
            },
            location_id=session_location,
        )
        return movement

    def list_for_session(self, session_id: UUID) -> List[CashMovement]:
        """Movimientos en orden de registro. No abre ni cierra transacción."""
        stmt = (
            select(CashMovement)
            .where(CashMovement.session_id == session_id)
            .order_by(CashMovement.recorded_at, CashMovement.id)
        )
        return list(self.db.execute(stmt).scalars())

    def totals(self, session_id: UUID) -> MovementTotals:
        return self.engine.summarize(self.list_for_session(session_id))
