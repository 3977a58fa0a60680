"""
Fachada de la caja: la única puerta que usan las terminales y el módulo de ventas.

Convierte montos decimales a centavos (y de vuelta), aplica la identidad
de quien llama (actor y ubicación salen del token, nunca del body) y arma
las respuestas. Una sesión de otra ubicación se reporta como inexistente.
"""

from datetime import date
from decimal import Decimal
from typing import Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.common.money import from_minor_units, to_minor_units
from app.core.config import settings
from app.modules.audit.service import AuditRecorder
from app.modules.auth.schemas import CallerContext
from app.modules.till.exceptions import ValidationError
from app.modules.till.ledger import MovementLedger
from app.modules.till.models import CashMovement, CashSession, MovementKind, SessionStatus
from app.modules.till.reconciliation import ReconciliationResult
from app.modules.till.schemas import (
    AuditEntryOut, CashSessionList, CashSessionOut, CloseSessionRequest, CloseSessionResponse,
    CurrentSessionResponse, MovementOut, MovementRecorded, OpenSessionRequest, OpenSessionResponse,
    RecordMovementRequest, SaleSettlementRequest, SessionSummaryOut
)
from app.modules.till.services import SessionManager
from app.modules.till.store import store_transaction


def _minor(value: Decimal, field: str) -> int:
    try:
        return to_minor_units(value)
    except (TypeError, ValueError, ArithmeticError) as exc:
        raise ValidationError(str(exc), field=field)


def session_out(cash_session: CashSession, names: Optional[Dict[UUID, str]] = None) -> CashSessionOut:
    names = names or {}
    return CashSessionOut(
        id=cash_session.id,
        location_id=cash_session.location_id,
        status=cash_session.status,
        opened_by=cash_session.opened_by,
        opened_by_name=names.get(cash_session.opened_by),
        opened_at=cash_session.opened_at,
        opening_float=from_minor_units(cash_session.opening_float),
        opening_notes=cash_session.opening_notes,
        closed_by=cash_session.closed_by,
        closed_by_name=names.get(cash_session.closed_by) if cash_session.closed_by else None,
        closed_at=cash_session.closed_at,
        closing_notes=cash_session.closing_notes,
        sum_sales=from_minor_units(cash_session.sum_sales),
        sum_deposits=from_minor_units(cash_session.sum_deposits),
        sum_withdrawals=from_minor_units(cash_session.sum_withdrawals),
        expected_close_amount=from_minor_units(cash_session.expected_close_amount),
        counted_close_amount=from_minor_units(cash_session.counted_close_amount),
        variance=from_minor_units(cash_session.variance),
    )


def movement_out(movement: CashMovement) -> MovementOut:
    return MovementOut(
        id=movement.id,
        session_id=movement.session_id,
        kind=movement.kind,
        amount=from_minor_units(movement.amount),
        description=movement.description,
        sale_reference=movement.sale_reference,
        actor_id=movement.actor_id,
        recorded_at=movement.recorded_at,
    )


class TillFacade:
    def __init__(self, db: Session, audit: Optional[AuditRecorder] = None):
        self.db = db
        self.audit = audit or AuditRecorder.bound_to(db)
        self.manager = SessionManager(db, audit=self.audit)
        self.ledger = self.manager.ledger

    def open(self, caller: CallerContext, data: OpenSessionRequest) -> OpenSessionResponse:
        cash_session = self.manager.open(
            caller.location_id,
            caller.actor_id,
            _minor(data.opening_float, "opening_float"),
            notes=data.notes,
        )
        return OpenSessionResponse(
            session_id=cash_session.id,
            location_id=cash_session.location_id,
            opening_float=from_minor_units(cash_session.opening_float),
            opened_at=cash_session.opened_at,
        )

    def close(self, caller: CallerContext, session_id: UUID, data: CloseSessionRequest) -> CloseSessionResponse:
        cash_session = self.manager.close(
            session_id,
            caller.actor_id,
            _minor(data.counted_close_amount, "counted_close_amount"),
            notes=data.notes,
            location_id=caller.location_id,
        )
        result = ReconciliationResult.from_session(cash_session)
        return CloseSessionResponse(
            session_id=session_id,
            status=SessionStatus.CLOSED,
            opening_float=from_minor_units(result.opening_float),
            sum_sales=from_minor_units(result.sum_sales),
            sum_deposits=from_minor_units(result.sum_deposits),
            sum_withdrawals=from_minor_units(result.sum_withdrawals),
            expected_close_amount=from_minor_units(result.expected_close_amount),
            counted_close_amount=from_minor_units(result.counted_close_amount),
            variance=from_minor_units(result.variance),
            closed_at=cash_session.closed_at,
        )

    def _recorded(self, movement: CashMovement) -> MovementRecorded:
        return MovementRecorded(
            movement_id=movement.id,
            session_id=movement.session_id,
            kind=movement.kind,
            amount=from_minor_units(movement.amount),
            recorded_at=movement.recorded_at,
        )

    def record_movement(self, caller: CallerContext, session_id: UUID,
                        data: RecordMovementRequest) -> MovementRecorded:
        movement = self.ledger.record(
            session_id,
            MovementKind(data.kind.value),
            _minor(data.amount, "amount"),
            data.description,
            caller.actor_id,
            location_id=caller.location_id,
        )
        return self._recorded(movement)

    def record_sale_settlement(self, caller: CallerContext, session_id: UUID,
                               data: SaleSettlementRequest) -> MovementRecorded:
        movement = self.ledger.record(
            session_id,
            MovementKind.SALE_SETTLEMENT,
            _minor(data.amount, "amount"),
            data.description,
            caller.actor_id,
            sale_reference=data.sale_reference,
            location_id=caller.location_id,
        )
        return self._recorded(movement)

    def status(self, caller: CallerContext) -> CurrentSessionResponse:
        cash_session = self.manager.status(caller.location_id)
        return CurrentSessionResponse(session=session_out(cash_session) if cash_session else None)

    def history(self, caller: CallerContext, date_from: Optional[date] = None, date_to: Optional[date] = None,
                status: Optional[SessionStatus] = None, limit: Optional[int] = None,
                offset: int = 0) -> CashSessionList:
        page = self.manager.history(caller.location_id, date_from, date_to, status, limit, offset)
        names = page["actor_names"]
        return CashSessionList(
            sessions=[session_out(s, names) for s in page["sessions"]],
            total=page["total"],
            limit=page["limit"],
            offset=page["offset"],
        )

    def detail(self, caller: CallerContext, session_id: UUID) -> CashSessionOut:
        cash_session = self.manager.get(session_id, location_id=caller.location_id, actor_id=caller.actor_id)
        return session_out(cash_session)

    def summary(self, caller: CallerContext, session_id: UUID) -> SessionSummaryOut:
        summary = self.manager.summary(session_id, location_id=caller.location_id, actor_id=caller.actor_id)
        return SessionSummaryOut(
            session_id=summary.session.id,
            status=summary.session.status,
            currency=settings.CURRENCY_CODE,
            opening_float=from_minor_units(summary.session.opening_float),
            sum_sales=from_minor_units(summary.totals.sum_sales),
            sum_deposits=from_minor_units(summary.totals.sum_deposits),
            sum_withdrawals=from_minor_units(summary.totals.sum_withdrawals),
            movement_count=summary.totals.movement_count,
            expected_amount=from_minor_units(summary.expected_amount),
        )

    def movements(self, caller: CallerContext, session_id: UUID) -> list[MovementOut]:
        self.manager.get(session_id, location_id=caller.location_id, actor_id=caller.actor_id)
        with store_transaction(self.db, "list_movements"):
            movements = self.ledger.list_for_session(session_id)
        return [movement_out(m) for m in movements]

    def audit_trail(self, caller: CallerContext, session_id: UUID) -> list[AuditEntryOut]:
        self.manager.get(session_id, location_id=caller.location_id, actor_id=caller.actor_id)
        return [AuditEntryOut.model_validate(entry) for entry in self.audit.list_for_session(session_id)]
