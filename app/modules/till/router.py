"""
Router FastAPI para el módulo de caja (till)

Endpoints:
- Apertura y cierre con arqueo
- Sangrías, suministros y liquidaciones de venta
- Caja actual, historial, detalle, totales, movimientos y auditoría

La ubicación y el actor salen del token (ver auth.dependencies). Los
endpoints son síncronos: la sesión de SQLAlchemy es bloqueante y FastAPI
los ejecuta en su threadpool.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional, List
from uuid import UUID
from datetime import date

from app.core.config import settings
from app.database.database import get_db
from app.modules.auth.dependencies import require_auditor, require_cashier, require_any_role
from app.modules.auth.schemas import CallerContext
from app.modules.till.facade import TillFacade
from app.modules.till.models import SessionStatus
from app.modules.till.schemas import (
    OpenSessionRequest, OpenSessionResponse,
    CloseSessionRequest, CloseSessionResponse,
    RecordMovementRequest, SaleSettlementRequest, MovementRecorded, MovementOut,
    CashSessionOut, CashSessionList, CurrentSessionResponse, SessionSummaryOut,
    AuditEntryOut
)

router = APIRouter(prefix="/till", tags=["Till"])



@router.post("/sessions/open", response_model=OpenSessionResponse, status_code=status.HTTP_201_CREATED)
def open_session(
    data: OpenSessionRequest,
    caller: CallerContext = Depends(require_cashier),
    db: Session = Depends(get_db)
):
    """
    Abrir caja en la ubicación del token.

    - **opening_float**: Fondo inicial (máximo 2 decimales)
    - **notes**: Notas opcionales de apertura

    409 SESSION_ALREADY_OPEN si la ubicación ya tiene una caja abierta.
    """
    return TillFacade(db).open(caller, data)


@router.post("/sessions/{session_id}/close", response_model=CloseSessionResponse)
def close_session(
    data: CloseSessionRequest,
    session_id: UUID,
    caller: CallerContext = Depends(require_cashier),
    db: Session = Depends(get_db)
):
    """
    Cerrar caja con arqueo: esperado = fondo + ventas + suministros - sangrías,
    diferencia = contado - esperado.

    Un cierre repetido responde 409 SESSION_ALREADY_CLOSED sin recalcular.
    """
    return TillFacade(db).close(caller, session_id, data)


@router.post("/sessions/{session_id}/movements", response_model=MovementRecorded,
             status_code=status.HTTP_201_CREATED)
def record_movement(
    data: RecordMovementRequest,
    session_id: UUID,
    caller: CallerContext = Depends(require_cashier),
    db: Session = Depends(get_db)
):
    """Registrar sangría (WITHDRAWAL) o suministro (DEPOSIT). La descripción es obligatoria."""
    return TillFacade(db).record_movement(caller, session_id, data)


@router.post("/sessions/{session_id}/sale-settlements", response_model=MovementRecorded,
             status_code=status.HTTP_201_CREATED)
def record_sale_settlement(
    data: SaleSettlementRequest,
    session_id: UUID,
    caller: CallerContext = Depends(require_cashier),
    db: Session = Depends(get_db)
):
    """Registrar el efectivo de una venta finalizada (lo llama el módulo de ventas)."""
    return TillFacade(db).record_sale_settlement(caller, session_id, data)


@router.get("/sessions/current", response_model=CurrentSessionResponse)
def get_current_session(
    caller: CallerContext = Depends(require_any_role),
    db: Session = Depends(get_db)
):
    """Caja abierta de la ubicación; ``session`` es null si no hay."""
    return TillFacade(db).status(caller)


@router.get("/sessions", response_model=CashSessionList)
def list_sessions(
    date_from: Optional[date] = Query(None, description="Apertura desde (inclusive)"),
    date_to: Optional[date] = Query(None, description="Apertura hasta (inclusive)"),
    session_status: Optional[SessionStatus] = Query(None, alias="status", description="OPEN o CLOSED"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    caller: CallerContext = Depends(require_any_role),
    db: Session = Depends(get_db)
):
    """Historial de cajas de la ubicación, más recientes primero."""
    return TillFacade(db).history(caller, date_from, date_to, session_status, limit, offset)


@router.get("/sessions/{session_id}", response_model=CashSessionOut)
def get_session(
    session_id: UUID,
    caller: CallerContext = Depends(require_any_role),
    db: Session = Depends(get_db)
):
    return TillFacade(db).detail(caller, session_id)


@router.get("/sessions/{session_id}/summary", response_model=SessionSummaryOut)
def get_session_summary(
    session_id: UUID,
    caller: CallerContext = Depends(require_any_role),
    db: Session = Depends(get_db)
):
    """Valor actual de la caja: totales por tipo y monto esperado."""
    return TillFacade(db).summary(caller, session_id)


@router.get("/sessions/{session_id}/movements", response_model=List[MovementOut])
def list_session_movements(
    session_id: UUID,
    caller: CallerContext = Depends(require_any_role),
    db: Session = Depends(get_db)
):
    """Movimientos de la sesión en orden de registro."""
    return TillFacade(db).movements(caller, session_id)


@router.get("/sessions/{session_id}/audit", response_model=List[AuditEntryOut])
def get_session_audit(
    session_id: UUID,
    caller: CallerContext = Depends(require_auditor),
    db: Session = Depends(get_db)
):
    """Bitácora de auditoría de la sesión (owner, admin, accountant)."""
    return TillFacade(db).audit_trail(caller, session_id)
