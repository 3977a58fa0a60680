"""
Esquemas Pydantic para el módulo de caja (till)

Los montos viajan como decimales con a lo sumo 2 decimales ("125.50"); la
fachada los convierte a centavos antes de llegar a los servicios.
"""

from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List, Dict, Any
from uuid import UUID
from datetime import datetime
from enum import Enum

from app.common.money import MAX_AMOUNT_DIGITS
from app.modules.audit.models import AuditEventType
from app.modules.till.models import MovementKind, SessionStatus


class ManualMovementKind(str, Enum):
    """Movimientos que un operador registra a mano"""
    DEPOSIT = "DEPOSIT"         # Suministro
    WITHDRAWAL = "WITHDRAWAL"   # Sangría


# ===== REQUESTS =====

class OpenSessionRequest(BaseModel):
    """Esquema para abrir caja"""
    opening_float: Decimal = Field(..., ge=0, max_digits=MAX_AMOUNT_DIGITS, decimal_places=2, description="Fondo inicial de la caja")
    notes: Optional[str] = Field(None, max_length=500, description="Notas de apertura")


class CloseSessionRequest(BaseModel):
    """Esquema para cerrar caja"""
    counted_close_amount: Decimal = Field(..., ge=0, max_digits=MAX_AMOUNT_DIGITS, decimal_places=2, description="Efectivo contado al cierre")
    notes: Optional[str] = Field(None, max_length=500, description="Notas de cierre")


class RecordMovementRequest(BaseModel):
    """Esquema para sangría o suministro"""
    kind: ManualMovementKind = Field(..., description="DEPOSIT (suministro) o WITHDRAWAL (sangría)")
    amount: Decimal = Field(..., gt=0, max_digits=MAX_AMOUNT_DIGITS, decimal_places=2, description="Monto del movimiento")
    description: str = Field(..., min_length=1, max_length=500, description="Motivo del movimiento")

    @field_validator('description')
    @classmethod
    def validate_description(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError('La descripción no puede estar vacía')
        return cleaned


class SaleSettlementRequest(BaseModel):
    """Esquema para la liquidación en efectivo de una venta finalizada"""
    amount: Decimal = Field(..., gt=0, max_digits=MAX_AMOUNT_DIGITS, decimal_places=2, description="Efectivo recibido por la venta")
    sale_reference: Optional[str] = Field(None, max_length=100, description="Referencia de la venta")
    description: Optional[str] = Field(None, max_length=500, description="Descripción opcional")


# ===== RESPONSES =====

class OpenSessionResponse(BaseModel):
    session_id: UUID = Field(description="ID de la sesión abierta")
    location_id: str = Field(description="Ubicación de la caja")
    opening_float: Decimal = Field(description="Fondo inicial")
    opened_at: datetime = Field(description="Fecha y hora de apertura")


class CloseSessionResponse(BaseModel):
    """Resultado del arqueo"""
    session_id: UUID
    status: SessionStatus
    opening_float: Decimal
    sum_sales: Decimal
    sum_deposits: Decimal
    sum_withdrawals: Decimal
    expected_close_amount: Decimal = Field(description="Fondo + ventas + suministros - sangrías")
    counted_close_amount: Decimal = Field(description="Efectivo contado")
    variance: Decimal = Field(description="Contado - esperado (negativo = faltante)")
    closed_at: datetime


class MovementRecorded(BaseModel):
    movement_id: UUID
    session_id: UUID
    kind: MovementKind
    amount: Decimal
    recorded_at: datetime


class MovementOut(BaseModel):
    id: UUID
    session_id: UUID
    kind: MovementKind
    amount: Decimal = Field(description="Monto siempre positivo; el signo lo da el tipo")
    description: Optional[str] = None
    sale_reference: Optional[str] = None
    actor_id: UUID
    recorded_at: datetime


class CashSessionOut(BaseModel):
    """Esquema de salida para sesión de caja"""
    id: UUID = Field(description="ID único de la sesión")
    location_id: str = Field(description="Ubicación")
    status: SessionStatus = Field(description="Estado de la caja")
    opened_by: UUID = Field(description="Usuario que abrió la caja")
    opened_by_name: Optional[str] = Field(None, description="Nombre del usuario que abrió")
    opened_at: datetime = Field(description="Fecha y hora de apertura")
    opening_float: Decimal = Field(description="Fondo inicial")
    opening_notes: Optional[str] = Field(None, description="Notas de apertura")
    closed_by: Optional[UUID] = Field(None, description="Usuario que cerró la caja")
    closed_by_name: Optional[str] = Field(None, description="Nombre del usuario que cerró")
    closed_at: Optional[datetime] = Field(None, description="Fecha y hora de cierre")
    closing_notes: Optional[str] = Field(None, description="Notas de cierre")

    # Conciliación (solo en sesiones cerradas)
    sum_sales: Optional[Decimal] = None
    sum_deposits: Optional[Decimal] = None
    sum_withdrawals: Optional[Decimal] = None
    expected_close_amount: Optional[Decimal] = None
    counted_close_amount: Optional[Decimal] = None
    variance: Optional[Decimal] = None


class CurrentSessionResponse(BaseModel):
    session: Optional[CashSessionOut] = Field(None, description="Caja abierta de la ubicación, si hay")


class CashSessionList(BaseModel):
    """Esquema para historial de cajas"""
    sessions: List[CashSessionOut] = Field(description="Lista de sesiones")
    total: int = Field(description="Total de sesiones")
    limit: int = Field(description="Límite aplicado")
    offset: int = Field(description="Offset aplicado")


class SessionSummaryOut(BaseModel):
    """Valor actual de la caja"""
    session_id: UUID
    status: SessionStatus
    currency: str
    opening_float: Decimal
    sum_sales: Decimal
    sum_deposits: Decimal
    sum_withdrawals: Decimal
    movement_count: int
    expected_amount: Decimal = Field(description="Fondo + ventas + suministros - sangrías, a la fecha")


class AuditEntryOut(BaseModel):
    id: UUID
    session_id: Optional[UUID] = None
    location_id: Optional[str] = None
    event_type: AuditEventType
    actor_id: UUID
    timestamp: datetime
    payload_snapshot: Dict[str, Any]

    model_config = {"from_attributes": True}
