"""
Modelos SQLAlchemy para el módulo de caja (till)

- CashSession: período de responsabilidad de una caja, entre apertura y cierre
- CashMovement: movimientos de efectivo contra una sesión abierta
  (liquidación de venta, sangría, suministro)

Todos los montos son enteros en centavos (unidades menores). La conversión a
decimales ocurre solo en la frontera HTTP.

Invariantes de almacenamiento:
- Como máximo una sesión OPEN por location_id: índice único parcial
  ``uq_cash_sessions_location_open`` (PostgreSQL y SQLite).
- Una sesión CLOSED es inmutable; los movimientos nunca se editan ni borran.
  Los listeners ORM al final del módulo rechazan cualquier intento.
"""

from app.database.database import Base
from sqlalchemy import (
    Column, String, DateTime, ForeignKey, BigInteger, Enum, Text, Uuid,
    Index, CheckConstraint, event, select, text
)
from sqlalchemy.orm import relationship
from app.common.mixins import TimestampMixin, UUIDPrimaryKeyMixin, utcnow
from app.modules.till.exceptions import ImmutableRecordError
import enum


# ===== ENUMS =====

class SessionStatus(str, enum.Enum):
    """Estados de la sesión de caja"""
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class MovementKind(str, enum.Enum):
    """Tipos de movimiento; el signo lo define el tipo, el monto siempre es positivo"""
    SALE_SETTLEMENT = "SALE_SETTLEMENT"   # Venta en efectivo finalizada (ingreso)
    DEPOSIT = "DEPOSIT"                   # Suministro (ingreso manual)
    WITHDRAWAL = "WITHDRAWAL"             # Sangría (egreso manual)


MANUAL_KINDS = frozenset({MovementKind.DEPOSIT, MovementKind.WITHDRAWAL})


# ===== MODELOS =====

class CashSession(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """
    Sesión de caja de una ubicación.

    Creada por la apertura, modificada exactamente una vez por el cierre
    (OPEN -> CLOSED con la conciliación persistida) e inmutable después.
    """
    __tablename__ = "cash_sessions"

    location_id = Column(String(64), nullable=False, index=True)
    status = Column(
        Enum(SessionStatus, name="cash_session_status", native_enum=False, length=16),
        nullable=False,
        default=SessionStatus.OPEN,
        index=True,
    )

    # Apertura
    opened_by = Column(Uuid(as_uuid=True), nullable=False)
    opened_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    opening_float = Column(BigInteger, nullable=False)
    opening_notes = Column(Text, nullable=True)

    # Cierre (solo se llena al cerrar)
    closed_by = Column(Uuid(as_uuid=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    closing_notes = Column(Text, nullable=True)

    # Conciliación persistida
    sum_sales = Column(BigInteger, nullable=True)
    sum_deposits = Column(BigInteger, nullable=True)
    sum_withdrawals = Column(BigInteger, nullable=True)
    expected_close_amount = Column(BigInteger, nullable=True)
    counted_close_amount = Column(BigInteger, nullable=True)
    variance = Column(BigInteger, nullable=True)

    movements = relationship(
        "CashMovement",
        back_populates="session",
        order_by="CashMovement.recorded_at",
    )

    __table_args__ = (
        Index(
            "uq_cash_sessions_location_open",
            "location_id",
            unique=True,
            postgresql_where=text("status = 'OPEN'"),
            sqlite_where=text("status = 'OPEN'"),
        ),
        Index("ix_cash_sessions_location_opened_at", "location_id", "opened_at"),
        CheckConstraint("opening_float >= 0", name="ck_cash_sessions_opening_float"),
        CheckConstraint(
            "counted_close_amount IS NULL OR counted_close_amount >= 0",
            name="ck_cash_sessions_counted_close_amount",
        ),
    )


class CashMovement(Base, UUIDPrimaryKeyMixin):
    """
    Movimiento de efectivo de una sesión.

    Solo se inserta mientras la sesión está OPEN (verificado en la misma
    transacción que el insert); nunca se actualiza ni se borra.
    """
    __tablename__ = "cash_movements"

    session_id = Column(Uuid(as_uuid=True), ForeignKey("cash_sessions.id"), nullable=False, index=True)
    kind = Column(
        Enum(MovementKind, name="cash_movement_kind", native_enum=False, length=32),
        nullable=False,
        index=True,
    )
    amount = Column(BigInteger, nullable=False)  # Siempre positivo
    description = Column(Text, nullable=True)
    sale_reference = Column(String(100), nullable=True)  # Solo para SALE_SETTLEMENT
    actor_id = Column(Uuid(as_uuid=True), nullable=False)
    recorded_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    session = relationship("CashSession", back_populates="movements")

    __table_args__ = (
        Index("ix_cash_movements_session_recorded_at", "session_id", "recorded_at"),
        CheckConstraint("amount > 0", name="ck_cash_movements_amount_positive"),
    )


# ===== INMUTABILIDAD =====

def _persisted_status(connection, target: CashSession):
    # Estado en la base, no el del objeto en memoria
    return connection.execute(
        select(CashSession.__table__.c.status).where(CashSession.__table__.c.id == target.id)
    ).scalar()


@event.listens_for(CashSession, "before_update")
def _reject_closed_session_update(mapper, connection, target):
    if _persisted_status(connection, target) == SessionStatus.CLOSED:
        raise ImmutableRecordError("CashSession", target.id, "UPDATE")


@event.listens_for(CashSession, "before_delete")
def _reject_closed_session_delete(mapper, connection, target):
    if _persisted_status(connection, target) == SessionStatus.CLOSED:
        raise ImmutableRecordError("CashSession", target.id, "DELETE")


@event.listens_for(CashMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise ImmutableRecordError("CashMovement", target.id, "UPDATE")


@event.listens_for(CashMovement, "before_delete")
def _reject_movement_delete(mapper, connection, target):
    raise ImmutableRecordError("CashMovement", target.id, "DELETE")
