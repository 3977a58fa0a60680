"""
Motor de conciliación (arqueo) de caja.

Cálculo puro, sin acceso a la base: recibe el fondo inicial, los movimientos
y el efectivo contado, y devuelve el monto esperado y la diferencia.

    esperado   = fondo_inicial + ventas + suministros - sangrías
    diferencia = contado - esperado     (positiva = sobrante, negativa = faltante)

Toda la aritmética es entera (centavos). Recibir un float o un Decimal aquí
es un error de programación: la conversión pertenece a la frontera HTTP.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Iterable

from app.modules.till.models import CashSession, CashMovement, MovementKind


def _require_minor_units(value, name: str) -> int:
    # bool es subclase de int
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} debe ser un entero en centavos, se recibió {type(value).__name__}")
    return value


@dataclass(frozen=True)
class MovementTotals:
    """Sumas de movimientos por tipo, en centavos"""
    sum_sales: int = 0
    sum_deposits: int = 0
    sum_withdrawals: int = 0
    movement_count: int = 0

    def expected_from(self, opening_float: int) -> int:
        return opening_float + self.sum_sales + self.sum_deposits - self.sum_withdrawals


@dataclass(frozen=True)
class ReconciliationResult:
    opening_float: int
    sum_sales: int
    sum_deposits: int
    sum_withdrawals: int
    expected_close_amount: int
    counted_close_amount: int
    variance: int

    @property
    def is_balanced(self) -> bool:
        return self.variance == 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    @classmethod
    def from_session(cls, session: CashSession) -> "ReconciliationResult":
        """Reconstruye el resultado persistido en una sesión cerrada."""
        return cls(
            opening_float=session.opening_float,
            sum_sales=session.sum_sales,
            sum_deposits=session.sum_deposits,
            sum_withdrawals=session.sum_withdrawals,
            expected_close_amount=session.expected_close_amount,
            counted_close_amount=session.counted_close_amount,
            variance=session.variance,
        )


class ReconciliationEngine:
    """Conciliación de caja en centavos"""

    def summarize(self, movements: Iterable[CashMovement]) -> MovementTotals:
        sums = {kind: 0 for kind in MovementKind}
        count = 0
        for movement in movements:
            amount = _require_minor_units(movement.amount, "amount")
            if amount <= 0:
                raise ValueError(f"Movimiento {movement.id} con monto no positivo: {amount}")
            sums[MovementKind(movement.kind)] += amount
            count += 1

        return MovementTotals(
            sum_sales=sums[MovementKind.SALE_SETTLEMENT],
            sum_deposits=sums[MovementKind.DEPOSIT],
            sum_withdrawals=sums[MovementKind.WITHDRAWAL],
            movement_count=count,
        )

    def compute(self, session: CashSession, movements: Iterable[CashMovement],
                counted_close_amount: int) -> ReconciliationResult:
        opening_float = _require_minor_units(session.opening_float, "opening_float")
        counted = _require_minor_units(counted_close_amount, "counted_close_amount")
        totals = self.summarize(movements)
        expected = totals.expected_from(opening_float)

        return ReconciliationResult(
            opening_float=opening_float,
            sum_sales=totals.sum_sales,
            sum_deposits=totals.sum_deposits,
            sum_withdrawals=totals.sum_withdrawals,
            expected_close_amount=expected,
            counted_close_amount=counted,
            variance=counted - expected,
        )
