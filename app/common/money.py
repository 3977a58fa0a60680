"""
Conversión entre valores monetarios de presentación y unidades menores.

Dentro del sistema todo monto es un ``int`` en centavos. Los ``Decimal``
solo existen en la frontera HTTP (requests y responses).
"""
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

MINOR_UNIT_EXPONENT = 2
_QUANTUM = Decimal(1).scaleb(-MINOR_UNIT_EXPONENT)

# Columnas BigInteger: int64 con signo
MAX_MINOR_UNITS = 2 ** 63 - 1
# 15 enteros + 2 decimales siempre caben en MAX_MINOR_UNITS
MAX_AMOUNT_DIGITS = 17


def to_minor_units(value: Union[Decimal, int, str]) -> int:
    """
    Convierte un monto decimal en centavos.

    Rechaza floats (evita arrastrar errores binarios), montos con más de
    dos decimales (``Decimal("10.005")`` no tiene representación exacta) y
    montos que no caben en una columna BigInteger.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError("Los montos deben ser Decimal, int o str, nunca float")
    try:
        amount = Decimal(value)
    except (InvalidOperation, ValueError):
        raise ValueError(f"Monto inválido: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Monto inválido: {value!r}")
    try:
        minor = amount.scaleb(MINOR_UNIT_EXPONENT)
        if abs(minor) > MAX_MINOR_UNITS:
            raise ValueError(f"Monto fuera de rango: {value}")
        if amount != amount.quantize(_QUANTUM):
            raise ValueError(f"El monto admite como máximo {MINOR_UNIT_EXPONENT} decimales: {value}")
    except ArithmeticError:
        raise ValueError(f"Monto inválido: {value!r}")
    return int(minor)


def fits_minor_units(value: int) -> bool:
    """True si el monto en centavos cabe en una columna BigInteger."""
    return -MAX_MINOR_UNITS <= value <= MAX_MINOR_UNITS


def from_minor_units(value: Optional[int]) -> Optional[Decimal]:
    """Convierte centavos en un Decimal con dos decimales para presentación."""
    if value is None:
        return None
    return Decimal(value).scaleb(-MINOR_UNIT_EXPONENT).quantize(_QUANTUM)
