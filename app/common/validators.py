"""
Validadores compartidos para identificadores y textos libres
"""
import re
from typing import Optional


LOCATION_ID_PATTERN = re.compile(r'^[A-Z0-9][A-Z0-9_\-]{0,63}$')


def normalize_location_id(location_id: str) -> str:
    """
    Normaliza el identificador de una farmacia / punto de caja.
    - Sin espacios en los extremos
    - En mayúsculas ("pharm-1" y "PHARM-1" son la misma ubicación)
    - Letras, números, guion y guion bajo; máximo 64 caracteres
    """
    cleaned = location_id.strip().upper()
    if not LOCATION_ID_PATTERN.match(cleaned):
        raise ValueError(f"Identificador de ubicación inválido: {location_id!r}")
    return cleaned


def clean_text(value: Optional[str]) -> Optional[str]:
    """Colapsa espacios internos; retorna None si el texto queda vacío."""
    if value is None:
        return None
    cleaned = re.sub(r'\s+', ' ', value).strip()
    return cleaned or None
