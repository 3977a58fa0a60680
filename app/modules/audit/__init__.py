"""
Auditoría de caja: entradas append-only de apertura, cierre, movimientos y errores.
"""
