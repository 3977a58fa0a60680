"""
Módulo Till (caja) - sesiones de caja de farmacia

ENTIDADES PRINCIPALES:
- CashSession: período de responsabilidad de una caja (apertura -> cierre)
- CashMovement: liquidaciones de venta, sangrías y suministros

FUNCIONALIDADES:
- Apertura con fondo inicial; una sola caja abierta por ubicación
- Registro de movimientos solo contra cajas abiertas
- Cierre con arqueo exacto en centavos (esperado, contado, diferencia)
- Historial, totales en curso y bitácora de auditoría

REGLAS DE NEGOCIO:
- Una caja cerrada no vuelve a abrirse ni se modifica
- Los movimientos nunca se editan ni se borran
- Un cierre repetido se rechaza; el resultado guardado no se recalcula

SEGURIDAD:
- owner/admin/seller/cashier: abrir, cerrar y registrar movimientos
- owner/admin/accountant: ver auditoría
- Todos los roles: consultas
"""
