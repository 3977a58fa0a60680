#!/usr/bin/env python3
"""
Gestión de migraciones del esquema de caja con Alembic.

    python migrate.py upgrade            # Aplicar migraciones pendientes
    python migrate.py downgrade          # Revertir la última migración
    python migrate.py create 'mensaje'   # Nueva migración (autogenerate)
    python migrate.py history            # Historial
    python migrate.py current            # Revisión actual de la base
"""
import sys
from pathlib import Path

# Agregar el directorio raíz al path
root_dir = Path(__file__).parent
sys.path.insert(0, str(root_dir))

from alembic.config import Config
from alembic import command
from app.core.config import settings


def get_alembic_config() -> Config:
    """Configuración de Alembic apuntando a la base de settings."""
    alembic_cfg = Config(str(root_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(root_dir / "migrations"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    return alembic_cfg


def create_migration(message: str):
    command.revision(get_alembic_config(), autogenerate=True, message=message)
    print(f"Migración creada: {message}")


def run_migrations():
    command.upgrade(get_alembic_config(), "head")
    print("Migraciones ejecutadas exitosamente")


def rollback_migration():
    command.downgrade(get_alembic_config(), "-1")
    print("Rollback ejecutado exitosamente")


ACTIONS = {
    "upgrade": run_migrations,
    "downgrade": rollback_migration,
    "history": lambda: command.history(get_alembic_config()),
    "current": lambda: command.current(get_alembic_config()),
}


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    action = sys.argv[1]
    if action == "create":
        if len(sys.argv) < 3:
            print("Error: Se requiere un mensaje para la migración")
            sys.exit(1)
        create_migration(sys.argv[2])
    elif action in ACTIONS:
        ACTIONS[action]()
    else:
        print(f"Acción desconocida: {action}")
        sys.exit(1)
