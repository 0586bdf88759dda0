#!/usr/bin/env python3
"""
Script para gestionar schemas de tenants y migraciones con Alembic.
"""
import sys
from pathlib import Path

# Agregar el directorio raíz al path
root_dir = Path(__file__).parent
sys.path.insert(0, str(root_dir))

from alembic.config import Config
from alembic import command
from app.core.config import settings
from app.database.database import engine, init_schemas, tenant_tables, shared_tables
from app.modules.tenants.registry import tenant_registry

# Registrar modelos en Base.metadata
import app.modules.auth.models  # noqa: F401
import app.modules.invoices.models  # noqa: F401


def get_alembic_config():
    """Obtener configuración de Alembic."""
    alembic_cfg = Config(str(root_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(root_dir / "migrations"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    return alembic_cfg


def create_migration(message: str):
    """Crear nueva migración (compara auth y un tenant de referencia)."""
    alembic_cfg = get_alembic_config()
    command.revision(alembic_cfg, autogenerate=True, message=message)
    print(f"Migración creada: {message}")


def run_migrations():
    """Ejecutar migraciones pendientes en auth y en cada tenant."""
    alembic_cfg = get_alembic_config()
    command.upgrade(alembic_cfg, "head")
    print(f"Migraciones ejecutadas en: {', '.join([settings.AUTH_SCHEMA, *tenant_registry])}")


def rollback_migration():
    """Rollback de la última migración."""
    alembic_cfg = get_alembic_config()
    command.downgrade(alembic_cfg, "-1")
    print("Rollback ejecutado exitosamente")


def show_history():
    """Mostrar historial de migraciones."""
    command.history(get_alembic_config())


def show_current():
    """Mostrar migración actual."""
    command.current(get_alembic_config())


def init_database(schema_names=None):
    """Crear schemas y tablas faltantes sin Alembic (SQLite y desarrollo)."""
    for schema_name in schema_names or []:
        tenant_registry.require(schema_name)
    init_schemas(engine, schema_names or None)
    print(f"Schema compartido: {settings.AUTH_SCHEMA} ({', '.join(t.name for t in shared_tables())})")
    print(f"Tablas por tenant: {', '.join(t.name for t in tenant_tables())}")
    print(f"Schemas inicializados: {', '.join(schema_names or tenant_registry)}")


def show_tenants():
    """Mostrar tenants registrados."""
    for schema_name in tenant_registry:
        flags = []
        if schema_name == tenant_registry.default:
            flags.append("default")
        if schema_name in tenant_registry.replication:
            flags.append("replicación admin")
        suffix = f" ({', '.join(flags)})" if flags else ""
        print(f"  {schema_name}{suffix}")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Uso:")
        print("  python migrate.py create 'message'   # Crear migración")
        print("  python migrate.py upgrade             # Ejecutar migraciones (PostgreSQL)")
        print("  python migrate.py downgrade           # Rollback")
        print("  python migrate.py history             # Ver historial")
        print("  python migrate.py current             # Ver actual")
        print("  python migrate.py init [schema ...]   # Crear schemas y tablas sin migraciones")
        print("  python migrate.py tenants             # Ver tenants registrados")
        sys.exit(1)

    action = sys.argv[1]

    if action == "create":
        if len(sys.argv) < 3:
            print("Error: Se requiere un mensaje para la migración")
            sys.exit(1)
        create_migration(sys.argv[2])
    elif action == "upgrade":
        run_migrations()
    elif action == "downgrade":
        rollback_migration()
    elif action == "history":
        show_history()
    elif action == "current":
        show_current()
    elif action == "init":
        init_database(sys.argv[2:])
    elif action == "tenants":
        show_tenants()
    else:
        print(f"Acción desconocida: {action}")
        sys.exit(1)
