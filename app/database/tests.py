"""
Tests de persistencia multi-tenant: creación de schemas, sesiones por
tenant y cobertura de la migración inicial.
"""

import importlib.util
from pathlib import Path
from unittest.mock import MagicMock

from sqlalchemy import inspect

from app.core.config import settings
from app.database.database import shared_tables, tenant_tables
from app.modules.invoices.models import Customer
from app.modules.tenants.registry import tenant_registry

MIGRATION = Path(__file__).resolve().parents[2] / "migrations" / "versions" / "0001_initial.py"


def load_migration():
    spec = importlib.util.spec_from_file_location("initial_migration", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    module.op = MagicMock()
    return module


def created_tables(module, stream_name):
    module.op.reset_mock()
    module.upgrade(stream_name)
    return {call.args[0] for call in module.op.create_table.call_args_list}


class TestSchemas:
    """Tests para init_schemas y sesiones por tenant"""

    def test_every_tenant_has_its_tables(self, test_engine):
        inspector = inspect(test_engine)
        expected = {table.name for table in tenant_tables()}

        for schema_name in tenant_registry:
            assert expected <= set(inspector.get_table_names(schema=schema_name))

        shared = {table.name for table in shared_tables()}
        assert shared <= set(inspector.get_table_names(schema=settings.AUTH_SCHEMA))

    def test_tenant_sessions_are_isolated(self, tenant_session):
        quimicinter = tenant_session("quimicinter")
        quimicinter.add(Customer(full_name="Farmacia Carol"))
        quimicinter.commit()

        assert tenant_session("quimicinter").query(Customer).count() == 1
        assert tenant_session("qalinkforce").query(Customer).count() == 0
        assert tenant_session("public").query(Customer).count() == 0


class TestInitialMigration:
    """La migración inicial crea todas las tablas de los modelos"""

    def test_auth_stream(self):
        module = load_migration()
        assert created_tables(module, "auth") == {table.name for table in shared_tables()}

    def test_tenant_stream(self):
        module = load_migration()
        assert created_tables(module, "tenant") == {table.name for table in tenant_tables()}
