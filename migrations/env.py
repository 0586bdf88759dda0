"""
Entorno de Alembic multi-tenant.

Cada revisión tiene dos flujos:
- auth: tablas compartidas del schema de autenticación
- tenant: tablas de negocio, aplicadas en cada schema de tenant registrado

Cada schema lleva su propia tabla alembic_version.
"""
from logging.config import fileConfig

from alembic import context
from sqlalchemy import text

from app.core.config import settings
from app.database.database import Base, build_engine
from app.modules.tenants.registry import tenant_registry

# Registrar modelos en Base.metadata
import app.modules.auth.models  # noqa: F401
import app.modules.invoices.models  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def include_shared(object, name, type_, reflected, compare_to):
    if type_ == "table":
        return object.schema == settings.AUTH_SCHEMA
    return True


def include_tenant(object, name, type_, reflected, compare_to):
    if type_ == "table":
        return object.schema is None
    return True


def include_auth_schema(name, type_, parent_names):
    if type_ == "schema":
        return name == settings.AUTH_SCHEMA
    return True


def tenant_schemas():
    # Al autogenerar basta con comparar un tenant: todos comparten estructura
    if getattr(config.cmd_opts, "autogenerate", False):
        return [tenant_registry.default]
    return list(tenant_registry)


def run_migrations_offline():
    """Generar SQL sin conexión (alembic upgrade --sql)."""
    url = config.get_main_option("sqlalchemy.url")

    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        include_schemas=True,
        include_name=include_auth_schema,
        include_object=include_shared,
        version_table_schema=settings.AUTH_SCHEMA,
        upgrade_token="auth_upgrades",
        downgrade_token="auth_downgrades",
    )
    with context.begin_transaction():
        context.run_migrations(stream_name="auth")

    for schema_name in tenant_schemas():
        context.configure(
            url=url,
            target_metadata=target_metadata,
            literal_binds=True,
            dialect_opts={"paramstyle": "named"},
            include_object=include_tenant,
            version_table_schema=schema_name,
            upgrade_token="tenant_upgrades",
            downgrade_token="tenant_downgrades",
        )
        with context.begin_transaction():
            context.execute(f'SET search_path TO "{schema_name}"')
            context.run_migrations(stream_name="tenant")


def run_migrations_online():
    """Aplicar migraciones: primero auth, luego cada tenant con su search_path."""
    engine = build_engine(config.get_main_option("sqlalchemy.url"), echo=False)

    with engine.connect() as connection:
        for schema_name in [settings.AUTH_SCHEMA, *tenant_registry]:
            connection.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{schema_name}"'))
        connection.commit()

        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_schemas=True,
            include_name=include_auth_schema,
            include_object=include_shared,
            version_table_schema=settings.AUTH_SCHEMA,
            upgrade_token="auth_upgrades",
            downgrade_token="auth_downgrades",
        )
        with context.begin_transaction():
            context.run_migrations(stream_name="auth")

        for schema_name in tenant_schemas():
            connection.execute(text(f'SET search_path TO "{schema_name}"'))
            connection.commit()
            connection.dialect.default_schema_name = schema_name

            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                include_object=include_tenant,
                version_table_schema=schema_name,
                upgrade_token="tenant_upgrades",
                downgrade_token="tenant_downgrades",
            )
            with context.begin_transaction():
                context.run_migrations(stream_name="tenant")

    engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
