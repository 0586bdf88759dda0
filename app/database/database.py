from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from app.core.config import settings
from app.modules.tenants.registry import tenant_registry
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()


def _attach_sqlite_schemas(engine: Engine, schema_names: Iterable[str]):
    """
    SQLite no tiene schemas: cada schema se emula con una base adjunta
    (ATTACH) en un archivo junto a la base principal.
    """
    url = make_url(engine.url)
    database = url.database
    schema_names = list(schema_names)

    @event.listens_for(engine, "connect")
    def _attach(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        for schema_name in schema_names:
            if not database or database == ":memory:":
                target = ":memory:"
            else:
                base = Path(database)
                target = str(base.with_name(f"{base.stem}_{schema_name}{base.suffix or '.db'}"))
            cursor.execute(f"ATTACH DATABASE '{target}' AS \"{schema_name}\"")
        cursor.close()


def build_engine(database_url: str, schema_names: Optional[Iterable[str]] = None, **kwargs) -> Engine:
    """Crear engine; en SQLite se adjuntan los schemas de tenants y de auth."""
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=kwargs.pop("echo", False),
            **kwargs
        )
        if schema_names is None:
            schema_names = [*tenant_registry, settings.AUTH_SCHEMA]
        _attach_sqlite_schemas(engine, schema_names)
        return engine

    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        echo=kwargs.pop("echo", settings.DEBUG),
        **kwargs
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def tenant_bind(bind, schema_name: str):
    """Engine/conexión cuyas tablas sin schema se traducen al schema del tenant."""
    return bind.execution_options(schema_translate_map={None: schema_name})


def tenant_tables():
    """Tablas particionadas por tenant (las que no declaran schema propio)."""
    return [table for table in Base.metadata.sorted_tables if table.schema is None]


def shared_tables():
    return [table for table in Base.metadata.sorted_tables if table.schema is not None]


def init_schemas(bind: Engine, schema_names: Optional[Iterable[str]] = None):
    """
    Crear schemas y tablas para auth y para cada tenant registrado.
    Idempotente: solo crea lo que falta.
    """
    schema_names = list(schema_names or tenant_registry)
    with bind.begin() as conn:
        if conn.dialect.name == "postgresql":
            for schema_name in [settings.AUTH_SCHEMA, *schema_names]:
                conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{schema_name}"'))

        Base.metadata.create_all(conn, tables=shared_tables())

        for schema_name in schema_names:
            logger.info(f"Creating tenant tables in schema {schema_name}")
            Base.metadata.create_all(tenant_bind(conn, schema_name), tables=tenant_tables())


def get_db():
    """Genera una sesión de base de datos (schemas compartidos: auth)."""
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"Database error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def open_tenant_session(bind, schema_name: str) -> Session:
    """
    Sesión ORM cuyas tablas de tenant se resuelven en `schema_name`.
    El llamador es responsable de cerrarla.
    """
    return Session(bind=tenant_bind(bind, schema_name), autoflush=False)
