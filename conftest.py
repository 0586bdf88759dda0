"""
Fixtures compartidas para los tests de la API.

- Base SQLite en archivo por test, con un archivo adjunto por schema
  (auth y cada tenant registrado)
- TestClient con get_db apuntando a esa base
- Celery parcheado: ninguna tarea sale a Redis
- Helpers de registro, login y datos de referencia por tenant
"""
import os

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"

from decimal import Decimal
from typing import Generator
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from app.database.database import build_engine, get_db, init_schemas, open_tenant_session
from app.main import app
from app.modules.invoices.models import Customer, Product

PASSWORD = "secreto-seguro-123"


@pytest.fixture(scope="function")
def test_engine(tmp_path):
    """Engine aislado por test con todos los schemas creados."""
    engine = build_engine(f"sqlite:///{tmp_path / 'app.db'}")
    init_schemas(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Sesión sobre los schemas compartidos, para preparar y verificar datos."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def tenant_session(test_engine):
    """Fábrica de sesiones por schema de tenant; se cierran al terminar el test."""
    sessions = []

    def _open(schema_name: str) -> Session:
        session = open_tenant_session(test_engine, schema_name)
        sessions.append(session)
        return session

    yield _open

    for session in sessions:
        session.close()


@pytest.fixture(scope="function")
def client(session_factory) -> Generator[TestClient, None, None]:
    """TestClient con la dependencia de base de datos redirigida al engine de test."""

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def celery_delay(monkeypatch):
    """Reemplaza el encolado de la tarea de email por un mock."""
    from app.modules.email.tasks import send_invoice_email_task

    task_result = MagicMock()
    task_result.id = "task-123"
    delay = MagicMock(return_value=task_result)
    monkeypatch.setattr(send_invoice_email_task, "delay", delay)
    return delay


# ===== HELPERS =====

def register(client: TestClient, email: str, metadata: dict = None, schema_header: str = None):
    headers = {"x-schema-name": schema_header} if schema_header else {}
    return client.post(
        "/auth/register",
        json={"email": email, "password": PASSWORD, "metadata": metadata or {}},
        headers=headers
    )


def login(client: TestClient, email: str, schema_name: str):
    return client.post(
        "/auth/login",
        data={"username": email, "password": PASSWORD},
        headers={"x-schema-name": schema_name}
    )


def auth_headers(client: TestClient, email: str, schema_name: str) -> dict:
    response = login(client, email, schema_name)
    assert response.status_code == 200, response.text
    return {
        "Authorization": f"Bearer {response.json()['access_token']}",
        "x-schema-name": schema_name,
    }


@pytest.fixture
def register_user(client):
    return lambda email, metadata=None, schema_header=None: register(client, email, metadata, schema_header)


@pytest.fixture
def headers_for(client):
    return lambda email, schema_name: auth_headers(client, email, schema_name)


@pytest.fixture
def reference_data(tenant_session):
    """Crea un cliente y dos productos en el schema indicado."""

    def _create(schema_name: str) -> dict:
        db = tenant_session(schema_name)
        customer = Customer(full_name="Hotel Caribe S.A.", email="compras@hotelcaribe.do", rnc="101000001")
        cleaner = Product(name="Desengrasante Industrial", code="DG-01", unit_price=Decimal("250.00"))
        soap = Product(name="Jabón Líquido", code="JL-05", unit_price=Decimal("120.50"))
        db.add_all([customer, cleaner, soap])
        db.commit()
        return {
            "customer_id": str(customer.id),
            "cleaner_id": str(cleaner.id),
            "soap_id": str(soap.id),
        }

    return _create


@pytest.fixture
def login_user(client):
    return lambda email, schema_name: login(client, email, schema_name)
