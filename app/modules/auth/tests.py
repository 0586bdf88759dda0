"""
Tests para el módulo de Auth

Cubren:
- Aprovisionamiento de perfiles al registrar una identidad (tenant, rol,
  replicación de administradores)
- Validación de acceso de una identidad a un tenant
- Login, contexto autenticado y endpoints públicos
"""

import pytest
from uuid import UUID, uuid4
from sqlalchemy import select, delete

from app.modules.auth.access import validate_login_access, lookup_identity_role
from app.modules.auth.models import Identity, IdentityRole, Profile, ProfileRole
from app.modules.auth.provisioning import ProvisioningService
from app.modules.auth.utils import decode_access_token
from app.modules.tenants.registry import TenantRegistry, UnknownTenantError, tenant_registry

profiles = Profile.__table__
identity_roles = IdentityRole.__table__


def profile_rows(db, schema_name):
    return db.execute(
        select(profiles),
        execution_options={"schema_translate_map": {None: schema_name}}
    ).all()


def profile_for(db, schema_name, user_id):
    return db.execute(
        select(profiles).where(profiles.c.id == user_id),
        execution_options={"schema_translate_map": {None: schema_name}}
    ).first()


def user_id_of(response):
    assert response.status_code == 201, response.text
    return UUID(response.json()["user_id"])


# ===== TESTS DEL REGISTRO DE TENANTS =====

class TestTenantRegistry:
    """Tests para el registro de tenants"""

    def test_default_configuration(self):
        assert tenant_registry.schemas == ["public", "quimicinter", "qalinkforce"]
        assert tenant_registry.default == "public"
        assert tenant_registry.replication == ["quimicinter", "qalinkforce"]

    def test_replication_targets_exclude_resolved_schema(self):
        assert tenant_registry.replication_targets(excluding="quimicinter") == ["qalinkforce"]
        assert tenant_registry.replication_targets(excluding="public") == ["quimicinter", "qalinkforce"]

    def test_require_unknown_schema(self):
        with pytest.raises(UnknownTenantError):
            tenant_registry.require("acme")

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            TenantRegistry(["public"], default="acme", replication=[])
        with pytest.raises(ValueError):
            TenantRegistry(["public"], default="public", replication=["acme"])
        with pytest.raises(ValueError):
            TenantRegistry(["Public; DROP"], default="Public; DROP", replication=[])

    def test_list_tenants_endpoint(self, client):
        response = client.get("/tenants")
        assert response.status_code == 200
        data = response.json()
        assert data["schemas"] == ["public", "quimicinter", "qalinkforce"]
        assert data["default"] == "public"


# ===== TESTS DE APROVISIONAMIENTO =====

class TestProvisioning:
    """Tests para el aprovisionamiento de perfiles al registrar"""

    def test_default_tenant_without_metadata_or_header(self, register_user, db_session):
        user_id = user_id_of(register_user("ana@example.com"))

        assert profile_for(db_session, "public", user_id) is not None
        assert profile_for(db_session, "quimicinter", user_id) is not None  # admin replicado

    def test_header_used_when_metadata_has_no_schema(self, register_user, db_session):
        register_user("admin@qalinkforce.do", schema_header="qalinkforce")
        response = register_user("luis@qalinkforce.do", schema_header="qalinkforce")

        assert response.json()["schema_name"] == "qalinkforce"
        assert response.json()["role"] == "user"
        row = profile_for(db_session, "qalinkforce", user_id_of(response))
        assert row.schema_name == "qalinkforce"

    def test_metadata_schema_wins_over_header(self, register_user):
        response = register_user(
            "maria@example.com",
            metadata={"schema_name": "quimicinter"},
            schema_header="qalinkforce"
        )
        assert response.json()["schema_name"] == "quimicinter"

    def test_blank_metadata_values_are_ignored(self, register_user):
        response = register_user(
            "blank@example.com",
            metadata={"schema_name": "  ", "role": ""},
            schema_header="quimicinter"
        )
        assert response.status_code == 201
        assert response.json()["schema_name"] == "quimicinter"
        assert response.json()["role"] == "admin"

    def test_first_identity_in_empty_tenant_becomes_admin(self, register_user, db_session):
        first = register_user("first@quimicinter.do", metadata={"schema_name": "quimicinter"})
        second = register_user("second@quimicinter.do", metadata={"schema_name": "quimicinter"})

        assert first.json()["role"] == "admin"
        assert second.json()["role"] == "user"

        row = profile_for(db_session, "quimicinter", user_id_of(second))
        assert row.role == ProfileRole.USER

    def test_admin_scenario_quimicinter(self, register_user, db_session):
        """{schema_name: quimicinter, role: admin}: filas en quimicinter y qalinkforce, ninguna en public."""
        response = register_user(
            "gerente@quimicinter.do",
            metadata={"schema_name": "quimicinter", "role": "admin", "full_name": "Gerente General"}
        )
        user_id = user_id_of(response)

        assert response.json()["replicated_to"] == ["qalinkforce"]
        for schema_name in ("quimicinter", "qalinkforce"):
            row = profile_for(db_session, schema_name, user_id)
            assert row is not None
            assert row.role == ProfileRole.ADMIN
            assert row.full_name == "Gerente General"
        assert profile_for(db_session, "public", user_id) is None

    def test_admin_has_row_in_every_replication_tenant(self, register_user, db_session):
        user_id = user_id_of(register_user("root@example.com", metadata={"role": "admin"}))

        for schema_name in ["public", *tenant_registry.replication]:
            assert profile_for(db_session, schema_name, user_id) is not None

    def test_regular_user_has_exactly_one_row(self, register_user, db_session):
        register_user("admin@example.com", metadata={"schema_name": "qalinkforce"})
        user_id = user_id_of(register_user(
            "user@example.com", metadata={"schema_name": "qalinkforce", "role": "user"}
        ))

        found = [s for s in tenant_registry if profile_for(db_session, s, user_id) is not None]
        assert found == ["qalinkforce"]

    def test_global_role_mapping_written(self, register_user, db_session):
        user_id = user_id_of(register_user("mapped@example.com", metadata={"schema_name": "quimicinter"}))
        row = db_session.execute(select(identity_roles).where(identity_roles.c.identity_id == user_id)).first()
        assert row.role == ProfileRole.ADMIN
        assert row.schema_name == "quimicinter"

    def test_invalid_role_aborts_registration(self, register_user, db_session):
        response = register_user("bad@example.com", metadata={"role": "superuser"})

        assert response.status_code == 400
        assert db_session.query(Identity).filter(Identity.email == "bad@example.com").first() is None
        assert profile_rows(db_session, "public") == []

    def test_unknown_schema_aborts_registration(self, register_user, db_session):
        response = register_user("lost@example.com", metadata={"schema_name": "acme"})

        assert response.status_code == 400
        assert db_session.query(Identity).filter(Identity.email == "lost@example.com").first() is None

    def test_duplicate_email_rejected(self, register_user):
        register_user("dup@example.com")
        response = register_user("dup@example.com")
        assert response.status_code == 400

    def test_upsert_updates_fields_and_keeps_created_at(self, db_session):
        service = ProvisioningService(db_session)
        identity = Identity(email="upsert@example.com", password="x", raw_user_meta_data={})
        db_session.add(identity)
        db_session.flush()

        service.upsert_profile(identity.id, identity.email, "Nombre Viejo", ProfileRole.USER, "public")
        db_session.commit()
        before = profile_for(db_session, "public", identity.id)

        service.upsert_profile(identity.id, "nuevo@example.com", "Nombre Nuevo", ProfileRole.ADMIN, "public")
        db_session.commit()
        after = profile_for(db_session, "public", identity.id)

        assert after.email == "nuevo@example.com"
        assert after.full_name == "Nombre Nuevo"
        assert after.role == ProfileRole.ADMIN
        assert after.created_at == before.created_at
        assert len(profile_rows(db_session, "public")) == 1


# ===== TESTS DEL VALIDADOR DE ACCESO =====

class TestAccessValidator:
    """Tabla de verdad de validate_login_access"""

    def test_no_profile_is_denied(self, db_session):
        assert validate_login_access(db_session, uuid4(), "public") is False

    def test_invalid_identifier_is_denied(self, db_session):
        assert validate_login_access(db_session, "not-a-uuid", "public") is False

    def test_admin_allowed_everywhere(self, register_user, db_session):
        user_id = user_id_of(register_user("boss@example.com", metadata={"schema_name": "quimicinter"}))

        for schema_name in tenant_registry:
            assert validate_login_access(db_session, user_id, schema_name) is True

    def test_user_allowed_only_in_own_tenant(self, register_user, db_session):
        register_user("boss@example.com", metadata={"schema_name": "quimicinter"})
        user_id = user_id_of(register_user("clerk@example.com", metadata={"schema_name": "quimicinter"}))

        assert validate_login_access(db_session, user_id, "quimicinter") is True
        assert validate_login_access(db_session, user_id, "qalinkforce") is False
        assert validate_login_access(db_session, user_id, "public") is False

    def test_fallback_scans_tenants_when_mapping_missing(self, register_user, db_session):
        register_user("boss@example.com", metadata={"schema_name": "qalinkforce"})
        user_id = user_id_of(register_user("legacy@example.com", metadata={"schema_name": "qalinkforce"}))

        db_session.execute(delete(identity_roles).where(identity_roles.c.identity_id == user_id))
        db_session.commit()

        role, schema_name = lookup_identity_role(db_session, user_id)
        assert role == ProfileRole.USER
        assert schema_name == "qalinkforce"
        assert validate_login_access(db_session, user_id, "qalinkforce") is True
        assert validate_login_access(db_session, user_id, "public") is False

    def test_validate_access_endpoint(self, client, register_user):
        register_user("boss@example.com", metadata={"schema_name": "quimicinter"})
        user_id = user_id_of(register_user("clerk@example.com", metadata={"schema_name": "quimicinter"}))

        allowed = client.post("/auth/validate-access", json={"user_id": str(user_id), "schema_name": "quimicinter"})
        denied = client.post("/auth/validate-access", json={"user_id": str(user_id), "schema_name": "public"})

        assert allowed.json()["allowed"] is True
        assert denied.json()["allowed"] is False


# ===== TESTS DE LOGIN Y CONTEXTO =====

class TestLogin:
    """Tests para login y contexto autenticado"""

    def test_login_returns_token_bound_to_schema(self, register_user, login_user):
        register_user("boss@example.com", metadata={"schema_name": "quimicinter"})
        response = login_user("boss@example.com", "qalinkforce")

        assert response.status_code == 200
        data = response.json()
        assert data["schema_name"] == "qalinkforce"
        assert data["role"] == "admin"
        assert data["profile"]["schema_name"] == "qalinkforce"
        payload = decode_access_token(data["access_token"])
        assert payload["schema_name"] == "qalinkforce"
        assert payload["role"] == "admin"

    def test_user_login_to_foreign_tenant_forbidden(self, register_user, login_user):
        register_user("boss@example.com", metadata={"schema_name": "quimicinter"})
        register_user("clerk@example.com", metadata={"schema_name": "quimicinter"})

        assert login_user("clerk@example.com", "quimicinter").status_code == 200
        assert login_user("clerk@example.com", "qalinkforce").status_code == 403

    def test_wrong_password(self, client, register_user):
        register_user("boss@example.com")
        response = client.post(
            "/auth/login",
            data={"username": "boss@example.com", "password": "incorrecta"},
        )
        assert response.status_code == 401

    def test_unknown_schema_header_rejected(self, client):
        response = client.get("/auth/me", headers={"x-schema-name": "acme"})
        assert response.status_code == 400

    def test_me_returns_context(self, client, register_user, headers_for):
        register_user("boss@example.com", metadata={"full_name": "Jefa"})
        response = client.get("/auth/me", headers=headers_for("boss@example.com", "public"))

        assert response.status_code == 200
        data = response.json()
        assert data["schema_name"] == "public"
        assert data["role"] == "admin"
        assert data["profile"]["full_name"] == "Jefa"

    def test_me_requires_token(self, client):
        response = client.get("/auth/me")
        assert response.status_code in (401, 403)

    def test_token_reused_against_foreign_tenant_is_forbidden(self, client, register_user, headers_for):
        register_user("boss@example.com", metadata={"schema_name": "quimicinter"})
        register_user("clerk@example.com", metadata={"schema_name": "quimicinter"})

        headers = headers_for("clerk@example.com", "quimicinter")
        headers["x-schema-name"] = "qalinkforce"

        assert client.get("/auth/me", headers=headers).status_code == 403
