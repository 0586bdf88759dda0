"""
Aprovisionamiento de perfiles por tenant al crear una identidad.

Se ejecuta una sola vez por identidad nueva, dentro de la misma transacción
que la inserta: si cualquier upsert falla, el registro completo se revierte.
Las escrituras usan el rol de base de datos del servicio, no el contexto de
tenant de la petición (que todavía no existe).
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy import select, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from app.modules.auth.models import Identity, IdentityRole, Profile, ProfileRole, ProfileStatus
from app.modules.auth.schemas import ProvisioningResult
from app.modules.tenants.registry import TenantRegistry, UnknownTenantError, tenant_registry

logger = logging.getLogger(__name__)

profiles = Profile.__table__
identity_roles = IdentityRole.__table__

_UPSERT_BUILDERS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class ProvisioningError(Exception):
    """Error que aborta la creación de la identidad."""


class InvalidRoleError(ProvisioningError):
    def __init__(self, role: Any):
        self.role = role
        super().__init__(f"Rol inválido en metadata: {role!r}")


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class ProvisioningService:
    """Crea o actualiza los perfiles de una identidad en los schemas de tenant."""

    def __init__(self, db: Session, registry: TenantRegistry = tenant_registry):
        self.db = db
        self.registry = registry

    def _insert(self, table):
        dialect_name = self.db.get_bind().dialect.name
        builder = _UPSERT_BUILDERS.get(dialect_name)
        if builder is None:
            raise ProvisioningError(f"Dialecto sin soporte de upsert: {dialect_name}")
        return builder(table)

    def _in_schema(self, schema_name: str) -> dict:
        return {"schema_translate_map": {None: schema_name}}

    def resolve_schema(self, metadata: Dict[str, Any], header_schema: Optional[str] = None) -> str:
        """metadata.schema_name -> header x-schema-name -> tenant por defecto."""
        schema_name = (
            _clean(metadata.get("schema_name"))
            or _clean(header_schema)
            or self.registry.default
        )
        return self.registry.require(schema_name)

    def resolve_role(self, schema_name: str, metadata: Dict[str, Any]) -> ProfileRole:
        """
        metadata.role, o admin si el tenant aún no tiene perfiles propios.

        El primer registrado de un tenant vacío queda como administrador.
        Si la tabla de perfiles de un tenant se vacía, el siguiente registro
        vuelve a obtener admin.
        """
        explicit_role = _clean(metadata.get("role"))
        if explicit_role is not None:
            try:
                return ProfileRole(explicit_role)
            except ValueError:
                raise InvalidRoleError(explicit_role)

        existing = self.db.execute(
            select(profiles.c.id).where(profiles.c.schema_name == schema_name).limit(1),
            execution_options=self._in_schema(schema_name)
        ).first()
        if existing is None:
            logger.warning(f"Tenant {schema_name} has no profiles; first registrant becomes admin")
            return ProfileRole.ADMIN
        return ProfileRole.USER

    def upsert_profile(
        self,
        identity_id,
        email: str,
        full_name: str,
        role: ProfileRole,
        schema_name: str
    ):
        """
        Insertar el perfil en el schema indicado. En conflicto por id se
        actualizan email, nombre, rol y updated_at; created_at no se toca.
        """
        now = func.now()
        stmt = self._insert(profiles).values(
            id=identity_id,
            email=email,
            full_name=full_name,
            role=role,
            status=ProfileStatus.ACTIVE,
            schema_name=schema_name,
            created_at=now,
            updated_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[profiles.c.id],
            set_={
                "email": stmt.excluded.email,
                "full_name": stmt.excluded.full_name,
                "role": stmt.excluded.role,
                "updated_at": now,
            }
        )
        self.db.execute(stmt, execution_options=self._in_schema(schema_name))

    def upsert_identity_role(self, identity_id, role: ProfileRole, schema_name: str):
        now = func.now()
        stmt = self._insert(identity_roles).values(
            identity_id=identity_id,
            role=role,
            schema_name=schema_name,
            updated_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[identity_roles.c.identity_id],
            set_={
                "role": stmt.excluded.role,
                "schema_name": stmt.excluded.schema_name,
                "updated_at": now,
            }
        )
        self.db.execute(stmt)

    def handle_new_identity(self, identity: Identity, header_schema: Optional[str] = None) -> ProvisioningResult:
        """
        Aprovisionar una identidad recién insertada (sin commit).

        Raises:
            UnknownTenantError: el schema resuelto no está registrado
            InvalidRoleError: metadata.role no es admin ni user
        """
        metadata = identity.raw_user_meta_data or {}
        schema_name = self.resolve_schema(metadata, header_schema)
        role = self.resolve_role(schema_name, metadata)
        full_name = _clean(metadata.get("full_name")) or ""

        logger.info(f"Provisioning identity {identity.id} into schema {schema_name} as {role.value}")
        self.upsert_profile(identity.id, identity.email, full_name, role, schema_name)

        replicated_to = []
        if role == ProfileRole.ADMIN:
            for target_schema in self.registry.replication_targets(excluding=schema_name):
                self.upsert_profile(identity.id, identity.email, full_name, ProfileRole.ADMIN, target_schema)
                replicated_to.append(target_schema)
            if replicated_to:
                logger.info(f"Admin {identity.id} replicated to schemas: {', '.join(replicated_to)}")

        self.upsert_identity_role(identity.id, role, schema_name)

        return ProvisioningResult(
            identity_id=identity.id,
            schema_name=schema_name,
            role=role,
            replicated_to=replicated_to
        )


__all__ = [
    "ProvisioningService",
    "ProvisioningError",
    "InvalidRoleError",
    "UnknownTenantError",
]
