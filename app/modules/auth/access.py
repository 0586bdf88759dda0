"""
Validación de acceso de una identidad a un tenant.
"""
import logging
from typing import Optional, Tuple, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.modules.auth.models import IdentityRole, Profile, ProfileRole
from app.modules.tenants.registry import TenantRegistry, tenant_registry

logger = logging.getLogger(__name__)

profiles = Profile.__table__
identity_roles = IdentityRole.__table__


def lookup_identity_role(
    db: Session,
    user_id: UUID,
    registry: TenantRegistry = tenant_registry
) -> Tuple[Optional[ProfileRole], Optional[str]]:
    """
    Rol global y schema de origen de la identidad.

    La tabla auth.identity_roles es la fuente de verdad. Para identidades
    aprovisionadas antes de que existiera, se recorren los perfiles de cada
    tenant en el orden del registro y se toma el primero.
    """
    row = db.execute(
        select(identity_roles.c.role, identity_roles.c.schema_name)
        .where(identity_roles.c.identity_id == user_id)
    ).first()
    if row is not None:
        return ProfileRole(row.role), row.schema_name

    for schema_name in registry:
        row = db.execute(
            select(profiles.c.role, profiles.c.schema_name).where(profiles.c.id == user_id),
            execution_options={"schema_translate_map": {None: schema_name}}
        ).first()
        if row is not None:
            return ProfileRole(row.role), row.schema_name

    return None, None


def validate_login_access(
    db: Session,
    user_id: Union[UUID, str],
    schema_name: str,
    registry: TenantRegistry = tenant_registry
) -> bool:
    """
    ¿Puede la identidad entrar al tenant solicitado?

    - Sin perfil: no.
    - Administrador: sí, en cualquier tenant.
    - Usuario: solo en su propio tenant.

    La ausencia de datos se traduce en False; los errores de conexión o de
    consulta se propagan sin interpretar.
    """
    if not isinstance(user_id, UUID):
        try:
            user_id = UUID(str(user_id))
        except ValueError:
            return False

    role, user_schema = lookup_identity_role(db, user_id, registry)

    if role is None:
        logger.info(f"Access denied: no profile for identity {user_id}")
        return False

    if role == ProfileRole.ADMIN:
        return True

    allowed = user_schema == schema_name
    if not allowed:
        logger.info(f"Access denied: identity {user_id} belongs to {user_schema}, requested {schema_name}")
    return allowed
