"""
Dependencias de autenticación para FastAPI.
"""
from uuid import UUID
import logging

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import jwt

from app.database.database import get_db, open_tenant_session
from app.modules.auth.access import lookup_identity_role, validate_login_access
from app.modules.auth.models import ProfileRole
from app.modules.auth.schemas import AuthContext
from app.modules.auth.utils import decode_access_token
from app.modules.tenants.registry import tenant_registry
from app.core.config import settings

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer()


class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_auth_context(
        request: Request,
        credentials: HTTPAuthorizationCredentials = Depends(security),
        db: Session = Depends(get_db)
    ) -> AuthContext:
        """
        Obtener contexto de autenticación con tenant.

        El tenant sale del header x-schema-name o, si no viene, del schema con
        el que se emitió el token. El acceso se revalida en
        cada petición, así que un cambio de rol surte efecto sin re-login.
        """
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No se pudieron validar las credenciales",
            headers={"WWW-Authenticate": "Bearer"},
        )

        try:
            payload = decode_access_token(credentials.credentials)
            user_id = UUID(payload.get("sub", ""))
        except (jwt.PyJWTError, ValueError):
            raise credentials_exception

        schema_name = (
            (request.headers.get(settings.SCHEMA_HEADER) or "").strip()
            or payload.get("schema_name")
            or tenant_registry.default
        )
        if not tenant_registry.is_known(schema_name):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Empresa desconocida: {schema_name}"
            )

        if not validate_login_access(db, user_id, schema_name, tenant_registry):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="No tienes acceso a esta empresa"
            )

        role, _ = lookup_identity_role(db, user_id, tenant_registry)

        return AuthContext(
            user_id=user_id,
            email=payload.get("email"),
            schema_name=schema_name,
            user_role=role
        )

    @staticmethod
    def require_role(allowed_roles: list[ProfileRole]):
        """
        Dependencia para requerir roles específicos.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if auth_context.user_role not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Se requiere uno de estos roles: {', '.join(r.value for r in allowed_roles)}"
                )
            return auth_context
        return role_checker

    @staticmethod
    def require_admin():
        """Dependencia para requerir rol de administrador."""
        return AuthDependencies.require_role([ProfileRole.ADMIN])

    @staticmethod
    def require_any_role():
        """Dependencia que requiere cualquier rol con acceso al tenant."""
        return AuthDependencies.require_role([ProfileRole.ADMIN, ProfileRole.USER])


# Instancias de dependencias
get_auth_context = AuthDependencies.get_auth_context
require_admin = AuthDependencies.require_admin
require_any_role = AuthDependencies.require_any_role


def get_tenant_db(
    auth_context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    """Sesión sobre el schema del tenant autenticado."""
    tenant_db = open_tenant_session(db.get_bind(), auth_context.schema_name)
    try:
        yield tenant_db
    except Exception as e:
        logger.error(f"Database error in schema {auth_context.schema_name}: {e}")
        tenant_db.rollback()
        raise
    finally:
        tenant_db.close()
