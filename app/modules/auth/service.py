from datetime import datetime, timezone
from typing import Optional
from uuid import UUID
import logging

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.modules.auth.models import Identity, Profile
from app.modules.auth.schemas import (
    IdentityCreate, RegistrationResponse, TokenResponse, ProfileOut
)
from app.modules.auth.utils import hash_password, verify_password, create_access_token
from app.modules.auth.provisioning import ProvisioningService, ProvisioningError
from app.modules.auth.access import validate_login_access, lookup_identity_role
from app.modules.tenants.registry import TenantRegistry, UnknownTenantError, tenant_registry
from app.core.config import settings

logger = logging.getLogger(__name__)


class AuthService:
    """
    Servicio de autenticación multi-tenant: registro con aprovisionamiento
    de perfiles y login con validación de acceso al tenant.
    """

    def __init__(self, db: Session, registry: TenantRegistry = tenant_registry):
        self.db = db
        self.registry = registry

    def register(self, identity_data: IdentityCreate, header_schema: Optional[str] = None) -> RegistrationResponse:
        """
        Crear identidad y aprovisionar sus perfiles en una sola transacción.

        Args:
            identity_data: email, contraseña y metadata (schema_name, role, full_name)
            header_schema: valor del header x-schema-name, si vino en la petición
        """
        existing = self.db.query(Identity).filter(Identity.email == identity_data.email).first()
        if existing:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Este email ya está registrado"
            )

        try:
            identity = Identity(
                email=identity_data.email,
                password=hash_password(identity_data.password),
                raw_user_meta_data=identity_data.metadata.model_dump(exclude_none=True)
            )
            self.db.add(identity)
            self.db.flush()

            result = ProvisioningService(self.db, self.registry).handle_new_identity(identity, header_schema)
            self.db.commit()

        except (ProvisioningError, UnknownTenantError) as e:
            self.db.rollback()
            logger.warning(f"Registration aborted for {identity_data.email}: {e}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(e)
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Registration failed for {identity_data.email}: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error creando el usuario"
            )

        return RegistrationResponse(
            message="Usuario registrado exitosamente",
            user_id=identity.id,
            email=identity.email,
            schema_name=result.schema_name,
            role=result.role,
            replicated_to=result.replicated_to
        )

    def login(self, email: str, password: str, schema_name: Optional[str] = None) -> TokenResponse:
        """
        Login contra un tenant. El token queda atado al schema solicitado.
        """
        schema_name = schema_name or self.registry.default
        if not self.registry.is_known(schema_name):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Empresa desconocida: {schema_name}"
            )

        identity = self.db.query(Identity).filter(Identity.email == email).first()
        if not identity or not verify_password(password, identity.password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Credenciales incorrectas"
            )

        if not validate_login_access(self.db, identity.id, schema_name, self.registry):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="No tienes acceso a esta empresa"
            )

        role, _ = lookup_identity_role(self.db, identity.id, self.registry)

        identity.last_login = datetime.now(timezone.utc)
        self.db.commit()

        token_data = {
            "sub": str(identity.id),
            "email": identity.email,
            "schema_name": schema_name,
            "role": role.value
        }
        access_token = create_access_token(token_data)

        return TokenResponse(
            access_token=access_token,
            expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            schema_name=schema_name,
            role=role,
            profile=self.get_profile(identity.id, schema_name)
        )

    def get_profile(self, user_id: UUID, schema_name: str) -> Optional[ProfileOut]:
        """Perfil de la identidad dentro de un tenant, si existe allí."""
        profiles = Profile.__table__
        row = self.db.execute(
            select(profiles).where(profiles.c.id == user_id),
            execution_options={"schema_translate_map": {None: schema_name}}
        ).first()
        if row is None:
            return None
        return ProfileOut.model_validate(dict(row._mapping))
