from fastapi import APIRouter, Depends, Header
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session
from typing import Optional

from app.database.database import get_db
from app.modules.auth.service import AuthService
from app.modules.auth.access import validate_login_access
from app.modules.auth.dependencies import get_auth_context
from app.modules.auth.schemas import (
    IdentityCreate, RegistrationResponse, TokenResponse, AuthContext,
    AccessCheckRequest, AccessCheckResponse, CurrentUserResponse
)

auth_router = APIRouter()


@auth_router.post("/register", response_model=RegistrationResponse, status_code=201)
async def register(
    identity_data: IdentityCreate,
    x_schema_name: Optional[str] = Header(None),
    db: Session = Depends(get_db)
):
    """
    Registrar una identidad y aprovisionar sus perfiles.

    El tenant se toma de metadata.schema_name, luego del header
    x-schema-name y por último del tenant por defecto.
    """
    auth_service = AuthService(db)
    return auth_service.register(identity_data, header_schema=x_schema_name)


@auth_router.post("/login", response_model=TokenResponse)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    x_schema_name: Optional[str] = Header(None),
    db: Session = Depends(get_db)
):
    """
    Login de usuario contra el tenant del header x-schema-name.
    """
    auth_service = AuthService(db)
    return auth_service.login(form_data.username, form_data.password, x_schema_name)


@auth_router.get("/me", response_model=CurrentUserResponse)
async def get_current_user_info(
    auth_context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    """
    Obtener información del usuario actual en el tenant activo.
    """
    auth_service = AuthService(db)
    return CurrentUserResponse(
        user_id=auth_context.user_id,
        email=auth_context.email,
        schema_name=auth_context.schema_name,
        role=auth_context.user_role,
        profile=auth_service.get_profile(auth_context.user_id, auth_context.schema_name)
    )


@auth_router.post("/validate-access", response_model=AccessCheckResponse)
async def validate_access(check: AccessCheckRequest, db: Session = Depends(get_db)):
    """
    ¿Puede la identidad entrar al tenant? Usado como compuerta de sesión.
    """
    allowed = validate_login_access(db, check.user_id, check.schema_name)
    return AccessCheckResponse(
        user_id=check.user_id,
        schema_name=check.schema_name,
        allowed=allowed
    )
