from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from app.modules.auth.models import ProfileRole, ProfileStatus


class IdentityMetadata(BaseModel):
    """Metadata opcional enviada al crear la identidad."""
    schema_name: Optional[str] = Field(None, max_length=63)
    role: Optional[str] = Field(None, description="admin | user")
    full_name: Optional[str] = Field(None, max_length=200)

    model_config = {"extra": "allow"}


class IdentityCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    metadata: IdentityMetadata = Field(default_factory=IdentityMetadata)

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        if len(v) < 8:
            raise ValueError('La contraseña debe tener al menos 8 caracteres')
        return v


class ProfileOut(BaseModel):
    id: UUID
    email: str
    full_name: str
    role: ProfileRole
    status: ProfileStatus
    schema_name: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProvisioningResult(BaseModel):
    """Resultado del aprovisionamiento de una identidad nueva."""
    identity_id: UUID
    schema_name: str
    role: ProfileRole
    replicated_to: List[str] = []


class RegistrationResponse(BaseModel):
    message: str
    user_id: UUID
    email: str
    schema_name: str
    role: ProfileRole
    replicated_to: List[str] = []


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    schema_name: str
    role: ProfileRole
    profile: Optional[ProfileOut] = None


class AccessCheckRequest(BaseModel):
    user_id: UUID
    schema_name: str = Field(..., min_length=1, max_length=63)


class AccessCheckResponse(BaseModel):
    user_id: UUID
    schema_name: str
    allowed: bool


class AuthContext(BaseModel):
    user_id: UUID
    email: Optional[str] = None
    schema_name: str
    user_role: ProfileRole


class CurrentUserResponse(BaseModel):
    user_id: UUID
    email: Optional[str] = None
    schema_name: str
    role: ProfileRole
    profile: Optional[ProfileOut] = None
