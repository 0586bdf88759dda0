from sqlalchemy import Column, String, ForeignKey, DateTime, JSON, Enum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from uuid import uuid4
import enum
from app.core.config import settings
from app.database.database import Base
from app.common.mixins import TimestampMixin


class ProfileRole(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


class ProfileStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


def _enum_column(enum_cls):
    # VARCHAR en lugar de tipo nativo: el mismo enum vive en varios schemas
    return Enum(enum_cls, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e])


class Identity(Base, TimestampMixin):
    """Identidad autenticable (equivalente a auth.users del proveedor de identidad)."""
    __tablename__ = "identities"
    __table_args__ = {"schema": settings.AUTH_SCHEMA}

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String, unique=True, nullable=False, index=True)
    password = Column(String, nullable=False)
    # Metadata libre enviada en el registro: schema_name, role, full_name
    raw_user_meta_data = Column(JSON, nullable=False, default=dict)
    last_login = Column(DateTime(timezone=True), nullable=True)


class IdentityRole(Base):
    """
    Fuente única del rol global de una identidad y de su tenant de origen.
    La escribe el aprovisionamiento en la misma transacción que los profiles.
    """
    __tablename__ = "identity_roles"
    __table_args__ = {"schema": settings.AUTH_SCHEMA}

    identity_id = Column(
        UUID(as_uuid=True),
        ForeignKey(f"{settings.AUTH_SCHEMA}.identities.id", ondelete="CASCADE"),
        primary_key=True
    )
    role = Column(_enum_column(ProfileRole), nullable=False)
    schema_name = Column(String(63), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class Profile(Base, TimestampMixin):
    """
    Perfil por tenant. La tabla no declara schema: existe una copia en cada
    schema de tenant y se resuelve con schema_translate_map.
    """
    __tablename__ = "profiles"

    # Mismo id que la identidad
    id = Column(
        UUID(as_uuid=True),
        ForeignKey(f"{settings.AUTH_SCHEMA}.identities.id", ondelete="CASCADE"),
        primary_key=True
    )
    email = Column(String, nullable=False)
    full_name = Column(String, nullable=False, default="")
    role = Column(_enum_column(ProfileRole), nullable=False, default=ProfileRole.USER)
    status = Column(_enum_column(ProfileStatus), nullable=False, default=ProfileStatus.ACTIVE)
    schema_name = Column(String(63), nullable=False)
