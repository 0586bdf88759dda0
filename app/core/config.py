from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List
from decimal import Decimal
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'billing_user'
    POSTGRES_PASSWORD: str = 'billing_pass'
    POSTGRES_DB: str = 'billing_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    # Full URL override, e.g. sqlite:///./billing.db for local development
    DATABASE_URL: Optional[str] = None

    # Tenancy (one Postgres schema per tenant). Lists are read from env as JSON,
    # e.g. TENANT_SCHEMAS='["public", "quimicinter", "qalinkforce"]'
    TENANT_SCHEMAS: List[str] = ["public", "quimicinter", "qalinkforce"]
    DEFAULT_TENANT_SCHEMA: str = "public"
    ADMIN_REPLICATION_SCHEMAS: List[str] = ["quimicinter", "qalinkforce"]
    AUTH_SCHEMA: str = "auth"
    SCHEMA_HEADER: str = "x-schema-name"

    # Redis settings
    REDIS_HOST: str = 'redis'
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # JWT settings
    APP_SECRET_STRING: str = 'your-super-secret-key-here-change-in-production-2024'
    ALGORITHM: str = 'HS256'
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Billing
    INVOICE_PAGE_SIZE: int = 30
    CURRENCY_CODE: str = 'DOP'
    CURRENCY_LOCALE: str = 'es-DO'
    ITBIS_RATE: Decimal = Decimal('0.18')
    NCF_PREFIX: str = 'B01'
    PDF_COMPANY_NAME: str = 'Quimicinter S.R.L'
    PDF_COMPANY_TAGLINE: str = 'Productos Químicos Industriales e Institucionales'
    MAX_EMAIL_ATTACHMENT_SIZE: int = 10 * 1024 * 1024  # 10MB

    # Email settings
    EMAIL_SMTP_SERVER: str = 'smtp.gmail.com'
    EMAIL_SMTP_PORT: int = 587
    EMAIL_USE_TLS: bool = True
    EMAIL_USERNAME: str = ''
    EMAIL_PASSWORD: str = ''
    EMAIL_FROM: str = ''
    EMAIL_FROM_NAME: str = 'Facturación'

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", "EMAIL_USE_TLS", mode="before")
    @classmethod
    def parse_bool(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

settings = Settings()
