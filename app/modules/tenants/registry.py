"""
Registro de tenants (schemas) conocidos por la aplicación.

Cada tenant es un schema de Postgres con sus propias tablas de negocio
(profiles, invoices, ...). El conjunto es cerrado y se declara en la
configuración, de modo que agregar un tenant no requiere cambios de código.
"""
import re
import logging
from typing import Iterable, Iterator, List, Optional

from app.core.config import settings

logger = logging.getLogger(__name__)

SCHEMA_NAME_PATTERN = re.compile(r"^[a-z_][a-z0-9_]*$")


class UnknownTenantError(ValueError):
    """El schema solicitado no está registrado."""

    def __init__(self, schema_name: str):
        self.schema_name = schema_name
        super().__init__(f"Tenant desconocido: {schema_name!r}")


class TenantRegistry:
    """Conjunto ordenado de schemas de tenant con un default y un set de replicación."""

    def __init__(self, schemas: Iterable[str], default: str, replication: Iterable[str]):
        self._schemas: List[str] = []
        for name in schemas:
            if not SCHEMA_NAME_PATTERN.match(name or ""):
                raise ValueError(f"Nombre de schema inválido: {name!r}")
            if name not in self._schemas:
                self._schemas.append(name)

        if default not in self._schemas:
            raise ValueError(f"El tenant por defecto {default!r} no está registrado")
        self.default = default

        self._replication: List[str] = []
        for name in replication:
            if name not in self._schemas:
                raise ValueError(f"El tenant de replicación {name!r} no está registrado")
            if name not in self._replication:
                self._replication.append(name)

    @classmethod
    def from_settings(cls) -> "TenantRegistry":
        return cls(
            schemas=settings.TENANT_SCHEMAS,
            default=settings.DEFAULT_TENANT_SCHEMA,
            replication=settings.ADMIN_REPLICATION_SCHEMAS,
        )

    def __iter__(self) -> Iterator[str]:
        return iter(self._schemas)

    def __contains__(self, schema_name: object) -> bool:
        return schema_name in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)

    @property
    def schemas(self) -> List[str]:
        return list(self._schemas)

    @property
    def replication(self) -> List[str]:
        return list(self._replication)

    def is_known(self, schema_name: Optional[str]) -> bool:
        return schema_name in self._schemas

    def require(self, schema_name: str) -> str:
        if schema_name not in self._schemas:
            raise UnknownTenantError(schema_name)
        return schema_name

    def replication_targets(self, excluding: Optional[str] = None) -> List[str]:
        """Schemas donde se replica un administrador, sin el schema ya provisionado."""
        return [name for name in self._replication if name != excluding]


tenant_registry = TenantRegistry.from_settings()
