from fastapi import APIRouter

from app.modules.tenants.registry import tenant_registry
from app.modules.tenants.schemas import TenantListResponse

router = APIRouter(prefix="/tenants", tags=["Tenants"])


@router.get("", response_model=TenantListResponse)
async def list_tenants():
    """Schemas de tenant registrados, en orden de declaración."""
    return TenantListResponse(
        schemas=tenant_registry.schemas,
        default=tenant_registry.default,
        replication=tenant_registry.replication
    )
