from pydantic import BaseModel
from typing import List


class TenantListResponse(BaseModel):
    schemas: List[str]
    default: str
    replication: List[str]
