from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class AuditEventRead(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: int
    actor_id: Optional[int]
    action: str
    resource_type: str
    resource_id: Optional[str]
    details: Optional[str] = None
    metadata: Dict[str, Any] = Field(validation_alias="metadata_json")
    context: Dict[str, Any]
    timestamp: datetime
