from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class CurrentUser(BaseModel):
    """Identity resolved from the bearer token issued by the institution's login service."""

    id: UUID
    role: str
    name: Optional[str] = None
    permissions: Dict[str, Dict[str, bool]] = Field(default_factory=dict)
