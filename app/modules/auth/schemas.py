from pydantic import BaseModel
from typing import Optional
from uuid import UUID


class CallerContext(BaseModel):
    """Identidad y ubicación de quien llama, resueltas desde el token."""
    actor_id: UUID
    location_id: str
    role: str
    full_name: Optional[str] = None

