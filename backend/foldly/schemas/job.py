"""Job request/response schemas."""
import uuid
from typing import Optional
from datetime import datetime
from foldly.schemas.base import CamelORMModel


class JobResponse(CamelORMModel):
    id: uuid.UUID
    user_id: uuid.UUID
    job_type: str
    status: str
    params: dict
    result: Optional[dict] = None
    progress: dict
    error_message: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
