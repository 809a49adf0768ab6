"""
Admin dashboard Pydantic schemas.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import Field

from app.schemas.base import CamelModel
from app.schemas.queue import QueueStats


class JobLogRead(CamelModel):
    id: UUID
    queue_name: str
    job_id: str
    job_type: str
    status: str
    attempts: int
    error: Optional[str] = None
    duration_ms: Optional[int] = None
    data: Optional[Dict[str, Any]] = None
    created_at: datetime


class JobQueuesResponse(CamelModel):
    """Queue health for the admin dashboard."""
    
    queue: QueueStats
    recent_logs: List[JobLogRead]
    failed_count: int
    # to_camel would produce completedLast24H
    completed_last_24h: int = Field(alias="completedLast24h")
