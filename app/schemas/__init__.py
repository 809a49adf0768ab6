"""
Schemas package.

Import all schemas here for easy access.
"""

from app.schemas.base import CamelModel
from app.schemas.analysis import (
    AnalysisActionRequest,
    AnalysisActionResponse,
    AnalysisJobRead,
    AnalysisListResponse,
    AnalysisResultsResponse,
    StartAnalysisRequest,
    StartAnalysisResponse,
)
from app.schemas.queue import QueueActionRequest, QueueActionResponse, QueueStats, QueueStatusResponse
from app.schemas.batch import BatchJobStub, BatchStartRequest, BatchStartResponse, BatchStatusResponse
from app.schemas.clear_stuck import ClearStuckRequest, ClearStuckResponse, StuckInspectionResponse
from app.schemas.admin import JobLogRead, JobQueuesResponse

__all__ = [
    "CamelModel",
    "AnalysisActionRequest",
    "AnalysisActionResponse",
    "AnalysisJobRead",
    "AnalysisListResponse",
    "AnalysisResultsResponse",
    "StartAnalysisRequest",
    "StartAnalysisResponse",
    "QueueActionRequest",
    "QueueActionResponse",
    "QueueStats",
    "QueueStatusResponse",
    "BatchJobStub",
    "BatchStartRequest",
    "BatchStartResponse",
    "BatchStatusResponse",
    "ClearStuckRequest",
    "ClearStuckResponse",
    "StuckInspectionResponse",
    "JobLogRead",
    "JobQueuesResponse",
]
