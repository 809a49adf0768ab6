"""
Models package.

Import all models here so they are registered with SQLAlchemy.
This file also makes it easy to import models from one place.
"""

from app.models.organization import Organization
from app.models.user import User
from app.models.contract import Contract
from app.models.analysis_result import (
    AnalysisResult,
    AnalysisStatus,
    AnalysisType,
    JobPriority,
)
from app.models.job_log import JobLog
from app.models.user_activity import UserActivity
from app.models.queue_control import QueueControl

# Export all models
__all__ = [
    "Organization",
    "User",
    "Contract",
    "AnalysisResult",
    "AnalysisStatus",
    "AnalysisType",
    "JobPriority",
    "JobLog",
    "UserActivity",
    "QueueControl",
]
