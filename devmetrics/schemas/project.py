from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class Project(BaseModel):
    """Identity of a tracked folder."""

    id: str
    name: str
    folder_path: str
    is_tracking: bool = False
    last_saved_time: datetime


class ProjectCreate(BaseModel):
    name: str
    folder_path: str
    start_tracking: bool = False


class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    folder_path: Optional[str] = None


class ProjectStatus(BaseModel):
    """Project identity plus the live state of its scheduler."""

    project: Project
    scheduler_state: str
    last_capture_time: Optional[datetime] = None
    last_error: Optional[str] = None
