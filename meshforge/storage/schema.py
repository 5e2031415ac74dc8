from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class Stage(str, Enum):
    PREVIEW = "preview"
    REFINE = "refine"


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


ACTIVE_STATUSES = {TaskStatus.PENDING, TaskStatus.IN_PROGRESS}
TERMINAL_STATUSES = {TaskStatus.SUCCEEDED, TaskStatus.FAILED}


class ModelUrls(BaseModel):
    glb: Optional[str] = None
    fbx: Optional[str] = None
    obj: Optional[str] = None
    mtl: Optional[str] = None
    usdz: Optional[str] = None


class TextureUrls(BaseModel):
    base_color: Optional[str] = None
    metallic: Optional[str] = None
    normal: Optional[str] = None
    roughness: Optional[str] = None


class TaskError(BaseModel):
    code: Optional[str] = None
    message: Optional[str] = None

    @field_validator("code", mode="before")
    @classmethod
    def _code_as_str(cls, v):
        # the service has sent numeric codes
        return None if v is None else str(v)


class TaskRecord(BaseModel):
    """One remote job instance as last observed on the status endpoint."""

    model_config = ConfigDict(frozen=True)

    id: str
    stage: Stage
    status: str  # wire value; see task_status
    progress: int = 0
    model_urls: Optional[ModelUrls] = None
    texture_urls: List[TextureUrls] = []
    thumbnail_url: Optional[str] = None
    prompt: Optional[str] = None
    art_style: Optional[str] = None
    preceding_tasks: int = 0
    task_error: Optional[TaskError] = None
    created_at: Optional[int] = None
    started_at: Optional[int] = None
    finished_at: Optional[int] = None

    @property
    def task_status(self) -> Optional[TaskStatus]:
        try:
            return TaskStatus(self.status)
        except ValueError:
            return None

    @property
    def succeeded(self) -> bool:
        return self.task_status is TaskStatus.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.task_status is TaskStatus.FAILED

    @property
    def glb_url(self) -> Optional[str]:
        if self.model_urls and self.model_urls.glb:
            return self.model_urls.glb
        return None

    @property
    def error_message(self) -> Optional[str]:
        if self.task_error and self.task_error.message:
            return self.task_error.message
        return None
