from pydantic import BaseModel, Field, StrictStr
from typing import List, Literal, Optional

from .storage.schema import ModelUrls, TaskError, TaskRecord, TextureUrls

# --- wire shapes (Meshy text-to-3d) ---

class PreviewRequest(BaseModel):
    mode: Literal["preview"] = "preview"
    prompt: str
    art_style: str = "realistic"
    should_remesh: bool = True
    target_polycount: int = 30000

class RefineRequest(BaseModel):
    mode: Literal["refine"] = "refine"
    preview_task_id: str
    enable_pbr: bool = True

class SubmitAccepted(BaseModel):
    result: StrictStr

class StatusResponse(BaseModel):
    id: StrictStr
    status: StrictStr
    progress: Optional[int] = None
    model_urls: Optional[ModelUrls] = None
    texture_urls: Optional[List[TextureUrls]] = None
    thumbnail_url: Optional[str] = None
    prompt: Optional[str] = None
    art_style: Optional[str] = None
    started_at: Optional[int] = None
    created_at: Optional[int] = None
    finished_at: Optional[int] = None
    preceding_tasks: Optional[int] = None
    task_error: Optional[TaskError] = None

# --- front-end API ---

class PromptIn(BaseModel):
    prompt: str = Field(min_length=1)

class RefineIn(BaseModel):
    preview_task_id: Optional[str] = None

class Readiness(BaseModel):
    can_submit_preview: bool
    can_submit_refine: bool
    can_place: bool

class ArtifactOut(BaseModel):
    stage: str
    task_id: str
    url: str

class ErrorOut(BaseModel):
    kind: str
    message: str

class SessionOut(BaseModel):
    state: str
    in_flight: Optional[str] = None
    ready_stage: Optional[str] = None
    progress: int = 0
    message: str = ""
    readiness: Readiness
    preview_task: Optional[TaskRecord] = None
    refine_task: Optional[TaskRecord] = None
    artifact: Optional[ArtifactOut] = None
    error: Optional[ErrorOut] = None

class SessionList(BaseModel):
    sessions: List[str]
