import httpx
from fastapi import APIRouter, Depends, HTTPException, Query

from ..auth import require_token, session_key
from ..config import settings
from ..errors import ConfigError, NoPreviewToRefine, PipelineBusy
from ..models import ArtifactOut, ErrorOut, PromptIn, RefineIn, SessionList, SessionOut
from ..services.orchestrator import PipelineOrchestrator, create_orchestrator
from ..storage.repo import SessionRepo

router = APIRouter(dependencies=[Depends(require_token)])

_http: httpx.AsyncClient | None = None


def http_client() -> httpx.AsyncClient:
    global _http
    if _http is None or _http.is_closed:
        _http = httpx.AsyncClient(follow_redirects=True)
    return _http


async def close_http_client() -> None:
    global _http
    if _http is not None:
        await _http.aclose()
        _http = None


repo = SessionRepo(
    lambda: create_orchestrator(settings, http_client()),
    maxsize=settings.max_sessions,
    ttl=settings.session_ttl_seconds,
)


def get_repo() -> SessionRepo:
    return repo


def _orchestrator(r: SessionRepo, key: str) -> PipelineOrchestrator:
    try:
        return r.get_or_create(key)
    except ConfigError as exc:
        raise HTTPException(status_code=503, detail=exc.message)


def session_view(orch: PipelineOrchestrator) -> SessionOut:
    s = orch.session
    artifact = None
    if s.artifact is not None:
        artifact = ArtifactOut(stage=s.artifact.stage.value, task_id=s.artifact.task_id, url=s.artifact.url)
    error = None
    if s.last_error is not None:
        error = ErrorOut(kind=s.last_error.kind, message=s.last_error.message)
    return SessionOut(
        state=s.state.value,
        in_flight=s.in_flight.value if s.in_flight else None,
        ready_stage=s.ready_stage.value if s.ready_stage else None,
        progress=s.progress,
        message=s.message,
        readiness=orch.readiness(),
        preview_task=s.preview_task,
        refine_task=s.refine_task,
        artifact=artifact,
        error=error,
    )


@router.post("/preview", response_model=SessionOut)
async def submit_preview(payload: PromptIn, key: str = Depends(session_key), r: SessionRepo = Depends(get_repo)):
    orch = _orchestrator(r, key)
    try:
        orch.start_preview(payload.prompt)
    except PipelineBusy as exc:
        raise HTTPException(status_code=409, detail=exc.message)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return session_view(orch)


@router.post("/refine", response_model=SessionOut)
async def submit_refine(payload: RefineIn, key: str = Depends(session_key), r: SessionRepo = Depends(get_repo)):
    orch = _orchestrator(r, key)
    try:
        orch.start_refine(payload.preview_task_id)
    except (PipelineBusy, NoPreviewToRefine) as exc:
        raise HTTPException(status_code=409, detail=exc.message)
    return session_view(orch)


@router.get("/session", response_model=SessionOut)
async def get_session(longpoll: bool = Query(False), key: str = Depends(session_key), r: SessionRepo = Depends(get_repo)):
    orch = _orchestrator(r, key)
    if longpoll:
        await orch.wait_for_cycle(timeout=settings.max_status_longpoll_seconds)
    return session_view(orch)


@router.post("/reset", response_model=SessionOut)
async def reset_session(key: str = Depends(session_key), r: SessionRepo = Depends(get_repo)):
    orch = _orchestrator(r, key)
    orch.reset()
    view = session_view(orch)
    r.drop(key)
    return view


@router.get("/sessions", response_model=SessionList)
async def list_sessions(r: SessionRepo = Depends(get_repo)):
    return SessionList(sessions=r.keys())
