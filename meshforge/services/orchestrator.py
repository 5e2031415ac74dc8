"""Preview/refine generation pipeline.

One ``PipelineOrchestrator`` owns one ``PipelineSession``. A cycle for a
stage is Submit -> Poll -> (Import), run as a single asyncio task. Only one
cycle may be in flight; a second submission is rejected synchronously,
before anything touches the network.

There is no cancellation. ``reset()`` and new prompts bump the session
generation; a cycle that resumes under an older generation drops its result
without touching the session.

What the caller may do next is never stored: ``compute_readiness`` derives
it from the session after every transition.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Set

import httpx

from ..config import Settings
from ..errors import (
    ImportFailed,
    MissingArtifact,
    NoPreviewToRefine,
    PipelineBusy,
    PipelineError,
    RemoteTaskFailed,
)
from ..models import Readiness
from ..storage.schema import Stage, TaskRecord
from .client import GenerationClient
from .importer import ArtifactConsumer, DownloadImporter
from .poller import Poller, Sleep

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    SUBMITTING_PREVIEW = "submitting_preview"
    POLLING_PREVIEW = "polling_preview"
    PREVIEW_READY = "preview_ready"
    PREVIEW_FAILED = "preview_failed"
    SUBMITTING_REFINE = "submitting_refine"
    POLLING_REFINE = "polling_refine"
    REFINE_READY = "refine_ready"
    REFINE_FAILED = "refine_failed"
    IMPORTING_ARTIFACT = "importing_artifact"
    READY = "ready"


SUBMITTING = {Stage.PREVIEW: PipelineState.SUBMITTING_PREVIEW, Stage.REFINE: PipelineState.SUBMITTING_REFINE}
POLLING = {Stage.PREVIEW: PipelineState.POLLING_PREVIEW, Stage.REFINE: PipelineState.POLLING_REFINE}
STAGE_READY = {Stage.PREVIEW: PipelineState.PREVIEW_READY, Stage.REFINE: PipelineState.REFINE_READY}
STAGE_FAILED = {Stage.PREVIEW: PipelineState.PREVIEW_FAILED, Stage.REFINE: PipelineState.REFINE_FAILED}


@dataclass
class ImportedArtifact:
    stage: Stage
    task_id: str
    url: str
    handle: Any


@dataclass
class PipelineSession:
    state: PipelineState = PipelineState.IDLE
    preview_task: Optional[TaskRecord] = None
    refine_task: Optional[TaskRecord] = None
    in_flight: Optional[Stage] = None
    ready_stage: Optional[Stage] = None
    artifact: Optional[ImportedArtifact] = None
    last_error: Optional[PipelineError] = None
    message: str = ""
    progress: int = 0
    generation: int = 0


@dataclass(frozen=True)
class PipelineEvent:
    state: PipelineState
    readiness: Readiness
    message: str
    progress: int = 0
    error_kind: Optional[str] = None


Listener = Callable[[PipelineEvent], None]


def compute_readiness(session: PipelineSession) -> Readiness:
    idle = session.in_flight is None
    preview = session.preview_task
    latest = session.refine_task or preview
    can_place = (
        idle
        and latest is not None
        and latest.succeeded
        and session.artifact is not None
        and session.artifact.task_id == latest.id
    )
    return Readiness(
        can_submit_preview=idle,
        can_submit_refine=idle and preview is not None and preview.succeeded,
        can_place=can_place,
    )


class PipelineOrchestrator:
    def __init__(self, client: GenerationClient, poller: Poller, consumer: ArtifactConsumer):
        self.client = client
        self.poller = poller
        self.consumer = consumer
        self.session = PipelineSession()
        self._listeners: List[Listener] = []
        self._tasks: Set[asyncio.Task] = set()
        self._current: Optional[asyncio.Task] = None

    @property
    def state(self) -> PipelineState:
        return self.session.state

    def readiness(self) -> Readiness:
        return compute_readiness(self.session)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    # --- public operations ---

    def start_preview(self, prompt: str) -> asyncio.Task:
        prompt = (prompt or "").strip()
        if not prompt:
            raise ValueError("prompt must not be empty")
        if not self.readiness().can_submit_preview:
            raise PipelineBusy(f"cannot start a preview while {self.state.value}")

        s = self.session
        s.generation += 1
        self._discard_artifact()
        s.preview_task = None
        s.refine_task = None
        s.last_error = None
        s.progress = 0
        s.in_flight = Stage.PREVIEW
        self._transition(PipelineState.SUBMITTING_PREVIEW, "Starting Preview generation...")
        return self._spawn(self._run(Stage.PREVIEW, s.generation, lambda: self.client.submit_preview(prompt)))

    async def submit_preview(self, prompt: str) -> PipelineState:
        await self.start_preview(prompt)
        return self.state

    def start_refine(self, preview_task_id: Optional[str] = None) -> asyncio.Task:
        s = self.session
        if s.in_flight is not None:
            raise PipelineBusy(f"cannot start a refine while {self.state.value}")
        if not self.readiness().can_submit_refine:
            raise NoPreviewToRefine("no succeeded preview task to refine")
        if preview_task_id is not None and preview_task_id != s.preview_task.id:
            raise NoPreviewToRefine(f"preview task {preview_task_id} is not the current preview")

        source_id = s.preview_task.id
        s.refine_task = None
        s.last_error = None
        s.progress = 0
        s.in_flight = Stage.REFINE
        self._transition(PipelineState.SUBMITTING_REFINE, f"Starting Refine task based on {source_id}...")
        return self._spawn(self._run(Stage.REFINE, s.generation, lambda: self.client.submit_refine(source_id)))

    async def submit_refine(self, preview_task_id: Optional[str] = None) -> PipelineState:
        await self.start_refine(preview_task_id)
        return self.state

    def reset(self) -> None:
        s = self.session
        self._discard_artifact()
        self.session = PipelineSession(generation=s.generation + 1)
        self._current = None
        self._transition(PipelineState.IDLE, "Session reset.")

    async def wait_for_cycle(self, timeout: Optional[float] = None) -> bool:
        """Wait for the in-flight cycle; True if nothing is running afterwards."""
        task = self._current
        if task is not None and not task.done():
            await asyncio.wait({task}, timeout=timeout)
        return self.session.in_flight is None

    # --- cycle ---

    async def _run(self, stage: Stage, generation: int, submit: Callable[[], Awaitable[str]]) -> None:
        try:
            await self._cycle(stage, generation, submit)
        except Exception as exc:
            if not self._stale(generation):
                logger.exception("%s cycle crashed", stage.value)
                self._finish(STAGE_FAILED[stage], PipelineError(f"{stage.value} cycle crashed: {exc}"))
            raise

    async def _cycle(self, stage: Stage, generation: int, submit: Callable[[], Awaitable[str]]) -> None:
        label = stage.value.capitalize()

        try:
            task_id = await submit()
        except PipelineError as exc:
            if not self._stale(generation):
                self._finish(STAGE_FAILED[stage], exc, f"Failed to create {stage.value} task: {exc.message}")
            return
        if self._stale(generation):
            return
        self._transition(POLLING[stage], f"{label} task created ({task_id}). Polling status...")

        try:
            record = await self.poller.poll_until_terminal(
                task_id, stage, on_progress=lambda r: self._on_progress(generation, r)
            )
        except PipelineError as exc:
            if not self._stale(generation):
                self._finish(STAGE_FAILED[stage], exc, f"{label} task did not succeed: {exc.message}")
            return
        if self._stale(generation):
            return

        self._store(stage, record)
        if record.failed:
            remote = record.error_message or "No error message provided."
            code = record.task_error.code if record.task_error else None
            err = RemoteTaskFailed(remote, code=code, task_id=record.id)
            self._finish(STAGE_FAILED[stage], err, f"{label} task {record.id} failed: {remote}")
            return

        url = record.glb_url
        if not url:
            err = MissingArtifact(f"{label} task {record.id} succeeded, but no GLB model URL was found.")
            self._finish(STAGE_READY[stage], err, err.message)
            return

        self._discard_artifact()
        self._transition(
            PipelineState.IMPORTING_ARTIFACT,
            f"{label} task succeeded ({record.id}). Loading model...",
        )
        handle = None
        error: Optional[ImportFailed] = None
        try:
            handle = await self.consumer.import_artifact(url)
        except ImportFailed as exc:
            error = exc
        except Exception as exc:
            error = ImportFailed(f"import of {url} failed: {exc}")

        if self._stale(generation):
            if handle is not None:
                self.consumer.discard(handle)
            return
        if error is not None:
            self._finish(
                STAGE_READY[stage],
                error,
                f"{label} task succeeded ({record.id}), but model loading failed: {error.message}",
            )
            return

        self.session.artifact = ImportedArtifact(stage=stage, task_id=record.id, url=url, handle=handle)
        self.session.ready_stage = stage
        self._finish(PipelineState.READY, None, f"{label} model loaded ({record.id}).")

    # --- helpers ---

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._forget)
        self._current = task
        return task

    def _forget(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("pipeline cycle ended with %r", task.exception())

    def _stale(self, generation: int) -> bool:
        if self.session.generation != generation:
            logger.info("discarding result of superseded session generation %s", generation)
            return True
        return False

    def _store(self, stage: Stage, record: TaskRecord) -> None:
        if stage is Stage.PREVIEW:
            self.session.preview_task = record
        else:
            self.session.refine_task = record
        self.session.progress = record.progress

    def _discard_artifact(self) -> None:
        artifact = self.session.artifact
        self.session.artifact = None
        self.session.ready_stage = None
        if artifact is None:
            return
        try:
            self.consumer.discard(artifact.handle)
        except Exception:
            logger.exception("failed to discard artifact of task %s", artifact.task_id)

    def _on_progress(self, generation: int, record: TaskRecord) -> None:
        if self._stale(generation):
            return
        self.session.progress = record.progress
        message = (
            f"{record.stage.value.capitalize()} task {record.id} "
            f"Progress: {record.progress}% (Status: {record.status})"
        )
        self.session.message = message
        self._emit()

    def _finish(self, state: PipelineState, error: Optional[PipelineError], message: Optional[str] = None) -> None:
        self.session.in_flight = None
        self.session.last_error = error
        self._transition(state, message or (error.message if error else ""))

    def _transition(self, state: PipelineState, message: str) -> None:
        self.session.state = state
        self.session.message = message
        err = self.session.last_error
        if err is not None and state in (PipelineState.PREVIEW_FAILED, PipelineState.REFINE_FAILED):
            logger.error("%s: %s", state.value, message)
        elif err is not None:
            logger.warning("%s: %s", state.value, message)
        else:
            logger.info("%s: %s", state.value, message)
        self._emit()

    def _emit(self) -> None:
        s = self.session
        event = PipelineEvent(
            state=s.state,
            readiness=compute_readiness(s),
            message=s.message,
            progress=s.progress,
            error_kind=s.last_error.kind if s.last_error else None,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("pipeline listener failed")


def create_orchestrator(
    settings: Settings,
    http: httpx.AsyncClient,
    consumer: Optional[ArtifactConsumer] = None,
    sleep: Sleep = asyncio.sleep,
) -> PipelineOrchestrator:
    client = GenerationClient(settings, http)
    poller = Poller(client, settings.poll_interval_seconds, settings.max_poll_seconds, sleep=sleep)
    if consumer is None:
        consumer = DownloadImporter(http, settings.cache_dir)
    return PipelineOrchestrator(client, poller, consumer)
