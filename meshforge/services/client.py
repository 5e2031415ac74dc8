from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..config import Settings
from ..errors import ProtocolError
from ..models import PreviewRequest, RefineRequest
from ..storage.schema import Stage, TaskRecord
from .parser import extract_error_message, parse_status_response, parse_submit_response
from .transport import Transport

logger = logging.getLogger(__name__)


class GenerationClient:
    """Meshy text-to-3d endpoints: submit preview/refine, fetch status."""

    def __init__(self, settings: Settings, http: httpx.AsyncClient):
        self.settings = settings
        self.transport = Transport(http, settings.require_api_key())

    async def submit_preview(self, prompt: str) -> str:
        body = PreviewRequest(
            prompt=prompt,
            art_style=self.settings.art_style,
            should_remesh=self.settings.should_remesh,
            target_polycount=self.settings.target_polycount,
        )
        return await self._submit(Stage.PREVIEW, body.model_dump())

    async def submit_refine(self, preview_task_id: str) -> str:
        body = RefineRequest(preview_task_id=preview_task_id, enable_pbr=self.settings.enable_pbr)
        return await self._submit(Stage.REFINE, body.model_dump())

    async def fetch_status(self, task_id: str, stage: Stage) -> TaskRecord:
        resp = await self.transport.send("GET", self.settings.status_url(task_id))
        return parse_status_response(resp.body, stage)

    async def _submit(self, stage: Stage, payload: dict) -> str:
        logger.info("[%s] submitting task to %s", stage.value.upper(), self.settings.meshy_submit_url)
        try:
            resp = await self.transport.send("POST", self.settings.meshy_submit_url, json=payload)
        except ProtocolError as exc:
            detail: Optional[str] = extract_error_message(exc.body)
            if not detail:
                raise
            raise ProtocolError(f"{exc.message}: {detail}", exc.status_code, exc.body) from exc
        task_id = parse_submit_response(resp.body)
        logger.info("[%s] task created: %s", stage.value.upper(), task_id)
        return task_id
