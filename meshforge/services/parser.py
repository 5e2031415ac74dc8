"""Decoding of submit and status bodies into typed records.

The submit endpoint has been seen answering with either a bare
``{"result": "<id>"}`` wrapper or a full status object, depending on the
service version. Both are accepted there; the status endpoint has exactly
one shape.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import orjson
from pydantic import ValidationError

from ..errors import MalformedResponse
from ..models import StatusResponse, SubmitAccepted
from ..storage.schema import Stage, TaskRecord

logger = logging.getLogger(__name__)


def _load(body: bytes) -> Any:
    try:
        return orjson.loads(body)
    except orjson.JSONDecodeError as exc:
        raise MalformedResponse(f"response is not valid JSON: {exc}") from exc


def parse_submit_response(body: bytes) -> str:
    data = _load(body)
    if not isinstance(data, dict):
        raise MalformedResponse("submit response is not a JSON object")

    try:
        accepted = SubmitAccepted.model_validate(data)
        if accepted.result:
            return accepted.result
    except ValidationError:
        pass

    # only the id matters here; the rest of a status-shaped body may be partial
    logger.warning("submit response has no 'result', falling back to 'id'")
    task_id = data.get("id")
    if not isinstance(task_id, str):
        raise MalformedResponse(f"submit response has neither result nor id: {body[:200]!r}")
    if not task_id:
        raise MalformedResponse("submit response carries an empty id")
    return task_id


def parse_status_response(body: bytes, stage: Stage) -> TaskRecord:
    data = _load(body)
    if not isinstance(data, dict):
        raise MalformedResponse("status response is not a JSON object")
    try:
        s = StatusResponse.model_validate(data)
    except ValidationError as exc:
        raise MalformedResponse(f"status response is missing required fields: {exc.error_count()} error(s)") from exc
    if not s.id:
        raise MalformedResponse("status response carries an empty id")

    return TaskRecord(
        id=s.id,
        stage=stage,
        status=s.status,
        progress=max(0, min(100, s.progress or 0)),
        model_urls=s.model_urls,
        texture_urls=s.texture_urls or [],
        thumbnail_url=s.thumbnail_url,
        prompt=s.prompt,
        art_style=s.art_style,
        preceding_tasks=s.preceding_tasks or 0,
        task_error=s.task_error,
        created_at=s.created_at,
        started_at=s.started_at,
        finished_at=s.finished_at,
    )


def extract_error_message(body: bytes) -> Optional[str]:
    """Best-effort message out of an error body; None if there is nothing usable."""
    try:
        data = orjson.loads(body)
    except orjson.JSONDecodeError:
        text = body.decode("utf-8", errors="replace").strip()
        return text[:300] or None
    if not isinstance(data, dict):
        return None
    for key in ("message", "error", "detail"):
        v = data.get(key)
        if isinstance(v, str) and v:
            return v
    task_error = data.get("task_error")
    if isinstance(task_error, dict) and isinstance(task_error.get("message"), str) and task_error["message"]:
        return task_error["message"]
    return None
