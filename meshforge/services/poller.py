from __future__ import annotations

import asyncio
import logging
import math
from typing import Awaitable, Callable, Optional

from ..errors import MalformedResponse, NetworkError, PollFailed, PollTimeout, ProtocolError, UnexpectedStatus
from ..storage.schema import ACTIVE_STATUSES, TERMINAL_STATUSES, Stage, TaskRecord
from .client import GenerationClient
from .parser import extract_error_message

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[TaskRecord], None]
Sleep = Callable[[float], Awaitable[None]]


class Poller:
    """Fixed-interval status polling bounded by a wait budget.

    Waiting is counted in interval units rather than wall-clock time, so the
    number of status requests for a never-finishing task is
    ``ceil(max_wait / interval)``. A transport failure ends the poll at once.
    """

    def __init__(
        self,
        client: GenerationClient,
        interval: float,
        max_wait: float,
        sleep: Sleep = asyncio.sleep,
    ):
        if interval <= 0:
            raise ValueError("poll interval must be positive")
        self.client = client
        self.interval = interval
        self.max_wait = max_wait
        self.sleep = sleep

    def max_polls(self) -> int:
        return max(0, math.ceil(self.max_wait / self.interval))

    async def poll_until_terminal(
        self,
        task_id: str,
        stage: Stage,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TaskRecord:
        waited = 0.0
        label = stage.value.capitalize()
        while waited < self.max_wait:
            try:
                record = await self.client.fetch_status(task_id, stage)
            except ProtocolError as exc:
                detail = extract_error_message(exc.body)
                msg = f"Polling {label} task {task_id} failed: HTTP {exc.status_code}"
                raise PollFailed(f"{msg} - {detail}" if detail else msg) from exc
            except NetworkError as exc:
                raise PollFailed(f"Polling {label} task {task_id} failed: {exc.message}") from exc

            if record.id != task_id:
                raise MalformedResponse(f"status for {task_id} came back for task {record.id}")

            status = record.task_status
            if status in TERMINAL_STATUSES:
                logger.info("%s task %s finished: %s", label, task_id, record.status)
                return record
            if status not in ACTIVE_STATUSES:
                raise UnexpectedStatus(
                    f"{label} task {task_id} has unexpected status: {record.status}",
                    record.status,
                )

            logger.debug("%s task %s progress %s%% (%s)", label, task_id, record.progress, record.status)
            if on_progress is not None:
                on_progress(record)
            await self.sleep(self.interval)
            waited += self.interval

        raise PollTimeout(
            f"Polling {label} task {task_id} timed out after {self.max_wait:g} seconds.",
            waited,
        )
