import logging
import time
from typing import Callable, List, Optional

from cachetools import TTLCache

from ..services.orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[], PipelineOrchestrator]


class _SessionCache(TTLCache):
    # capacity eviction goes through popitem; reset so the artifact is discarded
    def popitem(self):
        key, orch = super().popitem()
        logger.info("session %s evicted", key)
        orch.reset()
        return key, orch


class SessionRepo:
    """In-memory orchestrators, one per caller key. Nothing survives a restart.

    At most ``maxsize`` sessions are kept; a session untouched for ``ttl``
    seconds expires. Sessions leaving the store are reset first.
    """

    def __init__(self, factory: OrchestratorFactory, maxsize: int = 256, ttl: float = 3600, timer=time.monotonic):
        self.factory = factory
        self._sessions: TTLCache = _SessionCache(maxsize=maxsize, ttl=ttl, timer=timer)

    def _expire(self) -> None:
        for key, orch in self._sessions.expire():
            logger.info("session %s expired", key)
            orch.reset()

    def get_or_create(self, key: str) -> PipelineOrchestrator:
        self._expire()
        orch = self._sessions.get(key)
        if orch is None:
            orch = self.factory()
        # re-insert to refresh the ttl
        self._sessions[key] = orch
        return orch

    def drop(self, key: str) -> Optional[PipelineOrchestrator]:
        orch = self._sessions.pop(key, None)
        if orch is not None:
            orch.reset()
        return orch

    def keys(self) -> List[str]:
        self._expire()
        return sorted(self._sessions)
