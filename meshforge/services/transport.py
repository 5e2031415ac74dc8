from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
import orjson

from ..errors import NetworkError, ProtocolError

logger = logging.getLogger(__name__)


@dataclass
class TransportResponse:
    status_code: int
    body: bytes


class Transport:
    """Single HTTP request with bearer auth. Never retries."""

    def __init__(self, client: httpx.AsyncClient, token: str):
        self.client = client
        self.token = token

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> TransportResponse:
        req_headers = {"Authorization": f"Bearer {self.token}"}
        content = None
        if json is not None:
            req_headers["Content-Type"] = "application/json"
            content = orjson.dumps(json)
        if headers:
            req_headers.update(headers)

        logger.debug("%s %s (token %s...)", method, url, self.token[:5])
        try:
            r = await self.client.request(method, url, headers=req_headers, content=content)
        except httpx.TransportError as exc:
            raise NetworkError(f"{method} {url} failed: {exc}") from exc

        body = r.content
        if r.status_code >= 400:
            logger.warning("%s %s -> HTTP %s", method, url, r.status_code)
            raise ProtocolError(f"{method} {url} returned HTTP {r.status_code}", r.status_code, body)
        return TransportResponse(status_code=r.status_code, body=body)
