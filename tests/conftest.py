from pathlib import Path
import sys

import httpx
import orjson
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from meshforge.config import Settings
from meshforge.errors import ImportFailed
from meshforge.services.orchestrator import create_orchestrator

SUBMIT_URL = "https://api.test/openapi/v2/text-to-3d"
STATUS_BASE = SUBMIT_URL + "/"


def status_body(task_id, status, progress=0, glb=None, error=None, **extra):
    body = {
        "id": task_id,
        "status": status,
        "progress": progress,
        "model_urls": {"glb": glb, "fbx": None, "obj": None, "mtl": None, "usdz": None},
        "thumbnail_url": None,
        "prompt": "a wooden chair",
        "art_style": "realistic",
        "started_at": 1700000000000,
        "created_at": 1700000000000,
        "finished_at": 0,
        "preceding_tasks": 0,
        "task_error": {"message": error or ""},
    }
    body.update(extra)
    return body


class FakeMeshy:
    """Scripted Meshy endpoints behind an httpx.MockTransport.

    ``submits`` are consumed one per POST. ``statuses`` are consumed one per
    status GET and the last one repeats. Entries are ``(code, body)`` or an
    exception to raise. Any other GET is served from ``files``.
    """

    def __init__(self):
        self.submits = []
        self.statuses = []
        self.files = {}
        self.requests = []

    @property
    def posts(self):
        return [r for r in self.requests if r.method == "POST"]

    @property
    def polls(self):
        return [r for r in self.requests if r.method == "GET" and str(r.url).startswith(STATUS_BASE)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if request.method == "POST":
            item = self.submits.pop(0)
        elif url.startswith(STATUS_BASE):
            item = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        else:
            item = self.files.get(url, (404, b"not found"))
        if isinstance(item, Exception):
            raise item
        code, body = item
        content = body if isinstance(body, bytes) else orjson.dumps(body)
        return httpx.Response(code, content=content)


class FakeConsumer:
    def __init__(self, fail=False):
        self.fail = fail
        self.imported = []
        self.discarded = []

    async def import_artifact(self, url):
        self.imported.append(url)
        if self.fail:
            raise ImportFailed("glTF load failed")
        return f"scene:{url}"

    def discard(self, handle):
        self.discarded.append(handle)


class SleepRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        api_token="secret",
        meshy_api_key="msy-test-key",
        meshy_submit_url=SUBMIT_URL,
        meshy_status_url_base=STATUS_BASE,
        poll_interval_seconds=5,
        max_poll_seconds=30,
        cache_dir=str(tmp_path / "cache"),
    )


@pytest.fixture
def meshy():
    return FakeMeshy()


@pytest.fixture
def consumer():
    return FakeConsumer()


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def http(meshy):
    return httpx.AsyncClient(transport=httpx.MockTransport(meshy.handler))


@pytest.fixture
def make_orchestrator(settings, http, consumer, sleeps):
    def build(sleep=None, consumer_override=None):
        return create_orchestrator(
            settings,
            http,
            consumer=consumer_override or consumer,
            sleep=sleep or sleeps,
        )
    return build
