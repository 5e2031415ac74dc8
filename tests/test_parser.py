import orjson
import pytest

from conftest import status_body
from meshforge.errors import MalformedResponse
from meshforge.services.parser import (
    extract_error_message,
    parse_status_response,
    parse_submit_response,
)
from meshforge.storage.schema import Stage, TaskStatus


@pytest.mark.parametrize(
    "body",
    [
        b'{"result":"abc"}',
        b'{"id":"abc","status":"PENDING","progress":0}',
        b'{"id":"abc"}',
        b'{"id":"abc","status":"PENDING","progress":null}',
        b'{"id":"abc","status":"PENDING","preceding_tasks":null,"model_urls":"pending"}',
        orjson.dumps(status_body("abc", "IN_PROGRESS", 12)),
    ],
)
def test_submit_accepts_both_shapes(body):
    assert parse_submit_response(body) == "abc"


@pytest.mark.parametrize(
    "body",
    [
        b"",
        b"not json",
        b'["abc"]',
        b'{"result":""}',
        b'{"result":42}',
        b'{"id":"","status":"PENDING"}',
        b'{"message":"ok"}',
    ],
)
def test_submit_without_identifier_is_malformed(body):
    with pytest.raises(MalformedResponse):
        parse_submit_response(body)


def test_status_decodes_into_task_record():
    body = orjson.dumps(status_body("t-1", "SUCCEEDED", 100, glb="https://assets.test/m.glb"))

    rec = parse_status_response(body, Stage.REFINE)

    assert rec.id == "t-1"
    assert rec.stage is Stage.REFINE
    assert rec.task_status is TaskStatus.SUCCEEDED
    assert rec.succeeded
    assert rec.glb_url == "https://assets.test/m.glb"
    assert rec.error_message is None
    assert rec.created_at == 1700000000000


def test_status_keeps_unknown_status_string():
    rec = parse_status_response(b'{"id":"t-1","status":"EXPIRED"}', Stage.PREVIEW)

    assert rec.status == "EXPIRED"
    assert rec.task_status is None
    assert rec.model_urls is None


def test_status_progress_is_clamped():
    rec = parse_status_response(b'{"id":"t-1","status":"IN_PROGRESS","progress":140}', Stage.PREVIEW)
    assert rec.progress == 100


@pytest.mark.parametrize("field", ["progress", "preceding_tasks"])
def test_status_tolerates_null_counters(field):
    body = orjson.dumps(status_body("t-1", "IN_PROGRESS", 10, **{field: None}))

    rec = parse_status_response(body, Stage.PREVIEW)

    assert rec.task_status is TaskStatus.IN_PROGRESS
    assert rec.progress == (0 if field == "progress" else 10)
    assert rec.preceding_tasks == 0


def test_status_carries_texture_urls():
    textures = [
        {
            "base_color": "https://assets.test/t-1/base.png",
            "metallic": "https://assets.test/t-1/metal.png",
            "normal": "https://assets.test/t-1/normal.png",
            "roughness": "https://assets.test/t-1/rough.png",
        }
    ]
    body = orjson.dumps(status_body("t-1", "SUCCEEDED", 100, glb="https://assets.test/m.glb", texture_urls=textures))

    rec = parse_status_response(body, Stage.REFINE)

    assert len(rec.texture_urls) == 1
    assert rec.texture_urls[0].base_color == "https://assets.test/t-1/base.png"
    assert rec.texture_urls[0].roughness == "https://assets.test/t-1/rough.png"


def test_status_without_textures_has_empty_list():
    rec = parse_status_response(b'{"id":"t-1","status":"SUCCEEDED","texture_urls":null}', Stage.PREVIEW)
    assert rec.texture_urls == []


@pytest.mark.parametrize(
    "body",
    [
        b'{"status":"PENDING"}',
        b'{"id":"t-1"}',
        b'{"id":7,"status":"PENDING"}',
        b'{"id":"t-1","status":null}',
        b"<html>502</html>",
    ],
)
def test_status_missing_required_fields_is_malformed(body):
    with pytest.raises(MalformedResponse):
        parse_status_response(body, Stage.PREVIEW)


def test_task_record_is_immutable():
    rec = parse_status_response(b'{"id":"t-1","status":"SUCCEEDED"}', Stage.PREVIEW)
    with pytest.raises(Exception):
        rec.status = "PENDING"


@pytest.mark.parametrize(
    "body, expected",
    [
        (b'{"message":"Invalid API key"}', "Invalid API key"),
        (b'{"detail":"Not found"}', "Not found"),
        (b'{"task_error":{"message":"quota exceeded"}}', "quota exceeded"),
        (b"Bad Gateway", "Bad Gateway"),
        (b"{}", None),
        (b"", None),
    ],
)
def test_extract_error_message(body, expected):
    assert extract_error_message(body) == expected
