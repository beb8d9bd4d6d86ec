from __future__ import annotations

import time

import msgspec
import pytest

from faultline.errors import DecodeError, StructuredError
from faultline.http import Status
from faultline.requests import Request


class Payload(msgspec.Struct):
    name: str


@pytest.mark.asyncio
async def test_request_json_decodes_model() -> None:
    request = Request(method="post", path="/items", body=b'{"name": "Rocket"}')
    assert request.method == "POST"
    payload = await request.json(Payload)
    assert payload == Payload(name="Rocket")


@pytest.mark.asyncio
async def test_request_json_reports_byte_offset() -> None:
    request = Request(method="POST", path="/items", body=b'{"name": }')
    with pytest.raises(DecodeError) as info:
        await request.json()
    assert info.value.offset is not None
    assert info.value.offset > 0


@pytest.mark.asyncio
async def test_request_json_validation_failure_has_no_offset() -> None:
    request = Request(method="POST", path="/items", body=b'{"name": 1}')
    with pytest.raises(DecodeError) as info:
        await request.json(Payload)
    assert info.value.offset is None


@pytest.mark.asyncio
async def test_request_body_loader_is_called_once() -> None:
    calls = 0

    async def loader() -> bytes:
        nonlocal calls
        calls += 1
        return b"hello"

    request = Request(method="POST", path="/", body_loader=loader)
    assert await request.text() == "hello"
    assert await request.body() == b"hello"
    assert calls == 1


def test_request_rejects_body_and_loader() -> None:
    async def loader() -> bytes:
        return b""

    with pytest.raises(ValueError):
        Request(method="GET", path="/", body=b"x", body_loader=loader)


@pytest.mark.asyncio
async def test_request_body_limit_raises_structured_error() -> None:
    request = Request(method="POST", path="/", body=b"x" * 10, max_body_bytes=4)
    with pytest.raises(StructuredError) as info:
        await request.body()
    assert info.value.status is Status.PAYLOAD_TOO_LARGE


def test_request_query_and_headers() -> None:
    request = Request(
        method="GET",
        path="/",
        headers={"X-Trace": "abc"},
        query_string="a=1&a=2&b=",
    )
    assert request.header("x-trace") == "abc"
    assert request.query_params == {"a": ["1", "2"], "b": [""]}


def test_request_deadline_is_opaque_to_callers() -> None:
    open_ended = Request(method="GET", path="/")
    assert open_ended.time_remaining() is None
    assert not open_ended.expired

    past = Request(method="GET", path="/", deadline=time.monotonic() - 1)
    assert past.time_remaining() == 0.0
    assert past.expired

    future = Request(method="GET", path="/", deadline=time.monotonic() + 60)
    remaining = future.time_remaining()
    assert remaining is not None and remaining > 0
