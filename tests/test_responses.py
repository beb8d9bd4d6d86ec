from __future__ import annotations

import pytest

from faultline.http import Status
from faultline.responses import (
    DEFAULT_SECURITY_HEADERS,
    JSONResponse,
    PlainTextResponse,
    Response,
    ResponseWriter,
    apply_default_security_headers,
)
from faultline.serialization import json_decode


def test_plain_text_response_headers() -> None:
    response = PlainTextResponse("hello")
    assert response.body == b"hello"
    assert ("content-type", "text/plain; charset=utf-8") in response.headers
    for header, value in DEFAULT_SECURITY_HEADERS:
        assert (header, value) in response.headers


def test_json_response_encodes_with_msgspec() -> None:
    response = JSONResponse({"ok": True}, status=201)
    assert response.status == 201
    assert json_decode(response.body) == {"ok": True}
    assert response.header("Content-Type") == "application/json"


def test_apply_default_security_headers_preserves_existing() -> None:
    response = Response(status=200, headers=(("x-frame-options", "SAMEORIGIN"),))
    hardened = apply_default_security_headers(response)
    assert hardened.headers.count(("x-frame-options", "SAMEORIGIN")) == 1
    header_names = {name for name, _ in hardened.headers}
    assert "content-security-policy" in header_names


def test_writer_without_writes_finishes_empty() -> None:
    writer = ResponseWriter()
    response = writer.finish()
    assert writer.writes == 0
    assert response.status == 200
    assert response.body == b""


def test_writer_write_defaults_status_to_ok() -> None:
    writer = ResponseWriter()
    writer.write("hi")
    assert writer.status == 200
    assert writer.finish().body == b"hi"


def test_writer_refuses_second_status() -> None:
    writer = ResponseWriter()
    writer.write_header(Status.CREATED)
    with pytest.raises(RuntimeError):
        writer.write_header(Status.OK)


def test_write_error_replaces_pending_output() -> None:
    writer = ResponseWriter()
    writer.set_header("allow", "GET")
    writer.write_json({"partial": True})
    writer.write_error(Status.INTERNAL_SERVER_ERROR, "Can't display record")
    response = writer.finish()
    assert response.status == 500
    assert response.body == b"Can't display record"
    assert response.header("content-type") == "text/plain; charset=utf-8"
    assert response.header("allow") == "GET"


def test_write_error_drops_headers_meant_for_success() -> None:
    writer = ResponseWriter()
    writer.set_header("set-cookie", "session=abc")
    writer.set_header("content-disposition", "attachment; filename=record.html")
    writer.set_header("retry-after", "5")
    writer.write_error(Status.SERVICE_UNAVAILABLE, "Record store unavailable")
    response = writer.finish()
    assert response.header("set-cookie") is None
    assert response.header("content-disposition") is None
    assert response.header("retry-after") == "5"
    assert response.header("content-type") == "text/plain; charset=utf-8"
