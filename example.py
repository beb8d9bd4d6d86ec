"""Minimal Faultline application serving the record handlers.

Host it with any ASGI server, for example ``granian --interface asgi
example:app`` or ``uvicorn example:app``. ``GET /records/hello`` renders a
page, ``GET /records/missing`` answers 404 "Record not found" while the log
records the underlying cause, and ``GET /raw/records/missing`` shows the bare
error path. Override behaviour with ``FAULTLINE_*`` environment variables.
"""

from __future__ import annotations

import logging

from faultline.application import Application
from faultline.config import load_config
from faultline.domain.records import InMemoryRecordStore, Record, build_app

logging.basicConfig(level=logging.INFO)


def create_app() -> Application:
    """Instantiate the demo application with a seeded record store."""

    store = InMemoryRecordStore({"hello": Record(id="hello", title="Hello", body="First record.")})
    return build_app(store, config=load_config())


app = create_app()
