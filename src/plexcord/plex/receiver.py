"""HTTP endpoint that accepts Plex's multipart webhook posts.

Plex sends ``multipart/form-data`` with a JSON ``payload`` part and, for some
events, a JPEG ``thumb`` part. Accepted requests are logged to disk, translated
into relay events and queued for the scheduler; the response never waits on
delivery.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from ..config import AppConfig
from ..notifications.scheduler import CoalescingScheduler, IngestionClosed, IngestionQueueFull
from ..persistence import RawEventLog
from ..version import __version__
from .models import PlexPayload, PlexPayloadError, decode_json, parse_payload
from .translate import translate

LOGGER = logging.getLogger(__name__)


class _RequestCounter:
    def __init__(self, start: int = 0) -> None:
        self._value = start
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            self._value += 1
            return self._value


async def _read_part(value: Any) -> bytes | str:
    if isinstance(value, UploadFile):
        return await value.read()
    return str(value)


def _part_bytes(value: bytes | str) -> bytes:
    """Recover the bytes that were sent for a form part.

    Starlette decodes parts without a filename as UTF-8 and falls back to
    latin-1 when that fails, so latin-1 bytes that are not valid UTF-8 are
    exactly what was sent.
    """
    if isinstance(value, bytes):
        return value
    try:
        raw = value.encode("latin-1")
    except UnicodeEncodeError:
        return value.encode("utf-8")
    try:
        raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw
    return value.encode("utf-8")


async def _split_form(request: Request) -> tuple[PlexPayload, bytes | None]:
    try:
        form = await request.form()
    except Exception as exc:  # noqa: BLE001 - multipart parser raises assorted errors
        raise HTTPException(status_code=400, detail=f"Malformed multipart body: {exc}") from exc

    payload: PlexPayload | None = None
    thumb: bytes | None = None
    for name, value in form.multi_items():
        if name == "payload":
            raw = await _read_part(value)
            # Plex occasionally labels the image part "payload"; anything that is
            # not JSON is kept as the thumbnail.
            try:
                data = decode_json(raw)
            except ValueError:
                thumb = _part_bytes(raw)
                continue
            try:
                payload = parse_payload(data)
            except PlexPayloadError as exc:
                LOGGER.error("Failed to parse request payload with %s", exc)
                raise HTTPException(status_code=400, detail="Invalid Plex payload") from exc
        elif name == "thumb":
            thumb = _part_bytes(await _read_part(value))
        else:
            LOGGER.debug("Skipping unexpected form part %r", name)

    if payload is None:
        raise HTTPException(status_code=400, detail="Missing payload part")
    return payload, thumb


def create_app(
    config: AppConfig,
    scheduler: CoalescingScheduler,
    *,
    event_log: RawEventLog | None = None,
) -> FastAPI:
    app = FastAPI(title="plexcord", version=__version__)
    relayed = frozenset(config.relay.events)
    max_bytes = config.server.max_request_bytes
    counter = _RequestCounter(event_log.last_number if event_log is not None else 0)

    app.state.scheduler = scheduler
    app.state.event_log = event_log

    @app.post("/plex")
    async def receive_plex(request: Request) -> JSONResponse:
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > max_bytes:
            raise HTTPException(status_code=413, detail="Request body too large")
        body = await request.body()
        if len(body) > max_bytes:
            raise HTTPException(status_code=413, detail="Request body too large")

        payload, thumb = await _split_form(request)

        if event_log is not None:
            number = event_log.record(payload.model_dump(mode="json", by_alias=True, exclude_none=True), thumb)
        else:
            number = counter.next()
        LOGGER.info(
            "Got request #%d, user %s, event %s",
            number,
            payload.account.title,
            payload.event.value,
        )

        if payload.event.value not in relayed:
            LOGGER.debug("Ignoring event %s; not in relayed events", payload.event.value)
            return JSONResponse({"status": "ignored", "request": number})

        event = translate(payload)
        try:
            scheduler.submit(event)
        except IngestionQueueFull as exc:
            LOGGER.warning("Rejecting request #%d: %s", number, exc)
            raise HTTPException(status_code=503, detail="Relay queue is full; retry later") from exc
        except IngestionClosed as exc:
            raise HTTPException(status_code=503, detail="Relay is shutting down") from exc

        return JSONResponse({"status": "queued", "request": number, "key": event.key})

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "closing" if scheduler.closed else "ok",
            "queued": scheduler.queue_size,
            "version": __version__,
        }

    return app
