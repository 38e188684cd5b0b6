"""FastAPI ingress: HTTP routes for single commands and a WebSocket color stream."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from stripsync.core.errors import SourceUnavailableError
from stripsync.core.model import (
    ColorSample,
    DispatchOutcome,
    DispatchResult,
    SetBrightness,
    SetColor,
    SetPower,
)
from stripsync.core.service import StripService
from stripsync.transports.base import FrameSource

LOGGER = logging.getLogger(__name__)

_STATUS_BY_OUTCOME = {
    DispatchOutcome.SENT: 200,
    DispatchOutcome.SKIPPED: 200,
    DispatchOutcome.FAILED: 502,
    DispatchOutcome.TIMED_OUT: 504,
}


class ColorRequest(BaseModel):
    r: int
    g: int
    b: int


class PowerRequest(BaseModel):
    on: bool


class BrightnessRequest(BaseModel):
    level: int


class SyncRequest(BaseModel):
    monitor: int = 0


def _respond(result: DispatchResult, message: str) -> JSONResponse:
    status = _STATUS_BY_OUTCOME[result.outcome]
    body: dict[str, object] = {"success": result.ok, "outcome": result.outcome.value}
    if result.outcome is DispatchOutcome.SKIPPED:
        body["message"] = "Device busy, frame skipped"
    elif result.ok:
        body["message"] = message
    else:
        body["error"] = result.detail or f"Device command {result.outcome.value}"
    return JSONResponse(body, status_code=status)


def create_app(
    service: StripService,
    frame_source_factory: Callable[[int], FrameSource] | None = None,
) -> FastAPI:
    """Build the ingress app around one started-on-demand ``StripService``."""

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await service.start()
        try:
            yield
        finally:
            await service.close()

    app = FastAPI(title="stripsync", lifespan=lifespan)

    @app.post("/api/color")
    async def set_color(req: ColorRequest) -> JSONResponse:
        intent = SetColor.rgb(req.r, req.g, req.b)
        result = await service.submit(intent)
        color = intent.color
        return _respond(result, f"Color set to rgb({color.r}, {color.g}, {color.b})")

    @app.post("/api/power")
    async def set_power(req: PowerRequest) -> JSONResponse:
        result = await service.submit(SetPower(req.on))
        return _respond(result, f"Power set to {'ON' if req.on else 'OFF'}")

    @app.post("/api/brightness")
    async def set_brightness(req: BrightnessRequest) -> JSONResponse:
        intent = SetBrightness.clamp(req.level)
        result = await service.submit(intent)
        return _respond(result, f"Brightness set to {intent.level}%")

    @app.get("/api/status")
    async def status() -> dict[str, object]:
        last = service.last_color
        return {
            "syncing": service.syncing,
            "last_color": last.hex if last else None,
            "sync_error": service.sync_error,
        }

    @app.post("/api/sync/start")
    async def sync_start(req: SyncRequest | None = None) -> JSONResponse:
        if frame_source_factory is None:
            return JSONResponse({"success": False, "error": "Screen sync not available"}, status_code=501)
        monitor = req.monitor if req else 0
        try:
            await service.start_sync(frame_source_factory(monitor))
        except SourceUnavailableError as exc:
            LOGGER.error("Screen sync could not start: %s", exc)
            return JSONResponse({"success": False, "error": str(exc)}, status_code=503)
        return JSONResponse({"success": True, "message": f"Syncing monitor {monitor}"})

    @app.post("/api/sync/stop")
    async def sync_stop() -> dict[str, object]:
        await service.stop_sync()
        return {"success": True, "message": "Screen sync stopped"}

    @app.websocket("/ws/color")
    async def color_stream(websocket: WebSocket) -> None:
        await websocket.accept()
        LOGGER.info("Color stream connected from %s", websocket.client)
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            text = message.get("text")
            if text is None:
                LOGGER.warning("Ignoring non-text color message")
                continue
            try:
                req = ColorRequest.model_validate_json(text)
            except ValidationError as exc:
                LOGGER.warning("Ignoring malformed color message: %s", exc.errors())
                continue
            service.push_color(ColorSample.clamp(req.r, req.g, req.b))
        LOGGER.info("Color stream from %s closed", websocket.client)

    return app
