"""
FastAPI entry-point for the live preview and liveness verification service
"""
import asyncio
import logging
import uuid
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from .config import config
from .logging_config import configure_logging
from .models.data_models import CHALLENGE_CATALOG, CompositorParams, TickResult
from .services.preview_pipeline import PreviewPipeline
from .services.websocket_handler import WebSocketHandler

configure_logging(config.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="livecam", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ws_handler = WebSocketHandler()


def create_pipeline() -> PreviewPipeline:
    """Build a fresh pipeline (and model handles) for one connection."""
    return PreviewPipeline()


@app.get("/")
async def root():
    return {"message": "Live Preview & Liveness API", "status": "running", "version": "1.0.0"}


@app.get("/health")
async def health():
    return {"status": "healthy"}


@app.get("/challenges")
async def challenges():
    return {
        "challenges": [
            {"id": c.id, "key": c.key, "label": c.label} for c in CHALLENGE_CATALOG
        ]
    }


async def _finish_tick(task: Optional[asyncio.Task]) -> None:
    """Wait for an in-flight tick and log how it ended."""
    if task is None:
        return
    results = await asyncio.gather(task, return_exceptions=True)
    if isinstance(results[0], Exception):
        logger.error(f"Preview tick failed: {results[0]}")


@app.websocket("/ws/preview")
async def preview_socket(websocket: WebSocket) -> None:
    session_id = str(uuid.uuid4())
    await ws_handler.handle_connection(websocket, session_id)

    pipeline = create_pipeline()
    init = await pipeline.start()
    if not init.ok:
        await ws_handler.send_error(websocket, f"Model initialization failed: {init.error}")
        await ws_handler.close_connection(websocket, code=1011, reason="Model initialization failed")
        return

    params = config.compositor_params()
    thresholds = config.liveness_thresholds()
    await ws_handler.send_state(websocket, pipeline.session.snapshot)

    async def deliver(result: TickResult) -> None:
        if result.composite is None:
            return
        await ws_handler.send_preview(websocket, result.composite)
        if result.composite.quality is not None:
            await ws_handler.send_quality(websocket, result.composite.quality)
        for completion in result.completions:
            await ws_handler.send_completion(websocket, completion)
        if result.completions:
            await ws_handler.send_state(websocket, result.snapshot)

    tick: Optional[asyncio.Task] = None
    try:
        while True:
            message = await ws_handler.receive_message(websocket)
            if message is None:
                await ws_handler.send_error(websocket, "Invalid message")
                continue

            message_type = message["type"]
            if message_type == "start_verification":
                await pipeline.start_verification()
                await ws_handler.send_state(websocket, pipeline.session.snapshot)
            elif message_type == "stop_verification":
                await pipeline.stop_verification()
                await ws_handler.send_state(websocket, pipeline.session.snapshot)
            elif message_type == "update_params":
                try:
                    params = CompositorParams.from_dict(message.get("params") or {}, base=params)
                except (TypeError, ValueError) as e:
                    await ws_handler.send_error(websocket, f"Invalid params: {e}")
            elif message_type == "video_frame":
                frame = ws_handler.decode_video_frame(message)
                if frame is None:
                    await ws_handler.send_error(websocket, "Could not decode video frame")
                    continue
                # Frames arriving while a tick is in flight are dropped, not queued
                scheduled = pipeline.schedule(frame, params, thresholds, on_result=deliver)
                if scheduled is not None:
                    await _finish_tick(tick)
                    tick = scheduled
    except WebSocketDisconnect:
        logger.info(f"Preview session {session_id} disconnected (dropped {pipeline.dropped_ticks} frames)")
    finally:
        await _finish_tick(tick)
        await pipeline.stop()
