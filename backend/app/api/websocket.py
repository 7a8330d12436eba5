"""
WebSocket handler for real-time upload progress.

Streams every progress change of a single upload.
"""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.models.schemas import ProgressStatus

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

HEARTBEAT_INTERVAL = 30.0

TERMINAL_STATUSES = (ProgressStatus.COMPLETE.value, ProgressStatus.ERROR.value)


@router.websocket("/ws/{upload_id}")
async def upload_progress_websocket(websocket: WebSocket, upload_id: str) -> None:
    """
    WebSocket endpoint for real-time upload progress.

    Sends the current UploadProgress snapshot first, then one message
    per change. Closes once the upload is complete or failed.

    Example client (Python):
        async with websockets.connect(f"ws://localhost:8000/ws/{upload_id}") as ws:
            async for message in ws:
                data = json.loads(message)
                print(f"{data['status']}: {data['progress']}% - {data['stage']}")

    Args:
        websocket: WebSocket connection
        upload_id: Upload to subscribe to
    """
    tracker = websocket.app.state.progress_tracker

    entry = tracker.get(upload_id)
    if entry is None:
        await websocket.close(code=4004, reason=f"Upload not found: {upload_id}")
        return

    # Subscribe before sending the snapshot so no update is lost in between
    queue = tracker.subscribe(upload_id)

    try:
        await websocket.accept()
        logger.info(f"WebSocket connected for upload {upload_id}")

        await websocket.send_json(entry.model_dump(mode="json"))
        if entry.status.is_terminal:
            await websocket.close()
            return

        while True:
            try:
                message = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_INTERVAL)
            except asyncio.TimeoutError:
                await websocket.send_json({"type": "heartbeat"})
                continue

            await websocket.send_json(message)
            if message.get("status") in TERMINAL_STATUSES:
                await websocket.close()
                break

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for upload {upload_id}")
    except Exception as e:
        logger.error(f"WebSocket error for upload {upload_id}: {e}")
    finally:
        tracker.unsubscribe(upload_id, queue)
        logger.info(f"WebSocket closed for upload {upload_id}")
