from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from loguru import logger

from app.api.deps import get_tracker
from app.realtime.session import Session
from app.services.tracker import Tracker

router = APIRouter(tags=["clients"])


@router.websocket("/")
@router.websocket("/ws")
async def client_socket(websocket: WebSocket, tracker: Tracker = Depends(get_tracker)):
    await websocket.accept()

    peer = f"{websocket.client.host}:{websocket.client.port}" if websocket.client else ""
    session = Session(tracker, websocket.send_text, peer=peer)
    logger.info(f"Client connected {session!r}")

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = (message.get("bytes") or b"").decode("utf-8", errors="replace")
            await session.handle(raw)
    except WebSocketDisconnect as e:
        logger.debug(f"{session!r} socket closed (code={e.code})")
    except Exception:
        logger.exception(f"{session!r} transport error")
    finally:
        await session.close()
