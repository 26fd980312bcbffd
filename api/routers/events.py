"""
Live change events over WebSocket.

A client connects to `/api/v1/shops/{shop_id}/events` and receives every change
event published for that shop from then on, in publish order. There is no
replay: events published before the connection are never sent.
"""

import asyncio
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from api.dependencies import ServiceContainer, get_container
from domain.events import ChangeEvent

logger = logging.getLogger(__name__)

router = APIRouter()

# Per-connection buffer between the notifier thread and the socket.
_OUTBOX_SIZE = 256


def _offer(outbox: "asyncio.Queue[Dict[str, Any]]", message: Dict[str, Any]) -> None:
    try:
        outbox.put_nowait(message)
    except asyncio.QueueFull:
        logger.warning(f"WebSocket client too slow; dropping {message.get('event')}")


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    # Inbound messages are ignored; reading only detects the disconnect.
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/shops/{shop_id}/events")
async def shop_events(
    websocket: WebSocket,
    shop_id: str,
    container: ServiceContainer = Depends(get_container),
):
    loop = asyncio.get_running_loop()
    outbox: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue(maxsize=_OUTBOX_SIZE)

    def forward(event: ChangeEvent) -> None:
        # Runs on the notifier's dispatcher thread.
        loop.call_soon_threadsafe(_offer, outbox, event.to_message())

    await websocket.accept()

    subscription = None
    receiver = None
    try:
        subscription = container.notifier.subscribe(shop_id, forward)
        await websocket.send_json({"event": "connected", "shop_id": shop_id})
        logger.info(f"WebSocket client joined shop {shop_id}", extra={"shop_id": shop_id})

        receiver = asyncio.create_task(_wait_for_disconnect(websocket))
        while True:
            next_message = asyncio.create_task(outbox.get())
            done, _ = await asyncio.wait({next_message, receiver}, return_when=asyncio.FIRST_COMPLETED)
            if receiver in done:
                next_message.cancel()
                break
            await websocket.send_json(next_message.result())
    except WebSocketDisconnect:
        pass
    finally:
        if subscription is not None:
            container.notifier.unsubscribe(subscription)
        if receiver is not None:
            receiver.cancel()
        logger.info(f"WebSocket client left shop {shop_id}", extra={"shop_id": shop_id})
