"""
WebSocket transport for live order and token subscriptions.

Protocol: the first client message is the subscription request
``{"query", "where", "skip", "limit", "network"}``. Every batch is sent as
``{"type": "data", "items": [...]}``. A rejected request gets an ``error``
message and close code 4002. The stream is released when the client
disconnects.
"""

import asyncio
from typing import Any, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from market_ingress.core.exceptions import ValidationError
from market_ingress.core.logging import get_logger
from market_ingress.subscriptions.multiplexer import SubscriptionStream
from market_ingress.subscriptions.resolvers import LiveQuery

logger = get_logger(__name__)

INVALID_REQUEST = 4002
UNAVAILABLE = 1011

router = APIRouter()


def _error(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"type": "error", "error_code": code, "message": message, "details": details or {}}


async def _forward(websocket: WebSocket, stream: SubscriptionStream) -> None:
    async for items in stream:
        await websocket.send_json({"type": "data", "items": items})


async def _wait_disconnect(websocket: WebSocket) -> None:
    # Later client messages carry no meaning; keep reading to notice the close
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass


async def subscription_handler(websocket: WebSocket, live_query: LiveQuery, name: str) -> None:
    await websocket.accept()
    log = logger.bind(service="websocket", subscription=name)

    try:
        try:
            request = await websocket.receive_json()
            stream = live_query.subscribe(request)
        except ValidationError as e:
            await websocket.send_json(_error(e.code, e.message, e.details))
            await websocket.close(code=INVALID_REQUEST, reason=e.message[:120])
            return
        except ValueError:
            await websocket.send_json(_error("VALIDATION_ERROR", "Subscription request must be JSON"))
            await websocket.close(code=INVALID_REQUEST, reason="Invalid subscription request")
            return

        log.info("Subscription opened", request=request)
        async with stream:
            sender = asyncio.create_task(_forward(websocket, stream))
            receiver = asyncio.create_task(_wait_disconnect(websocket))
            done, pending = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

            error = sender.exception() if sender in done else None
            if error is not None and not isinstance(error, WebSocketDisconnect):
                log.error("Subscription failed", error=str(error))
                await websocket.close(code=UNAVAILABLE, reason="Subscription failed")

    except WebSocketDisconnect:
        pass

    log.info("Subscription closed")


@router.websocket("/ws/orders")
async def orders_subscription(websocket: WebSocket):
    services = websocket.app.state.services
    await subscription_handler(websocket, services.subscriptions["orders"], "orders")


@router.websocket("/ws/tokens")
async def tokens_subscription(websocket: WebSocket):
    services = websocket.app.state.services
    await subscription_handler(websocket, services.subscriptions["tokens"], "tokens")
