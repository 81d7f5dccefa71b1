import asyncio
from typing import Any, Dict

from aiohttp import web


def put_latest(q: asyncio.Queue, event: Dict[str, Any]) -> None:
    # drop the oldest event if the queue is full
    if q.full():
        try:
            q.get_nowait()
            q.task_done()
        except asyncio.QueueEmpty:
            pass
    q.put_nowait(event)


async def publish(q: asyncio.Queue, event: Dict[str, Any]) -> None:
    put_latest(q, event)


async def send_error(q: asyncio.Queue, error: str, message: str, **extra) -> None:
    event = {"type": "error", "error": error, "message": message}
    event.update(extra)
    await publish(q, event)


async def pump(q: asyncio.Queue, ws: web.WebSocketResponse) -> None:
    """Forward queued events to one websocket until it closes."""
    while not ws.closed:
        event = await q.get()
        try:
            await ws.send_json(event)
        except ConnectionResetError:
            return
        finally:
            q.task_done()
