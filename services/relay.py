"""Asynchronous message relay between short-lived execution contexts.

Tabs, the coordinator and user-facing surfaces never call each other
directly. They register an endpoint under a context name and post messages
through the relay. Messages from one origin are handled strictly in the order
they were posted; messages from different origins are handled independently.
Each post is delivered at most once and resolves to the handler's response.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from models import Message

logger = logging.getLogger(__name__)

COORDINATOR = "coordinator"

Response = dict[str, Any]
Handler = Callable[[Message, str], Awaitable[Response]]
Envelope = tuple[Message, str, asyncio.Future[Response]]


def tab_context(tab_id: int) -> str:
    return f"tab:{tab_id}"


class Relay:
    def __init__(self) -> None:
        self._endpoints: dict[str, Handler] = {}
        self._queues: dict[str, asyncio.Queue[Envelope | None]] = {}
        self._workers: dict[str, asyncio.Task[None]] = {}
        self._pending = 0
        self._idle = asyncio.Event()
        self._idle.set()

    def register(self, context: str, handler: Handler) -> None:
        self._endpoints[context] = handler

    def unregister(self, context: str) -> None:
        self._endpoints.pop(context, None)
        queue = self._queues.get(context)
        if queue is not None:
            # wakes the worker so it can retire once the backlog is handled
            queue.put_nowait(None)

    def is_registered(self, context: str) -> bool:
        return context in self._endpoints

    def post(
        self, message: Message, *, origin: str, target: str = COORDINATOR
    ) -> asyncio.Future[Response]:
        """Queue ``message`` for ``target`` and return a future for the response."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Response] = loop.create_future()
        queue = self._queues.get(origin)
        if queue is None:
            queue = asyncio.Queue()
            self._queues[origin] = queue
            self._workers[origin] = loop.create_task(
                self._drain(origin, queue), name=f"relay:{origin}"
            )
        self._pending += 1
        self._idle.clear()
        queue.put_nowait((message, target, future))
        return future

    async def send(
        self, message: Message, *, origin: str, target: str = COORDINATOR
    ) -> Response:
        return await self.post(message, origin=origin, target=target)

    async def _drain(self, origin: str, queue: asyncio.Queue[Envelope | None]) -> None:
        while True:
            item = await queue.get()
            if item is None:
                queue.task_done()
                if origin not in self._endpoints and queue.empty():
                    self._queues.pop(origin, None)
                    self._workers.pop(origin, None)
                    return
                continue
            message, target, future = item
            try:
                response = await self._deliver(message, origin, target)
                if not future.done():
                    future.set_result(response)
            finally:
                queue.task_done()
                self._pending -= 1
                if not self._pending:
                    self._idle.set()

    async def _deliver(self, message: Message, origin: str, target: str) -> Response:
        handler = self._endpoints.get(target)
        if handler is None:
            logger.warning("No receiver for %s at %s", message.type.value, target)
            return {"error": f"Could not establish connection. Receiving end {target} does not exist."}
        try:
            return await handler(message, origin)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Handler at %s failed on %s", target, message.type.value)
            return {"error": str(exc) or exc.__class__.__name__}

    async def join(self) -> None:
        """Wait until every queued message has been handled."""
        await self._idle.wait()

    async def close(self) -> None:
        workers = list(self._workers.values())
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        self._workers.clear()
        self._queues.clear()
