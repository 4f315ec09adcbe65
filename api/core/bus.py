"""
In-process asynchronous request bus.

Addresses are plain strings ("get_expense", "add_category", ...). A request is
delivered to one consumer of the address on its own task and the caller awaits
the reply. Consumers answer through the `Message` they receive, either with
`reply()` or with `fail(code, message)`.

The bus is built once at startup and handed to whoever needs it; there is no
module-level registry.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

# Failure codes produced by the bus itself. Consumers reply with their own.
NO_HANDLERS = -1
TIMEOUT = -1
RECIPIENT_FAILURE = 0


class ReplyFailure(RuntimeError):
    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class Message:
    def __init__(self, address: str, body: Any, future: asyncio.Future) -> None:
        self.address = address
        self.body = body
        self._future = future

    @property
    def replied(self) -> bool:
        return self._future.done()

    def reply(self, body: Any = None) -> None:
        # First answer wins; late answers after a timeout are dropped.
        if self._future.done():
            return None
        self._future.set_result(body)

    def fail(self, code: int, message: str) -> None:
        if self._future.done():
            return None
        self._future.set_exception(ReplyFailure(code, message))


Handler = Callable[[Message], Awaitable[None]]


class RequestBus:
    def __init__(self, default_timeout: float = 30.0) -> None:
        self.default_timeout = default_timeout
        self._consumers: dict[str, list[Handler]] = {}
        self._cursor: dict[str, int] = {}
        self._tasks: set[asyncio.Task] = set()

    def consumer(self, address: str, handler: Handler) -> None:
        """
        Register `handler` on `address`. Several handlers on the same address
        take turns (round-robin).
        """
        self._consumers.setdefault(address, []).append(handler)
        logger.debug("bus_consumer_registered address=%s", address)

    def unregister(self, address: str, handler: Handler) -> bool:
        handlers = self._consumers.get(address)
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        if not handlers:
            del self._consumers[address]
            self._cursor.pop(address, None)
        return True

    def addresses(self) -> list[str]:
        return sorted(self._consumers)

    def has_consumer(self, address: str) -> bool:
        return bool(self._consumers.get(address))

    def _next_handler(self, address: str) -> Handler | None:
        handlers = self._consumers.get(address)
        if not handlers:
            return None
        index = self._cursor.get(address, 0) % len(handlers)
        self._cursor[address] = index + 1
        return handlers[index]

    async def request(self, address: str, body: Any = None, *, timeout: float | None = None) -> Any:
        """
        Deliver `body` to a consumer of `address` and wait for its reply.

        Raises `ReplyFailure` on a failure reply, when nobody listens on the
        address, or when no reply arrives in time. A timed-out request keeps
        running to completion; only the waiting side gives up.
        """
        handler = self._next_handler(address)
        if handler is None:
            raise ReplyFailure(NO_HANDLERS, f"No handlers for address {address}")

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        message = Message(address, body, future)

        task = loop.create_task(self._deliver(handler, message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        wait_s = self.default_timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(future, wait_s)
        except asyncio.TimeoutError:
            raise ReplyFailure(
                TIMEOUT,
                f"Timed out after waiting {wait_s}s for a reply. address: {address}",
            ) from None

    async def _deliver(self, handler: Handler, message: Message) -> None:
        try:
            await handler(message)
        except Exception as exc:
            logger.exception("bus_handler_failed address=%s", message.address)
            message.fail(RECIPIENT_FAILURE, str(exc) or exc.__class__.__name__)
            return None
        if not message.replied:
            logger.warning("bus_no_reply address=%s", message.address)
            message.fail(RECIPIENT_FAILURE, f"No reply from consumer of {message.address}")

    async def drain(self) -> None:
        """
        Wait for in-flight deliveries (used on shutdown).
        """
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
