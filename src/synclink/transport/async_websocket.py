from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import websockets
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from synclink.errors import (
    ChannelClosedError,
    ChannelError,
    ChannelNotOpenError,
    DuplicateMessageIdError,
    as_error,
)
from synclink.utils.debug_logging import maybe_enable_debug_logger


logger = logging.getLogger(__name__)

_TRANSPORT_DEBUG = maybe_enable_debug_logger(logger)

EventCallback = Callable[[str], None]
ConnectFactory = Callable[..., Awaitable[Any]]


@dataclass
class InFlightRequest:
    message_id: int
    type: str
    params: Any
    future: asyncio.Future[str]


class AsyncWebSocket:
    """Request/reply correlation on top of a single websocket connection.

    Every outbound frame carries a ``messageId``; the reply with the same id
    resolves the future created for it. Frames whose id has no pending
    request are routed to the event callback registered for that id, which
    is how the agent pushes unsolicited notices.
    """

    def __init__(self, url: str, *, connect: Optional[ConnectFactory] = None) -> None:
        self.url = url
        self._connect = connect if connect is not None else websockets.connect
        self._ws: Any = None
        self._receive_task: asyncio.Task[None] | None = None
        self._event_callbacks: Dict[int, EventCallback] = {}
        self.in_flight_promises: Dict[int, InFlightRequest] = {}

    def is_open(self) -> bool:
        ws = self._ws
        return ws is not None and getattr(ws, "state", None) is State.OPEN

    async def open(self) -> None:
        if self.is_open():
            raise ChannelError(f"channel to {self.url} is already open")
        logger.info("Connecting to agent relay at %s", self.url)
        ws = await self._connect(self.url)
        self._ws = ws
        self._receive_task = asyncio.create_task(self._receive_loop(ws))
        logger.info("Connected to agent relay")

    async def close(self) -> None:
        ws = self._ws
        if ws is None:
            raise ChannelNotOpenError("cannot close a channel that was never opened")
        self._ws = None
        try:
            await ws.close()
        finally:
            task = self._receive_task
            self._receive_task = None
            if task is not None and task is not asyncio.current_task():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            self._reject_pending(ChannelClosedError("channel closed while awaiting a reply"))
        logger.info("Closed channel to %s", self.url)

    async def send(self, message: Mapping[str, Any], message_id: Optional[int] = None) -> str:
        """Send ``message`` and wait for the reply carrying the same id.

        Returns the raw reply text; parsing it is up to the caller.
        """

        ws = self._ws
        msg_type = str(message.get("type"))
        if ws is None or not self.is_open():
            raise ChannelNotOpenError(f"cannot send {msg_type!r}: channel is not open")
        if message_id is None:
            message_id = message.get("messageId")
        if message_id is None:
            raise ValueError(f"{msg_type!r} has no message id")
        if message_id in self.in_flight_promises:
            raise DuplicateMessageIdError(f"message id {message_id} is already awaiting a reply")

        frame = dict(message)
        frame["messageId"] = message_id
        text = json.dumps(frame, separators=(",", ":"))

        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        request = InFlightRequest(message_id=message_id, type=msg_type, params=frame.get("params"), future=future)
        self.in_flight_promises[message_id] = request
        if _TRANSPORT_DEBUG:
            logger.debug("-> %s", text)
        try:
            await ws.send(text)
        except Exception:
            self._forget(request)
            raise
        return await future

    def set_event_callback(self, message_id: int, callback: EventCallback) -> None:
        self._event_callbacks[message_id] = callback

    def reject_all(self, error: Any) -> None:
        """Fail every pending request with ``error`` and forget them."""

        self._reject_pending(as_error(error))

    def reset_in_flight_promises(self) -> None:
        if self.in_flight_promises:
            logger.debug("Dropping %d in-flight request(s)", len(self.in_flight_promises))
        self.in_flight_promises = {}

    def _forget(self, request: InFlightRequest) -> None:
        if self.in_flight_promises.get(request.message_id) is request:
            del self.in_flight_promises[request.message_id]

    def _reject_pending(self, error: BaseException) -> None:
        pending = list(self.in_flight_promises.values())
        self.in_flight_promises = {}
        for request in pending:
            if not request.future.done():
                request.future.set_exception(error)
        if pending:
            logger.debug("Rejected %d pending request(s): %s", len(pending), error)

    async def _receive_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                self._handle_message(raw)
        except ConnectionClosed as exc:
            logger.info("Channel to %s closed by peer (%s)", self.url, exc)
        except Exception:
            logger.exception("Channel receive loop failed")
        finally:
            self._reject_pending(ChannelClosedError("channel closed while awaiting a reply"))

    def _handle_message(self, raw: Any) -> None:
        """Route one inbound frame to its pending request or event callback."""

        if isinstance(raw, (bytes, bytearray)):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError:
                logger.warning("Dropping non UTF-8 frame (%d bytes)", len(raw))
                return
        if _TRANSPORT_DEBUG:
            logger.debug("<- %s", raw)

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Dropping frame that is not valid JSON: %.200s", raw)
            return

        message_id = data.get("messageId") if isinstance(data, Mapping) else None
        if not isinstance(message_id, int):
            logger.warning("Dropping frame without an integer messageId: %.200s", raw)
            return

        request = self.in_flight_promises.pop(message_id, None)
        if request is not None:
            if not request.future.done():
                request.future.set_result(raw)
            return

        callback = self._event_callbacks.get(message_id)
        if callback is not None:
            try:
                callback(raw)
            except Exception:
                logger.exception("Event callback for message id %s failed", message_id)
            return

        logger.warning("Unexpected message from the app (id = %s): %.200s", message_id, raw)
