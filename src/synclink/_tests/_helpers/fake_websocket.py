"""In-memory stand-ins for the agent side of the control channel.

``FakeWebSocket`` mimics the parts of a ``websockets`` client connection the
transport touches (``send``, ``recv``, async iteration, ``close``, ``state``)
and lets tests play the in-app agent: replies can be produced automatically
by a responder or pushed by hand to exercise interleavings.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Collection, Iterable, Mapping, Optional

from websockets.exceptions import ConnectionClosedOK
from websockets.protocol import State

from synclink.protocol.actions import APP_CRASH_MESSAGE_ID, APP_NONRESPONSIVE_MESSAGE_ID


_SENTINEL = object()

Responder = Callable[[Mapping[str, Any]], Optional[Iterable[Mapping[str, Any]]]]

AGENT_REPLIES = {
    "login": "loginSuccess",
    "isReady": "ready",
    "reactNativeReload": "ready",
    "waitForBackground": "waitForBackgroundDone",
    "waitForActive": "waitForActiveDone",
    "shakeDevice": "shakeDeviceDone",
    "setOrientation": "setOrientationDone",
    "setSyncSettings": "setSyncSettingsDone",
    "setRecordingState": "setRecordingStateDone",
    "deliverPayload": "deliverPayloadDone",
    "cleanup": "cleanupDone",
    "currentStatus": "currentStatusResult",
    "invoke": "invokeResult",
}


def reply_to(message: Mapping[str, Any], reply_type: Optional[str] = None, params: Any = None) -> dict[str, Any]:
    return {
        "type": reply_type or AGENT_REPLIES[message["type"]],
        "params": {} if params is None else params,
        "messageId": message["messageId"],
    }


def agent_responder(hold: Collection[str] = (), status: Any = None) -> Responder:
    """Answer every request like a healthy agent, except the kinds in ``hold``."""

    def _respond(message: Mapping[str, Any]) -> Optional[list[dict[str, Any]]]:
        kind = message["type"]
        if kind in hold:
            return None
        if kind == "currentStatus":
            return [reply_to(message, params=status if status is not None else {"state": "busy"})]
        if kind == "invoke":
            return [reply_to(message, params={"echo": message["params"]})]
        return [reply_to(message)]

    return _respond


def crash_notice(details: Any) -> dict[str, Any]:
    return {
        "type": "AppWillTerminateWithError",
        "params": {"errorDetails": details},
        "messageId": APP_CRASH_MESSAGE_ID,
    }


def nonresponsive_notice(params: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "type": "AppNonresponsiveDetected",
        "params": dict(params),
        "messageId": APP_NONRESPONSIVE_MESSAGE_ID,
    }


class FakeWebSocket:
    """Minimal websocket implementation consumed by ``AsyncWebSocket``."""

    def __init__(self, *, responder: Optional[Responder] = None) -> None:
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()
        self.responder = responder
        self.sent: list[str] = []
        self.state: State = State.OPEN
        self.connected_urls: list[str] = []
        self.close_calls = 0

    async def connect(self, url: str, **_: Any) -> FakeWebSocket:
        """Connect factory handed to ``AsyncWebSocket(connect=...)``."""

        self.connected_urls.append(url)
        self.state = State.OPEN
        return self

    @property
    def sent_messages(self) -> list[dict[str, Any]]:
        return [json.loads(text) for text in self.sent]

    def sent_types(self) -> list[str]:
        return [message["type"] for message in self.sent_messages]

    def push_message(self, payload: Any) -> None:
        """Queue an inbound payload (mapping, str or bytes) for the transport."""

        if isinstance(payload, Mapping):
            payload = json.dumps(payload)
        self._incoming.put_nowait(payload)

    def drop(self) -> None:
        """Simulate the agent closing the connection."""

        self._incoming.put_nowait(_SENTINEL)

    async def recv(self) -> Any:
        payload = await self._incoming.get()
        if payload is _SENTINEL:
            self.state = State.CLOSED
            raise ConnectionClosedOK(None, None)
        return payload

    def __aiter__(self) -> FakeWebSocket:
        return self

    async def __anext__(self) -> Any:
        try:
            return await self.recv()
        except ConnectionClosedOK as exc:
            raise StopAsyncIteration from exc

    async def send(self, payload: str) -> None:
        if self.state is not State.OPEN:
            raise ConnectionClosedOK(None, None)
        self.sent.append(payload)
        if self.responder is None:
            return
        replies = self.responder(json.loads(payload))
        for reply in replies or ():
            self.push_message(reply)

    async def close(self, *_: Any, **__: Any) -> None:
        self.close_calls += 1
        if self.state is State.CLOSED:
            return
        self.state = State.CLOSED
        self._incoming.put_nowait(_SENTINEL)


async def wait_until(predicate: Callable[[], bool], *, timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate`` holds or ``timeout`` seconds pass."""

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition was not reached")
        await asyncio.sleep(0.001)
