from __future__ import annotations

import asyncio
import logging

import pytest

pytest.importorskip("websockets")

from websockets.protocol import State

from synclink._tests._helpers.fake_websocket import (
    FakeWebSocket,
    agent_responder,
    reply_to,
    wait_until,
)
from synclink.client.client import Client
from synclink.config import ClientConfig
from synclink.errors import InvocationFailedError
from synclink.transport.async_websocket import AsyncWebSocket


_INTERVAL_MS = 10


def _make_client(fake: FakeWebSocket, interval_ms: int = _INTERVAL_MS) -> Client:
    config = ClientConfig(server="ws://agent.test:8099", session_id="s", debug_synchronization_ms=interval_ms)
    return Client(config, transport=AsyncWebSocket(config.server, connect=fake.connect))


def _invoke_message(fake: FakeWebSocket) -> dict:
    return next(m for m in fake.sent_messages if m["type"] == "invoke")


@pytest.mark.parametrize("outcome", ["invokeResult", "testFailed"])
def test_watchdog_polls_status_until_invocation_settles(outcome: str, caplog) -> None:
    async def scenario() -> tuple[int, int, Client]:
        fake = FakeWebSocket(responder=agent_responder(hold={"invoke"}))
        client = _make_client(fake)
        await client.connect()
        await client.wait_until_ready()

        tap = asyncio.create_task(client.execute({"target": "tap"}))
        await wait_until(lambda: "invoke" in fake.sent_types())
        await asyncio.sleep(_INTERVAL_MS * 10 / 1000)
        polls_while_pending = fake.sent_types().count("currentStatus")

        fake.push_message(reply_to(_invoke_message(fake), reply_type=outcome, params={"details": "x"}))
        await asyncio.gather(tap, return_exceptions=True)
        settled = fake.sent_types().count("currentStatus")
        await asyncio.sleep(_INTERVAL_MS * 6 / 1000)
        after = fake.sent_types().count("currentStatus")
        return polls_while_pending, after - settled, client

    with caplog.at_level(logging.INFO, logger="synclink.client.client"):
        polls_while_pending, polls_after, client = asyncio.run(scenario())

    assert polls_while_pending >= 2
    assert polls_after == 0
    assert client._slow_invocation_handle is None
    assert client.successful_test_run is (outcome == "invokeResult")
    assert any(getattr(r, "event", None) == "CURRENT_STATUS" for r in caplog.records)


def test_watchdog_disabled_when_interval_is_zero() -> None:
    async def scenario() -> FakeWebSocket:
        fake = FakeWebSocket(responder=agent_responder(hold={"invoke"}))
        client = _make_client(fake, interval_ms=0)
        await client.connect()
        await client.wait_until_ready()
        tap = asyncio.create_task(client.execute({"target": "tap"}))
        await wait_until(lambda: "invoke" in fake.sent_types())
        assert client._slow_invocation_handle is None
        await asyncio.sleep(0.03)
        fake.push_message(reply_to(_invoke_message(fake)))
        await tap
        return fake

    fake = asyncio.run(scenario())

    assert "currentStatus" not in fake.sent_types()


def test_watchdog_does_not_poll_a_closed_channel() -> None:
    async def scenario() -> tuple[FakeWebSocket, Client]:
        fake = FakeWebSocket(responder=agent_responder())
        client = _make_client(fake)
        await client.connect()
        client._slow_invocation_armed = True
        fake.state = State.CLOSED
        client._on_slow_invocation_timer()
        await asyncio.sleep(0)
        return fake, client

    fake, client = asyncio.run(scenario())

    assert "currentStatus" not in fake.sent_types()
    assert client._slow_invocation_task is None
    assert client._slow_invocation_handle is None


def test_stalled_status_reply_does_not_reschedule_after_disarm() -> None:
    async def scenario() -> tuple[int, int]:
        fake = FakeWebSocket(responder=agent_responder(hold={"invoke", "currentStatus"}))
        client = _make_client(fake)
        await client.connect()
        await client.wait_until_ready()

        tap = asyncio.create_task(client.execute({"target": "tap"}))
        await wait_until(lambda: "currentStatus" in fake.sent_types())
        fake.push_message(reply_to(_invoke_message(fake)))
        await tap

        status = next(m for m in fake.sent_messages if m["type"] == "currentStatus")
        fake.push_message(reply_to(status))
        await asyncio.sleep(_INTERVAL_MS * 5 / 1000)
        return fake.sent_types().count("currentStatus"), len(client.transport.in_flight_promises)

    polls, pending = asyncio.run(scenario())

    assert polls == 1
    assert pending == 0


def test_cleanup_disarms_watchdog() -> None:
    async def scenario() -> tuple[int, int]:
        fake = FakeWebSocket(responder=agent_responder(hold={"invoke"}))
        client = _make_client(fake, interval_ms=20)
        await client.connect()
        await client.wait_until_ready()
        tap = asyncio.create_task(client.execute({"target": "tap"}))
        await wait_until(lambda: "invoke" in fake.sent_types())
        await client.cleanup()
        (error,) = await asyncio.gather(tap, return_exceptions=True)
        assert not isinstance(error, InvocationFailedError)
        before = fake.sent_types().count("currentStatus")
        await asyncio.sleep(0.06)
        return before, fake.sent_types().count("currentStatus")

    before, after = asyncio.run(scenario())

    assert before == after
