from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Mapping, Optional, Union

from synclink.config import ClientConfig
from synclink.errors import AppCrashError, as_error, remove_internal_stack_entries
from synclink.protocol.actions import (
    CURRENT_STATUS_TYPE,
    Action,
    AppNonresponsive,
    AppWillTerminateWithError,
    Cleanup,
    CurrentStatus,
    DeliverPayload,
    Invoke,
    Login,
    Ready,
    ReloadReactNative,
    SetInstrumentsRecordingState,
    SetOrientation,
    SetSyncSettings,
    Shake,
    WaitForActive,
    WaitForBackground,
)
from synclink.transport.async_websocket import AsyncWebSocket
from synclink.utils.debug_logging import maybe_enable_debug_logger


logger = logging.getLogger(__name__)

_CLIENT_DEBUG = maybe_enable_debug_logger(logger)

_UNKNOWN_CRASH_DETAILS = "The app has crashed without reporting any details"

Invocation = Union[Mapping[str, Any], Callable[[], Mapping[str, Any]]]


class Client:
    """Drives the in-app synchronization agent for one test session.

    The client owns the session state: whether the ready handshake has
    completed, whether the run so far succeeded, the crash notice waiting to
    be reported, and the slow-invocation watchdog. Everything it sends goes
    through :meth:`send_action`, correlated by message id on the transport.

    ``wait_until_ready`` must complete before ``execute`` or any other action
    besides ``connect``; the client does not check this.
    """

    def __init__(self, config: ClientConfig, *, transport: Any = None) -> None:
        self.configuration = config
        self.is_connected = False
        self.successful_test_run = True
        self._ws = transport if transport is not None else AsyncWebSocket(config.server)
        self._slow_invocation_timeout_s = config.debug_synchronization_s
        self._slow_invocation_armed = False
        self._slow_invocation_handle: asyncio.TimerHandle | None = None
        self._slow_invocation_task: asyncio.Task[None] | None = None
        self._pending_app_crash: Any = None

        self.set_action_listener(AppWillTerminateWithError(), self._handle_app_crash)

    @property
    def transport(self) -> Any:
        return self._ws

    # --- Lifecycle ------------------------------------------------------------------
    async def connect(self) -> None:
        await self._ws.open()
        await self.send_action(Login(self.configuration.session_id))

    async def wait_until_ready(self) -> None:
        await self.send_action(Ready())
        self.is_connected = True

    async def reload_react_native(self) -> None:
        await self.send_action(ReloadReactNative())

    async def wait_for_background(self) -> None:
        await self.send_action(WaitForBackground())

    async def wait_for_active(self) -> None:
        await self.send_action(WaitForActive())

    async def cleanup(self) -> None:
        """Tear the session down; safe after a crash or a lost channel.

        The cleanup request is only attempted on a live, crash-free session.
        The channel is closed whenever it is still open, even if the cleanup
        request fails; that failure is re-raised afterwards.
        """

        self._disarm_slow_invocation_watchdog()

        cleanup_error: Exception | None = None
        if self.is_connected and self._pending_app_crash is None and self._ws.is_open():
            try:
                await self.send_action(Cleanup(self.successful_test_run))
            except Exception as exc:
                cleanup_error = exc
        self.is_connected = False

        if self._ws.is_open():
            await self._ws.close()

        if cleanup_error is not None:
            raise cleanup_error

    # --- Device / app actions -------------------------------------------------------
    async def current_status(self) -> Any:
        return await self.send_action(CurrentStatus())

    async def set_sync_settings(self, params: Mapping[str, Any]) -> None:
        await self.send_action(SetSyncSettings(params))

    async def shake(self) -> None:
        await self.send_action(Shake())

    async def set_orientation(self, orientation: str) -> None:
        await self.send_action(SetOrientation(orientation))

    async def start_instruments_recording(self, recording_path: str, sampling_interval: Optional[float] = None) -> None:
        await self.send_action(SetInstrumentsRecordingState(recording_path, sampling_interval))

    async def stop_instruments_recording(self) -> None:
        await self.send_action(SetInstrumentsRecordingState())

    async def deliver_payload(self, params: Mapping[str, Any]) -> None:
        await self.send_action(DeliverPayload(params))

    async def execute(self, invocation: Invocation) -> Any:
        """Run one invocation in the app and return the agent's result.

        ``invocation`` may be the invocation itself or a zero-argument callable
        building it. Any failure marks the test run unsuccessful and is
        re-raised with synclink's own frames removed from the traceback.
        """

        try:
            if callable(invocation):
                invocation = invocation()
            if self._slow_invocation_timeout_s > 0:
                self._arm_slow_invocation_watchdog()
            return await self.send_action(Invoke(invocation))
        except Exception as err:
            self.successful_test_run = False
            raise remove_internal_stack_entries(as_error(err))
        finally:
            self._disarm_slow_invocation_watchdog()

    # --- Crash / nonresponsiveness notices ------------------------------------------
    def get_pending_crash_and_reset(self) -> Any:
        crash = self._pending_app_crash
        self._pending_app_crash = None
        return crash

    def set_nonresponsiveness_listener(self, client_callback: Callable[[Any], None]) -> None:
        def _forward(event: Mapping[str, Any]) -> None:
            logger.debug("App nonresponsive: %s", event.get("params"), extra={"event": "APP_NONRESPONSIVE"})
            client_callback(event.get("params"))

        self.set_action_listener(AppNonresponsive(), _forward)

    def _handle_app_crash(self, response: Mapping[str, Any]) -> None:
        details = AppWillTerminateWithError().handle(response)
        if details is None:
            details = _UNKNOWN_CRASH_DETAILS
        logger.error("The app has crashed: %s", details, extra={"event": "APP_CRASH"})
        self._pending_app_crash = details
        self._ws.reject_all(AppCrashError(details))

    # --- Generic action plumbing ----------------------------------------------------
    def set_action_listener(
        self,
        action: Action,
        client_callback: Optional[Callable[[Mapping[str, Any]], None]] = None,
    ) -> None:
        """Handle every unsolicited message carrying ``action``'s message id."""

        def _on_event(raw: str) -> None:
            parsed = json.loads(raw)
            action.handle(parsed)
            if client_callback is not None:
                client_callback(parsed)

        self._ws.set_event_callback(action.message_id, _on_event)

    async def send_action(self, action: Action) -> Any:
        if _CLIENT_DEBUG:
            logger.debug("send_action %r", action)
        response = await self._ws.send(action.to_dict(), action.message_id)
        parsed = json.loads(response)
        return action.handle(parsed)

    # --- Slow invocation watchdog ---------------------------------------------------
    def _arm_slow_invocation_watchdog(self) -> None:
        self._disarm_slow_invocation_watchdog()
        self._slow_invocation_armed = True
        self._schedule_slow_invocation_status()

    def _disarm_slow_invocation_watchdog(self) -> None:
        self._slow_invocation_armed = False
        handle = self._slow_invocation_handle
        self._slow_invocation_handle = None
        if handle is not None:
            handle.cancel()

    def _schedule_slow_invocation_status(self) -> None:
        loop = asyncio.get_running_loop()
        self._slow_invocation_handle = loop.call_later(
            self._slow_invocation_timeout_s,
            self._on_slow_invocation_timer,
        )

    def _on_slow_invocation_timer(self) -> None:
        self._slow_invocation_handle = None
        if not self._slow_invocation_armed or not self._ws.is_open():
            return
        self._slow_invocation_task = asyncio.ensure_future(self._poll_slow_invocation_status())

    async def _poll_slow_invocation_status(self) -> None:
        # The invocation may have settled between the timer firing and this task starting.
        if not self._slow_invocation_armed:
            return
        try:
            status = await self.current_status()
        except Exception:
            if self._slow_invocation_armed:
                logger.warning("Status query for a slow invocation failed; watchdog stopped", exc_info=True)
            else:
                logger.debug("Status query finished after its invocation settled", exc_info=True)
            return
        logger.info("The app is busy with the current invocation: %s", status, extra={"event": "CURRENT_STATUS"})
        if self._slow_invocation_armed and self._ws.is_open():
            self._schedule_slow_invocation_status()

    # --- Diagnostics ----------------------------------------------------------------
    def dump_pending_requests(self, test_name: Optional[str] = None) -> None:
        """Log the requests the app never answered, then forget them.

        Meant to run once per test timeout; status polls are left out.
        """

        requests = [
            request
            for request in self._ws.in_flight_promises.values()
            if request.type != CURRENT_STATUS_TYPE
        ]
        if not requests:
            return

        dump = "App has not responded to the network requests below:"
        for request in requests:
            params = json.dumps(request.params, default=str)
            dump += f"\n  (id = {request.message_id}) {request.type}: {params}"

        if test_name:
            notice = f'That might be the reason why the test "{test_name}" has timed out.'
        else:
            notice = "Unresponded network requests might result in timeout errors in tests."
        dump += f"\n\n{notice}\n"

        logger.warning(dump, extra={"event": "PENDING_REQUESTS"})
        self._ws.reset_in_flight_promises()
