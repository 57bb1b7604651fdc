"""Action catalogue for the test-runner <-> in-app agent control channel.

Every action is one protocol message kind. It owns its outbound payload
(``to_dict``) and the interpretation of the agent's reply (``handle``). Frames
on the wire are JSON objects::

    {"type": "<kind>", "params": {...}, "messageId": <int>}

Replies echo ``messageId``. Request actions take a fresh id from a
process-wide counter; event actions (unsolicited notices pushed by the agent)
use fixed reserved ids so the transport can route them to a listener.
"""

from __future__ import annotations

import itertools
from typing import Any, Dict, Mapping, Optional

from synclink.errors import AppError, InvocationFailedError, UnexpectedResponseError

LOGIN_TYPE = "login"
READY_TYPE = "isReady"
RELOAD_REACT_NATIVE_TYPE = "reactNativeReload"
WAIT_FOR_BACKGROUND_TYPE = "waitForBackground"
WAIT_FOR_ACTIVE_TYPE = "waitForActive"
SHAKE_DEVICE_TYPE = "shakeDevice"
SET_ORIENTATION_TYPE = "setOrientation"
SET_SYNC_SETTINGS_TYPE = "setSyncSettings"
SET_RECORDING_STATE_TYPE = "setRecordingState"
DELIVER_PAYLOAD_TYPE = "deliverPayload"
CLEANUP_TYPE = "cleanup"
CURRENT_STATUS_TYPE = "currentStatus"
INVOKE_TYPE = "invoke"
APP_WILL_TERMINATE_WITH_ERROR_TYPE = "AppWillTerminateWithError"
APP_NONRESPONSIVE_TYPE = "AppNonresponsiveDetected"

APP_CRASH_MESSAGE_ID = -10000
APP_NONRESPONSIVE_MESSAGE_ID = -10001

_MESSAGE_IDS = itertools.count(1)


def next_message_id() -> int:
    return next(_MESSAGE_IDS)


class Action:
    """Base for every protocol message kind."""

    type: str = ""

    def __init__(self, params: Any = None, *, message_id: Optional[int] = None) -> None:
        if params is None:
            params = {}
        elif isinstance(params, Mapping):
            params = dict(params)
        self.params = params
        self.message_id = next_message_id() if message_id is None else int(message_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "params": self.params,
            "messageId": self.message_id,
        }

    def handle(self, response: Mapping[str, Any]) -> Any:
        raise NotImplementedError

    def expect_response_of_type(self, response: Mapping[str, Any], expected: str) -> None:
        if not isinstance(response, Mapping) or response.get("type") != expected:
            raise UnexpectedResponseError(expected, response)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message_id={self.message_id}, params={self.params!r})"


class _AcknowledgedAction(Action):
    """An action whose only success reply is a fixed ``done`` message."""

    reply_type: str = ""

    def handle(self, response: Mapping[str, Any]) -> None:
        self.expect_response_of_type(response, self.reply_type)


class Login(_AcknowledgedAction):
    type = LOGIN_TYPE
    reply_type = "loginSuccess"

    def __init__(self, session_id: str) -> None:
        if not session_id:
            raise ValueError("Login requires a session id")
        super().__init__({"sessionId": session_id, "role": "tester"})


class Ready(_AcknowledgedAction):
    type = READY_TYPE
    reply_type = "ready"


class ReloadReactNative(_AcknowledgedAction):
    type = RELOAD_REACT_NATIVE_TYPE
    reply_type = "ready"


class WaitForBackground(_AcknowledgedAction):
    type = WAIT_FOR_BACKGROUND_TYPE
    reply_type = "waitForBackgroundDone"


class WaitForActive(_AcknowledgedAction):
    type = WAIT_FOR_ACTIVE_TYPE
    reply_type = "waitForActiveDone"


class Shake(_AcknowledgedAction):
    type = SHAKE_DEVICE_TYPE
    reply_type = "shakeDeviceDone"


class SetOrientation(_AcknowledgedAction):
    type = SET_ORIENTATION_TYPE
    reply_type = "setOrientationDone"

    def __init__(self, orientation: str) -> None:
        super().__init__({"orientation": orientation})


class SetSyncSettings(_AcknowledgedAction):
    type = SET_SYNC_SETTINGS_TYPE
    reply_type = "setSyncSettingsDone"


class SetInstrumentsRecordingState(_AcknowledgedAction):
    """Starts a recording when given a path, stops the running one otherwise."""

    type = SET_RECORDING_STATE_TYPE
    reply_type = "setRecordingStateDone"

    def __init__(self, recording_path: Optional[str] = None, sampling_interval: Optional[float] = None) -> None:
        params: Dict[str, Any] = {}
        if recording_path is not None:
            params["recordingPath"] = recording_path
            params["samplingInterval"] = sampling_interval
        super().__init__(params)


class DeliverPayload(_AcknowledgedAction):
    type = DELIVER_PAYLOAD_TYPE
    reply_type = "deliverPayloadDone"


class Cleanup(_AcknowledgedAction):
    type = CLEANUP_TYPE
    reply_type = "cleanupDone"

    def __init__(self, stop_runner: bool = True) -> None:
        super().__init__({"stopRunner": bool(stop_runner)})


class CurrentStatus(Action):
    type = CURRENT_STATUS_TYPE

    def handle(self, response: Mapping[str, Any]) -> Any:
        self.expect_response_of_type(response, "currentStatusResult")
        return response.get("params")


class Invoke(Action):
    type = INVOKE_TYPE

    def handle(self, response: Mapping[str, Any]) -> Any:
        if not isinstance(response, Mapping):
            raise UnexpectedResponseError("invokeResult", response)
        kind = response.get("type")
        params = response.get("params")
        if not isinstance(params, Mapping):
            params = {}
        if kind == "invokeResult":
            return response.get("params")
        if kind == "testFailed":
            raise InvocationFailedError(params.get("details"))
        if kind == "error":
            raise AppError(params.get("error"))
        raise UnexpectedResponseError("invokeResult", response)


class AppWillTerminateWithError(Action):
    """Pushed by the agent right before the app dies from an unhandled error."""

    type = APP_WILL_TERMINATE_WITH_ERROR_TYPE

    def __init__(self) -> None:
        super().__init__(message_id=APP_CRASH_MESSAGE_ID)

    def handle(self, response: Mapping[str, Any]) -> Any:
        self.expect_response_of_type(response, self.type)
        params = response.get("params")
        if not isinstance(params, Mapping):
            return None
        return params.get("errorDetails")


class AppNonresponsive(Action):
    """Pushed by the agent when the app's main thread stops responding."""

    type = APP_NONRESPONSIVE_TYPE

    def __init__(self) -> None:
        super().__init__(message_id=APP_NONRESPONSIVE_MESSAGE_ID)

    def handle(self, response: Mapping[str, Any]) -> Any:
        self.expect_response_of_type(response, self.type)
        return response.get("params")


__all__ = [
    "APP_CRASH_MESSAGE_ID",
    "APP_NONRESPONSIVE_MESSAGE_ID",
    "APP_NONRESPONSIVE_TYPE",
    "APP_WILL_TERMINATE_WITH_ERROR_TYPE",
    "CLEANUP_TYPE",
    "CURRENT_STATUS_TYPE",
    "DELIVER_PAYLOAD_TYPE",
    "INVOKE_TYPE",
    "LOGIN_TYPE",
    "READY_TYPE",
    "RELOAD_REACT_NATIVE_TYPE",
    "SET_ORIENTATION_TYPE",
    "SET_RECORDING_STATE_TYPE",
    "SET_SYNC_SETTINGS_TYPE",
    "SHAKE_DEVICE_TYPE",
    "WAIT_FOR_ACTIVE_TYPE",
    "WAIT_FOR_BACKGROUND_TYPE",
    "Action",
    "AppNonresponsive",
    "AppWillTerminateWithError",
    "Cleanup",
    "CurrentStatus",
    "DeliverPayload",
    "Invoke",
    "Login",
    "Ready",
    "ReloadReactNative",
    "SetInstrumentsRecordingState",
    "SetOrientation",
    "SetSyncSettings",
    "Shake",
    "WaitForActive",
    "WaitForBackground",
    "next_message_id",
]
