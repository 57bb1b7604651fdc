"""Exception taxonomy shared by the transport, the action catalogue and the client."""

from __future__ import annotations

import os
import types
from typing import Any

_PACKAGE_ROOT = os.path.dirname(os.path.abspath(__file__))


class SynclinkError(RuntimeError):
    """Base class for every error raised by synclink."""


class ChannelError(SynclinkError):
    """Raised when the websocket channel is misused or fails."""


class ChannelNotOpenError(ChannelError):
    """Raised when sending or closing on a channel that was never opened."""


class ChannelClosedError(ChannelError):
    """Raised for requests still pending when the channel goes away."""


class DuplicateMessageIdError(ChannelError):
    """Raised when a message id is sent while an earlier send with it is pending."""


class ActionError(SynclinkError):
    """Raised when a reply cannot be interpreted as a successful action result."""


class UnexpectedResponseError(ActionError):
    def __init__(self, expected: str, response: Any) -> None:
        super().__init__(f"was expecting '{expected}', got {response!r}")
        self.expected = expected
        self.response = response


class InvocationFailedError(ActionError):
    """The agent reports that the invocation ran but its expectation failed."""


class AppError(ActionError):
    """The agent reports an internal error while handling the invocation."""


class AppCrashError(SynclinkError):
    """The app under test terminated; carries the agent's crash details."""

    def __init__(self, details: Any) -> None:
        super().__init__(str(details))
        self.details = details


def as_error(value: Any) -> BaseException:
    if isinstance(value, BaseException):
        return value
    return SynclinkError(str(value))


def _is_internal_frame(filename: str) -> bool:
    path = os.path.abspath(filename)
    if not path.startswith(_PACKAGE_ROOT + os.sep):
        return False
    parts = os.path.relpath(path, _PACKAGE_ROOT).split(os.sep)
    return "_tests" not in parts


def remove_internal_stack_entries(err: BaseException) -> BaseException:
    """Drop synclink's own frames from ``err``'s traceback.

    The surviving frames keep their original order so the reported stack
    points at the test code (and the invocation producer) only.
    """

    kept: list[types.TracebackType] = []
    tb = err.__traceback__
    while tb is not None:
        if not _is_internal_frame(tb.tb_frame.f_code.co_filename):
            kept.append(tb)
        tb = tb.tb_next

    rebuilt: types.TracebackType | None = None
    for entry in reversed(kept):
        rebuilt = types.TracebackType(rebuilt, entry.tb_frame, entry.tb_lasti, entry.tb_lineno)
    return err.with_traceback(rebuilt)
