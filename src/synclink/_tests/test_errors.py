from __future__ import annotations

import traceback

from synclink.errors import AppCrashError, SynclinkError, as_error, remove_internal_stack_entries
from synclink.protocol.actions import Shake


def test_as_error_passes_exceptions_through() -> None:
    error = ValueError("x")

    assert as_error(error) is error


def test_as_error_wraps_plain_values() -> None:
    error = as_error({"reason": "crash"})

    assert isinstance(error, SynclinkError)
    assert "crash" in str(error)


def test_app_crash_error_keeps_details() -> None:
    error = AppCrashError("SIGKILL")

    assert error.details == "SIGKILL"
    assert str(error) == "SIGKILL"


def _call_through_package() -> None:
    Shake().handle({"type": "wrong"})


def test_remove_internal_stack_entries_keeps_only_outside_frames() -> None:
    try:
        _call_through_package()
    except Exception as exc:
        error = exc

    before = [frame.name for frame in traceback.extract_tb(error.__traceback__)]
    assert "handle" in before

    cleaned = remove_internal_stack_entries(error)

    after = [frame.name for frame in traceback.extract_tb(cleaned.__traceback__)]
    assert cleaned is error
    assert "handle" not in after
    assert "expect_response_of_type" not in after
    assert after[-1] == "_call_through_package"
