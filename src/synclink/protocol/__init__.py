"""Control-channel protocol definitions shared by the client and its transport."""

from __future__ import annotations

from .actions import *  # noqa: F401,F403
from .actions import __all__  # noqa: F401
