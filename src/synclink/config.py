"""
Client configuration.

All env parsing for the client happens here so the rest of the package takes
a structured :class:`ClientConfig` instead of reading the environment itself.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Dict

from synclink.utils.env import env_int, env_str

DEFAULT_SERVER = "ws://localhost:8099"


def _new_session_id() -> str:
    return uuid.uuid4().hex


@dataclass
class ClientConfig:
    """Where the agent's relay lives and how this test session is identified.

    ``debug_synchronization_ms`` is the slow-invocation watchdog interval; 0
    disables the watchdog.
    """

    server: str = DEFAULT_SERVER
    session_id: str = field(default_factory=_new_session_id)
    debug_synchronization_ms: int = 0

    def __post_init__(self) -> None:
        self.debug_synchronization_ms = max(0, int(self.debug_synchronization_ms or 0))

    @property
    def debug_synchronization_s(self) -> float:
        return self.debug_synchronization_ms / 1000.0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_env(
        default_server: str = DEFAULT_SERVER,
        default_debug_synchronization_ms: int = 0,
    ) -> "ClientConfig":
        server = env_str("SYNCLINK_SERVER", default_server) or default_server
        session_id = env_str("SYNCLINK_SESSION_ID") or _new_session_id()
        interval = env_int("SYNCLINK_DEBUG_SYNCHRONIZATION", default_debug_synchronization_ms)
        return ClientConfig(
            server=server,
            session_id=session_id,
            debug_synchronization_ms=interval,
        )
