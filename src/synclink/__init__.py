"""
synclink: control-channel client for in-app test synchronization agents.

The client runs inside the test runner, talks to the agent embedded in the
app under test over a websocket, and correlates every request it sends with
the agent's reply.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__version__ = "0.1.0"

__all__ = ["Client", "ClientConfig", "__version__"]


def __getattr__(name: str) -> Any:  # pragma: no cover - trivial delegation
    module_map = {
        "Client": ("synclink.client.client", "Client"),
        "ClientConfig": ("synclink.config", "ClientConfig"),
    }
    if name not in module_map:
        raise AttributeError(name)
    module_path, attr = module_map[name]
    return getattr(import_module(module_path), attr)
