"""Test-runner side of the control channel."""

from __future__ import annotations

from .client import Client

__all__ = ["Client"]
