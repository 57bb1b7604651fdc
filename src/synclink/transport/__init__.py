"""Websocket transport used by the client to reach the in-app agent."""

from __future__ import annotations

from .async_websocket import AsyncWebSocket, InFlightRequest

__all__ = ["AsyncWebSocket", "InFlightRequest"]
