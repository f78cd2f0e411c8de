"""Dispatch hook events to the handler registered for their kind."""

from __future__ import annotations

from typing import Callable, Dict

from ec2_netsync.exceptions import UnsupportedHook

from .events import HookEvent


HookHandler = Callable[[HookEvent], object]


class HookRegistry:
    """Map hook kinds (``post-bound``, ``post-renew``) to handlers."""

    def __init__(self) -> None:
        self._handlers: Dict[str, HookHandler] = {}

    def register(self, kind: str, handler: HookHandler) -> None:
        if kind in self._handlers:
            raise ValueError(f"hook '{kind}' already registered")
        self._handlers[kind] = handler

    def check(self, kind: str) -> None:
        """Raise :class:`UnsupportedHook` unless ``kind`` has a handler."""

        if kind not in self._handlers:
            raise UnsupportedHook(kind)

    def handle(self, event: HookEvent) -> object:
        self.check(event.kind)
        return self._handlers[event.kind](event)
