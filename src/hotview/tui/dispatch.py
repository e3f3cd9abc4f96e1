"""Textual UI context: run reload callbacks on a Textual app's message pump.

post_message is thread-safe and non-blocking, so the debounce thread can
hand work to the app without touching widgets itself. The app class mixes in
HotReloadAppMixin to execute the posted callables.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from textual.app import App
from textual.message import Message

logger = logging.getLogger(__name__)


class _HotReloadRequest(Message, bubble=False):
    """Thread-safe bridge: debounce thread → app message pump."""

    def __init__(self, callback: Callable[[], None]) -> None:
        self.callback = callback
        super().__init__()


class TextualDispatch:
    def __init__(self, app: App) -> None:
        self._app = app

    def __call__(self, fn: Callable[[], None]) -> None:
        if not self._app.post_message(_HotReloadRequest(fn)):
            raise RuntimeError(f"{self._app!r} is not accepting messages")


class HotReloadAppMixin:
    """Mix into a textual App (before App in the bases) to run reload requests."""

    def on__hot_reload_request(self, message: _HotReloadRequest) -> None:
        try:
            message.callback()
        except Exception:
            logger.exception("hot reload callback failed")
