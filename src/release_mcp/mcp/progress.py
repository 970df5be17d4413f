"""Per-call progress reporting."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Final, Protocol

from release_mcp.mcp.protocol import ProgressNotification

logger = logging.getLogger(__name__)

PROGRESS_METHOD: Final = "notifications/progress"


class ProgressSink(Protocol):
    """Delivery target for progress notifications."""

    async def __call__(self, notification: ProgressNotification) -> None: ...


class ProgressCounter:
    """Running progress value owned by a single call."""

    def __init__(self) -> None:
        self._value = 0.0
        self._lock = threading.Lock()

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def advance(self, step: float = 1.0) -> float:
        if step <= 0:
            msg = "progress step must be positive"
            raise ValueError(msg)
        with self._lock:
            self._value += step
            return self._value


@dataclass(slots=True)
class CallScope:
    """Context handed to a handler for the duration of one dispatch.

    A scope without a token or sink is inert: `report` does nothing. The
    dispatcher creates a fresh scope per call and drops it when the handler
    returns.
    """

    progress_token: str | int | None = None
    sink: ProgressSink | None = None
    counter: ProgressCounter = field(default_factory=ProgressCounter)

    @property
    def enabled(self) -> bool:
        return self.progress_token is not None and self.sink is not None

    async def report(
        self,
        message: str = "",
        *,
        total: float | None = None,
        step: float = 1.0,
    ) -> None:
        if self.progress_token is None or self.sink is None:
            return
        notification = ProgressNotification(
            progress_token=self.progress_token,
            progress=self.counter.advance(step),
            total=total,
            message=message or None,
        )
        try:
            await self.sink(notification)
        except Exception:
            logger.warning(
                "progress delivery failed for token %r",
                self.progress_token,
                exc_info=True,
            )
