"""Cooperative cancellation checks shared by traversal and supersession walks."""

import asyncio
from typing import Protocol


class CancelEvent(Protocol):
    """Anything exposing ``is_set()``: asyncio.Event, threading.Event, etc."""

    def is_set(self) -> bool: ...


def raise_if_cancelled(cancel_event: CancelEvent | None) -> None:
    """Raise asyncio.CancelledError if the caller has signalled cancellation."""
    if cancel_event is not None and cancel_event.is_set():
        raise asyncio.CancelledError("operation cancelled by caller")
