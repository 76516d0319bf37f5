"""
Cooperative low-priority scheduling for the Full refresh.

Hosts that expose an idle-time hook pass it in as an IdleHook; everywhere else
the task runs on a short deferred timer of the running event loop.
"""

import asyncio
import logging
from typing import Any, Callable, Optional, Protocol

from .config import get_settings

logger = logging.getLogger(__name__)

CancelHandle = Callable[[], None]


class IdleHook(Protocol):
    """Host idle-time callback primitive."""

    def request_idle_callback(self, callback: Callable[[], None], timeout: float) -> Any:
        ...

    def cancel_idle_callback(self, handle: Any) -> None:
        ...


def schedule_idle(
    task: Callable[[], None],
    timeout_hint: Optional[float] = None,
    hook: Optional[IdleHook] = None,
    fallback_delay: Optional[float] = None,
) -> CancelHandle:
    """
    Run task when the host is idle, or within timeout_hint seconds at the latest.

    Returns a callable that cancels the task if it has not run yet.
    Must be called from a running event loop when no hook is given.
    """
    settings = get_settings()
    timeout = settings.idle_timeout_seconds if timeout_hint is None else timeout_hint

    if hook is not None:
        handle = hook.request_idle_callback(task, timeout)
        return lambda: hook.cancel_idle_callback(handle)

    delay = settings.idle_fallback_delay_seconds if fallback_delay is None else fallback_delay
    logger.debug(f"No idle hook available, deferring task by {delay}s")
    timer = asyncio.get_running_loop().call_later(delay, task)
    return timer.cancel
