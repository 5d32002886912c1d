"""Central fault capture.

- Captures exceptions reaching the HTTP boundary and renders safe JSON.
- Handles uncaught exceptions (fatal) and unobserved asyncio failures.
- Optionally forwards captured exceptions to an external tracker through a
  pluggable forwarder; forwarding never blocks or fails the caller.

Usage:
    monitor = FaultMonitor(usage=accountant, forwarder=WebhookForwarder(url))
    monitor.install_global_handlers()      # once, at startup
    monitor.capture(exc, {"stage": "llm", "actor_id": actor_id})
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import os
import sys
import threading
import traceback
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

import aiohttp
from loguru import logger as root_logger

from voxwatch.core.errors import FaultForwardError, client_message, status_from_error
from voxwatch.logging_config import get_logger, sanitize_for_log
from voxwatch.observability.usage import UsageAccountant

logger: Any = get_logger(__name__)

T = TypeVar("T")

FATAL_EXIT_CODE = 1
DEFAULT_MAX_PENDING_FORWARDS = 100

# Set on an exception once it has been logged and counted
CAPTURED_ATTR = "__voxwatch_captured__"


class ExceptionForwarder(Protocol):
    """External exception-tracking backend."""

    async def forward(self, error: BaseException, context: Mapping[str, Any]) -> None:
        """Deliver one captured exception."""
        ...


def error_fields(error: BaseException) -> dict[str, Any]:
    """Structured description of an exception for logs and forwarding."""
    return {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "stack": "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        ),
    }


@dataclass(slots=True)
class WebhookForwarder:
    """Post captured exceptions to a webhook as JSON."""

    webhook_url: str
    auth_token: str | None = None
    timeout_seconds: float = 2.0

    async def forward(self, error: BaseException, context: Mapping[str, Any]) -> None:
        payload = {**error_fields(error), "context": dict(context)}
        headers = {}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"

        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(self.webhook_url, json=payload, headers=headers) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise FaultForwardError(f"Webhook failed: {resp.status} {body}")


@dataclass(slots=True)
class CallbackForwarder:
    """Adapt a plain (sync or async) callable into a forwarder."""

    callback: Callable[[BaseException, Mapping[str, Any]], Any]

    async def forward(self, error: BaseException, context: Mapping[str, Any]) -> None:
        result = self.callback(error, context)
        if asyncio.iscoroutine(result):
            await result


@dataclass
class FaultMonitor:
    """Capture, count, log and forward faults.

    ``terminate`` is called with the exit code after a fatal fault; it
    defaults to ``os._exit`` because the process state is no longer trusted.
    """

    usage: UsageAccountant
    forwarder: ExceptionForwarder | None = None
    forward_timeout_seconds: float = 2.0
    shutdown_grace_seconds: float = 0.5
    terminate: Callable[[int], Any] = os._exit
    max_pending_forwards: int = DEFAULT_MAX_PENDING_FORWARDS

    _pending: set[asyncio.Task[None]] = field(default_factory=set, init=False, repr=False)
    _executor: concurrent.futures.ThreadPoolExecutor | None = field(
        default=None, init=False, repr=False
    )
    _executor_futures: set[concurrent.futures.Future[None]] = field(
        default_factory=set, init=False, repr=False
    )
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _installed: bool = field(default=False, init=False, repr=False)
    _previous_hooks: dict[str, Any] = field(default_factory=dict, init=False, repr=False)

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------
    def capture(self, error: BaseException, context: Mapping[str, Any] | None = None) -> None:
        """Log, count and (optionally) forward one exception.

        An exception instance is captured at most once; later calls for the
        same instance (e.g. the HTTP boundary after ``CallInstrumentation``)
        are no-ops.
        """
        if getattr(error, CAPTURED_ATTR, False):
            return
        try:
            setattr(error, CAPTURED_ATTR, True)
        except AttributeError:
            # Exceptions without a __dict__ cannot be marked
            pass

        safe_context = sanitize_for_log(context or {})

        logger.bind(**{**safe_context, "error_type": type(error).__name__}).opt(
            exception=(type(error), error, error.__traceback__)
        ).error(f"Captured exception: {error}")
        self.usage.track_error()

        if self.forwarder is not None:
            self._schedule_forward(error, safe_context)

    async def _forward_bounded(self, error: BaseException, context: Mapping[str, Any]) -> None:
        if self.forwarder is None:
            return
        try:
            await asyncio.wait_for(
                self.forwarder.forward(error, context),
                timeout=self.forward_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Exception forwarding timed out after {self.forward_timeout_seconds}s"
            )
        except Exception as exc:
            logger.warning(f"Exception forwarding failed: {type(exc).__name__}: {exc}")

    def _schedule_forward(self, error: BaseException, context: Mapping[str, Any]) -> None:
        if self.pending_forwards >= self.max_pending_forwards:
            logger.warning(
                f"Dropping exception forward: {self.max_pending_forwards} already in flight"
            )
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            task = loop.create_task(self._forward_bounded(error, context))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            return

        # No running loop (sync route threadpool, excepthook): run in a worker
        with self._lock:
            if self._executor is None:
                self._executor = concurrent.futures.ThreadPoolExecutor(
                    max_workers=2, thread_name_prefix="voxwatch-forward"
                )
            future = self._executor.submit(asyncio.run, self._forward_bounded(error, context))
            self._executor_futures.add(future)
        future.add_done_callback(self._discard_future)

    def _discard_future(self, future: concurrent.futures.Future[None]) -> None:
        with self._lock:
            self._executor_futures.discard(future)

    @property
    def pending_forwards(self) -> int:
        with self._lock:
            return len(self._pending) + len(self._executor_futures)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait (bounded) for in-flight forwards, then flush log sinks."""
        timeout = self.shutdown_grace_seconds if timeout is None else timeout
        tasks = [t for t in self._pending if not t.done()]
        if tasks:
            await asyncio.wait(tasks, timeout=timeout)
        with self._lock:
            futures = list(self._executor_futures)
        if futures:
            await asyncio.get_running_loop().run_in_executor(
                None, lambda: concurrent.futures.wait(futures, timeout=timeout)
            )
        await root_logger.complete()

    def drain_sync(self, timeout: float | None = None) -> None:
        """``drain`` for contexts without a running event loop."""
        timeout = self.shutdown_grace_seconds if timeout is None else timeout
        with self._lock:
            futures = list(self._executor_futures)
        if futures:
            concurrent.futures.wait(futures, timeout=timeout)
        root_logger.complete()

    # ------------------------------------------------------------------
    # Process-wide handlers
    # ------------------------------------------------------------------
    def handle_fatal(self, error: BaseException) -> None:
        """Synchronous unrecoverable fault: log, capture, flush, terminate."""
        logger.opt(exception=(type(error), error, error.__traceback__)).critical(
            "Uncaught exception, process will exit"
        )
        self.capture(error, {"fatal": True})
        self.drain_sync()
        self.terminate(FATAL_EXIT_CODE)

    def handle_unobserved(self, error: BaseException, context: Mapping[str, Any] | None = None) -> None:
        """Asynchronous failure nobody awaited: log and capture, keep running."""
        logger.bind(**sanitize_for_log(context or {})).error(
            f"Unhandled async failure: {type(error).__name__}: {error}"
        )
        self.capture(error)

    def _excepthook(self, exc_type: type[BaseException], exc: BaseException, tb: Any) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            previous = self._previous_hooks.get("sys") or sys.__excepthook__
            previous(exc_type, exc, tb)
            return
        self.handle_fatal(exc.with_traceback(tb))

    def _thread_excepthook(self, args: threading.ExceptHookArgs) -> None:
        if args.exc_value is None or issubclass(args.exc_type, SystemExit):
            return
        self.handle_fatal(args.exc_value)

    def _loop_exception_handler(
        self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
    ) -> None:
        error = context.get("exception")
        message = context.get("message", "")
        if error is None:
            # Resource warnings (unclosed sessions, destroyed pending tasks)
            logger.warning(f"asyncio: {message}")
            return
        self.handle_unobserved(error, {"asyncio_message": message})

    def install_loop_handler(self, loop: asyncio.AbstractEventLoop) -> None:
        """Route unobserved failures on ``loop`` to ``handle_unobserved``."""
        loop.set_exception_handler(self._loop_exception_handler)

    def install_global_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> bool:
        """Install process-wide handlers once. Returns False if already installed."""
        with self._lock:
            if self._installed:
                logger.warning("Global error handlers already installed")
                return False
            self._installed = True
            self._previous_hooks = {
                "sys": sys.excepthook,
                "threading": threading.excepthook,
            }

        sys.excepthook = self._excepthook
        threading.excepthook = self._thread_excepthook

        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
        if loop is not None:
            self.install_loop_handler(loop)

        logger.info("Global error handlers installed")
        return True

    def uninstall_global_handlers(self) -> None:
        """Restore the hooks that were active before installation."""
        with self._lock:
            if not self._installed:
                return
            sys.excepthook = self._previous_hooks.get("sys", sys.__excepthook__)
            threading.excepthook = self._previous_hooks.get(
                "threading", threading.__excepthook__
            )
            self._installed = False
            self._previous_hooks = {}

    # ------------------------------------------------------------------
    # HTTP boundary
    # ------------------------------------------------------------------
    def http_error_boundary(
        self,
        error: BaseException,
        method: str,
        url: str,
        respond: Callable[[int, dict[str, str]], T],
    ) -> T:
        """Capture ``error`` and render a client-safe response via ``respond``."""
        self.capture(error, {"method": method, "url": url})

        status = status_from_error(error)
        return respond(status, {"error": client_message(error, status)})

    def shutdown(self) -> None:
        """Release the forwarding worker threads."""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False)
