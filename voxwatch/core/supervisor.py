"""Top-level supervisor around the service's main run loop.

An exception escaping the main coroutine is a synchronous unrecoverable
fault: it is logged and captured, pending forwards get a bounded grace
period, log sinks are flushed (awaited, not merely delayed) and the process
exits non-zero. Unobserved asyncio failures on the loop are captured and the
service keeps running.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from voxwatch.core.faults import FATAL_EXIT_CODE, FaultMonitor
from voxwatch.logging_config import get_logger

logger: Any = get_logger(__name__)


async def supervise(main: Callable[[], Awaitable[Any]], monitor: FaultMonitor) -> int:
    """Run ``main`` on the current loop; return the process exit code."""
    loop = asyncio.get_running_loop()
    if not monitor.install_global_handlers(loop):
        monitor.install_loop_handler(loop)

    try:
        await main()
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Shutdown requested")
        exit_code = 0
    except Exception as exc:
        logger.opt(exception=exc).critical("Uncaught exception, process will exit")
        monitor.capture(exc, {"fatal": True})
        exit_code = FATAL_EXIT_CODE
    else:
        exit_code = 0

    await monitor.drain()
    monitor.shutdown()
    return exit_code


def run_supervised(main: Callable[[], Awaitable[Any]], monitor: FaultMonitor) -> int:
    """Blocking entry point: ``asyncio.run`` the supervised main."""
    return asyncio.run(supervise(main, monitor))
