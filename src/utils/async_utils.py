"""
Case Warden - Async Utilities
=============================

Best-effort async helpers that log failures instead of dropping them.

Usage:
    from src.utils.async_utils import gather_with_logging

    await gather_with_logging(
        ("Send DM", send_dm()),
        ("Post Action Log", post_log()),
        context="Auto Timeout",
    )

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import asyncio
from typing import Any, Coroutine, List, Optional, Tuple

from src.core.logger import logger


async def gather_with_logging(
    *operations: Tuple[str, Coroutine[Any, Any, Any]],
    context: Optional[str] = None,
) -> List[Any]:
    """
    Run side effects concurrently, logging each failure.

    Returns:
        Results in order, with exceptions as values (never raised).
    """
    names = [name for name, _ in operations]
    coros = [coro for _, coro in operations]

    results = await asyncio.gather(*coros, return_exceptions=True)

    for name, result in zip(names, results):
        if isinstance(result, Exception):
            details = [
                ("Operation", name),
                ("Error Type", type(result).__name__),
                ("Error", str(result)[:100]),
            ]
            if context:
                details.insert(0, ("Context", context))
            logger.warning("Async Operation Failed", details)

    return results


async def safe_async_operation(
    name: str,
    coro: Coroutine[Any, Any, Any],
    default: Any = None,
    log_level: str = "warning",
) -> Any:
    """
    Await one side effect, returning default if it raises.

    Args:
        name: Operation name for logging.
        coro: The coroutine to run.
        default: Value returned on failure.
        log_level: "debug", "warning" or "error".
    """
    try:
        return await coro
    except Exception as e:
        details = [
            ("Operation", name),
            ("Error Type", type(e).__name__),
            ("Error", str(e)[:100]),
        ]
        if log_level == "debug":
            logger.debug("Async Operation Failed", details)
        elif log_level == "error":
            logger.error("Async Operation Failed", details)
        else:
            logger.warning("Async Operation Failed", details)
        return default


__all__ = [
    "gather_with_logging",
    "safe_async_operation",
]
