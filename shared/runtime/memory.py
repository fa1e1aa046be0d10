"""Container memory policy.

Caps the process data segment at a percentage of the memory visible to the
container and terminates the process when an out-of-memory condition
reaches the top level.
"""

import asyncio
import os
import resource
import sys
import threading
from pathlib import Path
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)

CGROUP_V2_LIMIT = Path("/sys/fs/cgroup/memory.max")
CGROUP_V1_LIMIT = Path("/sys/fs/cgroup/memory/memory.limit_in_bytes")

# cgroup v1 reports "unlimited" as a page-aligned value close to 2**63
_UNLIMITED_THRESHOLD = 1 << 60

OUT_OF_MEMORY_EXIT_CODE = 3


def _read_limit(path: Path) -> Optional[int]:
    try:
        raw = path.read_text().strip()
    except OSError:
        return None

    if not raw or raw == "max":
        return None

    try:
        value = int(raw)
    except ValueError:
        logger.warning("cgroup_memory_limit_unparseable", path=str(path), value=raw)
        return None

    if value <= 0 or value >= _UNLIMITED_THRESHOLD:
        return None
    return value


def container_memory_limit(
    v2_path: Path = CGROUP_V2_LIMIT,
    v1_path: Path = CGROUP_V1_LIMIT,
) -> Optional[int]:
    """Return the cgroup memory limit in bytes, or None when unlimited."""
    limit = _read_limit(v2_path)
    if limit is None:
        limit = _read_limit(v1_path)
    return limit


def physical_memory() -> Optional[int]:
    try:
        return os.sysconf("SC_PHYS_PAGES") * os.sysconf("SC_PAGE_SIZE")
    except (ValueError, OSError):
        return None


def memory_budget(max_ram_percentage: float, container_support: bool = True) -> Optional[int]:
    """
    Compute the number of bytes the process may use.

    Args:
        max_ram_percentage: Share of visible RAM, 0 < p <= 100
        container_support: Read the cgroup limit before falling back to
            physical memory

    Returns:
        Budget in bytes, or None when no memory size can be determined
    """
    if not 0 < max_ram_percentage <= 100:
        raise ValueError(f"max_ram_percentage must be in (0, 100], got {max_ram_percentage}")

    visible = container_memory_limit() if container_support else None
    if visible is None:
        visible = physical_memory()
    if visible is None:
        return None
    return int(visible * max_ram_percentage / 100.0)


def apply_memory_policy(max_ram_percentage: float, container_support: bool = True) -> Optional[int]:
    """
    Apply the memory budget as the soft and hard RLIMIT_DATA.

    Returns:
        The applied limit in bytes, or None if nothing was applied
    """
    budget = memory_budget(max_ram_percentage, container_support)
    if budget is None:
        logger.warning("memory_policy_skipped", reason="memory_size_unknown")
        return None

    _, hard = resource.getrlimit(resource.RLIMIT_DATA)
    if hard != resource.RLIM_INFINITY and hard < budget:
        budget = hard

    resource.setrlimit(resource.RLIMIT_DATA, (budget, budget))
    logger.info(
        "memory_policy_applied",
        limit_bytes=budget,
        max_ram_percentage=max_ram_percentage,
        container_support=container_support,
    )
    return budget


def exit_on_out_of_memory(exc: BaseException) -> None:
    """Terminate the process immediately if ``exc`` is a MemoryError."""
    if not isinstance(exc, MemoryError):
        return
    logger.critical("out_of_memory_exit", exit_code=OUT_OF_MEMORY_EXIT_CODE)
    os._exit(OUT_OF_MEMORY_EXIT_CODE)


def install_out_of_memory_hooks(loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
    """Route uncaught MemoryErrors from threads, the main thread and the loop to an exit."""
    previous_excepthook = sys.excepthook
    previous_thread_hook = threading.excepthook

    def _excepthook(exc_type, exc, tb):
        exit_on_out_of_memory(exc)
        previous_excepthook(exc_type, exc, tb)

    def _thread_hook(args):
        if args.exc_value is not None:
            exit_on_out_of_memory(args.exc_value)
        previous_thread_hook(args)

    sys.excepthook = _excepthook
    threading.excepthook = _thread_hook

    if loop is not None:
        def _loop_handler(event_loop, context):
            exc = context.get("exception")
            if exc is not None:
                exit_on_out_of_memory(exc)
            event_loop.default_exception_handler(context)

        loop.set_exception_handler(_loop_handler)
