"""Process runtime policies."""

from .memory import (
    OUT_OF_MEMORY_EXIT_CODE,
    apply_memory_policy,
    container_memory_limit,
    exit_on_out_of_memory,
    install_out_of_memory_hooks,
    memory_budget,
)

__all__ = [
    "OUT_OF_MEMORY_EXIT_CODE",
    "apply_memory_policy",
    "container_memory_limit",
    "exit_on_out_of_memory",
    "install_out_of_memory_hooks",
    "memory_budget",
]
