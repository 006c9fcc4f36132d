"""
Allocator specifications.

The registry maps allocator names to their failure contract (how the
resource is returned and how failure is signalled).
"""

from cguard.specs.c_allocators import (
    AllocatorSpec,
    AllocatorRegistry,
    CallStyle,
    CheckStyle,
    C_ALLOCATORS,
    DEFAULT_REGISTRY,
    get_allocator,
)

__all__ = [
    "AllocatorSpec",
    "AllocatorRegistry",
    "CallStyle",
    "CheckStyle",
    "C_ALLOCATORS",
    "DEFAULT_REGISTRY",
    "get_allocator",
]
