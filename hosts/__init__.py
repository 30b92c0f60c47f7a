"""Host page adapters."""

from .base import AppendHandler, CollectionAdapter, HostPage, read_all
from .memory import (
    MemoryCollection,
    MemoryContainer,
    MemoryHost,
    MemoryTag,
    MemoryTrigger,
    MemoryVariable,
)

__all__ = [
    "AppendHandler",
    "CollectionAdapter",
    "HostPage",
    "read_all",
    "MemoryCollection",
    "MemoryContainer",
    "MemoryHost",
    "MemoryTag",
    "MemoryTrigger",
    "MemoryVariable",
]
