"""
Dispatch Coordination Package
"""

from .coordinator import (
    DispatchCoordinator,
    get_coordinator,
    init_coordinator,
    set_coordinator,
)

__all__ = [
    "DispatchCoordinator",
    "get_coordinator",
    "init_coordinator",
    "set_coordinator",
]
