"""
Emergency Case Lifecycle

State machine and authoritative case store.
"""

from .state_machine import (
    CaseEvent,
    TRANSITIONS,
    TransitionContext,
    TransitionPlan,
    allowed_events,
    plan_transition,
)
from .case_store import CaseStore, CaseTransition

__all__ = [
    "CaseEvent",
    "TRANSITIONS",
    "TransitionContext",
    "TransitionPlan",
    "allowed_events",
    "plan_transition",
    "CaseStore",
    "CaseTransition",
]
