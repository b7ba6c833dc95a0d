"""Keep-alive cycle engine and scheduler.

This package provides:
- CycleEngine, the login/logout state machine
- Scheduler, the non-overlapping repeating timer that drives it
- SessionState, CycleStats and friends shared with the status endpoints
"""

from sessionkeeper.keepalive.engine import CycleEngine
from sessionkeeper.keepalive.scheduler import Scheduler
from sessionkeeper.keepalive.state import (
    CycleOutcome,
    CycleStats,
    EngineState,
    NextAction,
    SessionState,
)

__all__ = [
    # Engine
    "CycleEngine",
    "Scheduler",
    # State
    "CycleOutcome",
    "CycleStats",
    "EngineState",
    "NextAction",
    "SessionState",
]
