"""Page-automation engine: locate, act, poll, orchestrate."""

from .orchestrator import FAILURE_POLICY, OnFailure, Phase, StoryboardOrchestrator
from .relay import StoryboardRelay
from .schema import Mode, StoryboardRequest, StoryboardResult

__all__ = [
    "FAILURE_POLICY",
    "Mode",
    "OnFailure",
    "Phase",
    "StoryboardOrchestrator",
    "StoryboardRelay",
    "StoryboardRequest",
    "StoryboardResult",
]
