"""
Kairos 대화형 일정 파이프라인
"""

from .conflict_manager import ConflictManager
from .errors import (
    CompositionError,
    DraftAlreadyAccepted,
    InterpretationError,
    NotFound,
    SlotUnavailable,
    TurnInProgress,
)
from .interpretation import InterpretationService, LLMInterpretationService
from .orchestrator import ChatOrchestrator
from .state import TurnState, TurnStateRegistry

__all__ = [
    "ChatOrchestrator",
    "ConflictManager",
    "InterpretationService",
    "LLMInterpretationService",
    "TurnState",
    "TurnStateRegistry",
    "CompositionError",
    "DraftAlreadyAccepted",
    "InterpretationError",
    "NotFound",
    "SlotUnavailable",
    "TurnInProgress",
]
