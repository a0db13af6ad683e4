"""
Conversation state machine.
"""

from epic_bot.orchestration.state_machine import (
    Effect,
    EffectKind,
    Event,
    ForcedInput,
    Transition,
    UserInput,
    decide,
)

__all__ = [
    "Effect",
    "EffectKind",
    "Event",
    "ForcedInput",
    "Transition",
    "UserInput",
    "decide",
]
