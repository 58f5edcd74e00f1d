"""GreenTwin contracts - typed schemas shared by every component."""

from greentwin.contracts.nudges import (
    EffortLevel,
    EffortVariant,
    MessageStyle,
    Nudge,
    NudgeContext,
    NudgeTemplate,
    NudgeType,
    ResponseType,
    Strategy,
    TimingPreference,
)
from greentwin.contracts.interactions import (
    BehaviorProfile,
    EffectivenessScore,
    InteractionContext,
    InteractionRecord,
    LearningEntry,
    NudgeOutcome,
    NudgeResponse,
    ResponsePattern,
)
from greentwin.contracts.delays import (
    DelayItem,
    DelayOutcome,
    DelayOutcomeEvent,
    DelayRecord,
    DelayStatus,
    PotentialSavings,
)
from greentwin.contracts.sync import (
    ConnectionState,
    MessageType,
    QueuedEvent,
    SyncEvent,
    WireMessage,
)

__all__ = [
    # Nudges
    "EffortLevel",
    "EffortVariant",
    "MessageStyle",
    "Nudge",
    "NudgeContext",
    "NudgeTemplate",
    "NudgeType",
    "ResponseType",
    "Strategy",
    "TimingPreference",
    # Interactions
    "BehaviorProfile",
    "EffectivenessScore",
    "InteractionContext",
    "InteractionRecord",
    "LearningEntry",
    "NudgeOutcome",
    "NudgeResponse",
    "ResponsePattern",
    # Delays
    "DelayItem",
    "DelayOutcome",
    "DelayOutcomeEvent",
    "DelayRecord",
    "DelayStatus",
    "PotentialSavings",
    # Sync
    "ConnectionState",
    "MessageType",
    "QueuedEvent",
    "SyncEvent",
    "WireMessage",
]
