from callredact.common.models import (
    DetectionSpan,
    MuteInterval,
    RedactionStatus,
    ReplacePhase,
    TriggerCategory,
    Word,
)

__all__ = [
    "DetectionSpan",
    "MuteInterval",
    "RedactionStatus",
    "ReplacePhase",
    "TriggerCategory",
    "Word",
]
