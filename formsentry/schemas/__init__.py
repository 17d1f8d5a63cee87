"""
FormSentry Schemas

Public exports for input and output Pydantic models.
"""

# Input schemas
from formsentry.schemas.inputs import (
    BehaviorEvent,
    RequestSnapshot,
)

# Output schemas
from formsentry.schemas.outputs import (
    EvaluationResult,
    HourStat,
    OriginStat,
    ReasonStat,
    UserAgentStat,
    Verdict,
)

__all__ = [
    # Input
    "BehaviorEvent",
    "RequestSnapshot",
    # Output
    "Verdict",
    "EvaluationResult",
    "OriginStat",
    "UserAgentStat",
    "HourStat",
    "ReasonStat",
]
