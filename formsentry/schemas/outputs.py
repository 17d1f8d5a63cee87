"""
FormSentry Output Schemas

This module defines Pydantic V2 models that enforce the verdict
contract returned by the scoring engine.
"""

from enum import Enum
from typing import List

from pydantic import BaseModel, Field, computed_field


# =============================================================================
# Enums
# =============================================================================

class Verdict(str, Enum):
    """Final decision for a form submission."""
    ALLOW = "ALLOW"
    BLOCK = "BLOCK"


# =============================================================================
# Evaluation Result
# =============================================================================

class EvaluationResult(BaseModel):
    """
    Verdict for a single request.

    - blocked: True when the request should be rejected
    - score: Accumulated signed score (0 means no adverse findings)
    - reasons: Ordered reason tags, one or more per triggered signal
    - bypassed: True when scoring was skipped by a bypass rule
    """
    blocked: bool = Field(..., description="Whether the request is rejected")
    score: int = Field(..., le=0, description="Accumulated score, never positive")
    reasons: List[str] = Field(default_factory=list, description="Ordered reason tags")
    bypassed: bool = Field(False, description="Scoring skipped by a bypass rule")

    @computed_field
    @property
    def decision(self) -> Verdict:
        return Verdict.BLOCK if self.blocked else Verdict.ALLOW


# =============================================================================
# Audit Statistics
# =============================================================================

class OriginStat(BaseModel):
    """Submission count for one client origin."""
    origin: str
    count: int = Field(..., ge=0)


class UserAgentStat(BaseModel):
    """Submission count for one User-Agent string."""
    user_agent: str
    count: int = Field(..., ge=0)


class HourStat(BaseModel):
    """Submission count for one UTC hour of day."""
    hour: int = Field(..., ge=0, le=23)
    count: int = Field(..., ge=0)


class ReasonStat(BaseModel):
    """How often a reason tag was recorded."""
    reason: str
    count: int = Field(..., ge=0)
