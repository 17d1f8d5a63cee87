"""
FormSentry Models

Rule-based policies evaluated ahead of scoring.
"""

from formsentry.models.bypass import BypassEvaluator

__all__ = [
    "BypassEvaluator",
]
