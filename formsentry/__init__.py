"""
FormSentry

Central module exports for the FormSentry form-submission bot classifier.
"""

from formsentry.config import FormSentryConfig
from formsentry.orchestrator import ScoringEngine
from formsentry.schemas import EvaluationResult, RequestSnapshot

__all__ = [
    "FormSentryConfig",
    "ScoringEngine",
    "RequestSnapshot",
    "EvaluationResult",
]
