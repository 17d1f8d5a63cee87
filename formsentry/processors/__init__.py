"""
FormSentry Processors

Public exports for signal processors.
"""

from formsentry.processors.behavior import BehaviorDecodeError, BehaviorValidator
from formsentry.processors.content import ContentAnalyzer

__all__ = [
    "BehaviorValidator",
    "BehaviorDecodeError",
    "ContentAnalyzer",
]
