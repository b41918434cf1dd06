"""
Intent classification for free-text developer requests.
"""

from .classifier import IntentClassifier, assess_complexity, estimate_effort
from .field_types import build_field_suggestion, infer_field_type

__all__ = [
    'IntentClassifier',
    'assess_complexity',
    'estimate_effort',
    'build_field_suggestion',
    'infer_field_type',
]
