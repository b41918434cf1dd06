"""
Implementation-plan synthesis for classified developer requests.
"""

from .synthesizer import ContextAssistant, ContextSynthesizer

__all__ = [
    'ContextAssistant',
    'ContextSynthesizer',
]
