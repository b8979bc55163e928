from .base import BaseAnalyzer, Finding
from .nesting_analyzer import NestingAnalyzer

ALL_ANALYZERS = [
    NestingAnalyzer,
]

__all__ = [
    "BaseAnalyzer",
    "Finding",
    "NestingAnalyzer",
    "ALL_ANALYZERS",
]
