from .base import BaseCollector, CollectorResult
from .groups import GroupCollector

ALL_COLLECTORS = [
    GroupCollector,
]

__all__ = [
    "BaseCollector",
    "CollectorResult",
    "GroupCollector",
    "ALL_COLLECTORS",
]
